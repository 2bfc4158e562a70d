"""Conversions between datetime values and protobuf time messages."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from google.protobuf.duration_pb2 import Duration
from google.protobuf.timestamp_pb2 import Timestamp

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NANOS_PER_SECOND = 10**9
_MICROSECOND = timedelta(microseconds=1)


def _split_nanos(total: int) -> tuple[int, int]:
    """Split nanoseconds into seconds and remainder, truncating toward zero."""
    sign = -1 if total < 0 else 1
    seconds, nanos = divmod(abs(total), _NANOS_PER_SECOND)
    return sign * seconds, sign * nanos


def time_to_timestamp(t: datetime) -> Timestamp:
    """Convert a datetime to a protobuf Timestamp; naive values are local time."""
    if t.tzinfo is None:
        t = t.astimezone()
    total = ((t - _EPOCH) // _MICROSECOND) * 1000
    seconds, nanos = _split_nanos(total)
    return Timestamp(seconds=seconds, nanos=nanos)


def timestamp_to_time(timestamp: Timestamp | None) -> datetime:
    """Convert a protobuf Timestamp to a UTC datetime; None gives the epoch."""
    if timestamp is None:
        return _EPOCH
    total = timestamp.seconds * _NANOS_PER_SECOND + timestamp.nanos
    return _EPOCH + timedelta(microseconds=total // 1000)


def timestamp_less(i: Timestamp | None, j: Timestamp | None) -> bool:
    """Return True if i is before j; None sorts before any timestamp."""
    if j is None:
        return False
    if i is None:
        return True
    return (i.seconds, i.nanos) < (j.seconds, j.nanos)


def now() -> Timestamp:
    """Return the current time as a protobuf Timestamp."""
    return time_to_timestamp(datetime.now(timezone.utc))


def duration_to_proto(d: timedelta) -> Duration:
    """Convert a timedelta to a protobuf Duration."""
    total = (d // _MICROSECOND) * 1000
    seconds, nanos = _split_nanos(total)
    return Duration(seconds=seconds, nanos=nanos)


def duration_from_proto(duration: Duration | None) -> timedelta:
    """Convert a protobuf Duration to a timedelta; None gives zero."""
    if duration is None:
        return timedelta(0)
    total = duration.seconds * _NANOS_PER_SECOND + duration.nanos
    return timedelta(microseconds=total // 1000)