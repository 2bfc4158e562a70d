from datetime import datetime, timedelta, timezone

import pytest
from google.protobuf.timestamp_pb2 import Timestamp

from pxc.prototime import (
    duration_from_proto,
    duration_to_proto,
    now,
    time_to_timestamp,
    timestamp_less,
    timestamp_to_time,
)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def test_time_round_trip():
    t = datetime(2021, 6, 15, 12, 30, 45, 123456, tzinfo=timezone.utc)
    ts = time_to_timestamp(t)
    assert ts.seconds == int(t.timestamp())
    assert timestamp_to_time(ts) == t


def test_time_round_trip_other_zone():
    zone = timezone(timedelta(hours=5))
    t = datetime(2020, 1, 2, 3, 4, 5, 6, tzinfo=zone)
    assert timestamp_to_time(time_to_timestamp(t)) == t


def test_pre_epoch_truncates_toward_zero():
    t = EPOCH - timedelta(seconds=1, microseconds=500000)
    ts = time_to_timestamp(t)
    assert ts.seconds <= 0
    assert ts.nanos <= 0
    assert timestamp_to_time(ts) == t


def test_timestamp_to_time_none_is_epoch():
    assert timestamp_to_time(None) == EPOCH


@pytest.mark.parametrize(
    "i, j, expected",
    [
        (None, None, False),
        (None, Timestamp(seconds=1), True),
        (Timestamp(seconds=1), None, False),
        (Timestamp(seconds=1), Timestamp(seconds=2), True),
        (Timestamp(seconds=2), Timestamp(seconds=1), False),
        (Timestamp(seconds=1, nanos=1), Timestamp(seconds=1, nanos=2), True),
        (Timestamp(seconds=1, nanos=2), Timestamp(seconds=1, nanos=2), False),
    ],
)
def test_timestamp_less(i, j, expected):
    assert timestamp_less(i, j) is expected


def test_now_is_current():
    before = time_to_timestamp(datetime.now(timezone.utc))
    current = now()
    after = time_to_timestamp(datetime.now(timezone.utc))
    assert not timestamp_less(current, before)
    assert not timestamp_less(after, current)


def test_duration_whole_seconds():
    d = duration_to_proto(timedelta(seconds=90))
    assert d.seconds == 90
    assert d.nanos == 0


def test_duration_round_trip():
    d = timedelta(days=2, seconds=5, microseconds=7)
    assert duration_from_proto(duration_to_proto(d)) == d


def test_negative_duration_signs():
    d = -timedelta(seconds=1, microseconds=500000)
    proto = duration_to_proto(d)
    assert proto.seconds <= 0
    assert proto.nanos <= 0
    assert duration_from_proto(proto) == d


def test_duration_from_none():
    assert duration_from_proto(None) == timedelta(0)