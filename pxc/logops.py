"""Command-line options for log commands and selection of Portworx pods."""

from __future__ import annotations

import argparse
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol, Sequence

from pxc.logs import DEFAULT_TAIL_LINES, NO_TAIL_LINES, ContainerInfo, LogOptions

PORTWORX_CONTAINER_NAME = "portworx"
PORTWORX_POD_LABELS = "name=portworx"
DEFAULT_PORTWORX_NAMESPACE = "kube-system"
DEFAULT_MAX_LOG_REQUESTS = 5

_NANOS_PER_SECOND = 10**9
_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": _NANOS_PER_SECOND,
    "m": 60 * _NANOS_PER_SECOND,
    "h": 3600 * _NANOS_PER_SECOND,
}
_DURATION_PART = re.compile(r"([0-9]*(?:\.[0-9]*)?)(ns|us|µs|μs|ms|s|m|h)")
_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})"
)


class NodeNotFoundError(LookupError):
    """Raised when a requested node has no Portworx pod."""


class _PodLister(Protocol):
    def get_pods_by_labels(
        self, namespace: str, labels: str
    ) -> list[dict[str, Any]]: ...


def _parse_duration(text: str) -> int:
    """Parse a duration such as ``5s``, ``2m`` or ``1h30m`` into nanoseconds."""
    original = text
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return 0
    if not text:
        raise ValueError(f"invalid duration {original!r}")
    total = Decimal(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None or match.group(1) in ("", "."):
            raise ValueError(f"invalid duration {original!r}")
        try:
            number = Decimal(match.group(1))
        except InvalidOperation:
            raise ValueError(f"invalid duration {original!r}") from None
        total += number * _UNIT_NANOS[match.group(2)]
        pos = match.end()
    nanos = int(total)
    if nanos > 2**63 - 1:
        raise ValueError(f"invalid duration {original!r}")
    return sign * nanos


def _duration_nanos(value: Any) -> int:
    if isinstance(value, timedelta):
        return (value // timedelta(microseconds=1)) * 1000
    if isinstance(value, str):
        return _parse_duration(value)
    return int(value or 0)


def _round_to_seconds(nanos: int) -> int:
    """Round nanoseconds to whole seconds, halves away from zero."""
    seconds, rest = divmod(abs(nanos), _NANOS_PER_SECOND)
    if rest * 2 >= _NANOS_PER_SECOND:
        seconds += 1
    return -seconds if nanos < 0 else seconds


def add_common_log_options(parser: argparse.ArgumentParser) -> None:
    """Add the options shared by all log commands to ``parser``."""
    parser.add_argument(
        "-f", "--follow", action="store_true",
        help="Specify if the logs should be streamed.",
    )
    parser.add_argument(
        "--timestamps", action="store_true",
        help="Include timestamps on each line in the log output",
    )
    parser.add_argument(
        "--show-pod-info", action="store_true",
        help="Include pod info on each line in the log output",
    )
    parser.add_argument(
        "--previous", action="store_true",
        help="If true, print the logs for the previous instance of the container "
        "in a pod if it exists.",
    )
    parser.add_argument(
        "--ignore-errors", action="store_true",
        help="If watching / following Portworx logs, allow for any errors that "
        "occur to be non-fatal",
    )
    parser.add_argument(
        "--max-log-requests", type=int, default=DEFAULT_MAX_LOG_REQUESTS,
        help="Specify maximum number of concurrent logs to follow. Defaults to 5.",
    )
    parser.add_argument(
        "--limit-bytes", type=int, default=0,
        help="Maximum bytes of logs to return. Defaults to no limit.",
    )
    parser.add_argument(
        "--tail", type=int, default=NO_TAIL_LINES,
        help="Lines of recent log file to work on. Defaults to -1, showing all "
        "log lines. All filters will be applied on top of these lines",
    )
    parser.add_argument(
        "--since-time", default="",
        help="Only return logs after a specific date (RFC3339). Defaults to all "
        "logs. Only one of since-time / since may be used.",
    )
    parser.add_argument(
        "--since", type=_parse_duration, default=0,
        help="Only return logs newer than a relative duration like 5s, 2m, or 3h. "
        "Defaults to all logs. Only one of since-time / since may be used.",
    )
    parser.add_argument(
        "--px-namespace", default=DEFAULT_PORTWORX_NAMESPACE,
        help="Kubernetes namespace in which Portworx is installed",
    )
    parser.add_argument(
        "--filter", default="",
        help="Comma seperated list of strings to search for. Log line will be "
        "printed if any one of the strings match. Note that if --tail is "
        "specified the filter is applied on only those many lines.",
    )


def parse_rfc3339(s: str) -> datetime:
    """Parse an RFC 3339 time, with or without fractional seconds."""
    match = _RFC3339.fullmatch(s)
    if match is None:
        raise ValueError(f"cannot parse {s!r} as RFC3339")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction, zone = match.group(7), match.group(8)
    microsecond = int((fraction[1:] + "000000")[:6]) if fraction else 0
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours >= 24 or minutes >= 60:
            raise ValueError(f"cannot parse {s!r} as RFC3339: bad offset")
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    return datetime(year, month, day, hour, minute, second, microsecond, tzinfo=tz)


def get_common_log_options(args: argparse.Namespace) -> LogOptions:
    """Build log options from parsed command-line arguments."""
    lo = LogOptions(
        portworx_namespace=getattr(args, "px_namespace", DEFAULT_PORTWORX_NAMESPACE),
        ignore_log_errors=bool(getattr(args, "ignore_errors", False)),
        show_pod_info=bool(getattr(args, "show_pod_info", False)),
        max_follow_concurrency=getattr(
            args, "max_log_requests", DEFAULT_MAX_LOG_REQUESTS
        ),
    )
    if lo.max_follow_concurrency <= 0:
        raise ValueError("--max-log-requests should be greater than 0")

    filters = getattr(args, "filter", "") or ""
    if filters:
        lo.filters = filters.split(",")
        lo.apply_filters = True

    lo.follow = bool(getattr(args, "follow", False))
    lo.timestamps = bool(getattr(args, "timestamps", False))
    lo.previous = bool(getattr(args, "previous", False))

    limit = getattr(args, "limit_bytes", 0) or 0
    if limit != 0:
        if limit < 0:
            raise ValueError("--limit-bytes must be greater than 0")
        lo.limit_bytes = limit

    tail = getattr(args, "tail", NO_TAIL_LINES)
    if tail != NO_TAIL_LINES:
        if tail < 0:
            raise ValueError("TailLines must be greater than or equal to 0")
        lo.tail_lines = tail
    if lo.follow and lo.tail_lines is None:
        lo.tail_lines = DEFAULT_TAIL_LINES

    since_seconds = _round_to_seconds(_duration_nanos(getattr(args, "since", 0)))
    since_time = getattr(args, "since_time", "") or ""
    if since_time and since_seconds > 0:
        raise ValueError("at most one of --since or -since-time may be specified")
    if since_time:
        lo.since_time = parse_rfc3339(since_time)
    if since_seconds != 0:
        if since_seconds < 0:
            raise ValueError("--since must be greater than or equal to 0")
        lo.since_seconds = since_seconds
    return lo


def get_required_portworx_pods(
    cops: _PodLister,
    node_names: Sequence[str],
    portworx_namespace: str,
) -> list[ContainerInfo]:
    """Return the Portworx containers, limited to ``node_names`` when given."""
    pods = cops.get_pods_by_labels(portworx_namespace, PORTWORX_POD_LABELS)
    all_cinfo = [ContainerInfo(pod=p, container=PORTWORX_CONTAINER_NAME) for p in pods]
    if not node_names:
        return all_cinfo

    selected = [ci for ci in all_cinfo if ci.node_name in node_names]
    found = {ci.node_name for ci in selected}
    for name in node_names:
        if name not in found:
            raise NodeNotFoundError(f"Node {name} not found")
    return selected