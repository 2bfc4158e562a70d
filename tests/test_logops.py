import argparse
from datetime import datetime, timedelta, timezone

import pytest

from pxc.logops import (
    PORTWORX_CONTAINER_NAME,
    NodeNotFoundError,
    add_common_log_options,
    get_common_log_options,
    get_required_portworx_pods,
    parse_rfc3339,
)
from pxc.logs import DEFAULT_TAIL_LINES


def _options(*argv):
    parser = argparse.ArgumentParser()
    add_common_log_options(parser)
    return get_common_log_options(parser.parse_args(list(argv)))


def test_defaults():
    lo = _options()
    assert lo.portworx_namespace == "kube-system"
    assert lo.max_follow_concurrency == 5
    assert lo.tail_lines is None
    assert lo.limit_bytes is None
    assert lo.since_seconds is None
    assert lo.since_time is None
    assert lo.apply_filters is False
    assert lo.follow is False


def test_follow_sets_default_tail():
    lo = _options("-f")
    assert lo.follow is True
    assert lo.tail_lines == DEFAULT_TAIL_LINES


def test_follow_keeps_explicit_tail():
    lo = _options("--follow", "--tail", "0")
    assert lo.tail_lines == 0


def test_filters_split():
    lo = _options("--filter", "alpha,beta")
    assert lo.filters == ["alpha", "beta"]
    assert lo.apply_filters is True


def test_flags_copied():
    lo = _options(
        "--timestamps", "--previous", "--show-pod-info", "--ignore-errors",
        "--limit-bytes", "100", "--px-namespace", "portworx",
    )
    assert lo.timestamps and lo.previous and lo.show_pod_info and lo.ignore_log_errors
    assert lo.limit_bytes == 100
    assert lo.portworx_namespace == "portworx"


def test_since_seconds():
    assert _options("--since", "90s").since_seconds == 90
    assert _options("--since", "2m").since_seconds == 120
    assert _options("--since", "1.5s").since_seconds == 2


@pytest.mark.parametrize(
    "argv",
    [
        ["--max-log-requests", "0"],
        ["--limit-bytes", "-1"],
        ["--tail", "-5"],
        ["--since", "-5s"],
        ["--since", "5s", "--since-time", "2020-01-01T00:00:00Z"],
        ["--since-time", "yesterday"],
    ],
)
def test_invalid_options(argv):
    with pytest.raises(ValueError):
        _options(*argv)


def test_bad_duration_rejected_by_parser():
    parser = argparse.ArgumentParser()
    add_common_log_options(parser)
    with pytest.raises(SystemExit):
        parser.parse_args(["--since", "abc"])


def test_since_time():
    lo = _options("--since-time", "2020-01-02T03:04:05Z")
    assert lo.since_time == datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_parse_rfc3339_fraction_and_offset():
    t = parse_rfc3339("2020-01-02T03:04:05.123456789+02:00")
    assert t.microsecond == 123456
    assert t.utcoffset() == timedelta(hours=2)


def test_parse_rfc3339_invalid():
    with pytest.raises(ValueError):
        parse_rfc3339("2020-13-02T03:04:05Z")


class _FakeCops:
    def __init__(self, pods):
        self.pods = pods
        self.calls = []

    def get_pods_by_labels(self, namespace, labels):
        self.calls.append((namespace, labels))
        return self.pods


def _pod(name, node):
    return {"metadata": {"name": name, "namespace": "kube-system"},
            "spec": {"nodeName": node}}


def test_required_pods_all():
    cops = _FakeCops([_pod("px-a", "node1"), _pod("px-b", "node2")])
    result = get_required_portworx_pods(cops, [], "kube-system")
    assert cops.calls == [("kube-system", "name=portworx")]
    assert [ci.pod_name for ci in result] == ["px-a", "px-b"]
    assert all(ci.container == PORTWORX_CONTAINER_NAME for ci in result)


def test_required_pods_by_node():
    cops = _FakeCops([_pod("px-a", "node1"), _pod("px-b", "node2")])
    result = get_required_portworx_pods(cops, ["node2"], "kube-system")
    assert [ci.pod_name for ci in result] == ["px-b"]


def test_required_pods_missing_node():
    cops = _FakeCops([_pod("px-a", "node1")])
    with pytest.raises(NodeNotFoundError, match="Node node9 not found"):
        get_required_portworx_pods(cops, ["node1", "node9"], "kube-system")