import io

import pytest

from pxc.logs import (
    NODE_KEY,
    ContainerInfo,
    KubeConnection,
    LogOptions,
    write_line,
)


def make_pod(name, namespace="ns", node=""):
    return {"metadata": {"name": name, "namespace": namespace}, "spec": {"nodeName": node}}


class FakeClient:
    def __init__(self, logs=None, pods=None, pvcs=None, failing=()):
        self.logs = logs or {}
        self.pods = pods or []
        self.pvcs = pvcs or []
        self.failing = set(failing)
        self.calls = []

    def list_pods(self, namespace, label_selector):
        self.calls.append(("pods", namespace, label_selector))
        return list(self.pods)

    def list_pvcs(self, namespace, label_selector):
        self.calls.append(("pvcs", namespace, label_selector))
        return list(self.pvcs)

    def stream_logs(self, namespace, pod_name, container, options):
        self.calls.append(("logs", namespace, pod_name, container))
        if pod_name in self.failing:
            raise RuntimeError(f"cannot stream {pod_name}")
        return io.BytesIO(self.logs[pod_name])


def test_container_info_properties():
    ci = ContainerInfo(make_pod("p1", "kube-system", "node1"), "portworx")
    assert (ci.pod_name, ci.pod_namespace, ci.node_name) == ("p1", "kube-system", "node1")


def test_without_client_lists_nothing():
    conn = KubeConnection()
    assert conn.get_pods_by_labels("ns", "name=portworx") == []
    assert conn.get_pvcs_by_labels("ns", "") == []


def test_list_pods_and_pvcs_pass_through():
    pods = [make_pod("a"), make_pod("b")]
    pvcs = [{"metadata": {"name": "claim"}}]
    client = FakeClient(pods=pods, pvcs=pvcs)
    conn = KubeConnection(client)
    assert conn.get_pods_by_labels("kube-system", "name=portworx") == pods
    assert conn.get_pvcs_by_labels("default", "app=db") == pvcs
    assert client.calls == [
        ("pods", "kube-system", "name=portworx"),
        ("pvcs", "default", "app=db"),
    ]


def test_get_logs_no_resources(capsys):
    out = io.BytesIO()
    KubeConnection(FakeClient()).get_logs(LogOptions(), out)
    assert capsys.readouterr().out == "No resources found\n"
    assert out.getvalue() == b""


def test_get_logs_sequential_with_pod_info():
    client = FakeClient(logs={"p1": b"first\nsecond"})
    lo = LogOptions(show_pod_info=True, cinfo=[ContainerInfo(make_pod("p1"), "c")])
    out = io.BytesIO()
    KubeConnection(client).get_logs(lo, out)
    prefix = b"pod=p1 namespace=ns "
    assert out.getvalue() == prefix + b"first\n" + prefix + b"second"
    assert ("logs", "ns", "p1", "c") in client.calls


def test_get_logs_filters_and_node_marker():
    client = FakeClient(logs={"p1": b"keep me\ndrop\n@keep node\n"})
    lo = LogOptions(
        filters=["keep"], apply_filters=True, cinfo=[ContainerInfo(make_pod("p1"), "c")]
    )
    out = io.BytesIO()
    KubeConnection(client).get_logs(lo, out)
    assert out.getvalue() == b"keep me\n" + NODE_KEY + b"keep node\n"


def test_follow_over_concurrency_limit():
    client = FakeClient(logs={"a": b"", "b": b"", "c": b""})
    lo = LogOptions(
        follow=True,
        max_follow_concurrency=2,
        cinfo=[ContainerInfo(make_pod(n), "c") for n in "abc"],
    )
    with pytest.raises(ValueError, match="maximum allowed concurency is 2"):
        KubeConnection(client).get_logs(lo, io.BytesIO())


def test_follow_parallel_collects_all_lines():
    client = FakeClient(logs={"a": b"a1\na2\n", "b": b"b1\nb2\n"})
    lo = LogOptions(follow=True, cinfo=[ContainerInfo(make_pod(n), "c") for n in "ab"])
    out = io.BytesIO()
    KubeConnection(client).get_logs(lo, out)
    assert sorted(out.getvalue().splitlines()) == [b"a1", b"a2", b"b1", b"b2"]


def test_follow_parallel_error_raises():
    client = FakeClient(logs={"a": b"a1\n"}, failing={"b"})
    lo = LogOptions(follow=True, cinfo=[ContainerInfo(make_pod(n), "c") for n in "ab"])
    with pytest.raises(RuntimeError, match="cannot stream b"):
        KubeConnection(client).get_logs(lo, io.BytesIO())


def test_follow_parallel_error_ignored():
    client = FakeClient(logs={"a": b"a1\n"}, failing={"b"})
    lo = LogOptions(
        follow=True,
        ignore_log_errors=True,
        cinfo=[ContainerInfo(make_pod(n), "c") for n in "ab"],
    )
    out = io.BytesIO()
    KubeConnection(client).get_logs(lo, out)
    assert sorted(out.getvalue().splitlines()) == [b"a1", b"error: cannot stream b"]


def test_sequential_error_propagates():
    client = FakeClient(failing={"a"})
    lo = LogOptions(cinfo=[ContainerInfo(make_pod("a"), "c")])
    with pytest.raises(RuntimeError):
        KubeConnection(client).get_logs(lo, io.BytesIO())


def test_write_line_empty_data_writes_nothing():
    out = io.BytesIO()
    write_line(b"prefix ", b"", LogOptions(), out)
    assert out.getvalue() == b""


def test_write_line_filter_rejects():
    out = io.BytesIO()
    write_line(b"", b"nothing here\n", LogOptions(filters=["x1"], apply_filters=True), out)
    assert out.getvalue() == b""


def test_write_line_prefix_and_marker():
    out = io.BytesIO()
    write_line(b"P ", b"@host\n", LogOptions(), out)
    assert out.getvalue() == b"P " + NODE_KEY + b"host\n"