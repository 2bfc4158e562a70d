"""Listing pods and claims, and streaming container logs from Kubernetes."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, BinaryIO, Protocol, Sequence

DEFAULT_TAIL_LINES = 10
NO_TAIL_LINES = -1
NODE_KEY = b"node="

_DATA = "data"
_DONE = "done"
_ERROR = "error"


def _metadata(obj: dict[str, Any] | None, key: str) -> str:
    return ((obj or {}).get("metadata") or {}).get(key) or ""


@dataclass
class ContainerInfo:
    """A container inside a pod, given as a Kubernetes pod object (a dict)."""

    pod: dict[str, Any]
    container: str
    mount_path: str = ""

    @property
    def pod_name(self) -> str:
        return _metadata(self.pod, "name")

    @property
    def pod_namespace(self) -> str:
        return _metadata(self.pod, "namespace")

    @property
    def node_name(self) -> str:
        return (self.pod.get("spec") or {}).get("nodeName") or ""


@dataclass
class LogOptions:
    """What logs to fetch and how to print them."""

    follow: bool = False
    timestamps: bool = False
    previous: bool = False
    limit_bytes: int | None = None
    tail_lines: int | None = None
    since_time: datetime | None = None
    since_seconds: int | None = None
    ignore_log_errors: bool = False
    max_follow_concurrency: int = 5
    show_pod_info: bool = False
    filters: list[str] = field(default_factory=list)
    apply_filters: bool = False
    portworx_namespace: str = ""
    cinfo: list[ContainerInfo] = field(default_factory=list)


class _KubeClient(Protocol):
    def list_pods(self, namespace: str, label_selector: str) -> list[dict[str, Any]]: ...

    def list_pvcs(self, namespace: str, label_selector: str) -> list[dict[str, Any]]: ...

    def stream_logs(
        self, namespace: str, pod_name: str, container: str, options: LogOptions
    ) -> BinaryIO: ...


class _QueueWriter:
    def __init__(self, events: queue.Queue) -> None:
        self._events = events

    def write(self, data: bytes) -> int:
        self._events.put((_DATA, bytes(data)))
        return len(data)


def _contains_any(text: str, filters: Sequence[str]) -> bool:
    return any(f in text for f in filters)


def write_line(prefix: bytes, data: bytes, lo: LogOptions, out: BinaryIO) -> None:
    """Write one log line to ``out``, applying filters, prefix and node marker."""
    if lo.apply_filters and not _contains_any(
        data.decode("utf-8", errors="replace"), lo.filters
    ):
        return
    if data:
        if prefix:
            out.write(prefix)
        if data[:1] == b"@":
            out.write(NODE_KEY)
            data = data[1:]
    out.write(data)


class KubeConnection:
    """Access to a Kubernetes cluster through a client object.

    The client provides ``list_pods``, ``list_pvcs`` and ``stream_logs``;
    pods and claims are Kubernetes objects as dicts. Without a client no
    pods or claims are found.
    """

    def __init__(self, client: _KubeClient | None = None) -> None:
        self._client = client

    def close(self) -> None:
        """Release the connection; nothing is held open."""

    def get_pods_by_labels(self, namespace: str, labels: str) -> list[dict[str, Any]]:
        """Return pods in ``namespace`` matching ``labels`` (``a=b,c=d``)."""
        if self._client is None:
            return []
        return list(self._client.list_pods(namespace, labels or ""))

    def get_pvcs_by_labels(self, namespace: str, labels: str) -> list[dict[str, Any]]:
        """Return claims in ``namespace`` matching ``labels`` (``a=b,c=d``)."""
        if self._client is None:
            return []
        return list(self._client.list_pvcs(namespace, labels or ""))

    def get_logs(self, lo: LogOptions, out: BinaryIO) -> None:
        """Write the logs of every container in ``lo.cinfo`` to binary ``out``."""
        if not lo.cinfo:
            print("No resources found")
            return
        if self._client is None:
            raise RuntimeError("not connected to Kubernetes")
        payloads = list(lo.cinfo)
        if lo.follow and len(payloads) > 1:
            if len(payloads) > lo.max_follow_concurrency:
                raise ValueError(
                    f"you are attempting to follow {len(payloads)} log streams, "
                    f"but maximum allowed concurency is {lo.max_follow_concurrency}, "
                    "use --max-log-requests to increase the limit"
                )
            self._write_parallel(payloads, lo, out)
            return
        for ci in payloads:
            self._do_write(ci, lo, out)

    def _write_parallel(
        self, payloads: Sequence[ContainerInfo], lo: LogOptions, out: BinaryIO
    ) -> None:
        events: queue.Queue = queue.Queue()
        writer = _QueueWriter(events)

        def worker(ci: ContainerInfo) -> None:
            try:
                self._do_write(ci, lo, writer)
            except Exception as exc:  # noqa: BLE001 - forwarded to the reader
                if not lo.ignore_log_errors:
                    events.put((_ERROR, exc))
                    return
                writer.write(f"error: {exc}\n".encode())
            events.put((_DONE, None))

        for ci in payloads:
            threading.Thread(target=worker, args=(ci,), daemon=True).start()

        remaining = len(payloads)
        while remaining:
            kind, value = events.get()
            if kind == _DATA:
                out.write(value)
            elif kind == _DONE:
                remaining -= 1
            else:
                raise value

    def _do_write(self, ci: ContainerInfo, lo: LogOptions, out: Any) -> None:
        prefix = b""
        if lo.show_pod_info:
            prefix = f"pod={ci.pod_name} namespace={ci.pod_namespace} ".encode()
        stream = self._client.stream_logs(ci.pod_namespace, ci.pod_name, ci.container, lo)
        try:
            for line in iter(stream.readline, b""):
                write_line(prefix, line, lo, out)
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()