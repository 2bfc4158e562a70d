"""Forwarding a local port to the cluster's service through ``kubectl``."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from typing import Any, Sequence

from pxc.config import Cluster, ConfigError, cm

logger = logging.getLogger(__name__)


class PortForwardError(RuntimeError):
    """Raised when the port forward cannot be set up."""


def get_endpoint_from_kubectl_output(sbuf: str) -> str:
    """Return the local endpoint announced in ``kubectl port-forward`` output."""
    index = sbuf.find("127.0.0.1:")
    if index >= 0:
        address = sbuf[index:].split(" ")[0]
        return "localhost:" + address.split(":")[1]
    index = sbuf.find("[::1]:")
    if index >= 0:
        return sbuf[index:].split(" ")[0]
    logger.warning("Unable to find 127.0.0.1 or [::1]: in [%s]", sbuf)
    raise PortForwardError("Failed to determine endpoint information")


class KubectlPortForwarder:
    """Runs ``kubectl port-forward`` to the cluster's tunnel service."""

    def __init__(
        self,
        kubeconfig: str = "",
        kubectl_args: Sequence[str] = (),
        cluster: Cluster | None = None,
        kubectl: str = "kubectl",
    ) -> None:
        self.kubeconfig = kubeconfig
        self._kubectl_args = list(kubectl_args)
        self._cluster = cluster
        self._kubectl = kubectl
        self._lock = threading.RLock()
        self._process: subprocess.Popen | None = None
        self._endpoint = ""
        self._running = False
        self._sigint_installed = False
        self._previous_sigint: Any = None

    def _command(self, cluster: Cluster) -> list[str]:
        args = [self._kubectl, *self._kubectl_args]
        if self.kubeconfig and not any(a.startswith("--kubeconfig") for a in args):
            args.append(f"--kubeconfig={self.kubeconfig}")
        args += [
            "-n",
            cluster.tunnel_service_namespace,
            "port-forward",
            f"svc/{cluster.tunnel_service_name}",
            f":{cluster.tunnel_service_port}",
        ]
        return args

    def start(self) -> str:
        """Start the port forward and return the local endpoint."""
        with self._lock:
            if self._running:
                raise PortForwardError("Tunnel already running")
            cluster = self._cluster
            if cluster is None:
                try:
                    cluster = cm().get_current_cluster()
                except ConfigError as exc:
                    raise PortForwardError(str(exc)) from exc
                if cluster is None:
                    raise PortForwardError("Current cluster is not set")
            args = self._command(cluster)
            logger.debug("port-forward: args %s", args)
            try:
                process = subprocess.Popen(
                    args, stdout=subprocess.PIPE, stdin=subprocess.DEVNULL
                )
            except OSError as exc:
                logger.error("Error while executing %s: %s", args, exc)
                raise PortForwardError(
                    "Unable to execute kubectl. Please make sure kubectl is in your path"
                ) from exc
            self._process = process
            self._install_sigint()

            try:
                data = os.read(process.stdout.fileno(), 1024)
            except OSError as exc:
                logger.warning("Error reading kubectl output: %s", exc)
                data = b""
            if not data:
                self._terminate()
                raise PortForwardError(
                    "Failed to setup connection to Portworx cluster to svc "
                    f"{cluster.tunnel_service_namespace}/{cluster.tunnel_service_name} "
                    f"port {cluster.tunnel_service_port}"
                )
            text = data.decode("utf-8", errors="replace")
            try:
                self._endpoint = get_endpoint_from_kubectl_output(text)
            except PortForwardError:
                self._terminate()
                raise
            logger.info("Connected to %s", self._endpoint)
            logger.debug("Output: %s", text)
            self._running = True
            return self._endpoint

    def stop(self) -> None:
        """Stop the port forward."""
        with self._lock:
            self._terminate()
            self._running = False

    def endpoint(self) -> str:
        """Return the local endpoint of the forward."""
        return self._endpoint

    def _terminate(self) -> None:
        process, self._process = self._process, None
        if process is not None:
            logger.debug("Port forwarding stopped")
            process.kill()
            process.wait()
            if process.stdout is not None:
                process.stdout.close()
        self._restore_sigint()

    def _install_sigint(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        previous = signal.getsignal(signal.SIGINT)

        def handler(signum: int, frame: Any) -> None:
            self.stop()
            if callable(previous):
                previous(signum, frame)
            elif previous == signal.SIG_DFL:
                raise KeyboardInterrupt

        signal.signal(signal.SIGINT, handler)
        self._previous_sigint = previous
        self._sigint_installed = True

    def _restore_sigint(self) -> None:
        if not self._sigint_installed:
            return
        if threading.current_thread() is threading.main_thread():
            previous = self._previous_sigint
            signal.signal(
                signal.SIGINT, previous if previous is not None else signal.SIG_DFL
            )
            self._sigint_installed = False
            self._previous_sigint = None


_forwarder: KubectlPortForwarder | None = None


def start_tunnel(kubeconfig: str = "", kubectl_args: Sequence[str] = ()) -> str:
    """Start the global tunnel and record its endpoint in the configuration."""
    global _forwarder
    if _forwarder is None:
        logger.info("Port forwarder using kubeconfig %s", kubeconfig)
        _forwarder = KubectlPortForwarder(kubeconfig, kubectl_args)
        try:
            _forwarder.start()
        except PortForwardError as exc:
            stop_tunnel()
            raise PortForwardError(f"Failed to setup port forward: {exc}") from exc
        cm().set_tunnel_endpoint(_forwarder.endpoint())
    return _forwarder.endpoint()


def stop_tunnel() -> None:
    """Stop the global tunnel if one is running."""
    global _forwarder
    if _forwarder is not None:
        _forwarder.stop()
        _forwarder = None