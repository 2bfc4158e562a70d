"""Relating a persistent volume claim to its volume and to the pods using it."""

from __future__ import annotations

from typing import Any, Sequence


def _metadata(obj: dict[str, Any] | None, key: str) -> str:
    return ((obj or {}).get("metadata") or {}).get(key) or ""


class PxPvc:
    """A claim (a Kubernetes object as a dict) with its volume and pods.

    Volumes are dicts with a ``locator`` holding ``name`` and ``volume_labels``.
    """

    def __init__(self, pvc: dict[str, Any] | None) -> None:
        self.pvc = pvc
        self.name = _metadata(pvc, "name")
        self.namespace = _metadata(pvc, "namespace")
        self.px_volume: dict[str, Any] | None = None
        self.pods: list[dict[str, Any]] = []
        self.pod_names: list[str] = []

    def set_volume(self, vols: Sequence[dict[str, Any]]) -> bool:
        """Find the claim's volume by name, else by labels; return True if found."""
        if self.pvc is None:
            return False
        volume_name = (self.pvc.get("spec") or {}).get("volumeName") or ""
        for volume in vols:
            locator = volume.get("locator") or {}
            if (locator.get("name") or "") == volume_name:
                self.px_volume = volume
                return True
            labels = locator.get("volume_labels")
            if labels is not None and (
                self.name == labels.get("pvc", "")
                and self.namespace == labels.get("namespace", "")
            ):
                self.px_volume = volume
                return True
        return False

    def set_pods(self, pods: Sequence[dict[str, Any]]) -> bool:
        """Record the pods that mount this claim; return True if any do."""
        for pod in pods:
            if _metadata(pod, "namespace") != self.namespace:
                continue
            for volume in (pod.get("spec") or {}).get("volumes") or []:
                claim = volume.get("persistentVolumeClaim")
                if claim is not None and claim.get("claimName") == self.name:
                    self.pod_names.append(f"{self.namespace}/{_metadata(pod, 'name')}")
                    self.pods.append(pod)
        return bool(self.pod_names)