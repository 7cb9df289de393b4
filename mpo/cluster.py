from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Event
from typing import Any, Iterator

from .models import API_VERSION, KIND

PROXY_KIND = KIND
CONFIG_MAP = "ConfigMap"
SERVICE = "Service"
DEPLOYMENT = "Deployment"
CHILD_KINDS = (CONFIG_MAP, DEPLOYMENT, SERVICE)

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "memcached-proxy-operator"
PROXY_LABEL = "ianlewis.org/memcached-proxy"

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"


class Cluster(ABC):
    """Cluster API capabilities the controller depends on.

    Objects are exchanged as plain dicts in their JSON wire shape.
    Failures raise mpo.errors.ClusterError (NotFound, Conflict).
    """

    @abstractmethod
    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        """Return the object, or None if it does not exist."""

    @abstractmethod
    def list(self, kind: str, namespace: str | None = None, labels: dict[str, str] | None = None) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def watch(self, kind: str, namespace: str | None, stop: Event, labels: dict[str, str] | None = None) -> Iterator[tuple[str, dict[str, Any]]]:
        """Yield (event_type, object) until stop is set.

        Existing objects are reported as ADDED first.
        """

    @abstractmethod
    def create(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    def update(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    def delete(self, kind: str, namespace: str, name: str) -> None:
        ...

    @abstractmethod
    def update_status(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        """Write only the status of obj (status subresource)."""

    @abstractmethod
    def record_event(self, obj: dict[str, Any], event_type: str, reason: str, message: str) -> None:
        """Attach a human-visible event (Normal|Warning) to obj."""


def key_func(obj: dict[str, Any]) -> str:
    meta = obj.get("metadata") or {}
    name = meta.get("name")
    if not name:
        raise ValueError("object has no metadata.name")
    ns = meta.get("namespace")
    return f"{ns}/{name}" if ns else name


def split_key(key: str) -> tuple[str, str]:
    parts = key.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2 and parts[1]:
        return parts[0], parts[1]
    raise ValueError(f"unexpected key format: {key!r}")


def owner_reference(proxy: dict[str, Any]) -> dict[str, Any]:
    meta = proxy.get("metadata") or {}
    return {
        "apiVersion": API_VERSION,
        "kind": PROXY_KIND,
        "name": meta.get("name", ""),
        "uid": meta.get("uid", ""),
        "controller": True,
        "blockOwnerDeletion": True,
    }


def controller_owner(obj: dict[str, Any]) -> dict[str, Any] | None:
    for ref in (obj.get("metadata") or {}).get("ownerReferences") or []:
        if ref.get("controller"):
            return ref
    return None


def child_labels(proxy_name: str) -> dict[str, str]:
    return {
        "app.kubernetes.io/name": "mcrouter",
        MANAGED_BY_LABEL: MANAGED_BY,
        PROXY_LABEL: proxy_name,
    }


def label_selector(labels: dict[str, str] | None) -> str | None:
    if not labels:
        return None
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def matches_labels(obj: dict[str, Any], labels: dict[str, str] | None) -> bool:
    if not labels:
        return True
    have = (obj.get("metadata") or {}).get("labels") or {}
    return all(have.get(k) == v for k, v in labels.items())
