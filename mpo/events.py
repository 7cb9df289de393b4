from __future__ import annotations

from typing import Any

from . import db
from .cluster import Cluster

NORMAL = "Normal"
WARNING = "Warning"


class EventRecorder:
    """Records resource events on the cluster and in the local event log."""

    def __init__(self, cluster: Cluster | None = None):
        self.cluster = cluster

    def event(self, obj: dict[str, Any], event_type: str, reason: str, message: str) -> None:
        meta = obj.get("metadata") or {}
        level = "WARN" if event_type == WARNING else "INFO"
        db.log_event(level, message, namespace=meta.get("namespace"), name=meta.get("name"), reason=reason)
        if self.cluster is not None:
            self.cluster.record_event(obj, event_type, reason, message)

    def normal(self, obj: dict[str, Any], reason: str, message: str) -> None:
        self.event(obj, NORMAL, reason, message)

    def warning(self, obj: dict[str, Any], reason: str, message: str) -> None:
        self.event(obj, WARNING, reason, message)
