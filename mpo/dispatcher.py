from __future__ import annotations

from threading import Event, Thread
from typing import Any

from . import db
from .cluster import CHILD_KINDS, MANAGED_BY, MANAGED_BY_LABEL, PROXY_KIND, Cluster, controller_owner, key_func
from .workqueue import WorkQueue


class ChangeDispatcher:
    """Turns watch events into proxy keys on the work queue.

    Proxy events map to the proxy's own key; events on managed children map
    to the key of their controlling MemcachedProxy. Only the key is queued:
    the reconciler always re-reads current state.
    """

    def __init__(self, cluster: Cluster, queue: WorkQueue, namespace: str | None = None):
        self.cluster = cluster
        self.queue = queue
        self.namespace = namespace or None
        self._threads: list[Thread] = []

    def key_for(self, kind: str, obj: dict[str, Any]) -> str | None:
        if kind == PROXY_KIND:
            try:
                return key_func(obj)
            except ValueError:
                return None
        owner = controller_owner(obj)
        if owner is None or owner.get("kind") != PROXY_KIND or not owner.get("name"):
            return None
        ns = (obj.get("metadata") or {}).get("namespace")
        return f"{ns}/{owner['name']}" if ns else owner["name"]

    def handle(self, kind: str, event_type: str, obj: dict[str, Any]) -> str | None:
        key = self.key_for(kind, obj)
        if key is not None:
            self.queue.add(key)
        return key

    def start(self, stop: Event) -> None:
        """Start one watch thread per watched kind."""
        watches: list[tuple[str, dict[str, str] | None]] = [(PROXY_KIND, None)]
        watches.extend((kind, {MANAGED_BY_LABEL: MANAGED_BY}) for kind in CHILD_KINDS)
        for kind, labels in watches:
            t = Thread(target=self._watch_loop, args=(kind, labels, stop), name=f"watch-{kind}", daemon=True)
            t.start()
            self._threads.append(t)

    def join(self, timeout: float | None = None) -> None:
        for t in self._threads:
            t.join(timeout)

    def _watch_loop(self, kind: str, labels: dict[str, str] | None, stop: Event) -> None:
        db.log_event("INFO", f"Watching {kind}")
        while not stop.is_set():
            try:
                for event_type, obj in self.cluster.watch(kind, self.namespace, stop, labels=labels):
                    if stop.is_set():
                        break
                    self.handle(kind, event_type, obj)
            except Exception as e:
                db.log_event("ERROR", f"Watch on {kind} failed: {type(e).__name__}: {e}")
                stop.wait(1.0)
        db.log_event("INFO", f"Stopped watching {kind}")
