from __future__ import annotations

import copy
import itertools
import queue
import uuid
from dataclasses import dataclass
from threading import Event, Lock
from typing import Any, Iterator

from mpo.cluster import ADDED, DELETED, MODIFIED, PROXY_KIND, Cluster, matches_labels
from mpo.errors import Conflict, NotFound


@dataclass(frozen=True)
class Action:
    verb: str  # create|update|delete|update_status
    kind: str
    namespace: str
    name: str
    obj: dict[str, Any] | None = None


class FakeCluster(Cluster):
    """In-memory cluster that records every mutation call."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.actions: list[Action] = []
        self.events: list[tuple[str, str, str, str]] = []  # (name, type, reason, message)
        self.failures: dict[tuple[str, str], Exception] = {}  # (verb, kind) -> error
        self._rv = itertools.count(1)
        self._watchers: list[tuple[str, queue.Queue]] = []

    # -- test helpers ------------------------------------------------------

    def seed(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        """Store obj without recording an action."""
        obj = copy.deepcopy(obj)
        meta = obj.setdefault("metadata", {})
        meta.setdefault("namespace", "default")
        meta.setdefault("uid", str(uuid.uuid4()))
        meta["resourceVersion"] = str(next(self._rv))
        with self.lock:
            self.objects[(kind, meta["namespace"], meta["name"])] = obj
        self._notify(kind, ADDED, obj)
        return copy.deepcopy(obj)

    def stored(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        with self.lock:
            obj = self.objects.get((kind, namespace, name))
            return copy.deepcopy(obj) if obj is not None else None

    def mutations(self, kind: str | None = None) -> list[Action]:
        with self.lock:
            return [a for a in self.actions if kind is None or a.kind == kind]

    def clear_actions(self) -> None:
        with self.lock:
            self.actions.clear()
            self.events.clear()

    def _fail(self, verb: str, kind: str) -> None:
        err = self.failures.get((verb, kind))
        if err is not None:
            raise err

    def _notify(self, kind: str, event_type: str, obj: dict[str, Any]) -> None:
        with self.lock:
            watchers = [q for k, q in self._watchers if k == kind]
        for q in watchers:
            q.put((event_type, copy.deepcopy(obj)))

    # -- Cluster -----------------------------------------------------------

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        self._fail("get", kind)
        return self.stored(kind, namespace, name)

    def list(self, kind: str, namespace: str | None = None, labels: dict[str, str] | None = None) -> list[dict[str, Any]]:
        self._fail("list", kind)
        with self.lock:
            return [
                copy.deepcopy(o)
                for (k, ns, _), o in sorted(self.objects.items())
                if k == kind and (namespace is None or ns == namespace) and matches_labels(o, labels)
            ]

    def watch(self, kind: str, namespace: str | None, stop: Event, labels: dict[str, str] | None = None) -> Iterator[tuple[str, dict[str, Any]]]:
        q: queue.Queue = queue.Queue()
        with self.lock:
            self._watchers.append((kind, q))
        try:
            for obj in self.list(kind, namespace, labels):
                yield ADDED, obj
            while not stop.is_set():
                try:
                    event_type, obj = q.get(timeout=0.02)
                except queue.Empty:
                    continue
                ns = (obj.get("metadata") or {}).get("namespace")
                if (namespace is None or ns == namespace) and matches_labels(obj, labels):
                    yield event_type, obj
        finally:
            with self.lock:
                self._watchers = [(k, w) for k, w in self._watchers if w is not q]

    def create(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        self._fail("create", kind)
        obj = copy.deepcopy(obj)
        meta = obj["metadata"]
        k = (kind, meta["namespace"], meta["name"])
        with self.lock:
            if k in self.objects:
                raise Conflict(f"{kind} {meta['namespace']}/{meta['name']} already exists")
            meta.setdefault("uid", str(uuid.uuid4()))
            meta["resourceVersion"] = str(next(self._rv))
            self.objects[k] = obj
            self.actions.append(Action("create", kind, meta["namespace"], meta["name"], copy.deepcopy(obj)))
        self._notify(kind, ADDED, obj)
        return copy.deepcopy(obj)

    def update(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        self._fail("update", kind)
        obj = copy.deepcopy(obj)
        meta = obj["metadata"]
        k = (kind, meta["namespace"], meta["name"])
        with self.lock:
            current = self.objects.get(k)
            if current is None:
                raise NotFound(f"{kind} {meta['namespace']}/{meta['name']} not found")
            if kind == PROXY_KIND:
                # The status subresource ignores status in spec updates.
                obj["status"] = copy.deepcopy(current.get("status") or {})
            meta["resourceVersion"] = str(next(self._rv))
            self.objects[k] = obj
            self.actions.append(Action("update", kind, meta["namespace"], meta["name"], copy.deepcopy(obj)))
        self._notify(kind, MODIFIED, obj)
        return copy.deepcopy(obj)

    def delete(self, kind: str, namespace: str, name: str) -> None:
        self._fail("delete", kind)
        with self.lock:
            obj = self.objects.pop((kind, namespace, name), None)
            if obj is None:
                return
            self.actions.append(Action("delete", kind, namespace, name))
        self._notify(kind, DELETED, obj)

    def update_status(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        self._fail("update_status", kind)
        meta = obj["metadata"]
        k = (kind, meta["namespace"], meta["name"])
        with self.lock:
            current = self.objects.get(k)
            if current is None:
                raise NotFound(f"{kind} {meta['namespace']}/{meta['name']} not found")
            current["status"] = copy.deepcopy(obj.get("status") or {})
            current["metadata"]["resourceVersion"] = str(next(self._rv))
            out = copy.deepcopy(current)
            self.actions.append(Action("update_status", kind, meta["namespace"], meta["name"], copy.deepcopy(out)))
        self._notify(kind, MODIFIED, out)
        return out

    def record_event(self, obj: dict[str, Any], event_type: str, reason: str, message: str) -> None:
        name = (obj.get("metadata") or {}).get("name", "")
        with self.lock:
            self.events.append((name, event_type, reason, message))

    def reasons(self, name: str | None = None) -> list[str]:
        with self.lock:
            return [r for n, _, r, _ in self.events if name is None or n == name]
