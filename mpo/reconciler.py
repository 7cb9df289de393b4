from __future__ import annotations

import copy
from typing import Any

from kubernetes.utils import parse_quantity
from pydantic import ValidationError

from . import db
from .builder import build
from .cluster import (
    CHILD_KINDS,
    MANAGED_BY,
    MANAGED_BY_LABEL,
    PROXY_KIND,
    PROXY_LABEL,
    SERVICE,
    Cluster,
    controller_owner,
    split_key,
)
from .errors import BackendResolutionError, ConfigurationError
from .events import EventRecorder
from .fingerprint import fingerprint
from .models import MemcachedProxy, parse_proxy
from .rules import Rule, compile_rules, iter_services


def contains(have: Any, want: Any, quantities: bool = False) -> bool:
    """True if every field set in want has the same value in have.

    Fields only present in have (server-populated) are ignored. Under a
    "resources" key values are compared as quantities, since the API server
    rewrites them into canonical form (0.5 -> 500m, 1024Mi -> 1Gi).
    """
    if isinstance(want, dict):
        if not isinstance(have, dict):
            return False
        return all(k in have and contains(have[k], v, quantities or k == "resources") for k, v in want.items())
    if isinstance(want, list):
        if not isinstance(have, list) or len(have) != len(want):
            return False
        return all(contains(h, w, quantities) for h, w in zip(have, want))
    if quantities and have != want:
        return _same_quantity(have, want)
    return have == want


def _same_quantity(have: Any, want: Any) -> bool:
    if have is None or want is None:
        return False
    try:
        return parse_quantity(have) == parse_quantity(want)
    except (ValueError, TypeError):
        return False


def merge(have: Any, want: Any, lists: bool = False) -> Any:
    """Overlay want onto have, keeping server-populated dict fields.

    With lists=True, lists of equal length are merged element by element
    instead of replaced.
    """
    if isinstance(have, dict) and isinstance(want, dict):
        out = dict(have)
        for k, v in want.items():
            out[k] = merge(have.get(k), v, lists)
        return out
    if lists and isinstance(have, list) and isinstance(want, list) and len(have) == len(want):
        return [merge(h, w, lists) for h, w in zip(have, want)]
    return copy.deepcopy(want)


def _content(obj: dict[str, Any]) -> dict[str, Any]:
    # List responses do not always carry apiVersion/kind.
    return {k: v for k, v in obj.items() if k not in ("apiVersion", "kind")}


class Reconciler:
    """Converges the children of one MemcachedProxy per sync() call."""

    def __init__(self, cluster: Cluster, recorder: EventRecorder | None = None):
        self.cluster = cluster
        self.recorder = recorder or EventRecorder(cluster)

    def sync(self, key: str) -> str | None:
        """Reconcile the proxy identified by key.

        Returns the fingerprint acted upon, or None when there was nothing
        to do (deleted or invalid resource). Raises on retryable failures.
        """
        namespace, name = split_key(key)
        raw = self.cluster.get(PROXY_KIND, namespace, name)
        if raw is None:
            # Children are reclaimed through their owner references.
            db.log_event("INFO", "MemcachedProxy not found; assuming deleted", namespace=namespace, name=name)
            return None

        try:
            proxy = parse_proxy(raw)
            working = proxy.model_copy(deep=True)
            working.apply_defaults()
            rule = compile_rules(working.spec.rules)
        except (ValidationError, ConfigurationError) as e:
            self.recorder.warning(raw, "InvalidSpec", f"Invalid MemcachedProxy spec: {e}")
            return None

        digest = fingerprint(working.spec)
        ports = self._resolve_ports(rule)
        desired = build(working, rule, ports)

        mutated = self._converge(working, raw, desired)

        if working.spec_object() != proxy.spec_object():
            raw = self._persist_defaults(raw, working)

        if mutated or not proxy.status.initialized or proxy.status.observed_spec_hash != digest:
            self._update_status(raw, digest)
            self.recorder.normal(raw, "Synced", f"MemcachedProxy synced (spec hash {digest})")

        return digest

    def _resolve_ports(self, rule: Rule) -> dict[tuple[str, str, str], int]:
        ports: dict[tuple[str, str, str], int] = {}
        for ref in iter_services(rule):
            if not isinstance(ref.port, str):
                continue
            k = (ref.namespace, ref.name, ref.port)
            if k in ports:
                continue
            svc = self.cluster.get(SERVICE, ref.namespace, ref.name)
            if svc is None:
                raise BackendResolutionError(f"backend service {ref.namespace}/{ref.name} not found")
            for p in (svc.get("spec") or {}).get("ports") or []:
                if p.get("name") == ref.port:
                    ports[k] = int(p["port"])
                    break
            else:
                raise BackendResolutionError(f"backend service {ref.namespace}/{ref.name} has no port named {ref.port!r}")
        return ports

    def _converge(self, proxy: MemcachedProxy, raw: dict[str, Any], desired: list[dict[str, Any]]) -> bool:
        labels = {MANAGED_BY_LABEL: MANAGED_BY, PROXY_LABEL: proxy.name}
        mutated = False

        for kind in CHILD_KINDS:
            live = {o["metadata"]["name"]: o for o in self.cluster.list(kind, proxy.namespace, labels)}

            for want in (d for d in desired if d["kind"] == kind):
                child = want["metadata"]["name"]
                have = live.pop(child, None)
                if have is None:
                    self.cluster.create(kind, want)
                    self.recorder.normal(raw, "Created", f"Created {kind} {child}")
                    mutated = True
                elif not contains(_content(have), _content(want)):
                    self.cluster.update(kind, merge(have, want))
                    self.recorder.normal(raw, "Updated", f"Updated {kind} {child}")
                    mutated = True

            for stale_name, stale in live.items():
                owner = controller_owner(stale)
                if owner is None or owner.get("uid") != proxy.uid:
                    continue
                self.cluster.delete(kind, proxy.namespace, stale_name)
                self.recorder.normal(raw, "Deleted", f"Deleted stale {kind} {stale_name}")
                mutated = True

        return mutated

    def _persist_defaults(self, raw: dict[str, Any], proxy: MemcachedProxy) -> dict[str, Any]:
        obj = copy.deepcopy(raw)
        # Fields the model does not know are kept.
        obj["spec"] = merge(raw.get("spec") or {}, proxy.spec_object(), lists=True)
        updated = self.cluster.update(PROXY_KIND, obj)
        db.log_event("INFO", "Applied spec defaults", namespace=proxy.namespace, name=proxy.name)
        return updated or obj

    def _update_status(self, raw: dict[str, Any], digest: str) -> None:
        obj = copy.deepcopy(raw)
        obj["status"] = {"observedSpecHash": digest, "initialized": True}
        self.cluster.update_status(PROXY_KIND, obj)
