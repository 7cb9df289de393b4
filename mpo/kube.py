from __future__ import annotations

import random
from threading import Event
from typing import Any, Callable, Iterator

from kubernetes import client, config, watch
from kubernetes.client import ApiException

from . import db
from .cluster import ADDED, CONFIG_MAP, DEPLOYMENT, PROXY_KIND, SERVICE, Cluster, label_selector
from .db import utc_now
from .errors import ClusterError, Conflict, NotFound
from .models import API_VERSION, GROUP, PLURAL, VERSION

COMPONENT = "memcached-proxy-operator"


def load_cluster_config(kubeconfig: str | None = None) -> None:
    """Load in-cluster credentials, falling back to the local kubeconfig."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def _translate(e: ApiException) -> ClusterError:
    msg = f"{e.status} {e.reason}"
    if e.status == 404:
        return NotFound(msg)
    if e.status == 409:
        return Conflict(msg)
    return ClusterError(msg, status=e.status)


class KubeCluster(Cluster):
    """Cluster backed by the Kubernetes API via the official client."""

    def __init__(self, api_client: client.ApiClient | None = None, watch_timeout_s: int = 60):
        self.api_client = api_client or client.ApiClient()
        self.core = client.CoreV1Api(self.api_client)
        self.apps = client.AppsV1Api(self.api_client)
        self.custom = client.CustomObjectsApi(self.api_client)
        self.watch_timeout_s = watch_timeout_s

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self.api_client.sanitize_for_serialization(obj)

    def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except ApiException as e:
            raise _translate(e) from e

    # -- per-kind dispatch -------------------------------------------------

    def _read(self, kind: str, namespace: str, name: str) -> Any:
        if kind == PROXY_KIND:
            return self._call(self.custom.get_namespaced_custom_object, GROUP, VERSION, namespace, PLURAL, name)
        if kind == CONFIG_MAP:
            return self._call(self.core.read_namespaced_config_map, name, namespace)
        if kind == SERVICE:
            return self._call(self.core.read_namespaced_service, name, namespace)
        if kind == DEPLOYMENT:
            return self._call(self.apps.read_namespaced_deployment, name, namespace)
        raise ValueError(f"unsupported kind {kind!r}")

    def _list_call(self, kind: str, namespace: str | None) -> tuple[Callable[..., Any], tuple[Any, ...]]:
        if kind == PROXY_KIND:
            if namespace:
                return self.custom.list_namespaced_custom_object, (GROUP, VERSION, namespace, PLURAL)
            return self.custom.list_cluster_custom_object, (GROUP, VERSION, PLURAL)
        table = {
            CONFIG_MAP: (self.core.list_namespaced_config_map, self.core.list_config_map_for_all_namespaces),
            SERVICE: (self.core.list_namespaced_service, self.core.list_service_for_all_namespaces),
            DEPLOYMENT: (self.apps.list_namespaced_deployment, self.apps.list_deployment_for_all_namespaces),
        }
        if kind not in table:
            raise ValueError(f"unsupported kind {kind!r}")
        namespaced, all_namespaces = table[kind]
        if namespace:
            return namespaced, (namespace,)
        return all_namespaces, ()

    def _list_raw(self, kind: str, namespace: str | None, selector: str | None) -> tuple[list[dict[str, Any]], str | None]:
        fn, args = self._list_call(kind, namespace)
        kwargs = {"label_selector": selector} if selector else {}
        result = self._to_dict(self._call(fn, *args, **kwargs))
        items = [self._to_dict(i) for i in result.get("items") or []]
        rv = (result.get("metadata") or {}).get("resourceVersion")
        return items, rv

    # -- Cluster -----------------------------------------------------------

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        try:
            return self._to_dict(self._read(kind, namespace, name))
        except NotFound:
            return None

    def list(self, kind: str, namespace: str | None = None, labels: dict[str, str] | None = None) -> list[dict[str, Any]]:
        items, _ = self._list_raw(kind, namespace, label_selector(labels))
        return items

    def watch(self, kind: str, namespace: str | None, stop: Event, labels: dict[str, str] | None = None) -> Iterator[tuple[str, dict[str, Any]]]:
        fn, args = self._list_call(kind, namespace)
        selector = label_selector(labels)
        resource_version: str | None = None
        backoff_s = 1.0

        while not stop.is_set():
            if resource_version is None:
                items, resource_version = self._list_raw(kind, namespace, selector)
                for obj in items:
                    yield ADDED, obj

            kwargs: dict[str, Any] = {"timeout_seconds": self.watch_timeout_s}
            if selector:
                kwargs["label_selector"] = selector
            if resource_version:
                kwargs["resource_version"] = resource_version

            w = watch.Watch()
            try:
                for ev in w.stream(fn, *args, **kwargs):
                    if stop.is_set():
                        break
                    obj = ev.get("raw_object") or {}
                    if ev.get("type") == "ERROR":
                        if obj.get("code") == 410:
                            # Compacted past our resourceVersion: re-list.
                            resource_version = None
                            break
                        raise ClusterError(obj.get("message", "watch error"), status=obj.get("code"))
                    resource_version = (obj.get("metadata") or {}).get("resourceVersion") or resource_version
                    yield ev["type"], obj
                backoff_s = 1.0
            except ApiException as e:
                if e.status == 410:
                    resource_version = None
                    continue
                if e.status in {401, 403}:
                    raise _translate(e) from e
                db.log_event("WARN", f"Watch on {kind} interrupted ({e.status}); retrying in ~{backoff_s:.0f}s")
                stop.wait(backoff_s * (0.5 + random.random()))
                backoff_s = min(backoff_s * 2, 30.0)
            finally:
                w.stop()

    def create(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        ns = obj["metadata"]["namespace"]
        if kind == PROXY_KIND:
            out = self._call(self.custom.create_namespaced_custom_object, GROUP, VERSION, ns, PLURAL, obj)
        elif kind == CONFIG_MAP:
            out = self._call(self.core.create_namespaced_config_map, ns, obj)
        elif kind == SERVICE:
            out = self._call(self.core.create_namespaced_service, ns, obj)
        elif kind == DEPLOYMENT:
            out = self._call(self.apps.create_namespaced_deployment, ns, obj)
        else:
            raise ValueError(f"unsupported kind {kind!r}")
        return self._to_dict(out)

    def update(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        ns = obj["metadata"]["namespace"]
        name = obj["metadata"]["name"]
        if kind == PROXY_KIND:
            out = self._call(self.custom.replace_namespaced_custom_object, GROUP, VERSION, ns, PLURAL, name, obj)
        elif kind == CONFIG_MAP:
            out = self._call(self.core.replace_namespaced_config_map, name, ns, obj)
        elif kind == SERVICE:
            out = self._call(self.core.replace_namespaced_service, name, ns, obj)
        elif kind == DEPLOYMENT:
            out = self._call(self.apps.replace_namespaced_deployment, name, ns, obj)
        else:
            raise ValueError(f"unsupported kind {kind!r}")
        return self._to_dict(out)

    def delete(self, kind: str, namespace: str, name: str) -> None:
        try:
            if kind == PROXY_KIND:
                self._call(self.custom.delete_namespaced_custom_object, GROUP, VERSION, namespace, PLURAL, name)
            elif kind == CONFIG_MAP:
                self._call(self.core.delete_namespaced_config_map, name, namespace)
            elif kind == SERVICE:
                self._call(self.core.delete_namespaced_service, name, namespace)
            elif kind == DEPLOYMENT:
                self._call(self.apps.delete_namespaced_deployment, name, namespace)
            else:
                raise ValueError(f"unsupported kind {kind!r}")
        except NotFound:
            return

    def update_status(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        if kind != PROXY_KIND:
            raise ValueError(f"status updates are only supported for {PROXY_KIND}")
        meta = obj["metadata"]
        out = self._call(
            self.custom.patch_namespaced_custom_object_status,
            GROUP,
            VERSION,
            meta["namespace"],
            PLURAL,
            meta["name"],
            {"status": obj.get("status") or {}},
        )
        return self._to_dict(out)

    def record_event(self, obj: dict[str, Any], event_type: str, reason: str, message: str) -> None:
        meta = obj.get("metadata") or {}
        ns = meta.get("namespace") or "default"
        now = utc_now()
        body = {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {"generateName": f"{meta.get('name', 'unknown')}.", "namespace": ns},
            "involvedObject": {
                "apiVersion": obj.get("apiVersion") or API_VERSION,
                "kind": obj.get("kind") or PROXY_KIND,
                "name": meta.get("name"),
                "namespace": ns,
                "uid": meta.get("uid"),
                "resourceVersion": meta.get("resourceVersion"),
            },
            "reason": reason,
            "message": message,
            "type": event_type,
            "source": {"component": COMPONENT},
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        try:
            self.core.create_namespaced_event(ns, body)
        except ApiException as e:
            # Events are best effort; the local event log already has the entry.
            db.log_event("WARN", f"Could not record event {reason}: {e.status} {e.reason}", namespace=ns, name=meta.get("name"))
