from __future__ import annotations

import json
from typing import Any, Mapping

from .cluster import CONFIG_MAP, DEPLOYMENT, SERVICE, child_labels, owner_reference
from .models import DEFAULT_PORT, REPLICATED, SHARDED, MemcachedProxy
from .rules import PoolRule, Rule, ServiceRef, ServiceRule

CONFIG_KEY = "config.json"
CONFIG_DIR = "/etc/mcrouter"
CLUSTER_DOMAIN = "svc.cluster.local"

ROUTE_BY_TYPE = {
    SHARDED: "HashRoute",
    REPLICATED: "AllSyncRoute",
}

# (namespace, name, port name) -> port number
PortMap = Mapping[tuple[str, str, str], int]


def child_name(proxy_name: str) -> str:
    return f"{proxy_name}-mcrouter"


def resolve_port(ref: ServiceRef, ports: PortMap | None = None) -> int:
    if ref.port is None:
        return DEFAULT_PORT
    if isinstance(ref.port, int):
        return ref.port
    try:
        return (ports or {})[(ref.namespace, ref.name, ref.port)]
    except KeyError:
        raise KeyError(f"named port {ref.port!r} of service {ref.namespace}/{ref.name} is not resolved") from None


def pool_name(ref: ServiceRef, port: int) -> str:
    return f"{ref.namespace}/{ref.name}:{port}"


def routing_config(rule: Rule, ports: PortMap | None = None) -> dict[str, Any]:
    """mcrouter config: one pool per distinct backend, plus the route tree."""
    pools: dict[str, dict[str, Any]] = {}

    def route(node: Rule) -> Any:
        if isinstance(node, ServiceRule):
            ref = node.service
            port = resolve_port(ref, ports)
            name = pool_name(ref, port)
            pools[name] = {"servers": [f"{ref.name}.{ref.namespace}.{CLUSTER_DOMAIN}:{port}"]}
            return f"PoolRoute|{name}"
        if isinstance(node, PoolRule):
            return {
                "type": ROUTE_BY_TYPE[node.type],
                "children": [route(c) for c in node.children],
            }
        raise TypeError(f"unknown rule node {type(node).__name__}")

    top = route(rule)
    return {"pools": pools, "route": top}


def render_config(rule: Rule, ports: PortMap | None = None) -> str:
    return json.dumps(routing_config(rule, ports), sort_keys=True, indent=2)


def _metadata(proxy: MemcachedProxy) -> dict[str, Any]:
    return {
        "name": child_name(proxy.name),
        "namespace": proxy.namespace,
        "labels": child_labels(proxy.name),
        "ownerReferences": [owner_reference(proxy.to_object())],
    }


def build_config_map(proxy: MemcachedProxy, rule: Rule, ports: PortMap | None = None) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": CONFIG_MAP,
        "metadata": _metadata(proxy),
        "data": {CONFIG_KEY: render_config(rule, ports)},
    }


def build_deployment(proxy: MemcachedProxy) -> dict[str, Any]:
    mc = proxy.spec.mcrouter
    name = child_name(proxy.name)
    labels = child_labels(proxy.name)
    container: dict[str, Any] = {
        "name": "mcrouter",
        "image": mc.image,
        "args": [
            f"--config-file={CONFIG_DIR}/{CONFIG_KEY}",
            f"--port={mc.port}",
        ],
        "ports": [{"name": "memcache", "containerPort": mc.port, "protocol": "TCP"}],
        "volumeMounts": [{"name": "config", "mountPath": CONFIG_DIR, "readOnly": True}],
    }
    # The API server stores quantities as strings.
    resources = {
        k: {res: str(q) for res, q in v.items()} for k, v in mc.resources.model_dump(exclude_defaults=True).items()
    }
    if resources:
        container["resources"] = resources
    return {
        "apiVersion": "apps/v1",
        "kind": DEPLOYMENT,
        "metadata": _metadata(proxy),
        "spec": {
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "containers": [container],
                    "volumes": [{"name": "config", "configMap": {"name": name}}],
                },
            },
        },
    }


def build_service(proxy: MemcachedProxy) -> dict[str, Any]:
    port = proxy.spec.mcrouter.port
    return {
        "apiVersion": "v1",
        "kind": SERVICE,
        "metadata": _metadata(proxy),
        "spec": {
            "selector": child_labels(proxy.name),
            "ports": [{"name": "memcache", "port": port, "targetPort": "memcache", "protocol": "TCP"}],
        },
    }


def build(proxy: MemcachedProxy, rule: Rule, ports: PortMap | None = None) -> list[dict[str, Any]]:
    """Derive the child resources for a defaulted proxy and its compiled rules.

    Pure: no cluster access.
    """
    return [
        build_config_map(proxy, rule, ports),
        build_deployment(proxy),
        build_service(proxy),
    ]
