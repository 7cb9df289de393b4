from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

GROUP = "ianlewis.org"
VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{VERSION}"
KIND = "MemcachedProxy"
PLURAL = "memcachedproxies"

SHARDED = "sharded"
REPLICATED = "replicated"
RULE_TYPES = (SHARDED, REPLICATED)

DEFAULT_IMAGE = "jphalip/mcrouter:0.36.0"
DEFAULT_PORT = 11211


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ServiceSpec(_Wire):
    name: str = Field("", description="Backend memcached Service name")
    namespace: str | None = Field(None, description="Defaults to the proxy's namespace")
    port: Union[int, str, None] = Field(None, description="Port number or named Service port")

    def apply_defaults(self, namespace: str) -> None:
        if not self.namespace:
            self.namespace = namespace


class RuleSpec(_Wire):
    """Routing rule: either a backend service or an ordered list of child rules."""

    type: str | None = Field(None, description="sharded|replicated")
    service: ServiceSpec | None = None
    children: list[RuleSpec] | None = None

    def apply_defaults(self, namespace: str) -> None:
        if not self.type:
            self.type = SHARDED
        if self.service is not None:
            self.service.apply_defaults(namespace)
        for child in self.children or []:
            child.apply_defaults(namespace)


class ResourceRequirements(_Wire):
    limits: dict[str, Union[int, float, str]] = Field(default_factory=dict)
    requests: dict[str, Union[int, float, str]] = Field(default_factory=dict)


class McRouterSpec(_Wire):
    image: str | None = None
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    port: int | None = Field(None, ge=1, le=65535)

    def apply_defaults(self) -> None:
        if not self.image:
            self.image = DEFAULT_IMAGE
        if self.port is None:
            self.port = DEFAULT_PORT


class ProxySpec(_Wire):
    rules: RuleSpec = Field(default_factory=RuleSpec)
    mcrouter: McRouterSpec = Field(default_factory=McRouterSpec)

    def apply_defaults(self, namespace: str) -> None:
        self.mcrouter.apply_defaults()
        self.rules.apply_defaults(namespace)


class ProxyStatus(_Wire):
    observed_spec_hash: str = Field("", alias="observedSpecHash")
    initialized: bool = False


class MemcachedProxy(_Wire):
    api_version: str = Field(API_VERSION, alias="apiVersion")
    kind: str = KIND
    metadata: dict[str, Any] = Field(default_factory=dict)
    spec: ProxySpec = Field(default_factory=ProxySpec)
    status: ProxyStatus = Field(default_factory=ProxyStatus)

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace") or "default"

    @property
    def uid(self) -> str:
        return self.metadata.get("uid", "")

    def apply_defaults(self) -> None:
        self.spec.apply_defaults(self.namespace)

    def spec_object(self) -> dict[str, Any]:
        return self.spec.model_dump(by_alias=True, exclude_none=True)

    def status_object(self) -> dict[str, Any]:
        return self.status.model_dump(by_alias=True)

    def to_object(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": dict(self.metadata),
            "spec": self.spec_object(),
            "status": self.status_object(),
        }


def parse_proxy(obj: dict[str, Any]) -> MemcachedProxy:
    return MemcachedProxy.model_validate(obj)
