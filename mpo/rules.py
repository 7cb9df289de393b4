from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

from .errors import InvalidRuleTree
from .models import RULE_TYPES, RuleSpec


@dataclass(frozen=True)
class ServiceRef:
    name: str
    namespace: str
    port: int | str | None = None


@dataclass(frozen=True)
class ServiceRule:
    """Leaf: requests are sent to a backend memcached Service."""

    service: ServiceRef


@dataclass(frozen=True)
class PoolRule:
    """Internal node: fans requests out across its children, in order."""

    type: str
    children: tuple[Rule, ...]


Rule = Union[ServiceRule, PoolRule]


def apply_defaults(rule: RuleSpec, namespace: str) -> RuleSpec:
    rule.apply_defaults(namespace)
    return rule


def compile_rules(rule: RuleSpec, path: str = "rules") -> Rule:
    """Validate a defaulted wire rule and convert it into a Rule tree.

    Raises InvalidRuleTree naming the offending node's path.
    """
    has_service = rule.service is not None
    has_children = bool(rule.children)

    if has_service and has_children:
        raise InvalidRuleTree(path, "rule must set exactly one of 'service' or 'children', not both")
    if not has_service and not has_children:
        raise InvalidRuleTree(path, "rule must set exactly one of 'service' or 'children'")
    if rule.type not in RULE_TYPES:
        raise InvalidRuleTree(path, f"unknown rule type {rule.type!r} (expected one of {', '.join(RULE_TYPES)})")

    if has_service:
        svc = rule.service
        if not svc.name:
            raise InvalidRuleTree(f"{path}.service", "service name is required")
        if not svc.namespace:
            raise InvalidRuleTree(f"{path}.service", "service namespace is required")
        if isinstance(svc.port, int) and not 1 <= svc.port <= 65535:
            raise InvalidRuleTree(f"{path}.service.port", f"port {svc.port} out of range")
        if isinstance(svc.port, str) and not svc.port:
            raise InvalidRuleTree(f"{path}.service.port", "named port must not be empty")
        return ServiceRule(ServiceRef(name=svc.name, namespace=svc.namespace, port=svc.port))

    children = tuple(compile_rules(c, f"{path}.children[{i}]") for i, c in enumerate(rule.children))
    return PoolRule(type=rule.type, children=children)


def iter_services(rule: Rule) -> Iterator[ServiceRef]:
    """Yield backend references depth-first, in declared order."""
    if isinstance(rule, ServiceRule):
        yield rule.service
    elif isinstance(rule, PoolRule):
        for child in rule.children:
            yield from iter_services(child)
    else:
        raise TypeError(f"unknown rule node {type(rule).__name__}")
