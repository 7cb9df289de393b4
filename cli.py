from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import requests
from pydantic import ValidationError
from ruamel.yaml import YAML

from mpo.builder import build
from mpo.errors import ConfigurationError
from mpo.fingerprint import fingerprint
from mpo.models import MemcachedProxy, parse_proxy
from mpo.rules import Rule, compile_rules


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def load_manifest(path: str) -> dict[str, Any]:
    """Load a MemcachedProxy manifest from YAML or JSON (JSON is valid YAML)."""
    text = Path(path).read_text(encoding="utf-8-sig")
    data = YAML(typ="safe").load(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a single mapping document")
    return data


def _prepare(path: str) -> tuple[MemcachedProxy, Rule]:
    proxy = parse_proxy(load_manifest(path))
    proxy.apply_defaults()
    return proxy, compile_rules(proxy.spec.rules)


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Memcached Proxy Operator CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--namespace")
    s_ev.add_argument("--name")

    sub.add_parser("proxies", help="Show last sync result per proxy")
    sub.add_parser("queue", help="Show work queue depth")

    s_fp = sub.add_parser("fingerprint", help="Print the spec hash of a manifest")
    s_fp.add_argument("file")

    s_render = sub.add_parser("render", help="Print the child resources derived from a manifest")
    s_render.add_argument("file")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.namespace:
            params["namespace"] = args.namespace
        if args.name:
            params["name"] = args.name
        _print(requests.get(f"{base}/events", params=params, timeout=10).json())
        return 0

    if args.cmd == "proxies":
        _print(requests.get(f"{base}/proxies", timeout=10).json())
        return 0

    if args.cmd == "queue":
        _print(requests.get(f"{base}/queue", timeout=10).json())
        return 0

    if args.cmd in {"fingerprint", "render"}:
        try:
            proxy, rule = _prepare(args.file)
        except (ValidationError, ConfigurationError, ValueError) as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        if args.cmd == "fingerprint":
            print(fingerprint(proxy.spec))
            return 0
        try:
            children = build(proxy, rule)
        except KeyError as e:
            # Named ports need the live backend Service to resolve.
            print(f"error: {e.args[0]}", file=sys.stderr)
            return 1
        _print(children)
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
