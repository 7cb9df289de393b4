import os
import sys
from dataclasses import replace

import pytest

# Ensure project root is importable (so `import main` / `import cli` work without installing)
_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from mpo import db  # noqa: E402
from fakes import FakeCluster  # noqa: E402


@pytest.fixture(autouse=True)
def event_log(tmp_path, monkeypatch):
    """Point the sqlite event log at a per-test database."""
    monkeypatch.setattr(db, "settings", replace(db.settings, db_path=str(tmp_path / "mpo.db")))
    db.init_db()
    return db


@pytest.fixture
def cluster():
    return FakeCluster()


def proxy_object(name="hoge", namespace="default", rules=None, mcrouter=None, status=None):
    obj = {
        "apiVersion": "ianlewis.org/v1alpha1",
        "kind": "MemcachedProxy",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"rules": rules if rules is not None else {"service": {"name": "fuga"}}},
    }
    if mcrouter is not None:
        obj["spec"]["mcrouter"] = mcrouter
    if status is not None:
        obj["status"] = status
    return obj


@pytest.fixture
def make_proxy():
    return proxy_object
