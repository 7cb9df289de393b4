import time

import pytest

from mpo.builder import child_name
from mpo.cluster import PROXY_KIND
from mpo.controller import Controller
from mpo.errors import ClusterError
from mpo.settings import Settings


def _wait(until, timeout_s=5.0):
    deadline = time.monotonic() + timeout_s
    while not until() and time.monotonic() < deadline:
        time.sleep(0.01)
    assert until(), "condition not reached before timeout"


def _initialized(cluster, name):
    obj = cluster.stored(PROXY_KIND, "default", name) or {}
    return bool((obj.get("status") or {}).get("initialized"))


def test_controller_converges_existing_and_new_proxies(cluster, make_proxy):
    cluster.seed(PROXY_KIND, make_proxy(name="first"))
    ctrl = Controller(cluster, workers=2)
    ctrl.start()
    try:
        _wait(lambda: _initialized(cluster, "first"))

        cluster.create(PROXY_KIND, make_proxy(name="second"))
        _wait(lambda: _initialized(cluster, "second"))

        # deleting a child is noticed through its owner and repaired
        cluster.delete("Service", "default", child_name("first"))
        _wait(lambda: cluster.stored("Service", "default", child_name("first")) is not None)
    finally:
        ctrl.stop(timeout=2.0)

    assert ctrl.stopped
    assert ctrl.runtime.get("default/first").ok
    assert ctrl.runtime.get("default/second").ok


def test_start_fails_fast_when_cluster_is_unreachable(cluster):
    cluster.failures[("list", PROXY_KIND)] = ClusterError("connection refused")
    ctrl = Controller(cluster)
    with pytest.raises(ClusterError):
        ctrl.start()
    assert ctrl.pool._threads == []


def test_from_settings_applies_configuration(cluster):
    cfg = Settings(workers=4, max_retries=1, watch_namespace="cache", backoff_base_s=0.5, backoff_max_s=2.0)
    ctrl = Controller.from_settings(cluster, cfg)
    assert ctrl.pool.workers == 4
    assert ctrl.pool.max_retries == 1
    assert ctrl.dispatcher.namespace == "cache"
    assert ctrl.queue.base_delay_s == 0.5
    assert ctrl.queue.max_delay_s == 2.0
