from __future__ import annotations

from dataclasses import asdict

from fastapi import FastAPI, Query

from mpo import db
from mpo.api_models import EventOut, HealthResponse, QueueOut, SyncResultOut
from mpo.controller import Controller
from mpo.runtime import RuntimeState
from mpo.settings import settings

app = FastAPI(title="Memcached Proxy Operator")

runtime = RuntimeState()
controller: Controller | None = None


def start_controller() -> Controller:
    """Connect to the cluster and start watching MemcachedProxy resources."""
    from mpo.kube import KubeCluster, load_cluster_config

    load_cluster_config(settings.kubeconfig)
    ctrl = Controller.from_settings(KubeCluster(), settings, runtime=runtime)
    ctrl.start()
    return ctrl


@app.on_event("startup")
def startup() -> None:
    global controller
    db.init_db()
    if settings.run_controller:
        controller = start_controller()
    else:
        db.log_event("INFO", "Controller disabled (MPO_RUN_CONTROLLER=false)")


@app.on_event("shutdown")
def shutdown() -> None:
    global controller
    if controller is not None:
        controller.stop()
        controller = None


@app.get("/healthz", response_model=HealthResponse)
def healthz() -> HealthResponse:
    if controller is None:
        state = "stopped" if settings.run_controller else "disabled"
    else:
        state = "stopped" if controller.stopped else "running"
    return HealthResponse(controller=state)


@app.get("/events", response_model=list[EventOut])
def events(
    limit: int = Query(50, ge=1, le=1000),
    namespace: str | None = None,
    name: str | None = None,
) -> list[EventOut]:
    return [EventOut(**e) for e in db.latest_events(limit, namespace=namespace, name=name)]


@app.get("/proxies", response_model=list[SyncResultOut])
def proxies() -> list[SyncResultOut]:
    return [SyncResultOut(**asdict(r)) for r in runtime.list_results()]


@app.get("/queue", response_model=QueueOut)
def queue() -> QueueOut:
    if controller is None:
        return QueueOut(pending=0, in_flight=0)
    return QueueOut(pending=controller.queue.pending(), in_flight=controller.queue.in_flight())
