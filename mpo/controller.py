from __future__ import annotations

from threading import Event

from . import db
from .cluster import PROXY_KIND, Cluster
from .dispatcher import ChangeDispatcher
from .events import EventRecorder
from .reconciler import Reconciler
from .runtime import RuntimeState
from .settings import Settings, settings as default_settings
from .workers import WorkerPool
from .workqueue import WorkQueue


class Controller:
    """Wires dispatcher, queue, worker pool and reconciler together."""

    def __init__(
        self,
        cluster: Cluster,
        workers: int = 2,
        max_retries: int = 5,
        namespace: str | None = None,
        backoff_base_s: float = 0.005,
        backoff_max_s: float = 300.0,
        runtime: RuntimeState | None = None,
    ):
        self.cluster = cluster
        self.namespace = namespace or None
        self.runtime = runtime or RuntimeState()
        self.recorder = EventRecorder(cluster)
        self.queue = WorkQueue(base_delay_s=backoff_base_s, max_delay_s=backoff_max_s)
        self.reconciler = Reconciler(cluster, self.recorder)
        self.dispatcher = ChangeDispatcher(cluster, self.queue, namespace=self.namespace)

        self.pool = WorkerPool(
            self.queue,
            self.reconciler.sync,
            workers=workers,
            max_retries=max_retries,
            recorder=self.recorder,
            runtime=self.runtime,
        )
        self._stop = Event()

    @classmethod
    def from_settings(cls, cluster: Cluster, cfg: Settings | None = None, runtime: RuntimeState | None = None) -> Controller:
        cfg = cfg or default_settings
        return cls(
            cluster,
            workers=cfg.workers,
            max_retries=cfg.max_retries,
            namespace=cfg.watch_namespace,
            backoff_base_s=cfg.backoff_base_s,
            backoff_max_s=cfg.backoff_max_s,
            runtime=runtime,
        )

    def start(self) -> None:
        # Fails fast when the cluster is unreachable at startup.
        proxies = self.cluster.list(PROXY_KIND, self.namespace)
        db.log_event("INFO", f"Controller starting with {self.pool.workers} workers; {len(proxies)} proxies found")
        self.dispatcher.start(self._stop)
        self.pool.start()

    def stop(self, timeout: float | None = 10.0) -> None:
        self._stop.set()
        self.queue.shutdown()
        self.pool.join(timeout)
        self.dispatcher.join(timeout)
        db.log_event("INFO", "Controller stopped")

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()
