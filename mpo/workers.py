from __future__ import annotations

from threading import Thread
from typing import Callable

from . import db
from .cluster import PROXY_KIND, split_key
from .events import EventRecorder
from .runtime import RuntimeState, SyncResult
from .workqueue import WorkQueue


class WorkerPool:
    """N threads pulling keys from the queue and running the sync handler.

    Failed keys are requeued with exponential backoff until max_retries
    requeues have been spent; after that they are dropped until a new event
    adds them again.
    """

    def __init__(
        self,
        queue: WorkQueue,
        sync: Callable[[str], str | None],
        workers: int = 1,
        max_retries: int = 5,
        recorder: EventRecorder | None = None,
        runtime: RuntimeState | None = None,
    ):
        self.queue = queue
        self.sync = sync
        self.workers = max(1, int(workers))
        self.max_retries = max(0, int(max_retries))
        self.recorder = recorder
        self.runtime = runtime or RuntimeState()
        self._threads: list[Thread] = []

    def start(self) -> None:
        if self._threads:
            return
        for i in range(self.workers):
            t = Thread(target=self._loop, name=f"worker-{i}", daemon=True)
            t.start()
            self._threads.append(t)

    def join(self, timeout: float | None = None) -> None:
        for t in self._threads:
            t.join(timeout)
        self._threads = []

    def _loop(self) -> None:
        while True:
            try:
                if not self.process_next():
                    return
            except Exception as e:
                db.log_event("ERROR", f"Worker loop failed: {type(e).__name__}: {e}")

    def process_next(self, timeout: float | None = None) -> bool:
        """Handle one key. Returns False once the queue is shutting down."""
        key = self.queue.get(timeout=timeout)
        if key is None:
            return not self.queue.shutting_down
        try:
            self._process(key)
        except Exception as e:
            self._handle_crash(key, e)
        finally:
            self.queue.done(key)
        return True

    def _process(self, key: str) -> None:
        attempts = self.queue.num_requeues(key) + 1
        try:
            digest = self.sync(key)
        except Exception as e:
            self._handle_error(key, e, attempts)
            return
        self.queue.forget(key)
        self.runtime.record(SyncResult(key=key, ok=True, message="synced", attempts=attempts, fingerprint=digest))

    def _handle_error(self, key: str, err: Exception, attempts: int) -> None:
        message = f"{type(err).__name__}: {err}"
        if self.queue.num_requeues(key) < self.max_retries:
            delay = self.queue.add_rate_limited(key)
            self.runtime.record(SyncResult(key=key, ok=False, message=message, attempts=attempts))
            namespace, name = split_key(key)
            db.log_event(
                "WARN",
                f"Sync failed (attempt {attempts}), retrying in {delay:.3f}s: {message}",
                namespace=namespace,
                name=name,
                reason="SyncError",
            )
            return

        self.queue.forget(key)
        self.runtime.record(SyncResult(key=key, ok=False, message=message, attempts=attempts, dropped=True))
        namespace, name = split_key(key)
        db.log_event(
            "ERROR",
            f"Dropping {key} after {attempts} attempts: {message}",
            namespace=namespace,
            name=name,
            reason="ReconcileFailed",
        )
        if self.recorder is not None:
            obj = {"kind": PROXY_KIND, "metadata": {"namespace": namespace, "name": name}}
            try:
                self.recorder.warning(obj, "ReconcileFailed", f"Giving up after {attempts} attempts: {message}")
            except Exception as e:
                db.log_event("ERROR", f"Recording failure event failed: {type(e).__name__}: {e}", namespace=namespace, name=name)

    def _handle_crash(self, key: str, err: Exception) -> None:
        # Error handling itself failed (event log unavailable, malformed key).
        # The retry decision is already recorded; only the message is updated.
        prev = self.runtime.get(key)
        self.runtime.record(
            SyncResult(
                key=key,
                ok=False,
                message=f"{type(err).__name__}: {err}",
                attempts=prev.attempts if prev is not None else 1,
                dropped=prev.dropped if prev is not None else True,
            )
        )
