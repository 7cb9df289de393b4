from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

from .db import utc_now


@dataclass
class SyncResult:
    key: str
    ok: bool
    message: str
    attempts: int = 0
    dropped: bool = False
    fingerprint: str | None = None
    updated_at: str = field(default_factory=utc_now)


class RuntimeState:
    """In-memory record of the last reconcile outcome per key."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.results: dict[str, SyncResult] = {}

    def record(self, result: SyncResult) -> None:
        with self.lock:
            result.updated_at = utc_now()
            self.results[result.key] = result

    def get(self, key: str) -> SyncResult | None:
        with self.lock:
            return self.results.get(key)

    def list_results(self) -> list[SyncResult]:
        with self.lock:
            return [self.results[k] for k in sorted(self.results)]
