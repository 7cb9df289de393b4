from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("MPO_DB_PATH", "mpo.db")
    watch_namespace: str = os.getenv("MPO_WATCH_NAMESPACE", "")
    kubeconfig: str | None = os.getenv("MPO_KUBECONFIG")
    run_controller: bool = _env_bool("MPO_RUN_CONTROLLER", True)

    # Worker pool
    workers: int = _env_int("MPO_WORKERS", 2)
    max_retries: int = _env_int("MPO_MAX_RETRIES", 5)
    backoff_base_s: float = _env_float("MPO_BACKOFF_BASE_S", 0.005)
    backoff_max_s: float = _env_float("MPO_BACKOFF_MAX_S", 300.0)


settings = Settings()
