from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "healthy"
    controller: str = Field(..., description="running|stopped|disabled")


class EventOut(BaseModel):
    id: int
    ts: str
    level: str
    namespace: str | None = None
    name: str | None = None
    reason: str | None = None
    message: str


class SyncResultOut(BaseModel):
    key: str
    ok: bool
    message: str
    attempts: int
    dropped: bool
    fingerprint: str | None = None
    updated_at: str


class QueueOut(BaseModel):
    pending: int = Field(..., ge=0, description="Keys waiting, including delayed retries")
    in_flight: int = Field(..., ge=0)
