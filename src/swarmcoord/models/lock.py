from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from swarmcoord.models.work_item import utcnow


class LockOwner(BaseModel):
    """Diagnostic record of the process currently holding a named lock."""

    token: str
    pid: int
    host: str
    operation: Optional[str] = None
    acquired_at: datetime = Field(default_factory=utcnow)

    def age_seconds(self, now: datetime | None = None) -> float:
        return ((now or utcnow()) - self.acquired_at).total_seconds()


class LockInspection(BaseModel):
    """Result of a non-blocking check of a named lock."""

    name: str
    held: bool
    stale: bool = False
    owner: Optional[LockOwner] = None
    age_seconds: Optional[float] = None
