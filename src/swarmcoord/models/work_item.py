from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WorkStatus(str, Enum):
    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkStatus.COMPLETED, WorkStatus.FAILED)


OPEN_STATUSES = frozenset({WorkStatus.ACTIVE, WorkStatus.IN_PROGRESS})


class WorkItem(BaseModel):
    """A unit of work owned by exactly one agent from the moment it is claimed."""

    model_config = ConfigDict(extra="forbid")

    work_item_id: str = Field(min_length=1)
    work_type: str
    description: str
    priority: Priority = Priority.MEDIUM
    status: WorkStatus = WorkStatus.ACTIVE
    agent_id: str = Field(min_length=1)
    team: Optional[str] = None
    progress_percent: int = Field(default=0, ge=0, le=100)
    velocity_points: Optional[int] = Field(default=None, ge=0)
    result: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


class WorkFilter(BaseModel):
    """Equality filters applied by ``list``; unset fields match everything."""

    model_config = ConfigDict(extra="forbid")

    status: Optional[WorkStatus] = None
    team: Optional[str] = None
    agent_id: Optional[str] = None
    priority: Optional[Priority] = None
    work_type: Optional[str] = None

    def matches(self, item: WorkItem) -> bool:
        for name in self.model_fields_set:
            wanted = getattr(self, name)
            if wanted is not None and getattr(item, name) != wanted:
                return False
        return True

    @classmethod
    def parse(cls, text: str | None) -> WorkFilter:
        """Parse the CLI filter argument.

        ``all`` or empty means no filter, ``key=value[,key=value]`` sets
        fields explicitly, and a bare word filters by status when it names a
        status and by team otherwise.
        """
        if not text or text == "all":
            return cls()
        if "=" not in text:
            if text in {s.value for s in WorkStatus}:
                return cls(status=WorkStatus(text))
            return cls(team=text)
        values: dict[str, str] = {}
        for part in text.split(","):
            key, sep, value = part.partition("=")
            if not sep or not key.strip():
                raise ValueError(f"Malformed filter term: {part!r}")
            values[key.strip()] = value.strip()
        return cls.model_validate(values)
