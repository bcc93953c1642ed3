from swarmcoord.models.work_item import (
    OPEN_STATUSES,
    Priority,
    WorkFilter,
    WorkItem,
    WorkStatus,
)
from swarmcoord.models.agent import Agent, AgentStatus
from swarmcoord.models.events import CoordinationLogEntry, TelemetrySpan
from swarmcoord.models.lock import LockInspection, LockOwner

__all__ = [
    "OPEN_STATUSES",
    "Priority",
    "WorkFilter",
    "WorkItem",
    "WorkStatus",
    "Agent",
    "AgentStatus",
    "CoordinationLogEntry",
    "TelemetrySpan",
    "LockInspection",
    "LockOwner",
]
