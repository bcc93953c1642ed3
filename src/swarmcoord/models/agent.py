from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from swarmcoord.models.work_item import utcnow


class AgentStatus(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"
    BUSY = "busy"


class Agent(BaseModel):
    """A registered worker process and its declared capacity.

    ``capacity`` is the maximum number of open work items the agent may own
    and ``current_workload`` the number it owns right now.
    """

    model_config = ConfigDict(extra="forbid")

    agent_id: str = Field(min_length=1)
    team: str
    capacity: int = Field(ge=0)
    current_workload: int = Field(default=0, ge=0)
    specialization: str = "general_development"
    status: AgentStatus = AgentStatus.IDLE
    registered_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)

    @property
    def has_room(self) -> bool:
        return self.current_workload < self.capacity

    def refresh_status(self) -> None:
        if self.current_workload == 0:
            self.status = AgentStatus.IDLE
        elif self.current_workload >= self.capacity:
            self.status = AgentStatus.BUSY
        else:
            self.status = AgentStatus.ACTIVE
