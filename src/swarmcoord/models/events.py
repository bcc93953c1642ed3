from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from swarmcoord.models.work_item import WorkStatus, utcnow


class CoordinationLogEntry(BaseModel):
    """Audit record of one committed terminal transition."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["transition"] = "transition"
    work_item_id: str
    from_status: WorkStatus
    to_status: WorkStatus
    agent_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    result: Optional[str] = None
    velocity_points: Optional[int] = None


class TelemetrySpan(BaseModel):
    """Outcome and duration of one coordination operation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["span"] = "span"
    trace_id: str
    span_id: str
    parent_span_id: Optional[str] = None
    operation: str
    duration_ms: float = Field(ge=0)
    status: Literal["success", "failure"]
    timestamp: datetime = Field(default_factory=utcnow)
    service: str = "swarmcoord"
    service_version: Optional[str] = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


EventRecord = Annotated[
    Union[CoordinationLogEntry, TelemetrySpan], Field(discriminator="kind")
]
event_record_adapter: TypeAdapter[Any] = TypeAdapter(EventRecord)
