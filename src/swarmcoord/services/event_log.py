from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterator, Union

from pydantic import ValidationError

from swarmcoord.models.events import (
    CoordinationLogEntry,
    TelemetrySpan,
    event_record_adapter,
)

logger = logging.getLogger(__name__)

COORDINATION_LOG_FILE = "coordination_log.jsonl"

EventRecord = Union[CoordinationLogEntry, TelemetrySpan]


class EventLog:
    """Append-only newline-delimited JSON log of transitions and spans.

    Each record is encoded to a single line and written with one
    ``O_APPEND`` write, so records from concurrent processes may interleave
    but are never spliced together. Appends need no lock. The file is never
    rewritten.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def append(self, record: EventRecord) -> None:
        data = (record.model_dump_json() + "\n").encode("utf-8")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            view = memoryview(data)
            while view:
                written = os.write(fd, view)
                view = view[written:]
        finally:
            os.close(fd)

    def read(self) -> Iterator[EventRecord]:
        """Yield every whole record; torn or foreign lines are skipped."""
        try:
            fh = self.path.open("r", encoding="utf-8")
        except FileNotFoundError:
            return
        with fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield event_record_adapter.validate_python(json.loads(line))
                except (json.JSONDecodeError, ValidationError):
                    logger.warning("Skipping unreadable line %d in %s", lineno, self.path)

    def transitions(self, work_item_id: str | None = None) -> list[CoordinationLogEntry]:
        return [
            record
            for record in self.read()
            if isinstance(record, CoordinationLogEntry)
            and (work_item_id is None or record.work_item_id == work_item_id)
        ]

    def spans(self, operation: str | None = None) -> list[TelemetrySpan]:
        return [
            record
            for record in self.read()
            if isinstance(record, TelemetrySpan)
            and (operation is None or record.operation == operation)
        ]
