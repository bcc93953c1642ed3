from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from swarmcoord.errors import MalformedLedger
from swarmcoord.services.lock_manager import LockHandle
from swarmcoord.storage.atomic import atomic_write_text

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class JsonArrayStore(Generic[RecordT]):
    """A JSON array of records persisted as one atomically replaced file.

    Reads never lock and never see a partial document, because writers only
    ever rename a complete temporary file over the live one. Writes require
    the :class:`LockHandle` of the lock guarding this store: callers read,
    validate and write inside one ``with_lock`` block.
    """

    model: type[RecordT]
    id_field: str

    def __init__(self, path: str | Path, lock_name: str):
        self.path = Path(path)
        self.lock_name = lock_name

    def read(self) -> list[RecordT]:
        """Return every record as of the last committed write."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedLedger(
                f"{self.path} is not valid JSON (line {exc.lineno}, column {exc.colno}): {exc.msg}"
            ) from exc
        if not isinstance(data, list):
            raise MalformedLedger(
                f"{self.path} must hold a JSON array, found {type(data).__name__}"
            )

        records: list[RecordT] = []
        seen: set[str] = set()
        for index, entry in enumerate(data):
            try:
                record = self.model.model_validate(entry)
            except ValidationError as exc:
                raise MalformedLedger(
                    f"{self.path} record #{index} does not match the {self.model.__name__} "
                    f"schema: {exc.error_count()} error(s), first: {exc.errors()[0]['msg']}"
                ) from exc
            record_id = getattr(record, self.id_field)
            if record_id in seen:
                raise MalformedLedger(f"{self.path} holds duplicate {self.id_field} {record_id!r}")
            seen.add(record_id)
            records.append(record)
        return records

    def atomic_write(self, records: list[RecordT], handle: LockHandle) -> None:
        """Replace the whole file with ``records``."""
        self._check_handle(handle)
        payload = [record.model_dump(mode="json") for record in records]
        atomic_write_text(self.path, json.dumps(payload, indent=2) + "\n")
        logger.debug("Wrote %d records to %s", len(records), self.path)

    def _check_handle(self, handle: LockHandle) -> None:
        if not handle.active:
            raise RuntimeError(f"Lock {handle.name!r} was already released; refusing to write {self.path}")
        if handle.name != self.lock_name or handle.path.parent != self.path.parent:
            raise RuntimeError(
                f"{self.path} is guarded by lock {self.lock_name!r}, not {handle.name!r}"
            )
