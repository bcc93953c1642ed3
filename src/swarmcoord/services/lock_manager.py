from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from filelock import FileLock
from filelock import Timeout as FileLockTimeout
from pydantic import ValidationError

from swarmcoord.errors import LockTimeout, StaleLock
from swarmcoord.models.lock import LockInspection, LockOwner
from swarmcoord.services.identity import ProcessIdentity, pid_alive
from swarmcoord.storage.atomic import atomic_write_text

logger = logging.getLogger(__name__)


@dataclass
class LockHandle:
    """Proof that the caller is inside a ``with_lock`` block.

    Stores check it before replacing a file; it is deactivated as soon as
    the block exits.
    """

    name: str
    path: Path
    owner: LockOwner
    active: bool = True


class LockManager:
    """Named, timeout-bounded exclusive locks on files in one directory.

    Design:
    - OS advisory locks through ``filelock`` (``flock`` on Unix), so a holder
      that dies releases its lock with the process.
    - A sidecar ``<name>.lock.owner`` JSON record names the holder (pid,
      host, start time) for diagnostics and stale detection.
    - Stale holders are reported, never evicted automatically; clearing is
      the explicit ``force_clear`` escape hatch.
    """

    def __init__(
        self,
        directory: str | Path,
        default_timeout: float = 30.0,
        stale_after: float = 300.0,
    ):
        self.directory = Path(directory)
        self.default_timeout = default_timeout
        self.stale_after = stale_after
        self._process = ProcessIdentity.current()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def lock_path(self, name: str) -> Path:
        return self.directory / f"{name}.lock"

    def owner_path(self, name: str) -> Path:
        return self.directory / f"{name}.lock.owner"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @contextmanager
    def with_lock(
        self,
        name: str,
        timeout: float | None = None,
        operation: str | None = None,
    ) -> Iterator[LockHandle]:
        """Hold the named lock for the duration of the block.

        Raises :class:`LockTimeout` when the lock is not acquired within
        ``timeout`` seconds, or :class:`StaleLock` when it is not acquired
        and the recorded holder looks abandoned.
        """
        wait = self.default_timeout if timeout is None else timeout
        path = self.lock_path(name)
        self.directory.mkdir(parents=True, exist_ok=True)

        lock = FileLock(str(path), timeout=wait)
        try:
            lock.acquire()
        except FileLockTimeout:
            raise self._timeout_error(name, wait) from None

        owner = LockOwner(
            token=uuid.uuid4().hex,
            pid=self._process.pid,
            host=self._process.host,
            operation=operation,
        )
        handle = LockHandle(name=name, path=path, owner=owner)
        logger.debug("Acquired lock %s for %s", name, operation or "unnamed operation")
        try:
            self._write_owner(name, owner)
            yield handle
        finally:
            handle.active = False
            self._remove_owner(name, owner.token)
            lock.release()
            logger.debug("Released lock %s", name)

    def inspect(self, name: str) -> LockInspection:
        """Probe the named lock without waiting for it."""
        path = self.lock_path(name)
        owner = self._read_owner(name)
        held = False
        if path.exists():
            trial = FileLock(str(path), timeout=0)
            try:
                trial.acquire()
            except FileLockTimeout:
                held = True
            else:
                trial.release()

        if owner is None:
            return LockInspection(name=name, held=held)

        age = owner.age_seconds()
        return LockInspection(
            name=name,
            held=held,
            stale=self._is_stale(owner, held, age),
            owner=owner,
            age_seconds=age,
        )

    def force_clear(self, name: str) -> LockOwner | None:
        """Remove the lock file and its owner record unconditionally.

        Operator escape hatch for a holder believed abandoned. Returns the
        owner record that was cleared, if there was one.
        """
        owner = self._read_owner(name)
        self.lock_path(name).unlink(missing_ok=True)
        self.owner_path(name).unlink(missing_ok=True)
        if owner is not None:
            logger.warning(
                "Force-cleared lock %s held by pid %d on %s since %s (%s)",
                name,
                owner.pid,
                owner.host,
                owner.acquired_at.isoformat(),
                owner.operation or "unknown operation",
            )
        else:
            logger.warning("Force-cleared lock %s with no owner record", name)
        return owner

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _timeout_error(self, name: str, wait: float) -> LockTimeout | StaleLock:
        inspection = self.inspect(name)
        owner = inspection.owner
        if owner is not None and inspection.stale:
            return StaleLock(
                f"Lock {name!r} not acquired within {wait:.1f}s; holder pid {owner.pid} "
                f"on {owner.host} looks abandoned (held {inspection.age_seconds:.0f}s). "
                "Run 'swarmcoord clear-lock' to recover."
            )
        holder = f" (held by pid {owner.pid} on {owner.host})" if owner else ""
        return LockTimeout(f"Lock {name!r} not acquired within {wait:.1f}s{holder}")

    def _is_stale(self, owner: LockOwner, held: bool, age: float) -> bool:
        if not held:
            # Record left behind by a holder that died before cleaning up
            return True
        if owner.host == self._process.host and not pid_alive(owner.pid):
            return True
        return age > self.stale_after

    def _write_owner(self, name: str, owner: LockOwner) -> None:
        atomic_write_text(self.owner_path(name), owner.model_dump_json())

    def _read_owner(self, name: str) -> LockOwner | None:
        path = self.owner_path(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return LockOwner.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring unreadable lock owner record %s", path)
            return None

    def _remove_owner(self, name: str, token: str) -> None:
        # After a force_clear another process may own the record now
        current = self._read_owner(name)
        if current is not None and current.token == token:
            self.owner_path(name).unlink(missing_ok=True)
