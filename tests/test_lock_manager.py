from __future__ import annotations

import os
import subprocess
import sys
import time
from datetime import timedelta
from pathlib import Path

import pytest

from swarmcoord.errors import LockTimeout, StaleLock
from swarmcoord.models.lock import LockOwner
from swarmcoord.services.lock_manager import LockManager


def _read_owner(manager: LockManager, name: str) -> LockOwner:
    return LockOwner.model_validate_json(manager.owner_path(name).read_text())


def _rewrite_owner(manager: LockManager, name: str, **changes: object) -> None:
    owner = _read_owner(manager, name).model_copy(update=changes)
    manager.owner_path(name).write_text(owner.model_dump_json())


def _dead_pid() -> int:
    proc = subprocess.run(
        [sys.executable, "-c", "import os; print(os.getpid())"],
        capture_output=True,
        text=True,
        check=True,
    )
    return int(proc.stdout)


class TestLockManager:
    def test_acquire_and_release(self, lock_manager: LockManager) -> None:
        with lock_manager.with_lock("ledger", operation="work.claim") as handle:
            assert handle.active
            owner = _read_owner(lock_manager, "ledger")
            assert owner.pid == os.getpid()
            assert owner.operation == "work.claim"
            assert owner.token == handle.owner.token
            assert lock_manager.inspect("ledger").held is True

        assert not handle.active
        assert not lock_manager.owner_path("ledger").exists()
        inspection = lock_manager.inspect("ledger")
        assert inspection.held is False
        assert inspection.owner is None

    def test_released_when_block_raises(self, lock_manager: LockManager) -> None:
        with pytest.raises(RuntimeError):
            with lock_manager.with_lock("ledger"):
                raise RuntimeError("boom")

        assert lock_manager.inspect("ledger").held is False
        with lock_manager.with_lock("ledger", timeout=0.1) as handle:
            assert handle.active

    def test_timeout(self, coord_dir: Path) -> None:
        holder = LockManager(coord_dir)
        waiter = LockManager(coord_dir)

        with holder.with_lock("ledger"):
            start = time.monotonic()
            with pytest.raises(LockTimeout) as excinfo:
                with waiter.with_lock("ledger", timeout=0.2):
                    pass
            assert time.monotonic() - start >= 0.2

        assert excinfo.value.retryable is True
        assert f"pid {os.getpid()}" in excinfo.value.message

    def test_old_holder_reported_as_stale(self, coord_dir: Path) -> None:
        holder = LockManager(coord_dir)
        waiter = LockManager(coord_dir, stale_after=60)

        with holder.with_lock("ledger"):
            acquired_at = _read_owner(holder, "ledger").acquired_at
            _rewrite_owner(holder, "ledger", acquired_at=acquired_at - timedelta(hours=1))

            with pytest.raises(StaleLock) as excinfo:
                with waiter.with_lock("ledger", timeout=0.1):
                    pass
            assert "clear-lock" in excinfo.value.message

        # The holder still cleans up its own record
        assert not holder.owner_path("ledger").exists()

    def test_dead_pid_is_stale(self, coord_dir: Path, lock_manager: LockManager) -> None:
        with lock_manager.with_lock("ledger"):
            _rewrite_owner(lock_manager, "ledger", pid=_dead_pid())
            inspection = LockManager(coord_dir).inspect("ledger")

        assert inspection.held is True
        assert inspection.stale is True

    def test_live_holder_is_not_stale(self, coord_dir: Path, lock_manager: LockManager) -> None:
        with lock_manager.with_lock("ledger"):
            inspection = LockManager(coord_dir).inspect("ledger")

        assert inspection.held is True
        assert inspection.stale is False
        assert inspection.age_seconds is not None

    def test_leftover_owner_record(self, coord_dir: Path, lock_manager: LockManager) -> None:
        coord_dir.mkdir(parents=True)
        leftover = LockOwner(token="abandoned", pid=os.getpid(), host="elsewhere")
        lock_manager.owner_path("ledger").write_text(leftover.model_dump_json())

        inspection = lock_manager.inspect("ledger")
        assert inspection.held is False
        assert inspection.stale is True
        assert inspection.owner is not None
        assert inspection.owner.token == "abandoned"

        with lock_manager.with_lock("ledger") as handle:
            assert _read_owner(lock_manager, "ledger").token == handle.owner.token

    def test_unreadable_owner_record_ignored(self, coord_dir: Path, lock_manager: LockManager) -> None:
        coord_dir.mkdir(parents=True)
        lock_manager.owner_path("ledger").write_text("{not json")

        assert lock_manager.inspect("ledger").owner is None

    def test_force_clear(self, coord_dir: Path) -> None:
        holder = LockManager(coord_dir)
        rescuer = LockManager(coord_dir)

        with holder.with_lock("ledger") as handle:
            cleared = rescuer.force_clear("ledger")
            assert cleared is not None
            assert cleared.token == handle.owner.token

            with rescuer.with_lock("ledger", timeout=1.0) as rescue:
                assert rescue.active
                assert _read_owner(rescuer, "ledger").token == rescue.owner.token

        assert not holder.owner_path("ledger").exists()

    def test_force_clear_without_owner(self, lock_manager: LockManager) -> None:
        assert lock_manager.force_clear("ledger") is None

    def test_locks_are_independent_by_name(self, lock_manager: LockManager) -> None:
        with lock_manager.with_lock("ledger"):
            with lock_manager.with_lock("other", timeout=0.1) as handle:
                assert handle.name == "other"
