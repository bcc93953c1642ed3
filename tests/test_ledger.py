from __future__ import annotations

import json
from pathlib import Path

import pytest

from swarmcoord.errors import MalformedLedger, NotFound
from swarmcoord.models.agent import Agent
from swarmcoord.models.work_item import WorkItem, WorkStatus
from swarmcoord.services.lock_manager import LockManager
from swarmcoord.storage.ledger import LEDGER_LOCK, AgentRegistry, LedgerStore


def _item(n: int, **overrides: object) -> WorkItem:
    fields = {
        "work_item_id": f"work_{n}",
        "work_type": "build",
        "description": f"task {n}",
        "agent_id": "agent-a",
    }
    fields.update(overrides)
    return WorkItem(**fields)


def _write(store: LedgerStore, lock_manager: LockManager, items: list[WorkItem]) -> None:
    with lock_manager.with_lock(LEDGER_LOCK) as handle:
        store.atomic_write(items, handle)


class TestLedgerStore:
    def test_missing_file_reads_empty(self, coord_dir: Path) -> None:
        assert LedgerStore(coord_dir).read() == []

    def test_write_and_read(self, coord_dir: Path, lock_manager: LockManager) -> None:
        store = LedgerStore(coord_dir)
        _write(store, lock_manager, [_item(1), _item(2, team="team1")])

        items = store.read()
        assert [i.work_item_id for i in items] == ["work_1", "work_2"]
        assert items[1].team == "team1"
        assert store.get("work_2").description == "task 2"

        document = json.loads(store.path.read_text())
        assert isinstance(document, list)
        assert set(document[0]) == set(WorkItem.model_fields)

    def test_get_unknown(self, coord_dir: Path) -> None:
        with pytest.raises(NotFound):
            LedgerStore(coord_dir).get("work_404")

    def test_write_after_release_refused(self, coord_dir: Path, lock_manager: LockManager) -> None:
        store = LedgerStore(coord_dir)
        with lock_manager.with_lock(LEDGER_LOCK) as handle:
            pass

        with pytest.raises(RuntimeError):
            store.atomic_write([_item(1)], handle)
        assert not store.path.exists()

    def test_write_under_other_lock_refused(self, coord_dir: Path, lock_manager: LockManager) -> None:
        store = LedgerStore(coord_dir)
        with lock_manager.with_lock("something_else") as handle:
            with pytest.raises(RuntimeError):
                store.atomic_write([_item(1)], handle)

    @pytest.mark.parametrize(
        "content",
        [
            '[{"work_item_id": "work_1", ',
            '{"work_item_id": "work_1"}',
            '[{"work_item_id": "work_1"}]',
            '[{"work_item_id": "work_1", "work_type": "b", "description": "d", '
            '"agent_id": "a", "progress_percent": 150}]',
            '[{"work_item_id": "work_1", "work_type": "b", "description": "d", '
            '"agent_id": "a", "colour": "blue"}]',
        ],
        ids=["truncated", "not-an-array", "missing-fields", "out-of-range", "unknown-field"],
    )
    def test_malformed_file_reported_and_untouched(self, coord_dir: Path, content: str) -> None:
        store = LedgerStore(coord_dir)
        coord_dir.mkdir(parents=True)
        store.path.write_text(content)

        with pytest.raises(MalformedLedger):
            store.read()
        assert store.path.read_text() == content

    def test_duplicate_ids_rejected(self, coord_dir: Path) -> None:
        store = LedgerStore(coord_dir)
        coord_dir.mkdir(parents=True)
        record = _item(1).model_dump(mode="json")
        store.path.write_text(json.dumps([record, record]))

        with pytest.raises(MalformedLedger, match="duplicate"):
            store.read()

    def test_failed_write_leaves_file_unchanged(
        self, coord_dir: Path, lock_manager: LockManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store = LedgerStore(coord_dir)
        _write(store, lock_manager, [_item(1)])
        before = store.path.read_bytes()

        def crash(src: object, dst: object) -> None:
            raise OSError("disk went away")

        with lock_manager.with_lock(LEDGER_LOCK) as handle, monkeypatch.context() as patch:
            patch.setattr("swarmcoord.storage.atomic.os.replace", crash)
            with pytest.raises(OSError):
                store.atomic_write([_item(1), _item(2)], handle)

        assert store.path.read_bytes() == before
        assert list(coord_dir.glob(f".{store.path.name}.*.tmp")) == []

    def test_file_is_replaced_not_rewritten(self, coord_dir: Path, lock_manager: LockManager) -> None:
        store = LedgerStore(coord_dir)
        _write(store, lock_manager, [_item(1)])
        with store.path.open("rb") as reader:
            _write(store, lock_manager, [_item(1), _item(2, status=WorkStatus.COMPLETED)])
            # An open reader keeps seeing the complete old document
            assert len(json.loads(reader.read())) == 1
        assert len(store.read()) == 2


class TestAgentRegistry:
    def test_round_trip(self, coord_dir: Path, lock_manager: LockManager) -> None:
        registry = AgentRegistry(coord_dir)
        agent = Agent(agent_id="agent-a", team="team1", capacity=3, current_workload=1)
        with lock_manager.with_lock(LEDGER_LOCK) as handle:
            registry.atomic_write([agent], handle)

        stored = registry.get("agent-a")
        assert stored.capacity == 3
        assert stored.current_workload == 1
        assert json.loads(registry.path.read_text())[0]["capacity"] == 3

    def test_unknown_agent(self, coord_dir: Path) -> None:
        with pytest.raises(NotFound):
            AgentRegistry(coord_dir).get("nobody")

    def test_shares_the_ledger_lock(self, coord_dir: Path) -> None:
        assert AgentRegistry(coord_dir).lock_name == LedgerStore(coord_dir).lock_name
        assert AgentRegistry(coord_dir).path.parent == LedgerStore(coord_dir).path.parent
