from __future__ import annotations

from pathlib import Path

import pytest

from swarmcoord.services.coordination import CoordinationEngine
from swarmcoord.services.event_log import COORDINATION_LOG_FILE, EventLog
from swarmcoord.services.lock_manager import LockManager
from swarmcoord.utils.config import TRACE_ID_ENV_VARS, Config

_ISOLATED_ENV = ("AGENT_ID", "COORDINATION_DIR", "OTEL_PARENT_SPAN_ID", *TRACE_ID_ENV_VARS)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SWARMCOORD_LOG_LEVEL", "WARNING")


@pytest.fixture
def coord_dir(tmp_path: Path) -> Path:
    return tmp_path / "coordination"


@pytest.fixture
def engine(coord_dir: Path) -> CoordinationEngine:
    return CoordinationEngine(coord_dir, lock_timeout=10.0)


@pytest.fixture
def lock_manager(coord_dir: Path) -> LockManager:
    return LockManager(coord_dir, default_timeout=2.0, stale_after=300.0)


@pytest.fixture
def event_log(coord_dir: Path) -> EventLog:
    return EventLog(coord_dir / COORDINATION_LOG_FILE)


@pytest.fixture
def config(coord_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Config:
    monkeypatch.setenv("COORDINATION_DIR", str(coord_dir))
    return Config()


@pytest.fixture
def team_of_two(engine: CoordinationEngine) -> CoordinationEngine:
    """Agents ``agent-a`` and ``agent-b`` in team1, capacity 1 each."""
    engine.register("team1", 1, "builder", agent_id="agent-a")
    engine.register("team1", 1, "builder", agent_id="agent-b")
    return engine
