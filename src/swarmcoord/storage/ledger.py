from __future__ import annotations

from pathlib import Path

from swarmcoord.errors import NotFound
from swarmcoord.models.agent import Agent
from swarmcoord.models.work_item import WorkItem
from swarmcoord.storage.json_store import JsonArrayStore

WORK_CLAIMS_FILE = "work_claims.json"
AGENT_STATUS_FILE = "agent_status.json"

# Both files are mutated together, so one lock guards both.
LEDGER_LOCK = WORK_CLAIMS_FILE


class LedgerStore(JsonArrayStore[WorkItem]):
    """The authoritative collection of work items."""

    model = WorkItem
    id_field = "work_item_id"

    def __init__(self, directory: str | Path, lock_name: str = LEDGER_LOCK):
        super().__init__(Path(directory) / WORK_CLAIMS_FILE, lock_name)

    def get(self, work_item_id: str) -> WorkItem:
        for item in self.read():
            if item.work_item_id == work_item_id:
                return item
        raise NotFound(f"Work item {work_item_id!r} does not exist")


class AgentRegistry(JsonArrayStore[Agent]):
    """Agent identities, teams and declared capacity."""

    model = Agent
    id_field = "agent_id"

    def __init__(self, directory: str | Path, lock_name: str = LEDGER_LOCK):
        super().__init__(Path(directory) / AGENT_STATUS_FILE, lock_name)

    def get(self, agent_id: str) -> Agent:
        for agent in self.read():
            if agent.agent_id == agent_id:
                return agent
        raise NotFound(f"Agent {agent_id!r} is not registered")
