from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, TypeVar

from swarmcoord.errors import CapacityExceeded, InvalidTransition, NotFound
from swarmcoord.models.agent import Agent
from swarmcoord.models.events import CoordinationLogEntry
from swarmcoord.models.work_item import (
    Priority,
    WorkFilter,
    WorkItem,
    WorkStatus,
    utcnow,
)
from swarmcoord.services.event_log import COORDINATION_LOG_FILE, EventLog
from swarmcoord.services.identifiers import IdGenerator, default_generator
from swarmcoord.services.identity import generate_agent_id, validate_agent_id
from swarmcoord.services.lock_manager import LockManager
from swarmcoord.services.telemetry import Tracer
from swarmcoord.storage.atomic import atomic_write_text
from swarmcoord.storage.ledger import LEDGER_LOCK, AgentRegistry, LedgerStore
from swarmcoord.utils.config import Config

logger = logging.getLogger(__name__)

T = TypeVar("T")

ARCHIVE_DIR = "archived_claims"
TERMINAL_STATUSES = (WorkStatus.COMPLETED, WorkStatus.FAILED)


@dataclass
class _Snapshot:
    """Ledger and registry contents read inside one critical section."""

    items: list[WorkItem]
    agents: list[Agent]
    items_dirty: bool = False
    agents_dirty: bool = False
    corrections: dict[str, tuple[int, int]] = field(default_factory=dict)

    def item(self, work_item_id: str) -> WorkItem:
        for item in self.items:
            if item.work_item_id == work_item_id:
                return item
        raise NotFound(f"Work item {work_item_id!r} does not exist")

    def agent(self, agent_id: str) -> Agent | None:
        for agent in self.agents:
            if agent.agent_id == agent_id:
                return agent
        return None


@dataclass(frozen=True)
class ArchiveResult:
    archived: int
    archive_file: Path | None = None


class CoordinationEngine:
    """Claims, progresses and finishes work items on a shared directory.

    Every mutation runs read → reconcile → validate → write inside one
    critical section of the ledger lock, which guards both the ledger and
    the agent registry. The ledger is written first and is the commit
    point; agent workloads are recomputed from it at the start of each
    critical section, so a crash between the two renames is repaired by
    the next caller. Audit entries and telemetry spans are appended to the
    event log outside the lock.
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        lock_timeout: float = 30.0,
        stale_lock_seconds: float = 300.0,
        id_generator: IdGenerator | None = None,
        tracer: Tracer | None = None,
    ):
        self.directory = Path(directory)
        self.lock_manager = LockManager(
            self.directory, default_timeout=lock_timeout, stale_after=stale_lock_seconds
        )
        self.ledger = LedgerStore(self.directory)
        self.registry = AgentRegistry(self.directory)
        self.event_log = EventLog(self.directory / COORDINATION_LOG_FILE)
        self.ids = id_generator or default_generator()
        self.tracer = tracer or Tracer(self.event_log)

    @classmethod
    def from_config(cls, config: Config) -> CoordinationEngine:
        event_log = EventLog(Path(config.coordination_dir) / COORDINATION_LOG_FILE)
        tracer = Tracer(
            event_log,
            service_name=config.service_name,
            service_version=config.service_version,
            trace_id=config.trace_id,
            parent_span_id=config.parent_span_id,
        )
        return cls(
            config.coordination_dir,
            lock_timeout=config.lock_timeout,
            stale_lock_seconds=config.stale_lock_seconds,
            tracer=tracer,
        )

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def register(
        self,
        team: str,
        capacity: int,
        specialization: str = "general_development",
        agent_id: str | None = None,
    ) -> Agent:
        """Create or update an agent; re-registration keeps its workload."""
        with self.tracer.span(
            "agent.register", agent_id=agent_id, team=team, capacity=capacity
        ) as attrs:
            if capacity < 0:
                raise ValueError("capacity must be zero or greater")
            if agent_id:
                validate_agent_id(agent_id)

            def modifier(snapshot: _Snapshot) -> Agent:
                now = utcnow()
                new_id = agent_id or generate_agent_id(
                    taken={a.agent_id for a in snapshot.agents}
                )
                agent = snapshot.agent(new_id)
                if agent is None:
                    agent = Agent(
                        agent_id=new_id,
                        team=team,
                        capacity=capacity,
                        specialization=specialization,
                        registered_at=now,
                        last_activity=now,
                    )
                    snapshot.agents.append(agent)
                else:
                    if capacity < agent.current_workload:
                        raise CapacityExceeded(
                            f"Agent {new_id!r} owns {agent.current_workload} open work items; "
                            f"capacity cannot drop to {capacity}"
                        )
                    agent.team = team
                    agent.capacity = capacity
                    agent.specialization = specialization
                    agent.last_activity = now
                agent.refresh_status()
                snapshot.agents_dirty = True
                return agent.model_copy()

            agent = self._atomic_update("agent.register", modifier)
            attrs["agent_id"] = agent.agent_id

        logger.info(
            "Registered agent %s in team %s with capacity %d",
            agent.agent_id,
            agent.team,
            agent.capacity,
        )
        return agent

    def list_agents(self, team: str | None = None) -> list[Agent]:
        """Lock-free read of the registry as last committed."""
        with self.tracer.span("agent.list", team=team) as attrs:
            agents = [a for a in self.registry.read() if team is None or a.team == team]
            attrs["count"] = len(agents)
        return agents

    # ------------------------------------------------------------------
    # Work items
    # ------------------------------------------------------------------

    def claim(
        self,
        agent_id: str,
        work_type: str,
        description: str,
        priority: Priority | str = Priority.MEDIUM,
        team: str | None = None,
    ) -> str:
        """Create a new work item owned by ``agent_id`` and return its id."""
        with self.tracer.span(
            "work.claim",
            agent_id=agent_id,
            work_type=work_type,
            priority=getattr(priority, "value", priority),
            team=team,
        ) as attrs:
            priority = Priority(priority)

            def modifier(snapshot: _Snapshot) -> str:
                agent = snapshot.agent(agent_id)
                if agent is None:
                    raise NotFound(f"Agent {agent_id!r} is not registered")
                if not agent.has_room:
                    raise CapacityExceeded(
                        f"Agent {agent_id!r} is at capacity "
                        f"({agent.current_workload}/{agent.capacity} open work items)"
                    )

                work_item_id = self.ids.next_id(
                    "work", taken={i.work_item_id for i in snapshot.items}
                )
                now = utcnow()
                snapshot.items.append(
                    WorkItem(
                        work_item_id=work_item_id,
                        work_type=work_type,
                        description=description,
                        priority=priority,
                        status=WorkStatus.ACTIVE,
                        agent_id=agent_id,
                        team=team,
                        progress_percent=0,
                        created_at=now,
                        updated_at=now,
                    )
                )
                agent.current_workload += 1
                agent.last_activity = now
                agent.refresh_status()
                snapshot.items_dirty = True
                snapshot.agents_dirty = True
                return work_item_id

            work_item_id = self._atomic_update("work.claim", modifier)
            attrs["work_item_id"] = work_item_id

        logger.info(
            "Agent %s claimed %s (%s, %s)", agent_id, work_item_id, work_type, priority.value
        )
        return work_item_id

    def progress(self, work_item_id: str, percent: int, note: str | None = None) -> WorkItem:
        """Record progress; percent may stay level but never go down."""
        with self.tracer.span(
            "work.progress", work_item_id=work_item_id, progress_percent=percent, note=note
        ):

            def modifier(snapshot: _Snapshot) -> WorkItem:
                item = snapshot.item(work_item_id)
                if item.status.is_terminal:
                    raise InvalidTransition(
                        f"Work item {work_item_id!r} is {item.status.value}; "
                        "progress can only be reported on open items"
                    )
                if not 0 <= percent <= 100:
                    raise InvalidTransition(
                        f"Progress must be between 0 and 100, got {percent}"
                    )
                if percent < item.progress_percent:
                    raise InvalidTransition(
                        f"Progress on {work_item_id!r} cannot go back from "
                        f"{item.progress_percent}% to {percent}%"
                    )
                item.status = WorkStatus.IN_PROGRESS
                item.progress_percent = percent
                item.updated_at = utcnow()
                snapshot.items_dirty = True
                return item.model_copy()

            item = self._atomic_update("work.progress", modifier)

        logger.info("Progress on %s: %d%%", work_item_id, percent)
        return item

    def complete(
        self,
        work_item_id: str,
        result: str,
        velocity_points: int,
        agent_id: str | None = None,
    ) -> WorkItem:
        """Mark a work item completed and release its owner's capacity."""
        return self._finish(
            "work.complete",
            work_item_id,
            WorkStatus.COMPLETED,
            result=result,
            velocity_points=velocity_points,
            agent_id=agent_id,
        )

    def fail(self, work_item_id: str, reason: str, agent_id: str | None = None) -> WorkItem:
        """Mark a work item failed and release its owner's capacity."""
        return self._finish(
            "work.fail",
            work_item_id,
            WorkStatus.FAILED,
            result=reason,
            velocity_points=None,
            agent_id=agent_id,
        )

    def get(self, work_item_id: str) -> WorkItem:
        with self.tracer.span("work.get", work_item_id=work_item_id):
            return self.ledger.get(work_item_id)

    def list_work(self, work_filter: WorkFilter | None = None) -> list[WorkItem]:
        """Lock-free read of the ledger as last committed."""
        work_filter = work_filter or WorkFilter()
        with self.tracer.span(
            "work.list", **work_filter.model_dump(mode="json", exclude_none=True)
        ) as attrs:
            items = [item for item in self.ledger.read() if work_filter.matches(item)]
            attrs["count"] = len(items)
        return items

    def velocity(self, team: str | None = None) -> dict[str, int]:
        """Velocity points of completed work, summed per team."""
        with self.tracer.span("work.velocity", team=team):
            totals: Counter[str] = Counter()
            for item in self.ledger.read():
                if item.status is not WorkStatus.COMPLETED:
                    continue
                item_team = item.team or "unassigned"
                if team is not None and item_team != team:
                    continue
                totals[item_team] += item.velocity_points or 0
        return dict(totals)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def archive(self, statuses: Iterable[WorkStatus | str] = TERMINAL_STATUSES) -> ArchiveResult:
        """Move finished items out of the live ledger into an archive file.

        The archive file is written before the ledger, so a crash in
        between leaves the items in both places rather than in neither.
        """
        statuses = list(statuses)
        with self.tracer.span(
            "work.archive", statuses=sorted(getattr(s, "value", s) for s in statuses)
        ) as attrs:
            wanted = {WorkStatus(s) for s in statuses}
            if any(not s.is_terminal for s in wanted):
                raise ValueError("Only completed or failed work items can be archived")

            def modifier(snapshot: _Snapshot) -> ArchiveResult:
                finished = [i for i in snapshot.items if i.status in wanted]
                if not finished:
                    return ArchiveResult(archived=0)
                archive_file = (
                    self.directory / ARCHIVE_DIR / f"{self.ids.next_id('completed_claims')}.json"
                )
                payload = [item.model_dump_json(indent=2) for item in finished]
                atomic_write_text(archive_file, "[\n" + ",\n".join(payload) + "\n]\n")
                snapshot.items = [i for i in snapshot.items if i.status not in wanted]
                snapshot.items_dirty = True
                return ArchiveResult(archived=len(finished), archive_file=archive_file)

            result = self._atomic_update("work.archive", modifier)
            attrs["archived"] = result.archived

        if result.archived:
            logger.info("Archived %d work items to %s", result.archived, result.archive_file)
        return result

    def reconcile(self) -> dict[str, tuple[int, int]]:
        """Recompute agent workloads from the ledger and persist any repair.

        Returns ``{agent_id: (recorded, actual)}`` for every agent fixed.
        """
        with self.tracer.span("registry.reconcile") as attrs:
            corrections = self._atomic_update(
                "registry.reconcile", lambda snapshot: dict(snapshot.corrections)
            )
            attrs["corrected"] = len(corrections)
        return corrections

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _finish(
        self,
        operation: str,
        work_item_id: str,
        to_status: WorkStatus,
        *,
        result: str,
        velocity_points: int | None,
        agent_id: str | None,
    ) -> WorkItem:
        with self.tracer.span(
            operation,
            work_item_id=work_item_id,
            agent_id=agent_id,
            velocity_points=velocity_points,
        ):
            if velocity_points is not None and velocity_points < 0:
                raise ValueError("velocity_points must be zero or greater")

            def modifier(snapshot: _Snapshot) -> tuple[WorkItem, WorkStatus]:
                item = snapshot.item(work_item_id)
                if item.status.is_terminal:
                    raise InvalidTransition(
                        f"Work item {work_item_id!r} is already {item.status.value}"
                    )
                from_status = item.status
                now = utcnow()
                item.status = to_status
                item.result = result
                if velocity_points is not None:
                    item.velocity_points = velocity_points
                item.updated_at = now
                snapshot.items_dirty = True

                owner = snapshot.agent(item.agent_id)
                if owner is None:
                    logger.warning(
                        "Owner %s of %s is not registered; no workload to release",
                        item.agent_id,
                        work_item_id,
                    )
                else:
                    owner.current_workload = max(0, owner.current_workload - 1)
                    owner.last_activity = now
                    owner.refresh_status()
                    snapshot.agents_dirty = True
                return item.model_copy(), from_status

            item, from_status = self._atomic_update(operation, modifier)
            entry = CoordinationLogEntry(
                work_item_id=work_item_id,
                from_status=from_status,
                to_status=to_status,
                agent_id=agent_id or item.agent_id,
                result=result,
                velocity_points=velocity_points,
            )
            try:
                self.event_log.append(entry)
            except OSError:
                # The transition is already committed; retrying it would fail
                logger.exception(
                    "Failed to record audit entry for %s %s -> %s",
                    work_item_id,
                    from_status.value,
                    to_status.value,
                )

        logger.info("%s %s (%s)", to_status.value.capitalize(), work_item_id, result)
        return item

    def _atomic_update(self, operation: str, modifier: Callable[[_Snapshot], T]) -> T:
        """Read-validate-write under the ledger lock.

        ``modifier`` mutates the snapshot in place and flags what changed;
        if it raises, nothing is written.
        """
        with self.lock_manager.with_lock(LEDGER_LOCK, operation=operation) as handle:
            snapshot = _Snapshot(items=self.ledger.read(), agents=self.registry.read())
            self._reconcile(snapshot)
            outcome = modifier(snapshot)
            if snapshot.items_dirty:
                self.ledger.atomic_write(snapshot.items, handle)
            if snapshot.agents_dirty:
                self.registry.atomic_write(snapshot.agents, handle)
            return outcome

    def _reconcile(self, snapshot: _Snapshot) -> None:
        open_counts = Counter(item.agent_id for item in snapshot.items if item.is_open)
        for agent in snapshot.agents:
            actual = open_counts.get(agent.agent_id, 0)
            if agent.current_workload != actual:
                snapshot.corrections[agent.agent_id] = (agent.current_workload, actual)
                agent.current_workload = actual
                agent.refresh_status()
                snapshot.agents_dirty = True
        if snapshot.corrections:
            logger.warning(
                "Repaired agent workloads from the ledger: %s",
                ", ".join(
                    f"{agent_id} {old}->{new}"
                    for agent_id, (old, new) in sorted(snapshot.corrections.items())
                ),
            )
