#!/usr/bin/env python3
"""Demo: several agent processes coordinating through one shared directory.

Each agent is a separate OS process with its own CoordinationEngine; the only
thing they share is the coordination directory. Two agents with capacity 1
race to claim work, then one of them tries to go over capacity.
"""

import multiprocessing
import sys
import tempfile
from pathlib import Path

# Add src to path so we can import without installing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from swarmcoord.errors import CapacityExceeded
from swarmcoord.services.coordination import CoordinationEngine


def simulate_agent(name: str, directory: str, results: "multiprocessing.Queue[tuple]") -> None:
    """One agent process: claim, report progress, complete."""
    engine = CoordinationEngine(directory)
    try:
        work_id = engine.claim(name, "build", "compile module X", "high", "team1")
    except CapacityExceeded as exc:
        results.put((name, "blocked", exc.message))
        return
    engine.progress(work_id, 50, "halfway")
    results.put((name, "claimed", work_id))


def main() -> None:
    directory = tempfile.mkdtemp(prefix="swarmcoord-demo-")
    engine = CoordinationEngine(directory)

    print("=" * 60)
    print("swarmcoord multi-agent demo")
    print(f"Coordination directory: {directory}")
    print("=" * 60)

    for name in ("alice", "bob"):
        engine.register("team1", capacity=1, specialization="builder", agent_id=name)
        print(f"[{name}] registered with capacity 1")

    results: "multiprocessing.Queue[tuple]" = multiprocessing.Queue()
    procs = [
        multiprocessing.Process(target=simulate_agent, args=(name, directory, results))
        for name in ("alice", "bob")
    ]
    for p in procs:
        p.start()
    for p in procs:
        p.join()

    claimed: dict[str, str] = {}
    while not results.empty():
        name, outcome, detail = results.get()
        print(f"[{name}] {outcome}: {detail}")
        if outcome == "claimed":
            claimed[name] = detail

    print("\n[alice] Trying a second claim while at capacity...")
    try:
        engine.claim("alice", "build", "compile module Y", "high", "team1")
    except CapacityExceeded as exc:
        print(f"[alice] ❌ {exc.message}")

    for name, work_id in claimed.items():
        engine.complete(work_id, "ok", 3)
        print(f"[{name}] ✅ completed {work_id}")

    print("\nAgents:")
    for agent in engine.list_agents():
        print(f"  {agent.agent_id}: {agent.current_workload}/{agent.capacity} ({agent.status.value})")
    print(f"Velocity: {engine.velocity()}")
    print(f"Coordination log entries: {len(engine.event_log.transitions())}")


if __name__ == "__main__":
    main()
