from __future__ import annotations

import functools
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

import click

from swarmcoord import __version__
from swarmcoord.errors import CoordinationError
from swarmcoord.models.work_item import Priority, WorkFilter, WorkItem
from swarmcoord.utils.config import Config, get_config
from swarmcoord.utils.logger import setup_logging

PRIORITIES = [p.value for p in Priority]


class _State:
    """Per-invocation context: configuration and a lazily built engine."""

    def __init__(self, config: Config):
        self.config = config
        self._engine = None

    @property
    def engine(self):
        if self._engine is None:
            from swarmcoord.services.coordination import CoordinationEngine

            self._engine = CoordinationEngine.from_config(self.config)
        return self._engine

    def agent_id(self, explicit: str | None) -> str:
        from swarmcoord.services.identity import resolve_agent_id

        try:
            agent_id = resolve_agent_id(explicit, self.config.agent_id)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--agent-id") from exc
        if agent_id is None:
            raise click.UsageError("No agent identity: pass --agent-id or set AGENT_ID")
        return agent_id


def _reports_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Turn coordination errors into ``error[kind]`` on stderr and an exit code."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except CoordinationError as exc:
            click.echo(f"error[{exc.kind}]: {exc.message}", err=True)
            sys.exit(exc.exit_code)
        except ValueError as exc:
            # Argument rejected by the engine (bad agent id, priority, ...)
            raise click.UsageError(str(exc)) from exc

    return wrapper


def _format_item(item: WorkItem) -> str:
    team = item.team or "-"
    return (
        f"{item.work_item_id}: {item.work_type} ({item.priority.value}) [{team}] "
        f"{item.status.value} {item.progress_percent}% agent={item.agent_id} "
        f"- {item.description}"
    )


@click.group()
@click.version_option(version=__version__, prog_name="swarmcoord")
@click.option(
    "--dir",
    "coordination_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Coordination directory (default: $COORDINATION_DIR or ./agent_coordination).",
)
@click.pass_context
def main(ctx: click.Context, coordination_dir: Path | None) -> None:
    """swarmcoord: filesystem work coordination for agent swarms."""
    config = get_config()
    if coordination_dir is not None:
        config = replace(config, coordination_dir=coordination_dir)
    setup_logging(config.log_level)
    ctx.obj = _State(config)


@main.command()
@click.argument("agent_id", default="")
@click.argument("team", default="autonomous_team")
@click.argument("capacity", default=None, required=False, type=click.IntRange(min=0))
@click.argument("specialization", default="general_development")
@click.pass_obj
@_reports_errors
def register(
    state: _State,
    agent_id: str,
    team: str,
    capacity: int | None,
    specialization: str,
) -> None:
    """Register or update an agent and print its id.

    AGENT_ID may be '' or '-' to use $AGENT_ID, or a generated id when that
    is unset. CAPACITY defaults to $SWARMCOORD_DEFAULT_CAPACITY.
    """
    if agent_id in ("", "-"):
        agent_id = state.config.agent_id or ""
    agent = state.engine.register(
        team=team,
        capacity=state.config.default_capacity if capacity is None else capacity,
        specialization=specialization,
        agent_id=agent_id or None,
    )
    click.echo(agent.agent_id)


@main.command()
@click.argument("work_type")
@click.argument("description")
@click.argument("priority", default="medium", type=click.Choice(PRIORITIES))
@click.argument("team", default="autonomous_team")
@click.option("--agent-id", default=None, help="Claiming agent (default: $AGENT_ID).")
@click.pass_obj
@_reports_errors
def claim(
    state: _State,
    work_type: str,
    description: str,
    priority: str,
    team: str,
    agent_id: str | None,
) -> None:
    """Create a work item owned by the agent and print its id."""
    work_item_id = state.engine.claim(
        state.agent_id(agent_id), work_type, description, priority, team
    )
    click.echo(work_item_id)


@main.command()
@click.argument("work_item_id")
@click.argument("percent", type=click.IntRange(0, 100))
@click.argument("note", required=False)
@click.pass_obj
@_reports_errors
def progress(state: _State, work_item_id: str, percent: int, note: str | None) -> None:
    """Report progress (0-100) on a work item."""
    item = state.engine.progress(work_item_id, percent, note)
    click.echo(f"{item.work_item_id} {item.status.value} {item.progress_percent}%")


@main.command()
@click.argument("work_item_id")
@click.argument("result", default="success")
@click.argument("velocity_points", default=5, type=click.IntRange(min=0))
@click.option("--agent-id", default=None, help="Completing agent (default: $AGENT_ID).")
@click.pass_obj
@_reports_errors
def complete(
    state: _State,
    work_item_id: str,
    result: str,
    velocity_points: int,
    agent_id: str | None,
) -> None:
    """Mark a work item completed."""
    item = state.engine.complete(
        work_item_id, result, velocity_points, agent_id=agent_id or state.config.agent_id
    )
    click.echo(f"{item.work_item_id} completed ({item.velocity_points} velocity points)")


@main.command()
@click.argument("work_item_id")
@click.argument("reason")
@click.option("--agent-id", default=None, help="Reporting agent (default: $AGENT_ID).")
@click.pass_obj
@_reports_errors
def fail(state: _State, work_item_id: str, reason: str, agent_id: str | None) -> None:
    """Mark a work item failed."""
    item = state.engine.fail(work_item_id, reason, agent_id=agent_id or state.config.agent_id)
    click.echo(f"{item.work_item_id} failed")


@main.command("list")
@click.argument("filter_text", metavar="[FILTER]", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print the items as a JSON array.")
@click.pass_obj
@_reports_errors
def list_work(state: _State, filter_text: str | None, as_json: bool) -> None:
    """List work items.

    FILTER is 'all', a status, a team name, or key=value pairs joined by
    commas (status, team, agent_id, priority, work_type).
    """
    try:
        work_filter = WorkFilter.parse(filter_text)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="FILTER") from exc
    items = state.engine.list_work(work_filter)
    if as_json:
        click.echo(json.dumps([i.model_dump(mode="json") for i in items], indent=2))
        return
    for item in items:
        click.echo(_format_item(item))


@main.command()
@click.argument("team", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print the agents as a JSON array.")
@click.pass_obj
@_reports_errors
def agents(state: _State, team: str | None, as_json: bool) -> None:
    """List registered agents, optionally for one team."""
    found = state.engine.list_agents(team)
    if as_json:
        click.echo(json.dumps([a.model_dump(mode="json") for a in found], indent=2))
        return
    for agent in found:
        click.echo(
            f"{agent.agent_id}: {agent.team} ({agent.specialization}) "
            f"{agent.status.value} {agent.current_workload}/{agent.capacity}"
        )


@main.command()
@click.argument("team", required=False)
@click.pass_obj
@_reports_errors
def velocity(state: _State, team: str | None) -> None:
    """Show completed velocity points per team."""
    for name, points in sorted(state.engine.velocity(team).items()):
        click.echo(f"{name}: {points}")


@main.command()
@click.pass_obj
@_reports_errors
def archive(state: _State) -> None:
    """Move completed and failed work items to an archive file."""
    result = state.engine.archive()
    if result.archived:
        click.echo(f"Archived {result.archived} work items to {result.archive_file}")
    else:
        click.echo("No finished work items to archive")


@main.command()
@click.pass_obj
@_reports_errors
def reconcile(state: _State) -> None:
    """Recompute agent workloads from the ledger."""
    corrections = state.engine.reconcile()
    for agent_id, (old, new) in sorted(corrections.items()):
        click.echo(f"{agent_id}: {old} -> {new}")
    if not corrections:
        click.echo("Agent registry matches the ledger")


@main.command("lock-status")
@click.pass_obj
def lock_status(state: _State) -> None:
    """Show who holds the ledger lock."""
    from swarmcoord.storage.ledger import LEDGER_LOCK

    inspection = state.engine.lock_manager.inspect(LEDGER_LOCK)
    click.echo(inspection.model_dump_json(indent=2))


@main.command("clear-lock")
@click.option("--force", is_flag=True, help="Clear even if the holder looks alive.")
@click.pass_obj
def clear_lock(state: _State, force: bool) -> None:
    """Clear an abandoned ledger lock (operator recovery)."""
    from swarmcoord.storage.ledger import LEDGER_LOCK

    lock_manager = state.engine.lock_manager
    inspection = lock_manager.inspect(LEDGER_LOCK)
    if not inspection.held and inspection.owner is None:
        click.echo("Lock is not held")
        return
    if inspection.held and not inspection.stale and not force:
        owner = inspection.owner
        holder = f"pid {owner.pid} on {owner.host}" if owner else "an unknown process"
        click.echo(
            f"error[lock_held]: lock is held by {holder}, which looks alive; use --force",
            err=True,
        )
        sys.exit(1)
    owner = lock_manager.force_clear(LEDGER_LOCK)
    if owner is not None:
        click.echo(f"Cleared lock held by pid {owner.pid} on {owner.host}")
    else:
        click.echo("Cleared lock")


@main.command("generate-id")
@click.option("--prefix", default="agent", show_default=True)
def generate_id(prefix: str) -> None:
    """Print a fresh nanosecond-based identifier."""
    from swarmcoord.services.identifiers import next_id

    click.echo(next_id(prefix))


@main.command()
@click.pass_obj
def serve(state: _State) -> None:
    """Start the swarmcoord MCP server on stdio."""
    from swarmcoord.server import create_server

    click.echo("Starting swarmcoord MCP server...", err=True)
    create_server(state.config).run()


@main.command()
def version() -> None:
    """Print the version and exit."""
    click.echo(f"swarmcoord {__version__}")


if __name__ == "__main__":
    main()
