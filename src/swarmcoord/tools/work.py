from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from swarmcoord.models.work_item import WorkFilter
from swarmcoord.services.coordination import CoordinationEngine
from swarmcoord.tools.common import call_engine


def register(mcp: FastMCP, engine: CoordinationEngine, agent_id: str | None) -> None:
    """Register work-item MCP tools."""

    def _agent(explicit: str | None) -> str | None:
        return explicit or agent_id

    @mcp.tool()
    async def claim_work(
        work_type: str,
        description: str,
        priority: str = "medium",
        team: str | None = None,
        claiming_agent_id: str | None = None,
    ) -> dict:
        """Claim a new unit of work for an agent.

        The work item is created and owned by the agent in one step. Fails
        with ``capacity_exceeded`` when the agent already owns as many open
        items as its declared capacity.

        Args:
            work_type: Category of work, e.g. "build" or "review"
            description: What the work is
            priority: low, medium, high or critical
            team: Optional team label
            claiming_agent_id: Agent claiming the work (defaults to this session's agent)
        """
        owner = _agent(claiming_agent_id)
        if owner is None:
            return {"success": False, "error": "not_found", "message": "No agent identity"}
        work_item_id, error = await call_engine(
            engine.claim, owner, work_type, description, priority, team
        )
        if error:
            return error
        return {"success": True, "work_item_id": work_item_id, "agent_id": owner}

    @mcp.tool()
    async def update_progress(work_item_id: str, percent: int, note: str | None = None) -> dict:
        """Report progress on a work item (0-100, never decreasing).

        Args:
            work_item_id: The id returned by claim_work
            percent: Completion percentage
            note: Optional free-text note
        """
        item, error = await call_engine(engine.progress, work_item_id, percent, note)
        if error:
            return error
        return {"success": True, "work_item": item.model_dump(mode="json")}

    @mcp.tool()
    async def complete_work(work_item_id: str, result: str = "success", velocity_points: int = 5) -> dict:
        """Mark a work item completed and release the agent's capacity.

        Completing an item twice is an error, so velocity is never counted twice.

        Args:
            work_item_id: The id returned by claim_work
            result: Outcome summary
            velocity_points: Story points delivered
        """
        item, error = await call_engine(
            engine.complete, work_item_id, result, velocity_points, agent_id=agent_id
        )
        if error:
            return error
        return {"success": True, "work_item": item.model_dump(mode="json")}

    @mcp.tool()
    async def fail_work(work_item_id: str, reason: str) -> dict:
        """Mark a work item failed and release the agent's capacity.

        Args:
            work_item_id: The id returned by claim_work
            reason: Why the work could not be done
        """
        item, error = await call_engine(engine.fail, work_item_id, reason, agent_id=agent_id)
        if error:
            return error
        return {"success": True, "work_item": item.model_dump(mode="json")}

    @mcp.tool()
    async def list_work(
        status: str | None = None,
        team: str | None = None,
        owner_agent_id: str | None = None,
    ) -> list[dict]:
        """List work items, optionally filtered by status, team or owning agent.

        Reads the last committed ledger without taking the lock, so the
        result may lag a concurrent claim but is never partial.
        """
        try:
            work_filter = WorkFilter(status=status, team=team, agent_id=owner_agent_id)
        except ValueError as exc:
            return [{"success": False, "error": "invalid_filter", "message": str(exc)}]
        items, error = await call_engine(engine.list_work, work_filter)
        if error:
            return [error]
        return [item.model_dump(mode="json") for item in items]
