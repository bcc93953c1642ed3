from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from swarmcoord.services.coordination import CoordinationEngine
from swarmcoord.tools.common import call_engine


def register(mcp: FastMCP, engine: CoordinationEngine, agent_id: str | None) -> None:
    """Register agent-registry MCP tools."""

    @mcp.tool()
    async def register_agent(
        team: str,
        capacity: int,
        specialization: str = "general_development",
        new_agent_id: str | None = None,
    ) -> dict:
        """Register an agent (or update its team and capacity).

        Args:
            team: Team the agent belongs to
            capacity: Maximum number of open work items the agent may own
            specialization: Free-form skill label
            new_agent_id: Agent id to register (defaults to this session's agent, or a generated id)
        """
        agent, error = await call_engine(
            engine.register, team, capacity, specialization, new_agent_id or agent_id
        )
        if error:
            return error
        return {"success": True, "agent": agent.model_dump(mode="json")}

    @mcp.tool()
    async def list_agents(team: str | None = None) -> list[dict]:
        """List registered agents with their current workload and capacity."""
        agents, error = await call_engine(engine.list_agents, team)
        if error:
            return [error]
        return [agent.model_dump(mode="json") for agent in agents]

    @mcp.tool()
    async def team_velocity(team: str | None = None) -> dict:
        """Velocity points of completed work, per team."""
        totals, error = await call_engine(engine.velocity, team)
        if error:
            return error
        return {"success": True, "velocity": totals}
