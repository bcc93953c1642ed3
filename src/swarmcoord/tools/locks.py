from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from swarmcoord.services.coordination import CoordinationEngine
from swarmcoord.storage.ledger import LEDGER_LOCK


def register(mcp: FastMCP, engine: CoordinationEngine) -> None:
    """Register lock diagnostics MCP tools."""

    @mcp.tool()
    async def check_ledger_lock() -> dict:
        """Show whether the ledger lock is held, by whom, and whether it looks stale.

        Clearing a stale lock is an operator action (``swarmcoord clear-lock``)
        and is not available as a tool.
        """
        inspection = engine.lock_manager.inspect(LEDGER_LOCK)
        return inspection.model_dump(mode="json")
