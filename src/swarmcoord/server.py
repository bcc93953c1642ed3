from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from mcp.server.fastmcp import FastMCP

from swarmcoord.models.work_item import OPEN_STATUSES
from swarmcoord.services.coordination import CoordinationEngine
from swarmcoord.services.identity import resolve_agent_id
from swarmcoord.tools import agents as agent_tools
from swarmcoord.tools import locks as lock_tools
from swarmcoord.tools import work as work_tools
from swarmcoord.utils.config import Config, get_config
from swarmcoord.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def create_server(config: Config | None = None) -> FastMCP:
    """Build the FastMCP server exposing the coordination operations as tools."""
    config = config or get_config()
    setup_logging(config.log_level)

    engine = CoordinationEngine.from_config(config)
    session_agent_id = resolve_agent_id(None, config.agent_id)

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        logger.info(
            "swarmcoord MCP server ready: dir=%s agent=%s",
            engine.directory,
            session_agent_id or "(none, pass agent ids explicitly)",
        )
        try:
            yield
        finally:
            logger.info("swarmcoord MCP server stopped")

    server = FastMCP("swarmcoord", lifespan=lifespan)

    work_tools.register(server, engine, session_agent_id)
    agent_tools.register(server, engine, session_agent_id)
    lock_tools.register(server, engine)

    @server.resource("swarmcoord://stats")
    async def get_stats() -> str:
        items = engine.ledger.read()
        agents = engine.registry.read()
        open_items = sum(1 for item in items if item.status in OPEN_STATUSES)
        return (
            "swarmcoord status:\n"
            f"- Open work items: {open_items}\n"
            f"- Total work items: {len(items)}\n"
            f"- Registered agents: {len(agents)}\n"
        )

    return server


if __name__ == "__main__":
    create_server().run()
