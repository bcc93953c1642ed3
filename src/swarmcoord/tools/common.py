from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar

from swarmcoord.errors import CoordinationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_engine(fn: Callable[..., T], *args: Any, **kwargs: Any) -> tuple[T | None, dict | None]:
    """Run a blocking engine call off the event loop.

    Lock waits block, so they must not run on the loop thread. Returns
    ``(value, None)`` on success or ``(None, error_dict)`` when the engine
    reports a coordination error or rejects an argument.
    """
    try:
        return await asyncio.to_thread(fn, *args, **kwargs), None
    except CoordinationError as exc:
        logger.info("%s failed: %s", getattr(fn, "__name__", fn), exc.message)
        return None, exc.to_dict()
    except ValueError as exc:
        return None, {
            "success": False,
            "error": "invalid_argument",
            "message": str(exc),
            "retryable": False,
        }
