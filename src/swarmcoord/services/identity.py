from __future__ import annotations

import os
import re
import socket
from dataclasses import dataclass
from typing import Container

from swarmcoord.services.identifiers import next_id

_AGENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:@-]+$")


def generate_agent_id(taken: Container[str] = ()) -> str:
    """Generate a unique agent ID.

    Format: ``agent_{nanoseconds}``, drawn from the same generator as work
    item ids so agent ids also sort by registration time.
    """
    return next_id("agent", taken)


def validate_agent_id(agent_id: str) -> str:
    if not _AGENT_ID_PATTERN.match(agent_id):
        raise ValueError(
            f"Invalid agent id {agent_id!r}: use letters, digits and _ . : @ - only"
        )
    return agent_id


def resolve_agent_id(explicit: str | None, fallback: str | None) -> str | None:
    """Pick the explicit agent id, else the configured one (``AGENT_ID``)."""
    agent_id = explicit or fallback
    return validate_agent_id(agent_id) if agent_id else None


@dataclass(frozen=True)
class ProcessIdentity:
    """Where the current process runs; recorded by lock holders."""

    host: str
    pid: int

    @classmethod
    def current(cls) -> ProcessIdentity:
        return cls(host=_short_hostname(), pid=os.getpid())


def pid_alive(pid: int) -> bool:
    """Best-effort liveness check for a pid on this host."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user
        return True
    return True


def _short_hostname() -> str:
    return socket.gethostname().split(".")[0][:48] or "host"
