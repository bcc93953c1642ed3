from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from swarmcoord import __version__

load_dotenv()

# Checked in priority order; the first one set pins every span to that trace.
TRACE_ID_ENV_VARS = ("FORCE_TRACE_ID", "COORDINATION_TRACE_ID", "TRACE_ID", "OTEL_TRACE_ID")


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class Config:
    """Central configuration loaded from environment variables."""

    # Shared coordination directory holding the ledger, registry and event log
    coordination_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("COORDINATION_DIR", "agent_coordination")
        )
    )

    # Identity used when an operation is invoked without an explicit agent id
    agent_id: str | None = field(default_factory=lambda: os.environ.get("AGENT_ID") or None)

    # Lock behaviour
    lock_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SWARMCOORD_LOCK_TIMEOUT", "30"))
    )
    stale_lock_seconds: float = field(
        default_factory=lambda: float(
            os.environ.get("SWARMCOORD_STALE_LOCK_SECONDS", "300")
        )
    )

    # Registration defaults
    default_capacity: int = field(
        default_factory=lambda: int(os.environ.get("SWARMCOORD_DEFAULT_CAPACITY", "100"))
    )

    # Telemetry
    service_name: str = field(
        default_factory=lambda: os.environ.get("OTEL_SERVICE_NAME", "swarmcoord")
    )
    service_version: str = field(
        default_factory=lambda: os.environ.get("OTEL_SERVICE_VERSION", __version__)
    )
    trace_id: str | None = field(default_factory=lambda: _first_env(*TRACE_ID_ENV_VARS))
    parent_span_id: str | None = field(
        default_factory=lambda: os.environ.get("OTEL_PARENT_SPAN_ID") or None
    )

    # Logging
    log_level: str = field(
        default_factory=lambda: os.environ.get("SWARMCOORD_LOG_LEVEL", "WARNING")
    )


def get_config() -> Config:
    """Return a Config instance built from the current environment."""
    return Config()
