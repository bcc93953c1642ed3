from __future__ import annotations


class CoordinationError(Exception):
    """Base class for every error the coordination core reports.

    Each subclass carries a stable ``kind`` (used in CLI output, MCP tool
    responses and telemetry spans), a ``retryable`` flag and the process exit
    code the CLI uses for it.
    """

    kind = "coordination_error"
    retryable = False
    exit_code = 1

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {
            "success": False,
            "error": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }


class LockTimeout(CoordinationError):
    """The ledger lock was not acquired within the timeout. Retry with backoff."""

    kind = "lock_timeout"
    retryable = True
    exit_code = 75  # EX_TEMPFAIL


class StaleLock(CoordinationError):
    """The lock wait timed out and the recorded holder looks abandoned.

    Raised instead of :class:`LockTimeout` so an operator can decide to run
    ``swarmcoord clear-lock``. Clearing is never done automatically.
    """

    kind = "stale_lock"
    exit_code = 7


class MalformedLedger(CoordinationError):
    kind = "malformed_ledger"
    exit_code = 6


class NotFound(CoordinationError):
    kind = "not_found"
    exit_code = 3


class InvalidTransition(CoordinationError):
    kind = "invalid_transition"
    exit_code = 4


class CapacityExceeded(CoordinationError):
    kind = "capacity_exceeded"
    exit_code = 5
