from __future__ import annotations

import logging
import secrets
import time
from contextlib import contextmanager
from typing import Any, Iterator

from swarmcoord import __version__
from swarmcoord.errors import CoordinationError
from swarmcoord.models.events import TelemetrySpan
from swarmcoord.services.event_log import EventLog

logger = logging.getLogger(__name__)


def generate_trace_id() -> str:
    """128-bit trace id, 32 hex characters."""
    return secrets.token_hex(16)


def generate_span_id() -> str:
    """64-bit span id, 16 hex characters."""
    return secrets.token_hex(8)


class Tracer:
    """Emits one :class:`TelemetrySpan` per traced operation."""

    def __init__(
        self,
        event_log: EventLog,
        service_name: str = "swarmcoord",
        service_version: str = __version__,
        trace_id: str | None = None,
        parent_span_id: str | None = None,
    ):
        self.event_log = event_log
        self.service_name = service_name
        self.service_version = service_version
        self.trace_id = trace_id
        self.parent_span_id = parent_span_id

    @contextmanager
    def span(self, operation: str, **attributes: Any) -> Iterator[dict[str, Any]]:
        """Time the block and record its outcome.

        The yielded dict is the span's attribute map; the block may add to
        it (e.g. the id it just generated). Exceptions are recorded as a
        failure and re-raised.
        """
        attrs: dict[str, Any] = {k: v for k, v in attributes.items() if v is not None}
        status = "success"
        error: str | None = None
        start = time.perf_counter()
        try:
            yield attrs
        except CoordinationError as exc:
            status, error = "failure", exc.kind
            raise
        except BaseException as exc:
            status, error = "failure", type(exc).__name__
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self._emit(operation, duration_ms, status, error, attrs)

    def _emit(
        self,
        operation: str,
        duration_ms: float,
        status: str,
        error: str | None,
        attributes: dict[str, Any],
    ) -> None:
        span = TelemetrySpan(
            trace_id=self.trace_id or generate_trace_id(),
            span_id=generate_span_id(),
            parent_span_id=self.parent_span_id,
            operation=operation,
            duration_ms=round(duration_ms, 3),
            status=status,
            service=self.service_name,
            service_version=self.service_version,
            attributes=attributes,
            error=error,
        )
        try:
            self.event_log.append(span)
        except OSError:
            # The operation's own outcome stands; a lost span is reported here
            logger.exception("Failed to record telemetry span for %s", operation)
