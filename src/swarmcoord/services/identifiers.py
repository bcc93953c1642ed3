from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Container

logger = logging.getLogger(__name__)

# 19 digits covers nanosecond epoch readings until the year 2286, so the
# fixed-width field keeps lexicographic order equal to numeric order.
_NS_WIDTH = 19
_SEQ_WIDTH = 6
_SEQ_LIMIT = 10**_SEQ_WIDTH


class IdGenerator:
    """Issues unique, lexicographically non-decreasing tokens.

    Format: ``{prefix}_{nanoseconds:019d}`` or, when the clock reading does
    not advance past the previous one (same tick, or the wall clock stepped
    backwards), ``{prefix}_{last_nanoseconds:019d}_{seq:06d}``. Tokens from
    one process therefore sort in issue order even across an NTP rollback.

    Uniqueness across processes cannot be promised by a clock alone; callers
    that hold the ledger lock pass the ids already in use as ``taken`` and
    the generator skips past any collision.
    """

    def __init__(
        self,
        clock: Callable[[], int] = time.time_ns,
        history_size: int = 1024,
    ):
        self._clock = clock
        self._last_ns = 0
        self._seq = 0
        self._recent: deque[str] = deque(maxlen=history_size)
        self._recent_set: set[str] = set()
        self._mu = threading.Lock()

    def next_id(self, prefix: str = "work", taken: Container[str] = ()) -> str:
        with self._mu:
            while True:
                token = self._advance(prefix)
                if token in self._recent_set or token in taken:
                    logger.debug("Identifier %s already in use, regenerating", token)
                    continue
                self._remember(token)
                return token

    def _advance(self, prefix: str) -> str:
        now = self._clock()
        if now > self._last_ns:
            self._last_ns = now
            self._seq = 0
            return f"{prefix}_{now:0{_NS_WIDTH}d}"

        if now < self._last_ns:
            logger.debug("Clock moved back by %dns, holding last reading", self._last_ns - now)
        self._seq += 1
        if self._seq >= _SEQ_LIMIT:
            self._last_ns += 1
            self._seq = 0
            return f"{prefix}_{self._last_ns:0{_NS_WIDTH}d}"
        return f"{prefix}_{self._last_ns:0{_NS_WIDTH}d}_{self._seq:0{_SEQ_WIDTH}d}"

    def _remember(self, token: str) -> None:
        if len(self._recent) == self._recent.maxlen:
            self._recent_set.discard(self._recent[0])
        self._recent.append(token)
        self._recent_set.add(token)


_default_generator = IdGenerator()


def next_id(prefix: str = "work", taken: Container[str] = ()) -> str:
    """Return a new token from the process-wide generator."""
    return _default_generator.next_id(prefix, taken)


def default_generator() -> IdGenerator:
    return _default_generator
