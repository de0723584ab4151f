"""In-memory store for pending OAuth states.

Each state token maps to the PKCE verifier generated for the same login
attempt. Entries are single-use and expire after ``ttl_ms``; expired
entries are pruned lazily on every access instead of by a background task.

None of the methods await, so on the event loop every call runs as one
uninterrupted critical section.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from .constants import STATE_TTL_MS

MAX_PENDING_STATES = 1000

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateEntry:
    verifier: str
    created_at: int


def _current_time_ms() -> int:
    return int(time.time() * 1000)


class OAuthStateStore:
    def __init__(
        self,
        ttl_ms: int = STATE_TTL_MS,
        clock: Callable[[], int] | None = None,
        max_pending: int = MAX_PENDING_STATES,
    ) -> None:
        self._ttl_ms = ttl_ms
        self._max_pending = max_pending
        self._clock = clock or _current_time_ms
        self._entries: dict[str, StateEntry] = {}

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    def __len__(self) -> int:
        return len(self._entries)

    def save(self, state: str, verifier: str, now: int | None = None) -> None:
        now = self._now(now)
        self.prune(now)
        if self._entries and state not in self._entries and len(self._entries) >= self._max_pending:
            # Evict oldest entry when at capacity
            oldest = min(self._entries, key=lambda s: self._entries[s].created_at)
            del self._entries[oldest]
            logger.debug("OAuth state store full, evicted oldest pending state")
        self._entries[state] = StateEntry(verifier=verifier, created_at=now)

    def consume(self, state: str, now: int | None = None) -> StateEntry | None:
        """Remove and return the entry for ``state``.

        Returns ``None`` when the state was never saved, has expired, or was
        already consumed; callers must not be able to tell these apart.
        """
        self.prune(self._now(now))
        return self._entries.pop(state, None)

    def prune(self, now: int | None = None) -> int:
        # An entry exactly ttl_ms old is still valid
        now = self._now(now)
        expired = [s for s, e in self._entries.items() if now - e.created_at > self._ttl_ms]
        for state in expired:
            del self._entries[state]
        if expired:
            logger.debug("Pruned %d expired OAuth state(s)", len(expired))
        return len(expired)

    def _now(self, now: int | None) -> int:
        return self._clock() if now is None else now
