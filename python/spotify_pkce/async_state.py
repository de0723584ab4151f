"""Async result holder that ignores results from superseded calls.

Every ``execute`` takes a new generation number. When the awaited call
finishes, its result (or error) is applied only if no newer ``execute`` or
``reset`` happened in the meantime. The underlying call is not cancelled.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Generation:
    """Monotonic request counter."""

    def __init__(self) -> None:
        self._current = 0

    def next(self) -> int:
        self._current += 1
        return self._current

    def is_current(self, generation: int) -> bool:
        return generation == self._current


class AsyncState(Generic[T]):
    def __init__(self, func: Callable[..., Awaitable[T]], initial: T | None = None) -> None:
        self._func = func
        self._initial = initial
        self._generation = Generation()
        self.data: T | None = initial
        self.loading = False
        self.error: Exception | None = None

    async def execute(self, *args, **kwargs) -> T | None:
        generation = self._generation.next()
        self.loading = True
        self.error = None

        try:
            result = await self._func(*args, **kwargs)
        except Exception as e:
            if self._generation.is_current(generation):
                self.error = e
                self.data = None
            else:
                logger.debug("Discarding error from superseded request %d: %s", generation, e)
            return None
        finally:
            if self._generation.is_current(generation):
                self.loading = False

        if not self._generation.is_current(generation):
            logger.debug("Discarding result from superseded request %d", generation)
            return None

        self.data = result
        return result

    def reset(self) -> None:
        self._generation.next()
        self.data = self._initial
        self.loading = False
        self.error = None
