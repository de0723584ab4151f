"""Tests for generation-guarded async state."""

from __future__ import annotations

import asyncio

from spotify_pkce.async_state import AsyncState, Generation


class TestGeneration:
    """Tests for Generation."""

    def test_only_latest_is_current(self) -> None:
        """Issuing a new generation supersedes the previous one."""
        generation = Generation()
        first = generation.next()
        second = generation.next()
        assert not generation.is_current(first)
        assert generation.is_current(second)


class TestAsyncState:
    """Tests for AsyncState."""

    def test_execute_stores_result(self) -> None:
        """A successful call sets data and clears loading."""

        async def fetch(value: int) -> int:
            return value * 2

        state = AsyncState(fetch)
        result = asyncio.run(state.execute(21))

        assert result == 42
        assert state.data == 42
        assert state.loading is False
        assert state.error is None

    def test_execute_captures_error(self) -> None:
        """Exceptions are captured instead of raised."""

        async def fail() -> int:
            raise RuntimeError("boom")

        state = AsyncState(fail, initial=7)
        result = asyncio.run(state.execute())

        assert result is None
        assert state.data is None
        assert isinstance(state.error, RuntimeError)
        assert state.loading is False

    def test_superseded_result_is_discarded(self) -> None:
        """A slow earlier call cannot overwrite a newer result."""

        async def scenario() -> AsyncState[str]:
            release_first = asyncio.Event()

            async def fetch(label: str) -> str:
                if label == "first":
                    await release_first.wait()
                return label

            state = AsyncState(fetch)
            first = asyncio.create_task(state.execute("first"))
            await asyncio.sleep(0)
            second = await state.execute("second")
            release_first.set()

            assert second == "second"
            assert await first is None
            return state

        state = asyncio.run(scenario())
        assert state.data == "second"
        assert state.loading is False

    def test_superseded_error_is_discarded(self) -> None:
        """An error from a superseded call leaves the newer data alone."""

        async def scenario() -> AsyncState[str]:
            release_first = asyncio.Event()

            async def fetch(label: str) -> str:
                if label == "first":
                    await release_first.wait()
                    raise RuntimeError("stale failure")
                return label

            state = AsyncState(fetch)
            first = asyncio.create_task(state.execute("first"))
            await asyncio.sleep(0)
            await state.execute("second")
            release_first.set()
            await first
            return state

        state = asyncio.run(scenario())
        assert state.data == "second"
        assert state.error is None

    def test_reset_invalidates_pending_call(self) -> None:
        """reset restores the initial value and ignores in-flight results."""

        async def scenario() -> AsyncState[str]:
            release = asyncio.Event()

            async def fetch() -> str:
                await release.wait()
                return "late"

            state = AsyncState(fetch, initial="initial")
            task = asyncio.create_task(state.execute())
            await asyncio.sleep(0)
            assert state.loading is True

            state.reset()
            release.set()
            await task
            return state

        state = asyncio.run(scenario())
        assert state.data == "initial"
        assert state.loading is False
