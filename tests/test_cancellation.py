"""Tests for request-scoped cancellation tokens."""

import asyncio
from unittest.mock import MagicMock

import pytest

from possibilities.generation.cancellation import CancellationToken
from possibilities.model_providers.exceptions import GenerationCancelled


# ═══════════════════════════════════════════════════════════════════════
# Test Cancel
# ═══════════════════════════════════════════════════════════════════════


class TestCancel:
    """Test explicit cancellation."""

    def test_initial_state(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.reason is None

    def test_cancel_is_idempotent(self):
        token = CancellationToken()
        assert token.cancel("user stop") is True
        assert token.cancel("again") is False
        assert token.cancelled is True
        assert token.reason == "user stop"

    def test_callbacks_run_once(self):
        token = CancellationToken()
        callback = MagicMock()
        token.add_callback(callback)
        token.cancel()
        token.cancel()
        callback.assert_called_once()

    def test_callback_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        callback = MagicMock()
        token.add_callback(callback)
        callback.assert_called_once()

    def test_failing_callback_does_not_stop_others(self):
        token = CancellationToken()
        second = MagicMock()
        token.add_callback(MagicMock(side_effect=RuntimeError("boom")))
        token.add_callback(second)
        token.cancel()
        second.assert_called_once()

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("stop")
        with pytest.raises(GenerationCancelled, match="stop"):
            token.raise_if_cancelled()


# ═══════════════════════════════════════════════════════════════════════
# Test Run
# ═══════════════════════════════════════════════════════════════════════


class TestRun:
    """Test running work under a token."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        token = CancellationToken()

        async def work():
            return 42

        assert await token.run(work()) == 42

    @pytest.mark.asyncio
    async def test_cancel_during_run(self):
        token = CancellationToken()
        started = asyncio.Event()

        async def work():
            started.set()
            await asyncio.sleep(10)

        runner = asyncio.ensure_future(token.run(work()))
        await started.wait()
        token.cancel("user stop")
        with pytest.raises(GenerationCancelled):
            await runner

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        token = CancellationToken()
        token.cancel()

        async def work():
            return 1

        with pytest.raises(GenerationCancelled):
            await token.run(work())

    @pytest.mark.asyncio
    async def test_registered_tasks_cancelled(self):
        token = CancellationToken()
        task = token.register(asyncio.ensure_future(asyncio.sleep(10)))
        token.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_cancel_after_completion_is_noop(self):
        token = CancellationToken()

        async def work():
            return "done"

        assert await token.run(work()) == "done"
        assert token.cancel() is True
        assert token.cancel() is False


# ═══════════════════════════════════════════════════════════════════════
# Test Deadline
# ═══════════════════════════════════════════════════════════════════════


class TestDeadline:
    """Test that a deadline behaves like cancel()."""

    @pytest.mark.asyncio
    async def test_deadline_cancels(self):
        token = CancellationToken(timeout=0.05)

        async def work():
            await asyncio.sleep(10)

        with pytest.raises(GenerationCancelled, match="deadline"):
            await token.run(work())
        assert token.cancelled is True

    @pytest.mark.asyncio
    async def test_close_disarms_deadline(self):
        token = CancellationToken(timeout=0.05)

        async def work():
            return 1

        await token.run(work())
        token.close()
        await asyncio.sleep(0.1)
        assert token.cancelled is False
