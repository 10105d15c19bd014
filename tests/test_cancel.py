"""Tests for cancellation tokens and request timeouts."""

import asyncio

import pytest

from blossom_client.cancel import CancelToken, run_cancellable
from blossom_client.errors import CancellationError, RequestTimeoutError


class TestCancelToken:
    def test_cancel_once(self):
        token = CancelToken()

        token.cancel("first")
        token.cancel("second")

        assert token.cancelled
        assert token.reason == "first"
        with pytest.raises(CancellationError, match="first"):
            token.raise_if_cancelled()

    def test_not_cancelled(self):
        CancelToken().raise_if_cancelled()


class TestRunCancellable:
    """Racing a request against cancellation and timeout."""

    @pytest.mark.asyncio
    async def test_result_returned(self):
        async def work():
            return 42

        assert await run_cancellable(work(), cancel=CancelToken(), timeout=1) == 42

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        token = CancelToken()
        token.cancel()
        started = []

        async def work():
            started.append(True)

        coro = work()
        with pytest.raises(CancellationError):
            await run_cancellable(coro, cancel=token)
        coro.close()

        assert started == []

    @pytest.mark.asyncio
    async def test_cancel_wins(self):
        token = CancelToken()
        aborted = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                aborted.set()
                raise

        asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")

        with pytest.raises(CancellationError, match="stop"):
            await run_cancellable(work(), cancel=token, timeout=5)

        assert aborted.is_set()

    @pytest.mark.asyncio
    async def test_timeout_wins(self):
        async def work():
            await asyncio.sleep(5)

        with pytest.raises(RequestTimeoutError, match="too slow"):
            await run_cancellable(work(), cancel=CancelToken(), timeout=0.01, timeout_message="too slow")

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        async def work():
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await run_cancellable(work())
