"""Cancellation tokens and timeouts for outbound requests."""

import asyncio
import contextlib
from typing import Awaitable, Optional, TypeVar

from .errors import CancellationError, RequestTimeoutError

T = TypeVar("T")


class CancelToken:
    """Cancellation handle shared by every request of one operation.

    Cancelling aborts the in-flight request and makes every later request
    fail before it is sent.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Operation cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationError(self.reason or "Operation cancelled")

    async def wait(self) -> None:
        await self._event.wait()


async def run_cancellable(
    aw: Awaitable[T],
    cancel: Optional[CancelToken] = None,
    timeout: Optional[float] = None,
    timeout_message: str = "Request timed out",
) -> T:
    """Await `aw`, aborting it on cancellation or timeout.

    Whichever fires first wins: cancellation raises CancellationError, the
    timeout raises RequestTimeoutError. The awaited task is cancelled in
    both cases.
    """
    if cancel is not None:
        cancel.raise_if_cancelled()

    task = asyncio.ensure_future(aw)
    waiters = {task}
    cancel_waiter = None
    if cancel is not None:
        cancel_waiter = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    # Outcome of the aborted request is discarded
    with contextlib.suppress(asyncio.CancelledError, Exception):
        await task

    if cancel is not None and cancel.cancelled:
        raise CancellationError(cancel.reason or "Operation cancelled")
    raise RequestTimeoutError(timeout_message)
