"""
Cancellation token threaded through every suspension point of an execution.

Provider calls, backoff waits and stream pacing all observe the same token,
so a timeout, a stream cancel or a shutdown can abort whichever of them is
pending.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from .exceptions import ExecutionCancelledError, ExecutionTimeoutError
from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TIMEOUT_REASON = "timeout"


class CancellationToken:
    """One-shot cancellation signal."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._children: list[CancellationToken] = []
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel the token. The first reason wins."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        children, self._children = self._children, []
        for child in children:
            child.cancel(reason)

    def child(self) -> "CancellationToken":
        """
        Token cancelled together with this one.

        Cancelling the child (a per-call timeout, for instance) leaves the
        parent untouched.
        """
        token = CancellationToken()
        if self.cancelled:
            token.cancel(self.reason or "cancelled")
        else:
            self._children.append(token)
        return token

    def error(self) -> ExecutionCancelledError:
        if self.reason == TIMEOUT_REASON:
            return ExecutionTimeoutError("Execution timed out", context={"reason": self.reason})
        return ExecutionCancelledError("Execution cancelled", context={"reason": self.reason})

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise self.error()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """
        Sleep up to ``delay`` seconds.

        Returns:
            True if the full delay elapsed, False if the token was cancelled
        """
        if self.cancelled:
            return False
        if delay <= 0:
            await asyncio.sleep(0)
            return not self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        Raises:
            ExecutionCancelledError: If the token was cancelled; the pending
                work is cancelled as well
        """
        work = asyncio.ensure_future(awaitable)
        if self.cancelled:
            work.cancel()
            raise self.error()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.debug("Cancelled work ended with an error", error=str(exc))
        raise self.error()
