"""Cancellation token shared by the agent loop, provider and tools.

A single token is threaded through one agent run. The UI cancels it;
the core polls it at safe points or races blocking awaits against it.

Example:
    token = CancelToken()

    async for event in agent.run(history, session_id, token):
        ...

    token.cancel("user pressed escape")
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from wright.engine.errors import RunCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """Cooperative cancellation signal for asyncio code.

    Supports:
    - Idempotent cancellation via cancel()
    - Polling via is_cancelled
    - Awaiting via wait()
    - Racing an awaitable against cancellation via guard()
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._cause: str | None = None

    def cancel(self, cause: str = "cancelled by user") -> None:
        """Request cancellation. Only the first call has any effect."""
        if self._cause is not None:
            return
        self._cause = cause
        self._event.set()
        logger.info("Cancellation requested: %s", cause)

    @property
    def is_cancelled(self) -> bool:
        return self._cause is not None

    @property
    def cause(self) -> str | None:
        return self._cause

    def raise_if_cancelled(self) -> None:
        """Raise RunCancelledError if cancel() has been called."""
        if self._cause is not None:
            raise RunCancelledError(self._cause)

    async def wait(self) -> None:
        """Block until cancel() is called."""
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        The losing side is cancelled. Raises RunCancelledError when
        cancellation wins.
        """
        if self._cause is not None:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RunCancelledError(self._cause)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task.done():
            return task.result()
        task.cancel()
        try:
            await task
        except (asyncio.CancelledError, Exception):
            logger.debug("Guarded task ended after cancellation", exc_info=True)
        raise RunCancelledError(self._cause or "cancelled")


async def guarded(cancel: CancelToken | None, awaitable: Awaitable[T]) -> T:
    """Like ``cancel.guard(awaitable)`` but accepts a missing token."""
    if cancel is None:
        return await awaitable
    return await cancel.guard(awaitable)
