"""Turn-wide cancellation token and the guard that races awaits against it."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from daemon_agent.errors import OperationCancelledError


class CancellationToken:
    """One cancellation signal shared by every suspension point of a turn."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("cancellation.callback.error")

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run callback once the token fires. Returns a function that unregisters it."""
        if self.cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelledError()

    async def wait(self) -> None:
        await self._event.wait()

    async def guard[T](self, awaitable: Awaitable[T]) -> T:
        """Wait for the awaitable to complete, unless the token fires first."""
        fut = asyncio.ensure_future(awaitable)
        if self.cancelled:
            await _discard(fut)
            raise OperationCancelledError()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({fut, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            fut.cancel()
            raise
        finally:
            waiter.cancel()

        if fut in done:
            return fut.result()
        await _discard(fut)
        raise OperationCancelledError()


async def _discard(fut: asyncio.Future[object]) -> None:
    """Cancel fut and let its cleanup run to completion."""
    fut.cancel()
    try:
        await fut
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.opt(exception=True).debug("cancellation.discard.error")
