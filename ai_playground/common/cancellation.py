"""
Request-scoped cancellation.

The route creates one token per call and hands it to the adapter; the
adapter registers the upstream close on it once the transport has a
response, so a consumer going away tears the upstream connection down
instead of leaving it to garbage collection.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

CancelCallback = Callable[[], Union[None, Awaitable[Any]]]


class CancellationToken:
    """One-shot cancellation signal with async-aware callbacks."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[CancelCallback] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def on_cancel(self, callback: CancelCallback) -> None:
        """Register a callback; runs on ``cancel()``, never more than once."""
        self._callbacks.append(callback)

    async def cancel(self) -> None:
        """Set the token and run the registered callbacks in registration order."""
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Cancellation callback failed")

    async def wait(self) -> None:
        await self._event.wait()
