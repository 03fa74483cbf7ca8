"""Cooperative cancellation tokens, one per task-execution lifecycle."""

from __future__ import annotations

import asyncio
import inspect
from typing import Callable, List, Optional

from .errors import TaskCanceledError


class CancellationToken:
    """Checked at every suspension point and again before results are applied."""

    def __init__(self, label: Optional[str] = None) -> None:
        self.label = label
        self._canceled = False
        self._reason: Optional[str] = None
        self._callbacks: List[Callable[[], None]] = []

    @property
    def canceled(self) -> bool:
        return self._canceled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "Canceled") -> None:
        if self._canceled:
            return
        self._canceled = True
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        if self._canceled:
            callback()
        else:
            self._callbacks.append(callback)

    def raise_if_canceled(self) -> None:
        if self._canceled:
            raise TaskCanceledError(self._reason or "Canceled", details={"token": self.label})

    async def guard(self, awaitable):
        """Await ``awaitable``, then fail if the token was canceled meanwhile."""
        if self._canceled and inspect.iscoroutine(awaitable):
            awaitable.close()
        self.raise_if_canceled()
        result = await awaitable
        self.raise_if_canceled()
        return result

    def bind(self, task: "asyncio.Future") -> None:
        """Cancel ``task`` when this token is canceled."""
        self.on_cancel(task.cancel)

    def __repr__(self) -> str:
        state = "canceled" if self._canceled else "live"
        return f"CancellationToken({self.label!r}, {state})"


__all__ = ["CancellationToken"]
