"""Table of in-flight calls on one channel, keyed by request id."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Any, Dict, Hashable, List, Tuple


class PendingCalls:
    """Tracks one future per outstanding request.

    Each entry resolves or fails independently; ``fail_all`` is reserved for
    channel loss, where every outstanding call must fail at once.
    """

    def __init__(self) -> None:
        self._calls: "OrderedDict[Hashable, Tuple[str, asyncio.Future]]" = OrderedDict()

    def add(self, request_id: Hashable, method: str) -> asyncio.Future:
        if request_id in self._calls:
            raise KeyError(f"Request id {request_id!r} is already in flight")
        future = asyncio.get_running_loop().create_future()
        self._calls[request_id] = (method, future)
        return future

    def resolve(self, request_id: Hashable, value: Any) -> bool:
        """Complete a call. Returns False when nothing is waiting for it."""
        entry = self._calls.pop(request_id, None)
        if entry is None or entry[1].done():
            return False
        entry[1].set_result(value)
        return True

    def reject(self, request_id: Hashable, error: BaseException) -> bool:
        entry = self._calls.pop(request_id, None)
        if entry is None or entry[1].done():
            return False
        entry[1].set_exception(error)
        return True

    def discard(self, request_id: Hashable) -> None:
        self._calls.pop(request_id, None)

    def fail_all(self, error: BaseException) -> int:
        """Fail every outstanding call with ``error``. Returns how many were failed."""
        failed = 0
        calls, self._calls = self._calls, OrderedDict()
        for _method, future in calls.values():
            if not future.done():
                future.set_exception(error)
                failed += 1
        return failed

    def methods(self) -> List[str]:
        return [method for method, _ in self._calls.values()]

    def snapshot(self) -> Dict[Hashable, str]:
        return {request_id: method for request_id, (method, _) in self._calls.items()}

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._calls

    def __len__(self) -> int:
        return len(self._calls)


__all__ = ["PendingCalls"]
