"""In-process transport over a table of handler callables."""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from ..errors import (
    ConnectionLostError,
    MethodNotSupportedError,
    RequestTimeoutError,
    SolverApplicationError,
    SolverLinkError,
)
from ..logging import module_logger
from .base import Transport
from .pending import PendingCalls

logger = module_logger(service='solverlink', component='local-transport')

Handler = Callable[[Any], Union[Any, Awaitable[Any]]]


def _roundtrip(value: Any) -> Any:
    # Same shapes as a remote call: tuples become lists, models must already be plain data.
    return json.loads(json.dumps(value))


class LocalTransport(Transport):
    """Dispatch calls to in-process handlers, each receiving the params value.

    Handlers may be plain functions or coroutines. Params and results cross
    a JSON round trip so in-process backends observe exactly what a remote
    one would. Closing the transport fails every outstanding call.
    """

    def __init__(
        self,
        handlers: Mapping[str, Handler],
        *,
        url: str = "local:",
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(url, timeout=timeout)
        self._handlers: Dict[str, Handler] = dict(handlers)
        self._pending = PendingCalls()
        self._closed = False

    @property
    def connected(self) -> bool:
        return not self._closed

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    async def connect(self) -> None:
        self._closed = False

    async def close(self) -> None:
        self._closed = True
        self._pending.fail_all(ConnectionLostError("Transport closed", details={"url": self.url}))

    async def _send(self, method: str, params: Any) -> Any:
        if self._closed:
            raise ConnectionLostError(details={"url": self.url, "method": method})
        handler = self._handlers.get(method)
        if handler is None:
            raise MethodNotSupportedError(method)

        request_id = self.next_id()
        future = self._pending.add(request_id, method)
        worker = asyncio.ensure_future(self._run(request_id, method, handler, _roundtrip(params)))
        try:
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError as exc:
            raise RequestTimeoutError(
                f"{method} timed out",
                details={"url": self.url, "method": method, "timeout": self.timeout},
            ) from exc
        finally:
            self._pending.discard(request_id)
            if not worker.done():
                worker.cancel()

    async def _run(self, request_id: int, method: str, handler: Handler, params: Any) -> None:
        try:
            result = handler(params)
            if inspect.isawaitable(result):
                result = await result
            result = _roundtrip(result)
        except SolverLinkError as exc:
            self._pending.reject(request_id, exc)
            return
        except Exception as exc:
            logger.exception(f"handler for {method} raised")
            self._pending.reject(
                request_id,
                SolverApplicationError(str(exc) or type(exc).__name__, details={"method": method}),
            )
            return
        self._pending.resolve(request_id, result)


__all__ = ["Handler", "LocalTransport"]
