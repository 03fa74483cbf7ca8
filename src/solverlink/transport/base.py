"""Transport contract and JSON-RPC 2.0 framing shared by every channel."""

from __future__ import annotations

import itertools
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..errors import (
    MethodNotSupportedError,
    ProtocolError,
    SolverApplicationError,
    SolverLinkError,
)
from ..logging import module_logger

logger = module_logger(service='solverlink', component='transport')

JSONRPC_VERSION = "2.0"
METHOD_NOT_FOUND = -32601


def build_request(request_id: Any, method: str, params: Any = None) -> Dict[str, Any]:
    frame: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method}
    if params is not None:
        frame["params"] = params
    return frame


def parse_response(method: str, frame: Any) -> Any:
    """Return the ``result`` of a response frame or raise the matching error."""
    if not isinstance(frame, dict):
        raise ProtocolError(
            "Backend returned unexpected response type",
            details={"method": method, "type": type(frame).__name__},
        )

    error = frame.get("error")
    if error is not None:
        if not isinstance(error, dict):
            raise SolverApplicationError(str(error), details={"method": method})
        code = error.get("code")
        message = error.get("message") or "An unknown error occurred"
        if code == METHOD_NOT_FOUND:
            raise MethodNotSupportedError(method, message)
        raise SolverApplicationError(
            message,
            error_code=code,
            data=error.get("data"),
            details={"method": method},
        )

    if "result" not in frame:
        raise ProtocolError(
            "Response frame carries neither result nor error",
            details={"method": method},
        )
    return frame["result"]


class Transport(ABC):
    """A channel that can carry many concurrent ``call``s to one backend.

    Only ``call`` is relied on by higher layers; ``connect`` and ``close``
    manage the underlying channel and are safe to call repeatedly.
    """

    def __init__(self, url: str, *, timeout: Optional[float] = None) -> None:
        self.url = url
        self.timeout = timeout
        self._ids = itertools.count(1)

    async def call(self, method: str, params: Any = None) -> Any:
        started = time.monotonic()
        try:
            result = await self._send(method, params)
        except SolverLinkError as exc:
            logger.debug(
                f"call {method} on {self.url} failed after {time.monotonic() - started:.3f}s: {exc.code}",
                extra={"method": method, "connection": self.url, "error_code": exc.code},
            )
            raise
        logger.debug(
            f"call {method} on {self.url} completed in {time.monotonic() - started:.3f}s",
            extra={"method": method, "connection": self.url},
        )
        return result

    def next_id(self) -> int:
        return next(self._ids)

    @abstractmethod
    async def _send(self, method: str, params: Any) -> Any:
        """Deliver one call and return its result."""

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @property
    def connected(self) -> bool:
        return True

    async def __aenter__(self) -> "Transport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r})"


__all__ = [
    "JSONRPC_VERSION",
    "METHOD_NOT_FOUND",
    "Transport",
    "build_request",
    "parse_response",
]
