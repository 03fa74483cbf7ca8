"""JSON-RPC over HTTP: one POST per call, so calls never block each other."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from ..errors import (
    ConnectionLostError,
    MethodNotSupportedError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
)
from ..logging import module_logger
from .base import Transport, build_request, parse_response

logger = module_logger(service='solverlink', component='http-transport')

_UNSUPPORTED_STATUSES = (404, 405, 501)


class HttpTransport(Transport):
    """
    HTTP client for a JSON-RPC endpoint.

    Handles:
    - Lazy session creation (or reuse of a caller-owned session)
    - Mapping aiohttp failures onto the transport error taxonomy
    - Independent completion of concurrent calls
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(url, timeout=timeout)
        self._session = session
        self._owns_session = session is None
        self._headers = dict(headers or {})

    async def connect(self) -> None:
        if self._session is None or self._session.closed:
            client_timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=client_timeout, headers=self._headers)
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    @property
    def connected(self) -> bool:
        return self._session is not None and not self._session.closed

    async def _send(self, method: str, params: Any) -> Any:
        await self.connect()
        frame = build_request(self.next_id(), method, params)

        try:
            async with self._session.post(self.url, json=frame) as response:
                status = response.status
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    payload = None
                    text = await response.text()
                else:
                    text = None
        except asyncio.TimeoutError as exc:
            raise RequestTimeoutError(
                f"{method} timed out",
                details={"url": self.url, "method": method, "timeout": self.timeout},
            ) from exc
        except aiohttp.ClientConnectionError as exc:
            logger.warning(f"{self.url}: connection failed during {method}: {exc}")
            raise ConnectionLostError(
                f"Connection error: {exc}",
                details={"url": self.url, "method": method},
            ) from exc
        except aiohttp.ClientError as exc:
            raise TransportError(
                f"HTTP client error: {exc}",
                details={"url": self.url, "method": method},
            ) from exc

        if isinstance(payload, dict) and ("result" in payload or "error" in payload):
            return parse_response(method, payload)

        if status in _UNSUPPORTED_STATUSES:
            raise MethodNotSupportedError(method, f"{method} rejected with HTTP {status}")
        if status >= 400:
            raise TransportError(
                f"HTTP {status} from backend",
                details={"url": self.url, "method": method, "status": status},
            )
        raise ProtocolError(
            "Backend returned a non JSON-RPC body",
            details={"url": self.url, "method": method, "status": status, "body": (text or "")[:200]},
        )


__all__ = ["HttpTransport"]
