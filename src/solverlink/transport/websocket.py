"""JSON-RPC over a single WebSocket, multiplexed by request id."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Optional

import aiohttp

from ..errors import ConnectionLostError, RequestTimeoutError
from ..logging import module_logger
from .base import Transport, build_request, parse_response
from .pending import PendingCalls

logger = module_logger(service='solverlink', component='ws-transport')

NotificationHandler = Callable[[str, Any], None]


class WebSocketTransport(Transport):
    """
    One socket, many in-flight calls.

    A reader task matches response frames to waiting calls by id. When the
    socket closes or errors, every outstanding call fails with
    ``ConnectionLostError``; the next call opens a fresh socket.
    Frames without an id are server notifications and go to
    ``on_notification``.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
        on_notification: Optional[NotificationHandler] = None,
    ) -> None:
        super().__init__(url, timeout=timeout)
        self.connect_timeout = connect_timeout
        self.on_notification = on_notification
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._pending = PendingCalls()
        self._connect_lock: Optional[asyncio.Lock] = None

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    async def connect(self) -> None:
        if self.connected:
            return
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()
        async with self._connect_lock:
            if self.connected:
                return
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
                self._owns_session = True
            try:
                self._ws = await asyncio.wait_for(self._session.ws_connect(self.url), self.connect_timeout)
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                logger.warning(f"{self.url}: could not open socket: {exc}")
                raise ConnectionLostError(
                    f"Could not connect: {exc}",
                    details={"url": self.url},
                ) from exc
            self._reader = asyncio.create_task(self._read_loop(self._ws))
            logger.info(f"{self.url}: socket open")

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        self._pending.fail_all(ConnectionLostError("Transport closed", details={"url": self.url}))
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _send(self, method: str, params: Any) -> Any:
        await self.connect()
        ws = self._ws
        if ws is None or ws.closed:
            raise ConnectionLostError(details={"url": self.url, "method": method})

        request_id = self.next_id()
        future = self._pending.add(request_id, method)
        try:
            try:
                await ws.send_str(json.dumps(build_request(request_id, method, params)))
            except (ConnectionError, aiohttp.ClientError) as exc:
                raise ConnectionLostError(
                    f"Connection error: {exc}",
                    details={"url": self.url, "method": method},
                ) from exc
            try:
                frame = await asyncio.wait_for(future, self.timeout)
            except asyncio.TimeoutError as exc:
                raise RequestTimeoutError(
                    f"{method} timed out",
                    details={"url": self.url, "method": method, "timeout": self.timeout},
                ) from exc
        finally:
            self._pending.discard(request_id)
        return parse_response(method, frame)

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        reason = "Connection closed by backend"
        try:
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    self._dispatch(message.data)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    reason = f"WebSocket error: {ws.exception()}"
                    break
        except asyncio.CancelledError:
            reason = "Transport closed"
            raise
        finally:
            failed = self._pending.fail_all(ConnectionLostError(reason, details={"url": self.url}))
            if failed:
                logger.warning(f"{self.url}: {reason}; failed {failed} outstanding call(s)")
            if self._ws is ws:
                self._ws = None
            if not ws.closed:
                await ws.close()

    def _dispatch(self, data: str) -> None:
        try:
            frame = json.loads(data)
        except ValueError:
            logger.warning(f"{self.url}: dropping malformed frame")
            return
        if not isinstance(frame, dict):
            logger.warning(f"{self.url}: dropping non-object frame")
            return

        request_id = frame.get("id")
        if request_id is None:
            method = frame.get("method")
            if method and self.on_notification is not None:
                try:
                    self.on_notification(method, frame.get("params"))
                except Exception:
                    logger.exception(f"{self.url}: notification handler failed for {method}")
            return
        if not self._pending.resolve(request_id, frame):
            logger.debug(f"{self.url}: response for unknown or abandoned request {request_id!r}")


__all__ = ["WebSocketTransport"]
