"""Channels that carry method calls to a backend."""

from __future__ import annotations

from typing import Mapping, Optional
from urllib.parse import urlparse

from .base import Transport, build_request, parse_response
from .http import HttpTransport
from .local import Handler, LocalTransport
from .pending import PendingCalls
from .websocket import WebSocketTransport


def create_transport(
    url: str,
    *,
    timeout: Optional[float] = None,
    connect_timeout: Optional[float] = None,
    handlers: Optional[Mapping[str, Handler]] = None,
) -> Transport:
    """Pick a transport by URL scheme."""
    scheme = urlparse(url).scheme.lower()
    if scheme in ("ws", "wss"):
        return WebSocketTransport(url, timeout=timeout, connect_timeout=connect_timeout)
    if scheme in ("http", "https"):
        return HttpTransport(url, timeout=timeout)
    if scheme == "local":
        if handlers is None:
            raise ValueError("local: transports need a handler table")
        return LocalTransport(handlers, url=url, timeout=timeout)
    raise ValueError(f"Unsupported transport scheme: {url!r}")


__all__ = [
    "Transport",
    "HttpTransport",
    "WebSocketTransport",
    "LocalTransport",
    "PendingCalls",
    "Handler",
    "build_request",
    "parse_response",
    "create_transport",
]
