"""Connections to solver backends and the ordered store that holds them."""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Iterable, Iterator, List, Literal, Optional, overload

from .config import SolverLinkConfig, get_config
from .logging import module_logger
from .protocol.contract import REGISTRY, MethodRegistry
from .protocol.models import (
    ChangedPayload,
    ConnectionInfo,
    Feature,
    FeatureIdParams,
    MapDescriptor,
    MapsFilter,
    SolveArgs,
    TraceContent,
    TraceDescriptor,
)
from .transport import Transport, create_transport

logger = module_logger(service='solverlink', component='connection')


class Connection:
    """A logical handle to one backend; owns its transport exclusively.

    ``call`` validates params against the method registry before they leave
    and validates the response before it is returned, so callers only ever
    see the declared shapes.
    """

    def __init__(
        self,
        url: str,
        name: Optional[str] = None,
        transport: Optional[Transport] = None,
        *,
        registry: MethodRegistry = REGISTRY,
        timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None,
    ) -> None:
        self._url = url
        self._name = name
        self._transport = transport or create_transport(url, timeout=timeout, connect_timeout=connect_timeout)
        self._registry = registry
        self._info: Optional[ConnectionInfo] = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def name(self) -> str:
        if self._name:
            return self._name
        if self._info is not None:
            return self._info.name
        return self._url

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def info(self) -> Optional[ConnectionInfo]:
        return self._info

    # Typed entry points, one per registered method -------------------
    @overload
    async def call(self, method: Literal["checkConnection"], params: None = None) -> ConnectionInfo: ...
    @overload
    async def call(self, method: Literal["features/algorithms"], params: None = None) -> List[Feature]: ...
    @overload
    async def call(self, method: Literal["features/formats"], params: None = None) -> List[Feature]: ...
    @overload
    async def call(self, method: Literal["features/problemTypes"], params: None = None) -> List[Feature]: ...
    @overload
    async def call(
        self, method: Literal["features/maps"], params: Optional[MapsFilter] = None
    ) -> List[MapDescriptor]: ...
    @overload
    async def call(self, method: Literal["features/map"], params: FeatureIdParams) -> MapDescriptor: ...
    @overload
    async def call(self, method: Literal["features/trace"], params: FeatureIdParams) -> TraceDescriptor: ...
    @overload
    async def call(self, method: Literal["features/traces"], params: None = None) -> List[TraceDescriptor]: ...
    @overload
    async def call(self, method: Literal["features/changed"], params: None = None) -> ChangedPayload: ...
    @overload
    async def call(self, method: Literal["solve/pathfinding"], params: SolveArgs) -> TraceContent: ...

    async def call(self, method: str, params: Any = None) -> Any:
        return await self.invoke(method, params)

    async def invoke(self, method: str, params: Any = None) -> Any:
        """Untyped form of ``call`` for methods added to the registry at runtime."""
        wire_params = self._registry.dump_request(method, params)
        raw = await self._transport.call(method, wire_params)
        return self._registry.validate_response(method, raw)

    async def check(self) -> ConnectionInfo:
        info = await self.call("checkConnection")
        self._info = info
        logger.info(f"{self._url}: connected to {info.name}" + (f" {info.version}" if info.version else ""))
        return info

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> "Connection":
        await self._transport.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"Connection({self._url!r}, name={self.name!r})"


class ConnectionStore:
    """Ordered set of connections, passed explicitly to the components that query them.

    Iteration order is registration order; it is the only priority federated
    search recognises.
    """

    def __init__(self, connections: Iterable[Connection] = ()) -> None:
        self._connections: "OrderedDict[str, Connection]" = OrderedDict()
        for connection in connections:
            self.add(connection)

    @classmethod
    def from_config(cls, config: Optional[SolverLinkConfig] = None) -> "ConnectionStore":
        config = config or get_config()
        return cls(
            Connection(url, timeout=config.call_timeout, connect_timeout=config.connect_timeout)
            for url in config.connections
        )

    def add(self, connection: Connection) -> Optional[Connection]:
        """Register a connection. A connection with the same url is replaced in place and returned."""
        previous = self._connections.get(connection.url)
        self._connections[connection.url] = connection
        if previous is not None:
            logger.info(f"{connection.url}: connection replaced")
        return previous

    async def remove(self, url: str) -> Optional[Connection]:
        connection = self._connections.pop(url, None)
        if connection is not None:
            await connection.close()
            logger.info(f"{url}: connection removed")
        return connection

    def get(self, url: str) -> Optional[Connection]:
        return self._connections.get(url)

    def list(self) -> List[Connection]:
        return list(self._connections.values())

    async def close_all(self) -> None:
        for connection in self.list():
            await connection.close()

    def __iter__(self) -> Iterator[Connection]:
        return iter(self.list())

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, url: object) -> bool:
        return url in self._connections


__all__ = ["Connection", "ConnectionStore"]
