"""Federated feature discovery across connections.

Each connection is queried independently and in the order supplied. A
connection that fails a feature query is treated as not offering that
feature; failures are logged, never aggregated.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .cancellation import CancellationToken
from .connection import Connection
from .errors import SolverLinkError
from .logging import module_logger
from .protocol.models import (
    ChangedPayload,
    Feature,
    FeatureIdParams,
    MapDescriptor,
    MapsFilter,
    TraceDescriptor,
)

logger = module_logger(service='solverlink', component='features')

DEFAULT_PROBLEM_TYPE = "pathfinding"

F = TypeVar("F", bound=Feature)

# FeatureSet attribute -> list method
FEATURE_KINDS: Dict[str, str] = {
    "algorithms": "features/algorithms",
    "formats": "features/formats",
    "problem_types": "features/problemTypes",
    "maps": "features/maps",
    "traces": "features/traces",
}


def _stamp(features: Iterable[F], source: str) -> List[F]:
    return [f if f.source == source else f.model_copy(update={"source": source}) for f in features]


@dataclass(frozen=True)
class FeatureSet:
    """Snapshot of everything the known connections advertise."""

    algorithms: Tuple[Feature, ...] = ()
    formats: Tuple[Feature, ...] = ()
    problem_types: Tuple[Feature, ...] = ()
    maps: Tuple[MapDescriptor, ...] = ()
    traces: Tuple[TraceDescriptor, ...] = ()

    def of_kind(self, kind: str) -> Tuple[Feature, ...]:
        if kind not in FEATURE_KINDS:
            raise KeyError(f"Unknown feature kind: {kind}")
        return getattr(self, kind)

    def find(self, kind: str, feature_id: str, source: Optional[str] = None) -> Optional[Feature]:
        for feature in self.of_kind(kind):
            if feature.id == feature_id and (source is None or feature.source == source):
                return feature
        return None

    def sources(self, kind: str, feature_id: str) -> List[str]:
        return [f.source for f in self.of_kind(kind) if f.id == feature_id and f.source]


class FeatureDiscovery:
    """Queries the capability surface of every connection in ``connections``."""

    def __init__(self, connections: Iterable[Connection]) -> None:
        self._connections = connections

    def _snapshot(self) -> List[Connection]:
        return list(self._connections)

    async def query(self, connection: Connection, method: str, params: Any = None) -> List[Any]:
        """One list query on one connection; a failure means the feature is not offered."""
        try:
            features = await connection.invoke(method, params)
        except SolverLinkError as exc:
            logger.warning(
                f"{connection.url}: {method} unavailable ({exc.code}: {exc.message})",
                extra={"method": method, "connection": connection.url, "error": exc.message, "error_code": exc.code},
            )
            return []
        return _stamp(features, connection.url)

    async def _federate(self, method: str, params: Any = None) -> List[Any]:
        federated: List[Any] = []
        for connection in self._snapshot():
            federated.extend(await self.query(connection, method, params))
        return federated

    async def algorithms(self) -> List[Feature]:
        return await self._federate("features/algorithms")

    async def formats(self) -> List[Feature]:
        return await self._federate("features/formats")

    async def problem_types(self) -> List[Feature]:
        return await self._federate("features/problemTypes")

    async def maps(self, filter: Optional[MapsFilter] = None) -> List[MapDescriptor]:
        return await self._federate("features/maps", filter)

    async def traces(self) -> List[TraceDescriptor]:
        return await self._federate("features/traces")

    async def collect(self) -> FeatureSet:
        return FeatureSet(
            algorithms=tuple(await self.algorithms()),
            formats=tuple(await self.formats()),
            problem_types=tuple(await self.problem_types()),
            maps=tuple(await self.maps()),
            traces=tuple(await self.traces()),
        )

    # Single-descriptor lookups go to the owning connection and propagate errors.
    def _owner(self, source: str) -> Connection:
        for connection in self._snapshot():
            if connection.url == source:
                return connection
        raise KeyError(f"No connection registered for {source}")

    async def map(self, map_id: str, source: str) -> MapDescriptor:
        connection = self._owner(source)
        descriptor = await connection.call("features/map", FeatureIdParams(id=map_id))
        return _stamp([descriptor], connection.url)[0]

    async def trace(self, trace_id: str, source: str) -> TraceDescriptor:
        connection = self._owner(source)
        descriptor = await connection.call("features/trace", FeatureIdParams(id=trace_id))
        return _stamp([descriptor], connection.url)[0]

    async def changed(self, connection: Connection) -> ChangedPayload:
        return await connection.call("features/changed")


async def _advertises(
    discovery: FeatureDiscovery,
    connection: Connection,
    method: str,
    feature_id: str,
    token: Optional[CancellationToken],
) -> bool:
    if token is not None:
        token.raise_if_canceled()
    features = await discovery.query(connection, method)
    if token is not None:
        token.raise_if_canceled()
    return any(feature.id == feature_id for feature in features)


async def find_connection(
    connections: Iterable[Connection],
    algorithm: str,
    format: str,
    problem_type: Optional[str] = None,
    *,
    token: Optional[CancellationToken] = None,
) -> Optional[Connection]:
    """Return the first connection advertising all three ids, or None.

    Connections are queried one at a time in the order given; the first match
    ends the search. ``problem_type=None`` means ``"pathfinding"``.
    """
    problem_type = problem_type or DEFAULT_PROBLEM_TYPE
    discovery = FeatureDiscovery(connections)
    required: Sequence[Tuple[str, str]] = (
        ("features/algorithms", algorithm),
        ("features/formats", format),
        ("features/problemTypes", problem_type),
    )
    for connection in discovery._snapshot():
        matched = True
        for method, feature_id in required:
            if not await _advertises(discovery, connection, method, feature_id, token):
                matched = False
                break
        if matched:
            logger.debug(f"{connection.url}: eligible for {algorithm}/{format}/{problem_type}")
            return connection
    logger.info(f"no connection offers {algorithm}/{format}/{problem_type}")
    return None


class FeatureStore:
    """Holds the latest federated FeatureSet for consumers that read it often."""

    def __init__(self, discovery: FeatureDiscovery) -> None:
        self._discovery = discovery
        self._snapshot = FeatureSet()

    @property
    def discovery(self) -> FeatureDiscovery:
        return self._discovery

    @property
    def snapshot(self) -> FeatureSet:
        return self._snapshot

    async def refresh(self) -> FeatureSet:
        self._snapshot = await self._discovery.collect()
        logger.info(
            f"features refreshed: {len(self._snapshot.algorithms)} algorithm(s), "
            f"{len(self._snapshot.formats)} format(s), {len(self._snapshot.problem_types)} problem type(s)"
        )
        return self._snapshot

    def replace(self, **kinds: Sequence[Feature]) -> FeatureSet:
        """Swap individual kinds in the snapshot, e.g. after a change notification."""
        self._snapshot = replace(self._snapshot, **{k: tuple(v) for k, v in kinds.items()})
        return self._snapshot

    def find(self, kind: str, feature_id: str, source: Optional[str] = None) -> Optional[Feature]:
        return self._snapshot.find(kind, feature_id, source)

    def display_name(self, kind: str, feature_id: str) -> str:
        feature = self.find(kind, feature_id)
        if feature is not None and feature.name:
            return feature.name
        return feature_id


__all__ = [
    "DEFAULT_PROBLEM_TYPE",
    "FEATURE_KINDS",
    "FeatureSet",
    "FeatureDiscovery",
    "FeatureStore",
    "find_connection",
]
