"""Method registry: every RPC name bound to exactly one request/response shape."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterable, Iterator, List, Literal, Optional

from pydantic import TypeAdapter, ValidationError

from ..errors import ContractConflictError, ContractViolationError, MethodNotSupportedError
from .models import (
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

MethodName = Literal[
    "checkConnection",
    "features/algorithms",
    "features/formats",
    "features/problemTypes",
    "features/maps",
    "features/map",
    "features/trace",
    "features/traces",
    "features/changed",
    "solve/pathfinding",
]


@dataclass(frozen=True)
class MethodContract:
    name: str
    request: Any
    response: Any

    @property
    def takes_params(self) -> bool:
        return self.request is not None


METHOD_CONTRACTS: List[MethodContract] = [
    MethodContract("checkConnection", None, ConnectionInfo),
    MethodContract("features/algorithms", None, List[Feature]),
    MethodContract("features/formats", None, List[Feature]),
    MethodContract("features/problemTypes", None, List[Feature]),
    MethodContract("features/maps", Optional[MapsFilter], List[MapDescriptor]),
    MethodContract("features/map", FeatureIdParams, MapDescriptor),
    MethodContract("features/trace", FeatureIdParams, TraceDescriptor),
    MethodContract("features/traces", None, List[TraceDescriptor]),
    MethodContract("features/changed", None, ChangedPayload),
    MethodContract("solve/pathfinding", SolveArgs, TraceContent),
]


@lru_cache(maxsize=None)
def _adapter(shape: Any) -> TypeAdapter:
    return TypeAdapter(shape)


def _dump(shape: Any, value: Any) -> Any:
    return _adapter(shape).dump_python(value, mode="json", by_alias=True, exclude_none=True)


class MethodRegistry:
    """Name -> contract table, open to new entries and closed to redefinition."""

    def __init__(self, contracts: Iterable[MethodContract] = ()) -> None:
        self._contracts: Dict[str, MethodContract] = {}
        for contract in contracts:
            self.extend(contract)

    def extend(self, contract: MethodContract) -> MethodContract:
        existing = self._contracts.get(contract.name)
        if existing is not None:
            if existing != contract:
                raise ContractConflictError(
                    f"Method {contract.name!r} is already registered with a different shape",
                    details={"method": contract.name},
                )
            return existing
        self._contracts[contract.name] = contract
        return contract

    def get(self, name: str) -> MethodContract:
        try:
            return self._contracts[name]
        except KeyError:
            raise MethodNotSupportedError(name, f"Method {name!r} is not in the registry") from None

    def names(self) -> List[str]:
        return list(self._contracts)

    def __contains__(self, name: object) -> bool:
        return name in self._contracts

    def __iter__(self) -> Iterator[MethodContract]:
        return iter(self._contracts.values())

    def __len__(self) -> int:
        return len(self._contracts)

    # ------------------------------------------------------------------
    def validate_request(self, name: str, params: Any = None) -> Any:
        contract = self.get(name)
        if not contract.takes_params:
            if params not in (None, {}, []):
                raise ContractViolationError(
                    f"{name} takes no parameters",
                    details={"method": name},
                )
            return None
        return self._validate(name, "request", contract.request, params)

    def validate_response(self, name: str, payload: Any) -> Any:
        contract = self.get(name)
        return self._validate(name, "response", contract.response, payload)

    def dump_request(self, name: str, params: Any = None) -> Any:
        """Validate ``params`` and return their JSON-ready wire form."""
        value = self.validate_request(name, params)
        if value is None:
            return None
        return _dump(self.get(name).request, value)

    def dump_response(self, name: str, payload: Any) -> Any:
        value = self.validate_response(name, payload)
        return _dump(self.get(name).response, value)

    @staticmethod
    def _validate(name: str, side: str, shape: Any, value: Any) -> Any:
        try:
            return _adapter(shape).validate_python(value)
        except ValidationError as exc:
            raise ContractViolationError(
                f"Invalid {side} for {name}: {exc.error_count()} validation error(s)",
                details={"method": name, "side": side, "errors": exc.errors(include_url=False)},
            ) from exc


REGISTRY = MethodRegistry(METHOD_CONTRACTS)

# Quick lookup map
METHODS: Dict[str, MethodContract] = {contract.name: contract for contract in METHOD_CONTRACTS}

__all__ = [
    "MethodName",
    "MethodContract",
    "METHOD_CONTRACTS",
    "METHODS",
    "MethodRegistry",
    "REGISTRY",
]
