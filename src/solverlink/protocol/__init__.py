"""Wire contract shared by every connection: method registry, models and map references."""

from .contract import METHOD_CONTRACTS, METHODS, REGISTRY, MethodContract, MethodName, MethodRegistry
from .map_uri import decode_map_uri, encode_map_uri
from .models import (
    ConnectionInfo,
    Feature,
    FeatureIdParams,
    MapDescriptor,
    MapsFilter,
    NodeRef,
    SolveArgs,
    TaskInstance,
    TraceDescriptor,
)

__all__ = [
    "METHOD_CONTRACTS",
    "METHODS",
    "REGISTRY",
    "MethodContract",
    "MethodName",
    "MethodRegistry",
    "decode_map_uri",
    "encode_map_uri",
    "ConnectionInfo",
    "Feature",
    "FeatureIdParams",
    "MapDescriptor",
    "MapsFilter",
    "NodeRef",
    "SolveArgs",
    "TaskInstance",
    "TraceDescriptor",
]
