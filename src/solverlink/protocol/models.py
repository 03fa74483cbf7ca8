"""Wire models exchanged with solver backends.

Field names on the wire are camelCase; Python attributes are snake_case.
Every model accepts either spelling and dumps by alias through ``to_wire``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# A node is either a flat index or a coordinate pair, depending on the map format.
NodeRef = Union[int, List[int]]
TraceContent = Dict[str, Any]
ChangedPayload = Dict[str, Any]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class Feature(WireModel):
    """An advertised capability: algorithm, map format, problem type, map or trace."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None

    @property
    def key(self) -> Tuple[Optional[str], str]:
        """Identity is scoped to the owning connection."""
        return (self.source, self.id)


class MapDescriptor(Feature):
    format: Optional[str] = None
    content: Optional[str] = None
    last_modified: Optional[float] = Field(default=None, alias="lastModified")
    size: Optional[int] = None


class TraceDescriptor(Feature):
    content: Optional[Any] = None
    last_modified: Optional[float] = Field(default=None, alias="lastModified")


class ConnectionInfo(WireModel):
    """Response of ``checkConnection``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    description: Optional[str] = None
    version: Optional[str] = None


class FeatureIdParams(WireModel):
    id: str


class MapsFilter(WireModel):
    format: Optional[str] = None


class TaskInstance(WireModel):
    """One concrete problem: ``pour_amounts[i]`` belongs to ``plants[i]``."""

    start: NodeRef = 0
    end: NodeRef = 0
    plants: List[NodeRef] = Field(default_factory=list)
    taps: List[NodeRef] = Field(default_factory=list)
    pour_amounts: List[float] = Field(default_factory=list, alias="pourAmounts")

    @model_validator(mode="after")
    def _pair_pour_amounts(self) -> "TaskInstance":
        if len(self.pour_amounts) > len(self.plants):
            raise ValueError(
                f"{len(self.pour_amounts)} pour amounts given for {len(self.plants)} plants"
            )
        if len(self.pour_amounts) < len(self.plants):
            padding = [0] * (len(self.plants) - len(self.pour_amounts))
            self.pour_amounts = [*self.pour_amounts, *padding]
        return self


class SolveArgs(WireModel):
    """Request of ``solve/pathfinding``."""

    format: str
    instances: List[TaskInstance]
    map_uri: str = Field(alias="mapURI")
    algorithm: str


__all__ = [
    "NodeRef",
    "TraceContent",
    "ChangedPayload",
    "WireModel",
    "Feature",
    "MapDescriptor",
    "TraceDescriptor",
    "ConnectionInfo",
    "FeatureIdParams",
    "MapsFilter",
    "TaskInstance",
    "SolveArgs",
]
