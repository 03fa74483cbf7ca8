"""Recorded solver traces and their replay state.

A Trace never changes once built; a new solve produces a new Trace.
Playback state (cursor, breakpoints, onion depth) lives in TracePlayback so
any number of viewers can share one Trace.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .errors import TraceBoundsError


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class OnionLayer:
    index: int
    step: Any
    opacity: float


class Trace:
    """Solver output plus step addressing.

    ``content`` is opaque to the client except for its ``events`` list,
    which is exposed as ``steps`` when present. Every accessor hands out a
    copy, so callers never alias the stored content.
    """

    __slots__ = ("_id", "_key", "_name", "_content", "_steps")

    def __init__(self, id: str, key: str, name: str, content: Any = None) -> None:
        self._id = id
        self._key = key
        self._name = name
        self._content = copy.deepcopy(content)
        events = self._content.get("events") if isinstance(self._content, Mapping) else None
        self._steps: Tuple[Any, ...] = (
            tuple(copy.deepcopy(events)) if isinstance(events, (list, tuple)) else ()
        )

    def __repr__(self) -> str:
        return f"Trace(id={self._id!r}, key={self._key!r}, name={self._name!r})"

    @classmethod
    def create(cls, name: str, content: Any) -> "Trace":
        """Build a trace with fresh identifiers, distinct from any request identity."""
        return cls(id=new_id(), key=new_id(), name=name, content=content)

    @property
    def id(self) -> str:
        return self._id

    @property
    def key(self) -> str:
        return self._key

    @property
    def name(self) -> str:
        return self._name

    @property
    def content(self) -> Any:
        return copy.deepcopy(self._content)

    @property
    def steps(self) -> Tuple[Any, ...]:
        return copy.deepcopy(self._steps)

    @property
    def step_count(self) -> int:
        return len(self._steps)

    def step(self, index: int) -> Any:
        if not 0 <= index < len(self._steps):
            raise TraceBoundsError(index, len(self._steps))
        return copy.deepcopy(self._steps[index])

    def onion(self, index: int, depth: int) -> List[OnionLayer]:
        """Up to ``depth`` consecutive steps ending at ``index``, oldest first.

        Opacity falls linearly from 1.0 at ``index`` towards zero.
        """
        if depth < 1:
            raise ValueError("Onion depth must be at least 1")
        if not 0 <= index < len(self._steps):
            raise TraceBoundsError(index, len(self._steps))
        first = max(0, index - depth + 1)
        return [
            OnionLayer(i, copy.deepcopy(self._steps[i]), round(1.0 - (index - i) / depth, 6))
            for i in range(first, index + 1)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self._id, "key": self._key, "name": self._name, "content": self.content}


class TracePlayback:
    """Cursor, breakpoints and onion depth over one immutable Trace.

    ``seek`` and breakpoint edits are bounds-checked and raise
    ``TraceBoundsError``; ``forward``/``backward`` stop at the ends and
    report whether the cursor moved.
    """

    def __init__(
        self,
        trace: Trace,
        *,
        step: int = 0,
        breakpoints: Iterable[int] = (),
        onion_depth: int = 1,
    ) -> None:
        self._trace = trace
        self._step = 0
        self._breakpoints: FrozenSet[int] = frozenset()
        self.onion_depth = onion_depth
        if trace.step_count:
            self.seek(step)
        for index in breakpoints:
            self.add_breakpoint(index)

    @property
    def trace(self) -> Trace:
        return self._trace

    @property
    def step(self) -> int:
        return self._step

    @property
    def breakpoints(self) -> FrozenSet[int]:
        return self._breakpoints

    @property
    def onion_depth(self) -> int:
        return self._onion_depth

    @onion_depth.setter
    def onion_depth(self, depth: int) -> None:
        if depth < 1:
            raise ValueError("Onion depth must be at least 1")
        self._onion_depth = depth

    def _check(self, index: int) -> None:
        if not 0 <= index < self._trace.step_count:
            raise TraceBoundsError(index, self._trace.step_count)

    # Navigation -------------------------------------------------------
    def seek(self, index: int) -> Any:
        self._check(index)
        self._step = index
        return self.current()

    def forward(self, count: int = 1) -> bool:
        target = min(self._step + count, self._trace.step_count - 1)
        moved = target > self._step
        if moved:
            self._step = target
        return moved

    def backward(self, count: int = 1) -> bool:
        target = max(self._step - count, 0)
        moved = target < self._step
        if moved:
            self._step = target
        return moved

    def current(self) -> Any:
        return self._trace.step(self._step)

    def at_end(self) -> bool:
        return self._step >= self._trace.step_count - 1

    # Breakpoints ------------------------------------------------------
    def add_breakpoint(self, index: int) -> None:
        self._check(index)
        self._breakpoints = self._breakpoints | {index}

    def remove_breakpoint(self, index: int) -> None:
        self._breakpoints = self._breakpoints - {index}

    def toggle_breakpoint(self, index: int) -> bool:
        """Flip the marker at ``index``; returns True when it is now set."""
        if index in self._breakpoints:
            self.remove_breakpoint(index)
            return False
        self.add_breakpoint(index)
        return True

    def clear_breakpoints(self) -> None:
        self._breakpoints = frozenset()

    def next_breakpoint(self) -> Optional[int]:
        """Move to the first breakpoint after the cursor, if any."""
        later = [index for index in self._breakpoints if index > self._step]
        if not later:
            return None
        self._step = min(later)
        return self._step

    def previous_breakpoint(self) -> Optional[int]:
        earlier = [index for index in self._breakpoints if index < self._step]
        if not earlier:
            return None
        self._step = max(earlier)
        return self._step

    # Display ----------------------------------------------------------
    def visible(self) -> List[OnionLayer]:
        if self._trace.step_count == 0:
            return []
        return self._trace.onion(self._step, self._onion_depth)

    def snapshot(self) -> Dict[str, Any]:
        """The persisted subset of playback state."""
        return {
            "step": self._step,
            "onion": self._onion_depth,
            "breakpoints": sorted(self._breakpoints),
        }

    @classmethod
    def from_snapshot(cls, trace: Trace, data: Mapping[str, Any]) -> "TracePlayback":
        return cls(
            trace,
            step=int(data.get("step", 0)),
            breakpoints=data.get("breakpoints", ()),
            onion_depth=int(data.get("onion", 1)),
        )


__all__ = ["OnionLayer", "Trace", "TracePlayback", "new_id"]
