"""Task execution: from user-selected inputs to a Trace.

Exactly one set of inputs is live per executor. Every input change cancels
the previous lifecycle's token synchronously, before the new lifecycle
reaches its first suspension point, and results are only applied while
their token is still live.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, model_validator

from .cancellation import CancellationToken
from .config import SolverLinkConfig, get_config
from .connection import Connection
from .errors import CommandNotAllowedError, ConnectionLostError, SolverLinkError, TaskCanceledError
from .features import FeatureDiscovery, FeatureStore, find_connection
from .logging import module_logger
from .protocol.map_uri import encode_map_uri
from .protocol.models import NodeRef, SolveArgs, TaskInstance
from .trace import Trace, TracePlayback
from .tree import redact_long_strings

logger = module_logger(service='solverlink', component='task')

SOLVE_METHOD = "solve/pathfinding"
UNTITLED = "Untitled Query"

COMMON_COMMANDS: Tuple[str, ...] = ("source", "clear")
PROBLEM_TYPE_COMMANDS: Dict[str, Tuple[str, ...]] = {
    "plant-watering": (*COMMON_COMMANDS, "taps", "plants"),
    "pathfinding": (*COMMON_COMMANDS, "destination"),
}


def allowed_commands(problem_type: Optional[str]) -> Tuple[str, ...]:
    """Editing commands a problem type accepts; unknown types accept none."""
    if not problem_type:
        return ()
    return PROBLEM_TYPE_COMMANDS.get(problem_type, ())


class TaskState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    CANCELED = "canceled"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class MapReference(BaseModel):
    """The map a task runs on: inline content, or an id to fetch from its owning connection."""

    model_config = ConfigDict(frozen=True)

    format: Optional[str] = None
    content: Optional[str] = None
    id: Optional[str] = None
    source: Optional[str] = None

    @property
    def resolvable(self) -> bool:
        return bool(self.format) and (self.content is not None or bool(self.id and self.source))


class TaskInputs(BaseModel):
    """Everything that governs one solve. Editing commands return new instances."""

    model_config = ConfigDict(frozen=True)

    algorithm: Optional[str] = None
    problem_type: Optional[str] = None
    map_key: Optional[str] = None
    map: Optional[MapReference] = None
    start: Optional[NodeRef] = None
    end: Optional[NodeRef] = None
    plants: Tuple[NodeRef, ...] = ()
    taps: Tuple[NodeRef, ...] = ()
    pour_amounts: Tuple[float, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _pair_pour_amounts(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        plants = list(data.get("plants") or ())
        amounts = list(data.get("pour_amounts") or ())
        if len(amounts) > len(plants):
            raise ValueError(f"{len(amounts)} pour amounts given for {len(plants)} plants")
        amounts.extend([0] * (len(plants) - len(amounts)))
        return {**data, "plants": plants, "pour_amounts": amounts}

    @property
    def is_complete(self) -> bool:
        return bool(self.algorithm and self.problem_type and self.map is not None and self.map.resolvable)

    def _edit(self, map_key: Optional[str], **changes: Any) -> "TaskInputs":
        if map_key is not None:
            changes["map_key"] = map_key
        return self.model_validate({**self.model_dump(), **changes})

    # Editing commands -------------------------------------------------
    def with_source(self, node: NodeRef, map_key: Optional[str] = None) -> "TaskInputs":
        return self._edit(map_key, start=node)

    def with_destination(self, node: NodeRef, map_key: Optional[str] = None) -> "TaskInputs":
        return self._edit(map_key, end=node)

    def add_plant(self, node: NodeRef, map_key: Optional[str] = None) -> "TaskInputs":
        return self._edit(map_key, plants=[*self.plants, node], pour_amounts=[*self.pour_amounts, 0])

    def remove_plant(self, index: int) -> "TaskInputs":
        if not 0 <= index < len(self.plants):
            raise IndexError(f"No plant at {index}")
        plants = [p for i, p in enumerate(self.plants) if i != index]
        amounts = [a for i, a in enumerate(self.pour_amounts) if i != index]
        return self._edit(None, plants=plants, pour_amounts=amounts)

    def set_pour_amount(self, index: int, amount: float) -> "TaskInputs":
        if not 0 <= index < len(self.plants):
            raise IndexError(f"No plant at {index}")
        amounts = list(self.pour_amounts)
        amounts[index] = amount
        return self._edit(None, pour_amounts=amounts)

    def add_tap(self, node: NodeRef, map_key: Optional[str] = None) -> "TaskInputs":
        return self._edit(map_key, taps=[*self.taps, node])

    def remove_tap(self, index: int) -> "TaskInputs":
        if not 0 <= index < len(self.taps):
            raise IndexError(f"No tap at {index}")
        return self._edit(None, taps=[t for i, t in enumerate(self.taps) if i != index])

    def clear(self, map_key: Optional[str] = None) -> "TaskInputs":
        return self._edit(map_key, start=None, end=None, plants=[], taps=[], pour_amounts=[])

    # Request building ---------------------------------------------------
    def to_instance(self) -> TaskInstance:
        return TaskInstance(
            start=self.start if self.start is not None else 0,
            end=self.end if self.end is not None else 0,
            plants=list(self.plants),
            taps=list(self.taps),
            pour_amounts=list(self.pour_amounts),
        )

    def build_args(self, map_content: Optional[str] = None) -> SolveArgs:
        if self.map is None or not self.map.format or not self.algorithm:
            raise ValueError("Inputs are incomplete")
        content = map_content if map_content is not None else self.map.content
        if content is None:
            raise ValueError("Map content has not been resolved")
        return SolveArgs(
            format=self.map.format,
            instances=[self.to_instance()],
            map_uri=encode_map_uri(content),
            algorithm=self.algorithm,
        )


Notifier = Callable[[str], None]
Listener = Callable[["TaskExecutor"], None]


class TaskExecutor:
    """Runs the resolve -> submit -> trace lifecycle for one set of inputs at a time.

    Cancellation is cooperative: a superseded lifecycle keeps running until
    its next check, and whatever it produces is discarded. The executor is
    the only layer that turns failures into user-visible notifications.
    """

    def __init__(
        self,
        connections: Iterable[Connection],
        features: Optional[FeatureStore] = None,
        *,
        notify: Optional[Notifier] = None,
        name: Optional[str] = None,
        config: Optional[SolverLinkConfig] = None,
    ) -> None:
        self._connections = connections
        self._features = features
        self._discovery = features.discovery if features is not None else FeatureDiscovery(connections)
        self._notify_sink = notify
        self._name = name
        self._config = config or get_config()

        self._inputs = TaskInputs()
        self._state = TaskState.IDLE
        self._trace: Optional[Trace] = None
        self._query: Optional[SolveArgs] = None
        self._error: Optional[SolverLinkError] = None
        self._connection: Optional[Connection] = None
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._listeners: List[Listener] = []

    # Read-only views ----------------------------------------------------
    @property
    def inputs(self) -> TaskInputs:
        return self._inputs

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def trace(self) -> Optional[Trace]:
        return self._trace

    @property
    def query(self) -> Optional[SolveArgs]:
        return self._query

    @property
    def error(self) -> Optional[SolverLinkError]:
        return self._error

    @property
    def connection(self) -> Optional[Connection]:
        return self._connection

    @property
    def display_name(self) -> str:
        if self._trace is not None and self._trace.name:
            return self._trace.name
        return self._name or UNTITLED

    def playback(self) -> Optional[TracePlayback]:
        """A fresh playback over the current trace at the configured onion depth."""
        if self._trace is None:
            return None
        return TracePlayback(self._trace, onion_depth=self._config.onion_depth)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # Lifecycle control --------------------------------------------------
    def update(self, inputs: TaskInputs, *, force: bool = False) -> Optional[asyncio.Task]:
        """Make ``inputs`` the live inputs, superseding any running lifecycle.

        Must be called with a running event loop. Returns the new lifecycle's
        task, or None when the inputs are incomplete.
        """
        if not force and inputs == self._inputs and self._task is not None and self._token is not None:
            return self._task
        self._inputs = inputs
        return self._restart()

    def cancel(self, reason: str = "Canceled") -> None:
        if self._cancel_live(reason):
            self._set_state(TaskState.CANCELED)

    async def wait(self) -> Optional[Trace]:
        """Wait for the live lifecycle, if any, and return the current trace."""
        task = self._task
        if task is not None:
            await asyncio.shield(task)
        return self._trace

    async def aclose(self) -> None:
        self.cancel("Closed")
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # Editing commands ---------------------------------------------------
    def apply_command(self, command: str, node: Optional[NodeRef] = None, *, map_key: Optional[str] = None) -> Optional[asyncio.Task]:
        """Run one of the problem type's editing commands; trace and query are reset."""
        self._require(command)
        inputs = self._inputs
        if command == "source":
            inputs = inputs.with_source(self._node(command, node), map_key)
        elif command == "destination":
            inputs = inputs.with_destination(self._node(command, node), map_key)
        elif command == "plants":
            inputs = inputs.add_plant(self._node(command, node), map_key)
        elif command == "taps":
            inputs = inputs.add_tap(self._node(command, node), map_key)
        elif command == "clear":
            inputs = inputs.clear(map_key)
        else:
            raise CommandNotAllowedError(f"Unknown command {command!r}", details={"command": command})
        return self._edit(inputs)

    def remove_plant(self, index: int) -> Optional[asyncio.Task]:
        self._require("plants")
        inputs = self._inputs.remove_plant(index)
        return self._edit(inputs)

    def remove_tap(self, index: int) -> Optional[asyncio.Task]:
        self._require("taps")
        inputs = self._inputs.remove_tap(index)
        return self._edit(inputs)

    def set_pour_amount(self, index: int, amount: float) -> Optional[asyncio.Task]:
        return self.update(self._inputs.set_pour_amount(index, amount))

    def _edit(self, inputs: TaskInputs) -> Optional[asyncio.Task]:
        self._reset_result()
        if inputs == self._inputs and self._state is TaskState.COMPLETED:
            self._set_state(TaskState.IDLE)
        return self.update(inputs)

    def _require(self, command: str) -> None:
        allowed = allowed_commands(self._inputs.problem_type)
        if command not in allowed:
            raise CommandNotAllowedError(
                f"{command!r} is not available for problem type {self._inputs.problem_type!r}",
                details={"command": command, "problem_type": self._inputs.problem_type, "allowed": list(allowed)},
            )

    @staticmethod
    def _node(command: str, node: Optional[NodeRef]) -> NodeRef:
        if node is None:
            raise ValueError(f"{command!r} needs a node")
        return node

    # Query source view --------------------------------------------------
    def sources(self) -> List[Dict[str, str]]:
        """Human-readable views of the last request and its trace, long strings redacted."""
        limit = self._config.max_string_prop_length
        inputs = self._inputs
        params: Dict[str, Any] = {
            "algorithm": inputs.algorithm,
            "instances": [{
                "start": inputs.start if inputs.start is not None else 0,
                "end": inputs.end if inputs.end is not None else 0,
            }],
            "mapURI": "(...)",
            "format": "(...)",
        }
        if self._query is not None:
            params.update(redact_long_strings(self._query, limit))
        views = [{
            "id": "params",
            "name": "Query",
            "language": "yaml",
            "content": yaml.safe_dump(params, sort_keys=False, allow_unicode=True),
        }]
        if self._trace is not None:
            views.append({
                "id": "trace",
                "name": self._trace.name,
                "language": "yaml",
                "content": yaml.safe_dump(redact_long_strings(self._trace.content, limit), sort_keys=False, allow_unicode=True),
            })
        return views

    # Internals ------------------------------------------------------------
    def _restart(self) -> Optional[asyncio.Task]:
        self._cancel_live("Inputs changed")
        self._task = None
        if not self._inputs.is_complete:
            self._set_state(TaskState.IDLE)
            return None
        self._generation += 1
        token = CancellationToken(f"{self._name or 'task'}#{self._generation}")
        self._token = token
        self._error = None
        self._set_state(TaskState.RESOLVING)
        self._task = asyncio.get_running_loop().create_task(self._run(self._inputs, token))
        return self._task

    def _cancel_live(self, reason: str) -> bool:
        token, self._token = self._token, None
        if token is None or token.canceled:
            return False
        token.cancel(reason)
        logger.debug(f"lifecycle {token.label} canceled: {reason}")
        return True

    def _is_live(self, token: CancellationToken) -> bool:
        return self._token is token and not token.canceled

    def _reset_result(self) -> None:
        self._trace = None
        self._query = None

    async def _run(self, inputs: TaskInputs, token: CancellationToken) -> Optional[Trace]:
        try:
            connection = await find_connection(
                self._connections,
                inputs.algorithm,
                inputs.map.format,
                inputs.problem_type,
                token=token,
            )
            token.raise_if_canceled()
            if connection is None:
                self._set_state(TaskState.UNAVAILABLE)
                self._notify(
                    f"No connected solver supports {inputs.algorithm} on {inputs.map.format} for {inputs.problem_type}"
                )
                return None

            self._connection = connection
            content = inputs.map.content
            if content is None:
                try:
                    descriptor = await token.guard(self._discovery.map(inputs.map.id, inputs.map.source))
                except KeyError as exc:
                    raise ConnectionLostError(
                        f"Map source {inputs.map.source} is not connected",
                        details={"map": inputs.map.id, "url": inputs.map.source},
                    ) from exc
                content = descriptor.content or ""

            args = inputs.build_args(content)
            self._set_state(TaskState.SUBMITTING)
            self._notify(f"Executing {self.display_name} using {connection.name}...")
            result = await connection.call(SOLVE_METHOD, args)
            token.raise_if_canceled()
        except TaskCanceledError:
            self._notify("Canceled")
            return None
        except SolverLinkError as exc:
            if token.canceled:
                self._notify("Canceled")
                return None
            self._fail(token, exc)
            return None

        if not self._is_live(token):
            self._notify("Canceled")
            return None
        name = self._features.display_name("algorithms", inputs.algorithm) if self._features else inputs.algorithm
        trace = Trace.create(name, result)
        self._trace = trace
        self._query = args
        self._set_state(TaskState.COMPLETED)
        logger.info(f"{inputs.algorithm} solved by {connection.url}: {trace.step_count} step(s)")
        return trace

    def _fail(self, token: CancellationToken, exc: SolverLinkError) -> None:
        if not self._is_live(token):
            return
        self._error = exc
        logger.error(f"solve failed ({exc.code}): {exc.message}")
        self._set_state(TaskState.FAILED)
        self._notify(f"Failed to execute {self.display_name}: {exc.message}")

    def _set_state(self, state: TaskState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            listener(self)

    def _notify(self, message: str) -> None:
        if self._notify_sink is not None:
            self._notify_sink(message)
        else:
            logger.info(message)


__all__ = [
    "COMMON_COMMANDS",
    "PROBLEM_TYPE_COMMANDS",
    "MapReference",
    "TaskExecutor",
    "TaskInputs",
    "TaskState",
    "allowed_commands",
]
