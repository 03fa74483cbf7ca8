"""Client library for pathfinding solver backends."""

from . import (
    cancellation,
    config,
    connection,
    errors,
    features,
    logging,
    protocol,
    task,
    trace,
    transport,
    tree,
)
from .connection import Connection, ConnectionStore
from .features import FeatureDiscovery, FeatureStore, find_connection
from .task import TaskExecutor, TaskInputs, TaskState
from .trace import Trace, TracePlayback

__version__ = "0.1.0"

__all__ = [
    "cancellation",
    "config",
    "connection",
    "errors",
    "features",
    "logging",
    "protocol",
    "task",
    "trace",
    "transport",
    "tree",
    "Connection",
    "ConnectionStore",
    "FeatureDiscovery",
    "FeatureStore",
    "find_connection",
    "TaskExecutor",
    "TaskInputs",
    "TaskState",
    "Trace",
    "TracePlayback",
]
