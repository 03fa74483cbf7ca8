"""Pytest configuration: import solverlink from src/ and provide in-process backends."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

import pytest

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC = _PROJECT_ROOT / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from solverlink.config import reset_config  # noqa: E402
from solverlink.connection import Connection  # noqa: E402
from solverlink.transport.local import LocalTransport  # noqa: E402


def _features(ids: Iterable[str]):
    return [{"id": feature_id, "name": feature_id.title()} for feature_id in ids]


def make_backend(
    name: str,
    *,
    algorithms: Iterable[str] = (),
    formats: Iterable[str] = (),
    problem_types: Iterable[str] = ("pathfinding",),
    maps: Optional[Dict[str, Dict[str, Any]]] = None,
    solve: Optional[Callable[[Any], Any]] = None,
) -> Dict[str, Callable[[Any], Any]]:
    """Handler table for a fake solver backend."""
    algorithms, formats, problem_types = list(algorithms), list(formats), list(problem_types)
    maps = maps or {}

    def _solve(params):
        return {"events": [{"type": "expand", "id": i} for i in range(3)], "algorithm": params["algorithm"]}

    def _map(params):
        return {"id": params["id"], **maps[params["id"]]}

    return {
        "checkConnection": lambda _: {"name": name, "version": "1.0.0"},
        "features/algorithms": lambda _: _features(algorithms),
        "features/formats": lambda _: _features(formats),
        "features/problemTypes": lambda _: _features(problem_types),
        "features/maps": lambda _: [{"id": key, **value} for key, value in maps.items()],
        "features/map": _map,
        "features/traces": lambda _: [],
        "features/changed": lambda _: {},
        "solve/pathfinding": solve or _solve,
    }


def local_connection(url: str, handlers: Dict[str, Callable[[Any], Any]], **kwargs) -> Connection:
    return Connection(url, transport=LocalTransport(handlers, url=url), **kwargs)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    for key in list(os.environ):
        if key.startswith("SOLVERLINK_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()
