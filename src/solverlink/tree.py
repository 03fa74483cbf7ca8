"""Recursive transforms over plain data trees (scalar | sequence | mapping)."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from pydantic import BaseModel

OMISSION = "..."


def map_values_deep(value: Any, callback: Callable[[Any], Any]) -> Any:
    """Apply ``callback`` to every scalar leaf, keeping the shape of the tree.

    Sequences come back as lists and mappings as dicts with the same keys.
    Pydantic models are dumped by alias first, so wire names are kept.
    """
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True, mode="json", exclude_none=True)
    if isinstance(value, Mapping):
        return {key: map_values_deep(item, callback) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [map_values_deep(item, callback) for item in value]
    return callback(value)


def truncate_string(text: str, length: int = 40) -> str:
    """Cut ``text`` to ``length`` characters, the omission marker included."""
    if len(text) <= length:
        return text
    return text[: max(length - len(OMISSION), 0)] + OMISSION


def redact_long_strings(value: Any, length: int = 40) -> Any:
    """Replace every string longer than ``length`` with a short preview and its size."""

    def _redact(leaf: Any) -> Any:
        if isinstance(leaf, str) and len(leaf) > length:
            return f"{truncate_string(leaf, length)} ({len(leaf)} characters)"
        return leaf

    return map_values_deep(value, _redact)


__all__ = ["map_values_deep", "truncate_string", "redact_long_strings"]
