"""Self-contained ``map:`` references so a solve call needs no upload step."""

from __future__ import annotations

from urllib.parse import quote, unquote

MAP_URI_SCHEME = "map:"

# quote() already keeps letters, digits and "_.-~"; these complete the
# encodeURIComponent unreserved set.
_EXTRA_SAFE = "!*'()"


def encode_map_uri(content: str) -> str:
    return MAP_URI_SCHEME + quote(content, safe=_EXTRA_SAFE)


def decode_map_uri(uri: str) -> str:
    if not uri.startswith(MAP_URI_SCHEME):
        raise ValueError(f"Not a {MAP_URI_SCHEME} reference: {uri[:32]!r}")
    return unquote(uri[len(MAP_URI_SCHEME):])


__all__ = ["MAP_URI_SCHEME", "encode_map_uri", "decode_map_uri"]
