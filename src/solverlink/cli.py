#!/usr/bin/env python3
"""
solverlink command line: check backends and run one-off calls.

Examples:
  solverlink check ws://localhost:8001
  solverlink features http://a:8001 ws://b:8002
  solverlink call ws://localhost:8001 features/map --json '{"id": "maze"}'
  solverlink find http://a:8001 ws://b:8002 --algorithm astar --format grid
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional, Sequence

from .config import get_config
from .connection import Connection, ConnectionStore
from .errors import SolverLinkError
from .features import FeatureDiscovery, find_connection
from .logging import module_logger, setup_logging
from .protocol.contract import REGISTRY

logger = module_logger(service='solverlink-cli', component='cli')

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 2


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=False))


def _connection(url: str) -> Connection:
    config = get_config()
    return Connection(url, timeout=config.call_timeout, connect_timeout=config.connect_timeout)


def _store(urls: Sequence[str]) -> ConnectionStore:
    return ConnectionStore(_connection(url) for url in (urls or get_config().connections))


async def _check(args: argparse.Namespace) -> int:
    async with _connection(args.url) as connection:
        info = await connection.check()
    _print(info.to_wire())
    return EXIT_OK


async def _features(args: argparse.Namespace) -> int:
    store = _store(args.urls)
    try:
        features = await FeatureDiscovery(store).collect()
    finally:
        await store.close_all()
    _print({
        kind: [feature.model_dump(by_alias=True, mode="json", exclude_none=True) for feature in getattr(features, kind)]
        for kind in ("algorithms", "formats", "problem_types", "maps", "traces")
    })
    return EXIT_OK


async def _call(args: argparse.Namespace) -> int:
    try:
        params = json.loads(args.json) if args.json else None
    except json.JSONDecodeError as exc:
        raise SolverLinkError(f"--json is not valid JSON: {exc}") from exc
    async with _connection(args.url) as connection:
        result = await connection.invoke(args.method, params)
    _print(REGISTRY.dump_response(args.method, result))
    return EXIT_OK


async def _find(args: argparse.Namespace) -> int:
    store = _store(args.urls)
    try:
        problem_type = args.problem_type or get_config().default_problem_type
        connection = await find_connection(store, args.algorithm, args.format, problem_type)
    finally:
        await store.close_all()
    if connection is None:
        logger.warning(f"no connection offers {args.algorithm}/{args.format}")
        return EXIT_NOT_FOUND
    print(connection.url)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="solverlink", description="Talk to pathfinding solver backends")
    ap.add_argument('--log-level', help='DEBUG/INFO/WARNING/ERROR (default from SOLVERLINK_LOG_LEVEL)')
    ap.add_argument('--json-logs', action='store_true', help='Emit logs as JSON lines')
    sub = ap.add_subparsers(dest='command', required=True)

    check = sub.add_parser('check', help='Run checkConnection against one backend')
    check.add_argument('url')
    check.set_defaults(handler=_check)

    features = sub.add_parser('features', help='List federated features of one or more backends')
    features.add_argument('urls', nargs='*', help='Backends, in priority order (default from config)')
    features.set_defaults(handler=_features)

    call = sub.add_parser('call', help='Call one registered method')
    call.add_argument('url')
    call.add_argument('method', choices=REGISTRY.names())
    call.add_argument('--json', help='Params as a JSON document')
    call.set_defaults(handler=_call)

    find = sub.add_parser('find', help='Print the first backend supporting algorithm, format and problem type')
    find.add_argument('urls', nargs='*', help='Backends, in priority order (default from config)')
    find.add_argument('--algorithm', required=True)
    find.add_argument('--format', required=True)
    find.add_argument('--problem-type', help='Defaults to the configured default_problem_type')
    find.set_defaults(handler=_find)

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging('solverlink-cli', level=args.log_level, json_format=True if args.json_logs else None)
    try:
        return asyncio.run(args.handler(args))
    except SolverLinkError as exc:
        logger.error(f"{exc.code}: {exc.message}")
        print(json.dumps(exc.to_payload()), file=sys.stderr)
        return EXIT_ERROR


if __name__ == '__main__':
    raise SystemExit(main())
