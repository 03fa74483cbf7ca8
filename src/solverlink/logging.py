"""
Unified logging setup for solverlink clients and tools.

Defaults:
- INFO/DEBUG to stdout, WARNING/ERROR to stderr
- Level INFO (overridable via env)
- Optional JSON format and optional file handler via env, no static paths

Env options (optional):
- SOLVERLINK_LOG_LEVEL=DEBUG|INFO|WARNING|ERROR (default INFO)
- SOLVERLINK_LOG_JSON=1 (JSON formatting)
- SOLVERLINK_LOG_FILE=/path/to/file.log (RotatingFileHandler)
- SOLVERLINK_LOG_DIR=/path/to/dir (uses <service>.log when SOLVERLINK_LOG_FILE unset)
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Iterable, Optional


_INITIALIZED = False
_DEFAULT_SERVICE = ""
_SERVICE_PREFIXES: list[tuple[str, str]] = []
_TRUTHY = ('1', 'true', 'yes', 'on')

__all__ = [
    "setup_logging",
    "get_logger",
    "module_logger",
]


def _register_alias(service: str, alias: str) -> None:
    normalized = alias.strip()
    if not normalized:
        return

    for idx, (prefix, _) in enumerate(_SERVICE_PREFIXES):
        if prefix == normalized:
            _SERVICE_PREFIXES[idx] = (normalized, service)
            break
    else:
        _SERVICE_PREFIXES.append((normalized, service))

    # Longest prefixes first for more specific matches
    _SERVICE_PREFIXES.sort(key=lambda item: len(item[0]), reverse=True)


def _ensure_service_metadata(record: logging.LogRecord) -> str:
    current = getattr(record, 'service', None)
    if current:
        return current

    name = record.name
    for prefix, service in _SERVICE_PREFIXES:
        if name == prefix or name.startswith(f"{prefix}."):
            record.service = service
            return service

    record.service = _DEFAULT_SERVICE
    return record.service


class _ServiceFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        _ensure_service_metadata(record)
        return True


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'ts': self.formatTime(record, datefmt='%Y-%m-%dT%H:%M:%S'),
            'level': record.levelname,
            'name': record.name,
            'service': getattr(record, 'service', ''),
            'component': getattr(record, 'component', ''),
            'message': record.getMessage(),
        }
        for key in ('method', 'connection', 'error', 'error_code'):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        return json.dumps(payload, ensure_ascii=False, default=str)


class _MinLevelFilter(logging.Filter):
    def __init__(self, min_level: int):
        super().__init__()
        self.min_level = min_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.min_level


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self.max_level


def _get_level(default: str = 'INFO') -> int:
    level = os.getenv('SOLVERLINK_LOG_LEVEL', default).upper()
    return getattr(logging, level, logging.INFO)


def setup_logging(
    service: str = 'solverlink',
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
    aliases: Optional[Iterable[str]] = None,
) -> None:
    """Configure unified logging once. Safe to call multiple times.

    Args:
        service: service label (e.g., 'solverlink-cli')
        level: optional level override (DEBUG/INFO/...) else from env
        json_format: optional flag to force JSON format, else from env
        aliases: optional iterable of logger-name prefixes that should map to
            this service when no explicit service context is provided.
    """
    alias_set = {service, 'solverlink'}
    if aliases:
        alias_set.update(str(alias) for alias in aliases)

    global _DEFAULT_SERVICE
    global _INITIALIZED

    logger = logging.getLogger()

    if not _INITIALIZED:
        logger.setLevel(_get_level(level or 'INFO'))

        use_json = (str(json_format).lower() in _TRUTHY) if json_format is not None \
            else (os.getenv('SOLVERLINK_LOG_JSON', '').lower() in _TRUTHY)
        if use_json:
            formatter = _JSONFormatter()
        else:
            formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s [%(service)s] %(message)s')

        service_filter = _ServiceFilter()

        # Split streams: INFO/DEBUG -> stdout, WARNING/ERROR -> stderr
        stdout_handler = logging.StreamHandler(stream=sys.stdout)
        stdout_handler.setFormatter(formatter)
        stdout_handler.addFilter(service_filter)
        stdout_handler.addFilter(_MaxLevelFilter(logging.INFO))
        logger.addHandler(stdout_handler)

        stderr_handler = logging.StreamHandler(stream=sys.stderr)
        stderr_handler.setFormatter(formatter)
        stderr_handler.addFilter(service_filter)
        stderr_handler.addFilter(_MinLevelFilter(logging.WARNING))
        logger.addHandler(stderr_handler)

        log_path = os.getenv('SOLVERLINK_LOG_FILE')
        if not log_path:
            log_dir = os.getenv('SOLVERLINK_LOG_DIR')
            if log_dir:
                log_path = str(Path(log_dir) / f'{service}.log')

        if log_path:
            try:
                Path(log_path).parent.mkdir(parents=True, exist_ok=True)
                fh = logging.handlers.RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding='utf-8')
                fh.setFormatter(formatter)
                fh.addFilter(service_filter)
                logger.addHandler(fh)
            except OSError:
                logger.warning(f"Could not open log file {log_path}, using stdout/stderr only")

        _INITIALIZED = True
        if not _DEFAULT_SERVICE:
            _DEFAULT_SERVICE = service

    # Register aliases even when handlers are already configured
    for alias in alias_set:
        _register_alias(service, alias)


class _ContextAdapter(logging.LoggerAdapter):
    """Adapter whose fixed context is merged with per-call ``extra`` fields."""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs


def get_logger(name: Optional[str] = None, **context) -> logging.LoggerAdapter:
    base = logging.getLogger(name or __name__)
    # Ensure 'service' in context so formatter always sees it; rely on filter as fallback
    if 'service' not in context:
        context['service'] = ''
    return _ContextAdapter(base, context)


def module_logger(**context) -> logging.LoggerAdapter:
    """Convenience to get a logger for the caller's module."""
    name = sys._getframe(1).f_globals.get('__name__', __name__)
    return get_logger(name, **context)
