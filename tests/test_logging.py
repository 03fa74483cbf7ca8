"""Logging helpers."""

from __future__ import annotations

import asyncio
import json
import logging

from conftest import local_connection, make_backend
from solverlink import logging as sl_logging
from solverlink.connection import ConnectionStore
from solverlink.features import FeatureDiscovery


def test_json_formatter_includes_context_fields():
    record = logging.LogRecord("solverlink.transport", logging.WARNING, __file__, 1, "lost %s", ("ws://a",), None)
    record.service = "solverlink"
    record.component = "ws-transport"
    record.method = "features/maps"
    payload = json.loads(sl_logging._JSONFormatter().format(record))
    assert payload["message"] == "lost ws://a"
    assert payload["level"] == "WARNING"
    assert payload["component"] == "ws-transport"
    assert payload["method"] == "features/maps"
    assert "connection" not in payload


def test_module_logger_carries_context():
    logger = sl_logging.module_logger(service="solverlink", component="tests")
    assert logger.logger.name == __name__
    assert logger.extra == {"service": "solverlink", "component": "tests"}


def test_service_prefixes_fill_missing_service(monkeypatch):
    monkeypatch.setattr(sl_logging, "_SERVICE_PREFIXES", [])
    sl_logging._register_alias("solverlink-cli", "solverlink")
    record = logging.LogRecord("solverlink.task", logging.INFO, __file__, 1, "x", (), None)
    assert sl_logging._ensure_service_metadata(record) == "solverlink-cli"


def test_call_site_fields_reach_the_json_payload(caplog):
    backend = make_backend("a", algorithms=["astar"])
    del backend["features/formats"]
    connection = local_connection("local:a", backend)
    discovery = FeatureDiscovery(ConnectionStore([connection]))

    with caplog.at_level(logging.DEBUG, logger="solverlink"):
        assert asyncio.run(discovery.query(connection, "features/formats")) == []

    calls = [r for r in caplog.records if r.name == "solverlink.transport.base" and r.levelno == logging.DEBUG]
    assert calls and calls[-1].method == "features/formats"
    assert calls[-1].connection == "local:a"
    warning = next(r for r in caplog.records if r.levelno == logging.WARNING)
    payload = json.loads(sl_logging._JSONFormatter().format(warning))
    assert payload["method"] == "features/formats"
    assert payload["connection"] == "local:a"
    assert payload["error_code"] == warning.error_code
    assert payload["component"] == "features"


def test_adapter_keeps_context_alongside_call_extra(caplog):
    logger = sl_logging.get_logger("solverlink.tests", component="tests")
    with caplog.at_level(logging.INFO, logger="solverlink.tests"):
        logger.info("hello", extra={"method": "checkConnection"})
    record = caplog.records[-1]
    assert record.component == "tests"
    assert record.method == "checkConnection"
