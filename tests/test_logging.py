from __future__ import annotations

import json
import logging

import pytest

from ecotrack.core.logging import configure_logging, get_logger


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(**attrs) -> logging.LogRecord:
    record = logging.LogRecord("ecotrack.test", logging.INFO, __file__, 1, "Entry created", None, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


def test_json_logs_carry_structured_fields(restore_root_logger):
    configure_logging(json=True)
    formatter = restore_root_logger.handlers[0].formatter

    line = json.loads(formatter.format(_record(eco_extra={"tenant_id": "t-1", "co2e": 742.0})))

    assert line["level"] == "INFO"
    assert line["message"] == "Entry created"
    assert line["extra"] == {"tenant_id": "t-1", "co2e": 742.0}


def test_json_logs_without_fields_emit_empty_object(restore_root_logger):
    configure_logging(json=True)
    formatter = restore_root_logger.handlers[0].formatter

    line = json.loads(formatter.format(_record()))

    assert line["extra"] == {}


def test_get_logger_returns_plain_named_logger():
    logger = get_logger("ecotrack.entries")

    assert logger is logging.getLogger("ecotrack.entries")
    assert not hasattr(logger, "log_with_extra")
