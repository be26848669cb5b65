"""Unit tests for logging setup and formatters."""

import logging

import orjson

from idpstore.core.logging import ConsoleFormatter, JSONFormatter, get_logger, setup_logging


def _record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("idpstore.test", logging.INFO, __file__, 10, message, None, None)
    record.__dict__.update(extra)
    return record


class TestJSONFormatter:
    """Structured log output."""

    def test_basic_fields(self):
        payload = orjson.loads(JSONFormatter().format(_record()))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "idpstore.test"
        assert payload["message"] == "hello"
        assert "extra" not in payload

    def test_extra_fields_are_included(self):
        payload = orjson.loads(JSONFormatter().format(_record(sp_id=3, table="wp_idp_sp_data")))

        assert payload["extra"] == {"sp_id": 3, "table": "wp_idp_sp_data"}


class TestConsoleFormatter:
    """Colored console output."""

    def test_level_is_colored_without_mutating_record(self):
        record = _record()
        output = ConsoleFormatter("%(levelname)s %(message)s").format(record)

        assert output.startswith("\033[32mINFO")
        assert record.levelname == "INFO"


def test_setup_logging_installs_single_handler():
    setup_logging("DEBUG", json_logs=True)
    setup_logging("WARNING")

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, ConsoleFormatter)
    assert root.level == logging.WARNING
    assert get_logger("idpstore.x").name == "idpstore.x"
