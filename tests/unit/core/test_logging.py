"""Tests for structured logging setup."""

import json

import structlog

from recordrules.core.config import Settings
from recordrules.core.logging import LoggingContext, clear_context, configure_logging, get_logger


class TestConfigureLogging:
    """Test logging configuration."""

    def teardown_method(self):
        clear_context()
        structlog.reset_defaults()

    def test_json_output(self, capsys):
        configure_logging(Settings(_env_file=None, environment="production", log_format="json"))

        get_logger("recordrules.test").info("Record rule defined", rule_id="r1")

        entry = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert entry["message"] == "Record rule defined"
        assert entry["rule_id"] == "r1"
        assert entry["level"] == "info"

    def test_log_level_filters(self, capsys):
        configure_logging(
            Settings(_env_file=None, environment="production", log_format="json", log_level="WARNING")
        )

        get_logger().info("hidden")

        assert "hidden" not in capsys.readouterr().out

    def test_logging_context(self, capsys):
        configure_logging(Settings(_env_file=None, environment="production", log_format="json"))
        logger = get_logger()

        with LoggingContext(entity_name="invoice", operation="read"):
            logger.info("Checking access")
        logger.info("Outside")

        lines = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
        assert lines[-2]["entity_name"] == "invoice"
        assert lines[-2]["operation"] == "read"
        assert "entity_name" not in lines[-1]
