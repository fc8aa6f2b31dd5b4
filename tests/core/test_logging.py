"""Tests for retryline.core.logging."""

import json

import structlog

from retryline.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    def teardown_method(self):
        clear_context()
        structlog.reset_defaults()

    def test_json_output_has_ecs_keys(self, capsys):
        configure_logging(level="INFO", json_format=True, service="retry-test", to_stderr=True)
        get_logger("retryline.test").info("batch_reconciled", created=3)

        line = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert line["event"] == "batch_reconciled"
        assert line["created"] == 3
        assert line["logger"] == "retryline.test"
        assert line["log.level"] == "info"
        assert line["service.name"] == "retry-test"
        assert "@timestamp" in line

    def test_level_filtering(self, capsys):
        configure_logging(level="WARNING", json_format=True, to_stderr=True)
        logger = get_logger("retryline.test")
        logger.info("hidden")
        logger.warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_log_context_scopes_fields(self, capsys):
        configure_logging(json_format=True, to_stderr=True)
        logger = get_logger()
        with LogContext(record_id="r1"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = (json.loads(line) for line in capsys.readouterr().err.strip().splitlines()[-2:])
        assert inside["record_id"] == "r1"
        assert "record_id" not in outside

    def test_bind_and_clear_context(self, capsys):
        configure_logging(json_format=True, to_stderr=True)
        bind_context(process_name="Billing")
        get_logger().info("bound")
        clear_context()
        get_logger().info("cleared")

        bound, cleared = (json.loads(line) for line in capsys.readouterr().err.strip().splitlines()[-2:])
        assert bound["process_name"] == "Billing"
        assert "process_name" not in cleared
