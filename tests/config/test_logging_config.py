"""Tests for loguru configuration."""

import json

import pytest

from civic_pipeline.config.logging import configure_logging, get_logger, logger


@pytest.fixture
def restore_logging():
    yield
    configure_logging()


def read_records(path):
    return [json.loads(line)["record"] for line in path.read_text().splitlines() if line]


class TestConfigureLogging:
    """Tests for the run log file and default context."""

    def test_run_log_file_carries_component_and_run_id(self, tmp_path, restore_logging):
        log_file = tmp_path / "pipeline.log"
        configure_logging(level="DEBUG", log_file=str(log_file))

        get_logger("orchestrator").info("Step started", run_id="run-1", step="fetch")
        get_logger("cli").debug("Idle")
        logger.remove()

        records = read_records(log_file)
        assert [r["message"] for r in records] == ["Step started", "Idle"]
        assert records[0]["extra"]["component"] == "orchestrator"
        assert records[0]["extra"]["run_id"] == "run-1"
        assert records[1]["extra"]["run_id"] == "-"

    def test_level_override_filters_file(self, tmp_path, restore_logging):
        log_file = tmp_path / "pipeline.log"
        configure_logging(level="warning", log_file=str(log_file))

        get_logger("scheduler").info("Trigger fired")
        get_logger("scheduler").warning("Trigger failed")
        logger.remove()

        assert [r["message"] for r in read_records(log_file)] == ["Trigger failed"]

    def test_no_file_without_setting(self, tmp_path, restore_logging):
        configure_logging(level="INFO")

        get_logger("cli").info("No file sink")

        assert list(tmp_path.iterdir()) == []
