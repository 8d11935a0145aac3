"""Unit tests for logging configuration."""

import json
import logging
import sys

import pytest

from lessongen.utils.logging_config import JsonFormatter, configure_logging, pipeline_stage_logger


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(message="hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("lessongen.test", logging.INFO, __file__, 1, message, None, None)
    record.__dict__.update(extra)
    return record


class TestJsonFormatter:
    """Test structured log output."""

    def test_basic_fields(self):
        data = json.loads(JsonFormatter().format(_record("Generating warmup")))

        assert data["level"] == "INFO"
        assert data["logger"] == "lessongen.test"
        assert data["message"] == "Generating warmup"
        assert "extra" not in data

    def test_extra_fields_included(self):
        data = json.loads(JsonFormatter().format(_record(stage="reading", duration_ms=12.5)))

        assert data["extra"] == {"stage": "reading", "duration_ms": 12.5}

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "lessongen.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestConfigureLogging:
    def test_file_handler_with_json(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"

        configure_logging(level="DEBUG", log_file=log_file, json_format=True, console_output=False)
        logging.getLogger("lessongen.test").info("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert any(json.loads(line)["message"] == "written to file" for line in lines)
        assert logging.getLogger("openai").level == logging.WARNING

    def test_handlers_replaced(self):
        configure_logging(console_output=True)
        configure_logging(console_output=True)

        assert len(logging.getLogger().handlers) == 1


class TestPipelineStageLogger:
    """Test step bracketing records."""

    def test_started_and_completed(self, caplog):
        with caplog.at_level(logging.INFO):
            with pipeline_stage_logger("reading", cefr_level="B1") as stage_logger:
                stage_logger.info("Generating passage")

        statuses = [getattr(r, "status", None) for r in caplog.records]
        assert statuses[0] == "started"
        assert statuses[-1] == "completed"
        assert caplog.records[-1].cefr_level == "B1"
        assert caplog.records[-1].name == "lessongen.stage.reading"

    def test_failure_logged_and_reraised(self, caplog):
        with caplog.at_level(logging.INFO):
            with pytest.raises(RuntimeError):
                with pipeline_stage_logger("grammar"):
                    raise RuntimeError("provider down")

        failed = [r for r in caplog.records if getattr(r, "status", None) == "failed"]
        assert len(failed) == 1
        assert failed[0].error == "provider down"
