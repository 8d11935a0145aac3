"""Logging configuration with optional structured JSON output.

Provides JSON-formatted logging for parsing pipeline runs, and a context
manager that brackets each pipeline step with started/completed/failed
records carrying the step's duration.
"""

import json
import logging
import sys
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

# LogRecord attributes that are not user-supplied extras
STANDARD_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}

NOISY_LOGGERS = ["httpx", "httpcore", "openai", "anthropic", "urllib3"]


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured log records.

    Each record becomes one JSON object with timestamp, level, logger,
    message and, when present, exception text and any ``extra`` fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            k: v for k, v in record.__dict__.items() if k not in STANDARD_ATTRS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, ensure_ascii=False, default=str)


def configure_logging(
    level: Union[str, int] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    json_format: bool = False,
    console_output: bool = True,
) -> None:
    """Configure root logging for a pipeline run.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional file path for log output (default: None = console only)
        json_format: If True, use JSON formatter; if False, use standard format
        console_output: If True, log to stderr (stdout is kept for CLI output)

    Example:
        >>> configure_logging(level="DEBUG", log_file="logs/lesson.log", json_format=True)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if json_format:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # SDK request logs drown out pipeline logs at INFO
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    level_name = level if isinstance(level, str) else logging.getLevelName(level)
    logging.info(f"Logging configured: level={level_name}, json_format={json_format}")


@contextmanager
def pipeline_stage_logger(stage_name: str, **context):
    """Log entry and exit of a pipeline step with timing information.

    Args:
        stage_name: Name of the step, e.g. "vocabulary" or "title"
        **context: Additional fields (lesson type, level, ...) added to each record

    Yields:
        Logger named ``lessongen.stage.<stage_name>``

    Example:
        >>> with pipeline_stage_logger("reading", cefr_level="B1") as stage_logger:
        ...     stage_logger.info("Generating passage")
    """
    logger = logging.getLogger(f"lessongen.stage.{stage_name}")
    start_time = datetime.now(UTC)
    logger.info(
        f"Starting step: {stage_name}",
        extra={"stage": stage_name, "status": "started", **context},
    )

    try:
        yield logger
    except Exception as e:
        duration_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
        logger.error(
            f"Failed step: {stage_name}",
            extra={
                "stage": stage_name,
                "status": "failed",
                "duration_ms": round(duration_ms, 2),
                "error": str(e)[:200],
                **context,
            },
            exc_info=True,
        )
        raise

    duration_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
    logger.info(
        f"Completed step: {stage_name}",
        extra={
            "stage": stage_name,
            "status": "completed",
            "duration_ms": round(duration_ms, 2),
            **context,
        },
    )
