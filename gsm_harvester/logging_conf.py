"""structlog events rendered as JSON lines through stdlib handlers."""

from __future__ import annotations

import logging.config
from pathlib import Path
from typing import Any

import structlog

ROOT_LOGGER = "gsm_harvester"
HARVESTER_LOG = "harvester.log"
ERROR_LOG = "error.log"

_configured = False


def _handler_config(log_dir: Path, level: str) -> dict[str, Any]:
    def file_handler(name: str, file_level: str) -> dict[str, Any]:
        return {
            "class": "logging.FileHandler",
            "level": file_level,
            "filename": str(log_dir / name),
            "formatter": "json",
            "encoding": "utf-8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
            }
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
            "harvester_file": file_handler(HARVESTER_LOG, "INFO"),
            "error_file": file_handler(ERROR_LOG, "ERROR"),
        },
        "loggers": {
            ROOT_LOGGER: {
                "handlers": ["console", "harvester_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def configure_logging(verbose: bool = False, log_dir: Path | None = None) -> structlog.BoundLogger:
    """Install handlers under ``log_dir`` (default ``./logs``) once per process."""

    global _configured
    log_dir = log_dir or Path.cwd() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    for name in (HARVESTER_LOG, ERROR_LOG):
        (log_dir / name).touch(exist_ok=True)

    if not _configured:
        logging.config.dictConfig(_handler_config(log_dir, "DEBUG" if verbose else "INFO"))
        # event dicts travel to the JSON formatter unrendered
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _configured = True
    return structlog.get_logger(ROOT_LOGGER)


def get_logger(component: str) -> structlog.BoundLogger:
    """Logger named ``gsm_harvester.<component>``."""

    return structlog.get_logger(f"{ROOT_LOGGER}.{component}")


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


__all__ = ["ERROR_LOG", "HARVESTER_LOG", "ROOT_LOGGER", "configure_logging", "get_logger", "tail_log"]
