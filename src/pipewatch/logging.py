"""Structured logging setup: JSON lines to a rotating file, readable lines on the console."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def _with_renderer(handler: logging.Handler, level: int | str, renderer) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer))
    return handler


def setup_logging(log_dir: str, log_name: str = "pipewatch", *, console_level: str = "WARNING") -> structlog.stdlib.BoundLogger:
    """Route structlog through stdlib logging and return a logger named ``log_name``.

    The file under ``log_dir`` always gets DEBUG and up. The console defaults to
    WARNING so log lines do not interleave with the live stage list.
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    handlers = [
        _with_renderer(
            RotatingFileHandler(log_path / f"{log_name}.log", maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS),
            logging.DEBUG,
            structlog.processors.JSONRenderer(),
        ),
        _with_renderer(logging.StreamHandler(sys.stderr), console_level.upper(), structlog.dev.ConsoleRenderer()),
    ]

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    # Repeated calls (tests, one CLI process running several commands) must not stack handlers
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)

    # httpx logs every request at INFO, including each stream reconnect
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(log_name)
