"""structlog configuration shared by the CLI, the container and the tests."""

from __future__ import annotations

import logging
import sys
from typing import Any, Iterable

import structlog

LOG_FORMATS = ("console", "json")
# chatty third-party loggers kept at WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "hpack")

_HANDLER_NAME = "pothole_patrol"

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def _renderer(fmt: str) -> Any:
    if fmt == "json":
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _install_handler(level: int, fmt: str) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(fmt),
            ],
        )
    )
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    return handler


def setup_logging(level: str = "INFO", fmt: str = "console", quiet: Iterable[str] = QUIET_LOGGERS) -> None:
    """Route structlog and stdlib records through one handler on the root logger.

    Calling it again replaces the handler, so the level and format can be
    changed at runtime.
    """

    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unknown log format {fmt!r}; expected one of {', '.join(LOG_FORMATS)}")
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level {level!r}")

    _install_handler(numeric, fmt)
    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **context: Any) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger


__all__ = ["LOG_FORMATS", "QUIET_LOGGERS", "get_logger", "setup_logging"]
