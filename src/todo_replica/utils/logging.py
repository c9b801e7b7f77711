"""Structured logging configuration using structlog.

Library modules only call ``get_logger(__name__)``; the process entry point
(the CLI, or a host application) calls ``setup_logging`` once.
"""

import logging
import sys
from functools import lru_cache
from typing import Any, TextIO

import structlog
from structlog.types import Processor

from todo_replica.config import Settings, get_settings

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "passwd",
        "token",
        "id_token",
        "secret",
        "authorization",
        "credential",
        "private_key",
    }
)

QUIET_LOGGERS = ("aiosqlite", "asyncio")


def _redact(key: str, value: Any) -> Any:
    lowered = key.lower()
    if any(sensitive in lowered for sensitive in SENSITIVE_KEYS):
        if isinstance(value, str) and len(value) > 8:
            return f"{value[:4]}...{value[-4:]}"
        return "***REDACTED***"
    if isinstance(value, dict):
        return {k: _redact(k, v) for k, v in value.items()}
    return value


def sanitize_for_logging(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Redact credentials from log events, nested dictionaries included.

    Long values keep their first and last four characters so tokens stay
    distinguishable in logs.
    """
    return {k: _redact(k, v) for k, v in event_dict.items()}


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        sanitize_for_logging,
    ]


def _formatter(renderer: Processor, chain: list[Processor]) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=chain)


def setup_logging(settings: Settings | None = None, use_stderr: bool = False) -> None:
    """Configure structlog and the root logger from settings.

    Args:
        settings: Settings to use (cached environment settings if None)
        use_stderr: Write to stderr so stdout stays clean for command output
    """
    settings = settings or get_settings()
    chain = _shared_processors()

    renderer: Processor
    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=not use_stderr)

    structlog.configure(
        processors=[*chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    stream: TextIO = sys.stderr if use_stderr else sys.stdout
    console = logging.StreamHandler(stream)
    console.setFormatter(_formatter(renderer, chain))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(getattr(logging, settings.log_level))

    # Files always get JSON lines
    if settings.log_file:
        file_handler = logging.FileHandler(settings.log_file)
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer(), chain))
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@lru_cache(maxsize=128)
def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a cached structured logger by name.

    Args:
        name: Logger name, typically __name__

    Returns:
        Bound structured logger
    """
    return structlog.get_logger(name)
