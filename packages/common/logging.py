"""Structured logging configuration for deck import."""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import TextIO
from uuid import uuid4

import structlog

# Import ID tagging every event of one import operation
import_id_var: ContextVar[str | None] = ContextVar("import_id", default=None)


def get_import_id() -> str | None:
    """Return the ID of the import running in this context, if any."""
    return import_id_var.get()


def set_import_id(import_id: str | None = None) -> str:
    """Set the import ID in context, generating one if not provided.

    Args:
        import_id: Optional ID to set. If None, generates a new UUID.

    Returns:
        The import ID that was set.
    """
    if import_id is None:
        import_id = uuid4().hex[:12]
    import_id_var.set(import_id)
    return import_id


def clear_import_id() -> None:
    """Clear the import ID from context."""
    import_id_var.set(None)


def add_import_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Add the import ID to the log event if one is active."""
    current = import_id_var.get()
    if current is not None:
        event_dict.setdefault("import_id", current)
    return event_dict


def configure_logging(
    *,
    debug: bool = False,
    json_output: bool = False,
    log_stream: TextIO | None = None,
) -> None:
    """Configure structlog as the centralized logging layer.

    Call once per entry point (CLI, API).

    Args:
        debug: Enable DEBUG level and verbose output.
        json_output: Use JSON renderer (for machine consumption) vs console renderer.
        log_stream: Output stream; defaults to ``sys.stderr``.
    """
    if log_stream is None:
        log_stream = sys.stderr

    level = logging.DEBUG if debug else logging.INFO

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        add_import_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Route stdlib loggers (uvicorn, fastapi) through the same renderer.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(log_stream)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(level)


def get_logger(**initial_context: object) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger.

    Args:
        **initial_context: Key-value pairs bound to every log entry from this logger.

    Returns:
        A ``BoundLogger`` instance.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(**initial_context)
    return logger
