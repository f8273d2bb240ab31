"""Structured logging configuration for flowpatch.

Every event is a structlog event dict, rendered per sink by a
``structlog.stdlib.ProcessorFormatter``:

- Console: a RichHandler on stderr, level set by verbosity (DEBUG at -vv).
  Lines read ``event key=value``; Rich supplies the time and level columns.
- File: every event as one JSON object per line in {log_dir}/flowpatch.jsonl.

Records from plain stdlib loggers run through the same pre-chain, so both
sinks render them like structlog events.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from pathlib import Path

    from structlog.typing import EventDict, Processor, WrappedLogger

LOG_FILENAME = "flowpatch.jsonl"

_VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}

# Module-level state
_configured = False
_file_handler: logging.FileHandler | None = None


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _drop_rich_columns(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Strip the keys RichHandler already shows as columns."""
    for key in ("timestamp", "level", "logger"):
        event_dict.pop(key, None)
    return event_dict


def console_formatter() -> structlog.stdlib.ProcessorFormatter:
    """Formatter rendering events as ``event key=value`` text for the console."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _drop_rich_columns,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )


def json_formatter() -> structlog.stdlib.ProcessorFormatter:
    """Formatter rendering events as single-line JSON objects."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )


def configure_logging(
    verbosity: int = 0,
    log_to_file: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Configure logging for flowpatch.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG
        log_to_file: If True, append JSON lines to ``log_dir/flowpatch.jsonl``.
        log_dir: Directory for file logging. Required if log_to_file=True.

    Raises:
        ValueError: If log_to_file=True but log_dir is not provided.
    """
    global _configured, _file_handler

    if log_to_file and log_dir is None:
        raise ValueError("log_dir is required when log_to_file=True")

    close_file_logging()

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        markup=False,
        level=_VERBOSITY_LEVELS.get(verbosity, logging.DEBUG),
    )
    console_handler.setFormatter(console_formatter())
    handlers: list[logging.Handler] = [console_handler]

    if log_to_file and log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        _file_handler = logging.FileHandler(log_dir / LOG_FILENAME, mode="a", encoding="utf-8")
        _file_handler.setLevel(logging.DEBUG)
        _file_handler.setFormatter(json_formatter())
        handlers.append(_file_handler)

    root_level = logging.DEBUG if (verbosity > 0 or log_to_file) else logging.WARNING
    logging.basicConfig(level=root_level, handlers=handlers, force=True)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a structured logger, configuring defaults on first use.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Bound logger instance.
    """
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


def close_file_logging() -> None:
    """Close file logging handler."""
    global _file_handler
    if _file_handler is not None:
        logging.getLogger().removeHandler(_file_handler)
        _file_handler.close()
        _file_handler = None
