"""Logging helpers for :mod:`bundlesplit`.

Events go through structlog and land on stdlib handlers: a Rich console on
stderr and, optionally, a JSON-lines file rotated daily into gzip archives.
Worker processes call :func:`configure_logging` themselves; their events carry
the worker's process name.
"""

from __future__ import annotations

import gzip
import logging
from logging.handlers import TimedRotatingFileHandler
import multiprocessing
from pathlib import Path
import shutil
from typing import Any, Iterable

from rich.console import Console
from rich.logging import RichHandler
import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

Logger = structlog.stdlib.BoundLogger

_CONSOLE_RENDERER = structlog.dev.ConsoleRenderer(colors=False)
_FILE_RENDERER = structlog.processors.JSONRenderer(sort_keys=True)
_TIMESTAMPER = structlog.processors.TimeStamper(fmt="iso", utc=True)

_ARCHIVES_KEPT = 7
_MAIN_PROCESS = "MainProcess"


def _add_process_name(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    name = multiprocessing.current_process().name
    if name != _MAIN_PROCESS:
        event_dict.setdefault("process", name)
    return event_dict


# Shared by structlog loggers and by stdlib records routed through the formatter.
_SHARED_PROCESSORS: tuple[Processor, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    _add_process_name,
    _TIMESTAMPER,
)


def _normalize_level(level: str) -> int:
    """Return the logging module level constant for ``level``.

    Raises:
        ValueError: If the level name is not recognized.
    """

    value = logging.getLevelName(level.strip().upper())
    if isinstance(value, str):  # ``getLevelName`` echoes unknown names.
        raise ValueError(f"Unsupported log level: {level!r}")
    return value


def _install_handlers(root: logging.Logger, handlers: Iterable[logging.Handler]) -> None:
    """Close whatever the root logger had and attach ``handlers`` instead."""

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)


def _configure_structlog() -> None:
    """Point structlog at stdlib logging; rendering is left to each handler."""

    structlog.reset_defaults()
    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _formatter(renderer: Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=list(_SHARED_PROCESSORS),
    )


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as src, gzip.open(dest, "wb") as target:
        shutil.copyfileobj(src, target)
    Path(source).unlink(missing_ok=True)


def _build_file_handler(log_file: Path, level: int) -> TimedRotatingFileHandler:
    """Return a JSON-lines handler whose rotated files become ``*.gz`` archives."""

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        log_file,
        when="midnight",
        backupCount=_ARCHIVES_KEPT,
        utc=True,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(level)
    handler.suffix = "%Y-%m-%d"
    handler.namer = lambda name: f"{name}.gz"
    handler.rotator = _gzip_rotator
    handler.setFormatter(_formatter(_FILE_RENDERER))
    return handler


def _build_console_handler(level: int, console: Console | None = None) -> RichHandler:
    # stdout is reserved for command output such as the rendered config.
    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        markup=False,
        enable_link_path=False,
        log_time_format="%Y-%m-%d %H:%M:%S",
    )
    handler.setLevel(level)
    handler.setFormatter(_formatter(_CONSOLE_RENDERER))
    return handler


def configure_logging(
    *,
    level: str = "INFO",
    log_file: str | Path | None = None,
    console: Console | None = None,
) -> None:
    """Configure structlog alongside stdlib logging.

    Safe to call repeatedly; each call replaces the previous handlers.

    Args:
        level: Log level name to apply to the root logger (case-insensitive).
        log_file: Optional path of a JSON-lines log file. Rotated daily and
            compressed with gzip.
        console: Optional Rich console override, primarily for testing.

    Raises:
        ValueError: If ``level`` is not a recognized log level name.
    """

    log_level = _normalize_level(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    _configure_structlog()

    handlers: list[logging.Handler] = [_build_console_handler(log_level, console=console)]
    if log_file is not None:
        path = Path(log_file).expanduser().resolve(strict=False)
        handlers.append(_build_file_handler(path, log_level))
    _install_handlers(root_logger, handlers)

    logging.captureWarnings(True)


def get_logger(name: str | None = None, **initial_context: Any) -> Logger:
    """Return a structured logger carrying an optional initial context.

    The logger binds lazily on first use, so module-level loggers created
    at import time still honour a later :func:`configure_logging` call.
    """

    return structlog.get_logger(name, **initial_context)


__all__ = ["Logger", "configure_logging", "get_logger"]
