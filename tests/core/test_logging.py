"""Tests for :mod:`bundlesplit.core.logging`."""

from __future__ import annotations

import gzip
import io
import json
import logging
import multiprocessing
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

import pytest
from rich.console import Console
from rich.logging import RichHandler

from bundlesplit.core.logging import configure_logging, get_logger


@pytest.fixture(autouse=True)
def _clean_logging(reset_logging):
    yield


def _build_console() -> Console:
    """Return a console that writes to an in-memory buffer for tests."""

    buffer = io.StringIO()
    return Console(file=buffer, width=120, record=True)


def test_configure_logging_installs_console_and_file_handlers(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "bundlesplit.log"

    configure_logging(level="debug", log_file=log_file, console=_build_console())

    root = logging.getLogger()
    rich_handlers = [h for h in root.handlers if isinstance(h, RichHandler)]
    file_handlers = [h for h in root.handlers if isinstance(h, TimedRotatingFileHandler)]

    assert len(rich_handlers) == 1, "Expected a single Rich console handler"
    assert len(file_handlers) == 1, "Expected a JSON file handler"

    logger = get_logger(__name__, component="extractor")
    logger.warning("extract-call-failed", offset=42)

    for handler in root.handlers:
        handler.flush()

    payload = json.loads(log_file.read_text(encoding="utf-8").strip())

    assert payload["event"] == "extract-call-failed"
    assert payload["component"] == "extractor"
    assert payload["offset"] == 42
    assert payload["level"] == "warning"


def test_configure_logging_without_log_file_omits_file_handler() -> None:
    configure_logging(level="info", console=_build_console())

    root = logging.getLogger()
    assert any(isinstance(h, RichHandler) for h in root.handlers)
    assert all(
        not isinstance(h, TimedRotatingFileHandler) for h in root.handlers
    ), "No file handler should be registered without a log file"


def test_configure_logging_rejects_unknown_level() -> None:
    with pytest.raises(ValueError):
        configure_logging(level="invalid", console=_build_console())


def test_console_output_renders_event_and_context() -> None:
    console = _build_console()
    configure_logging(level="info", console=console)

    get_logger("bundlesplit.test", bundle="app").info("export-written", modules=3)

    text = console.export_text()
    assert "export-written" in text
    assert "modules=3" in text


def test_logger_created_before_configuration_uses_later_handlers(tmp_path: Path) -> None:
    early = get_logger("bundlesplit.early", component="early")
    log_file = tmp_path / "early.log"

    configure_logging(level="info", log_file=log_file, console=_build_console())
    early.info("late-bound")

    for handler in logging.getLogger().handlers:
        handler.flush()

    payload = json.loads(log_file.read_text(encoding="utf-8").strip())
    assert payload["event"] == "late-bound"
    assert payload["component"] == "early"


def test_configure_logging_rotates_with_compression(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "bundlesplit.log"

    configure_logging(level="warning", log_file=log_file, console=_build_console())
    root = logging.getLogger()
    file_handler = next(
        h for h in root.handlers if isinstance(h, TimedRotatingFileHandler)
    )

    logger = get_logger("rotate", task="rotation")
    logger.warning("pre-rotation", sample=True)

    for handler in root.handlers:
        handler.flush()

    file_handler.doRollover()

    gz_files = sorted((tmp_path / "logs").glob("bundlesplit.log.*.gz"))
    assert gz_files, "Expected a compressed log archive after rollover"

    with gzip.open(gz_files[-1], "rt", encoding="utf-8") as fh:
        archived = fh.read()

    assert "pre-rotation" in archived
    assert "task" in archived


def test_worker_process_events_carry_process_name(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    log_file = tmp_path / "worker.log"
    configure_logging(level="info", log_file=log_file, console=_build_console())
    get_logger("bundlesplit.main").info("from-coordinator")
    monkeypatch.setattr(multiprocessing.current_process(), "name", "bundlesplit-worker-3")
    get_logger("bundlesplit.worker").info("from-worker")

    for handler in logging.getLogger().handlers:
        handler.flush()

    coordinator, worker = (
        json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()
    )
    assert "process" not in coordinator
    assert worker["process"] == "bundlesplit-worker-3"
