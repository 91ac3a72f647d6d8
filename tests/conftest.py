"""Shared pytest fixtures for bundlesplit tests."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest


SAMPLE_BUNDLE = (
    "/* bundle header: __d('Ignored', 0) */\n"
    "__d('WAWebFooBar', ['dep'], (function(a, b, c){ c.x = '}'; }), 1);\n"
    "__d('WAWebFooBaz', [], (function(a, b, c){ var re = /\\)/; c.y = re; }), 2);\n"
    "__d(\"Unrelated\", [], (function(a, b, c){ c.z = `tpl ${a({})}`; }), 3);\n"
)


def _clear_root_handlers() -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        try:
            handler.close()
        except Exception:  # pragma: no cover - close failures are irrelevant
            pass


@pytest.fixture
def reset_logging() -> Iterator[None]:
    """Run a test with a clean root logger, restoring it afterwards."""

    _clear_root_handlers()
    yield
    _clear_root_handlers()


@pytest.fixture
def sample_bundle() -> str:
    """Return a small bundle with three modules and a decoy in a comment."""

    return SAMPLE_BUNDLE


@pytest.fixture
def write_bundle(tmp_path: Path) -> Callable[..., Path]:
    """Write bundle text under ``tmp_path`` and return its path."""

    def _write(text: str, name: str = "app.js") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write
