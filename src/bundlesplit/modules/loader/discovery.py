"""Locate exported module files and the factory text inside them."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

from bundlesplit.core.errors import BundleIOError
from bundlesplit.core.logging import Logger, get_logger
from bundlesplit.modules.extract import (
    MARKER,
    ExtractionError,
    LexicalScanner,
    find_matching_close,
    find_next_marker,
    read_declared_name,
)

from .registry import Factory, ModuleRegistry

__all__ = [
    "ExportedModule",
    "FunctionNotFoundError",
    "extract_function_expression",
    "iter_exported_modules",
    "register_exported_modules",
]

_LOGGER = get_logger(__name__, component="loader")

_KEYWORD = "function"


class FunctionNotFoundError(ExtractionError):
    """Raised when a module file holds no factory function expression."""


@dataclass(frozen=True, slots=True)
class ExportedModule:
    name: str
    path: Path


def _find_in_code(source: str, needle: str, start: int = 0) -> int | None:
    scanner = LexicalScanner(source)
    for index in scanner.iter_code(start):
        if source.startswith(needle, index):
            return index
    return None


def _function_start(raw: str) -> int | None:
    wrapped = _find_in_code(raw, f"({_KEYWORD}")
    if wrapped is not None:
        return wrapped + 1
    marker = find_next_marker(raw)
    if marker is not None:
        candidate = _find_in_code(raw, _KEYWORD, marker + len(MARKER))
        if candidate is not None and not raw[marker + len(MARKER) : candidate].strip():
            return candidate
    return _find_in_code(raw, _KEYWORD)


def extract_function_expression(raw: str) -> str:
    """Return the ``function(...) { ... }`` text of an exported module.

    Looks for a parenthesised ``(function`` first, then a function passed
    directly to ``__d(``, then any ``function`` keyword in code. Braces or
    parentheses inside strings, comments, and regexes are ignored.

    Example:
        >>> extract_function_expression("__d('A', (function(a,b){ b.x = '}'; }), 1);")
        "function(a,b){ b.x = '}'; }"

    Raises:
        FunctionNotFoundError: If no complete function expression is present.
    """

    start = _function_start(raw)
    if start is None:
        raise FunctionNotFoundError("No function expression wrapper found")

    params_open = _find_in_code(raw, "(", start + len(_KEYWORD))
    if params_open is None:
        raise FunctionNotFoundError("No function parameter list found")
    params_close = find_matching_close(raw, params_open)
    body_open = _find_in_code(raw, "{", params_close + 1)
    if body_open is None:
        raise FunctionNotFoundError("No function body start found")
    body_close = find_matching_close(raw, body_open, opener="{", closer="}")
    return raw[start : body_close + 1].strip()


def _read_module(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise BundleIOError(f"Unable to read module {path}: {exc}", path=path) from exc


def iter_exported_modules(output_dir: Path) -> Iterator[ExportedModule]:
    """Yield every exported ``.js`` file under ``output_dir`` in path order.

    The module name is the declared name of the file's registration call,
    falling back to the file stem.
    """

    for path in sorted(output_dir.rglob("*.js")):
        if not path.is_file():
            continue
        text = _read_module(path)
        name = None
        marker = find_next_marker(text)
        if marker is not None:
            name = read_declared_name(text, marker + len(MARKER) - 1)
        yield ExportedModule(name=name or path.stem, path=path)


def register_exported_modules(
    registry: ModuleRegistry,
    output_dir: Path,
    build_factory: Callable[[str], Factory],
    *,
    logger: Logger | None = None,
) -> int:
    """Register a factory for every exported module under ``output_dir``.

    ``build_factory`` turns a function expression's text into a callable
    factory; evaluating that text is left to the host. Returns the number of
    newly registered modules.
    """

    log = logger or _LOGGER
    registered = 0
    for module in iter_exported_modules(output_dir):
        source = _read_module(module.path)
        try:
            expression = extract_function_expression(source)
        except ExtractionError as exc:
            log.warning("loader-module-skipped", module=module.name, error=str(exc))
            continue
        if registry.register_factory(module.name, build_factory(expression)):
            registered += 1
    log.info("loader-registered", modules=registered, output_dir=str(output_dir))
    return registered
