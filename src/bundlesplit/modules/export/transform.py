"""Optional module transformation and its readability fallback."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Protocol

from bundlesplit.core.logging import Logger, get_logger
from bundlesplit.modules.extract import LexicalScanner, LexState

from .errors import TransformError
from .models import ExportOptions

__all__ = [
    "CommandTransform",
    "ModuleTransform",
    "build_transform",
    "reformat_for_readability",
    "transform_or_fallback",
]

_LOGGER = get_logger(__name__, component="transform")

_INDENT = "  "
_BREAKABLE_WHITESPACE = " \t\r\n"


class ModuleTransform(Protocol):
    """Callable rewriting one module's text."""

    def __call__(self, text: str) -> str: ...


@dataclass(frozen=True, slots=True)
class CommandTransform:
    """Pipe module text through an external command (stdin to stdout)."""

    command: tuple[str, ...]
    timeout: float = 60.0

    def __call__(self, text: str) -> str:
        try:
            completed = subprocess.run(
                list(self.command),
                input=text,
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout,
                check=True,
            )
        except FileNotFoundError as exc:
            raise TransformError(
                f"Transform executable not found: {self.command[0]}"
            ) from exc
        except OSError as exc:
            raise TransformError(
                f"Transform could not start {self.command[0]}: {exc}"
            ) from exc
        except UnicodeDecodeError as exc:
            raise TransformError(f"Transform produced invalid UTF-8: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise TransformError(
                f"Transform timed out after {self.timeout:g}s"
            ) from exc
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip().splitlines()
            reason = detail[-1] if detail else f"exit status {exc.returncode}"
            raise TransformError(f"Transform failed: {reason}") from exc
        return completed.stdout


def build_transform(options: ExportOptions) -> ModuleTransform | None:
    """Return the configured transform, or ``None`` when disabled."""

    if not options.apply_transform:
        return None
    return CommandTransform(
        command=options.transform_command,
        timeout=options.transform_timeout,
    )


def _line_break(pieces: list[str], depth: int) -> None:
    while pieces and not pieces[-1].strip():
        pieces.pop()
    if pieces:
        pieces[-1] = pieces[-1].rstrip(" \t")
    pieces.append("\n" + _INDENT * depth)


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index] in _BREAKABLE_WHITESPACE:
        index += 1
    return index


def reformat_for_readability(text: str) -> str:
    """Break lines after ``;`` and ``{`` and before ``}`` in plain code.

    Strings, templates, comments, and regexes are left untouched, as are
    semicolons inside parentheses (``for (;;)``). Output is deterministic.

    Example:
        >>> print(reformat_for_readability("function(a){var s='{;}';return a;}"), end="")
        function(a){
          var s='{;}';
          return a;
        }
    """

    scanner = LexicalScanner(text)
    pieces: list[str] = []
    # Paren depth saved for each open brace; its length is the indent level.
    enclosing: list[int] = []
    last = 0
    parens = 0
    for index in scanner.iter_code():
        if scanner.state is not LexState.CODE or index < last:
            continue
        ch = text[index]
        if ch == "(":
            parens += 1
        elif ch == ")":
            parens = max(0, parens - 1)
        elif ch == "{":
            enclosing.append(parens)
            parens = 0
            pieces.append(text[last : index + 1])
            _line_break(pieces, len(enclosing))
            last = _skip_whitespace(text, index + 1)
        elif ch == "}":
            parens = enclosing.pop() if enclosing else 0
            pieces.append(text[last:index])
            _line_break(pieces, len(enclosing))
            pieces.append("}")
            last = index + 1
        elif ch == ";" and parens == 0:
            pieces.append(text[last : index + 1])
            _line_break(pieces, len(enclosing))
            last = _skip_whitespace(text, index + 1)
    pieces.append(text[last:])
    return "".join(pieces).rstrip() + "\n"


def transform_or_fallback(
    transform: ModuleTransform,
    text: str,
    *,
    name: str | None = None,
    logger: Logger | None = None,
) -> tuple[str, bool]:
    """Apply ``transform``; if it raises, reformat the original instead.

    Returns:
        The resulting text and whether the transform itself succeeded.
    """

    try:
        return transform(text), True
    except Exception as exc:
        (logger or _LOGGER).warning(
            "transform-fallback",
            module=name,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return reformat_for_readability(text), False
