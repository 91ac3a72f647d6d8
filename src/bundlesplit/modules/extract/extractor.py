"""Enumerate every top-level ``__d(...)`` call inside a bundle."""

from __future__ import annotations

import re
from dataclasses import dataclass

from bundlesplit.core.logging import Logger, get_logger

from .errors import UnterminatedCallError
from .lexer import MARKER, find_matching_close, find_next_marker

__all__ = [
    "ExtractionFailure",
    "ModuleSpan",
    "extract_all",
    "read_declared_name",
]

_LOGGER = get_logger(__name__, component="extractor")

_QUOTES = frozenset("'\"`")
_ESCAPE_PATTERN = re.compile(
    r"\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|.)",
    re.DOTALL,
)
_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
    "\n": "",
    "\r\n": "",
    "\u2028": "",
    "\u2029": "",
}


@dataclass(frozen=True, slots=True)
class ModuleSpan:
    """Exact character range of one extracted module call."""

    start_offset: int
    end_offset: int
    raw_text: str
    declared_name: str | None = None


@dataclass(frozen=True, slots=True)
class ExtractionFailure:
    """A call that could not be extracted and was skipped."""

    offset: int
    message: str


def _decode_escape(match: re.Match[str]) -> str:
    escape = match.group(1)
    if escape in _SIMPLE_ESCAPES:
        return _SIMPLE_ESCAPES[escape]
    if escape.startswith("u{"):
        return chr(int(escape[2:-1], 16))
    if len(escape) > 1 and escape[0] in "ux":
        return chr(int(escape[1:], 16))
    return escape


def _unescape(body: str) -> str:
    """Resolve JavaScript string escapes in ``body``.

    Example:
        >>> _unescape(r"a\\x41\\u0042\\'c")
        "aAB'c"
    """

    if "\\" not in body:
        return body
    return _ESCAPE_PATTERN.sub(_decode_escape, body)


def read_declared_name(source: str, open_offset: int) -> str | None:
    """Return the string literal opening the argument list, unescaped.

    ``open_offset`` points at the call's ``(``. Leading whitespace is skipped;
    anything other than a complete quoted literal yields ``None``. Template
    literals count only when they carry no ``${...}`` interpolation.
    """

    index = open_offset + 1
    length = len(source)
    while index < length and source[index].isspace():
        index += 1
    if index >= length or source[index] not in _QUOTES:
        return None

    quote = source[index]
    cursor = index + 1
    while cursor < length:
        ch = source[cursor]
        if ch == "\\":
            cursor += 2
            continue
        if ch == quote:
            body = source[index + 1 : cursor]
            if quote == "`" and "${" in body:
                return None
            return _unescape(body)
        cursor += 1
    return None


def _call_end(source: str, close_offset: int) -> int:
    """Extend past the closing ``)`` over whitespace and an optional ``;``."""

    cursor = close_offset + 1
    length = len(source)
    while cursor < length and source[cursor].isspace():
        cursor += 1
    if cursor < length and source[cursor] == ";":
        return cursor + 1
    return cursor


def extract_all(
    source: str,
    *,
    failure_sink: list[ExtractionFailure] | None = None,
    logger: Logger | None = None,
) -> tuple[ModuleSpan, ...]:
    """Return every module call in ``source`` in source order.

    Calls whose closing parenthesis never arrives are logged, appended to
    ``failure_sink`` when provided, and skipped; scanning resumes right after
    the failed call's marker.
    """

    log = logger or _LOGGER
    spans: list[ModuleSpan] = []
    cursor = 0
    while True:
        start = find_next_marker(source, cursor)
        if start is None:
            break
        open_offset = start + len(MARKER) - 1
        try:
            close = find_matching_close(source, open_offset)
        except UnterminatedCallError as exc:
            message = f"extraction failed at offset {start}"
            log.warning(
                "extract-call-failed",
                offset=start,
                reason=str(exc),
            )
            if failure_sink is not None:
                failure_sink.append(ExtractionFailure(offset=start, message=message))
            cursor = start + len(MARKER)
            continue

        end = _call_end(source, close)
        spans.append(
            ModuleSpan(
                start_offset=start,
                end_offset=end,
                raw_text=source[start:end],
                declared_name=read_declared_name(source, open_offset),
            )
        )
        cursor = end

    log.debug("extract-complete", modules=len(spans))
    return tuple(spans)
