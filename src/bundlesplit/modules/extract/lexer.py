"""Lexical context tracking for JavaScript-like bundle text.

The scanner does not tokenize. It only classifies each character into one of a
handful of lexical contexts so callers can tell real code apart from text that
lives inside strings, template literals, comments, or regular expressions.
Everything here is synchronous and allocation-light: non-code regions are
skipped in bulk with :meth:`str.find` and precompiled stop patterns.

Example:
    >>> find_next_marker("var s = '__d(';\\n__d('A', 1);")
    16
    >>> find_matching_close("f(a, ')', (b))", 1)
    13
"""

from __future__ import annotations

import re
from enum import Enum, auto
from typing import Iterator

from .errors import UnterminatedCallError

__all__ = [
    "MARKER",
    "LexState",
    "LexicalScanner",
    "find_matching_close",
    "find_next_marker",
    "state_at",
]

MARKER = "__d("


class LexState(Enum):
    """Lexical context in effect at a scan offset."""

    CODE = auto()
    LINE_COMMENT = auto()
    BLOCK_COMMENT = auto()
    SINGLE_QUOTE_STRING = auto()
    DOUBLE_QUOTE_STRING = auto()
    TEMPLATE = auto()
    TEMPLATE_EXPR = auto()
    REGEX = auto()


_CODE_STATES = frozenset({LexState.CODE, LexState.TEMPLATE_EXPR})

# Previous-token values after which ``/`` still starts a regular expression.
_REGEX_KEYWORDS = frozenset(
    {
        "return",
        "throw",
        "case",
        "typeof",
        "instanceof",
        "in",
        "of",
        "new",
        "delete",
        "void",
        "yield",
        "await",
        "else",
        "do",
    }
)
_VALUE_PUNCTUATION = frozenset(")]}")

_STRING_STOPS = {
    LexState.SINGLE_QUOTE_STRING: re.compile(r"['\\]"),
    LexState.DOUBLE_QUOTE_STRING: re.compile(r'["\\]'),
}
_TEMPLATE_STOPS = re.compile(r"[`\\$]")
_REGEX_STOPS = re.compile(r"[\\\[\]/\n]")


def _is_identifier_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_" or ch == "$"


class LexicalScanner:
    """Finite-state classifier over one source string.

    :meth:`iter_code` yields the offset of every character consumed in a code
    context (plain code or the inside of a ``${...}`` expression). Delimiters
    that open or close a string, template, comment, or regex are never
    yielded, nor is the ``}`` that ends a template expression.

    The scanner is reusable; each call to :meth:`iter_code` starts over in
    :attr:`LexState.CODE` with no previous token.
    """

    def __init__(self, source: str) -> None:
        self._source = source
        self._reset()

    def _reset(self) -> None:
        self._state = LexState.CODE
        self._resume = LexState.CODE
        self._template_depth = 0
        self._depth_stack: list[int] = []
        self._in_char_class = False
        self._prev = -1
        self._prev_is_value = False

    @property
    def source(self) -> str:
        return self._source

    @property
    def state(self) -> LexState:
        return self._state

    @property
    def template_depth(self) -> int:
        """Brace depth of the innermost open ``${...}`` expression."""

        return self._template_depth

    @property
    def in_char_class(self) -> bool:
        return self._in_char_class

    def iter_code(self, start: int = 0, stop: int | None = None) -> Iterator[int]:
        """Yield offsets of code characters in ``[start, stop)``.

        After the generator is exhausted, :attr:`state` reports the context in
        effect at ``stop`` (or at end of input).
        """

        self._reset()
        source = self._source
        limit = len(source) if stop is None else min(stop, len(source))
        index = start
        while index < limit:
            if self._state in _CODE_STATES:
                advanced = self._open_context(index)
                if advanced is not None:
                    index = advanced
                    continue
                yield index
                self._note_code_char(index)
                index += 1
            else:
                index = self._skip(index, limit)

    # ------------------------------------------------------------------
    # Code context
    # ------------------------------------------------------------------
    def _open_context(self, index: int) -> int | None:
        """Handle a transition starting at ``index``; ``None`` means plain code."""

        source = self._source
        ch = source[index]
        self._resume = self._state
        if ch == "/":
            following = source[index + 1 : index + 2]
            if following == "/":
                self._state = LexState.LINE_COMMENT
                return index + 2
            if following == "*":
                self._state = LexState.BLOCK_COMMENT
                return index + 2
            if self._regex_allowed():
                self._state = LexState.REGEX
                self._in_char_class = False
                return index + 1
            return None
        if ch == "'":
            self._state = LexState.SINGLE_QUOTE_STRING
            return index + 1
        if ch == '"':
            self._state = LexState.DOUBLE_QUOTE_STRING
            return index + 1
        if ch == "`":
            self._depth_stack.append(self._template_depth)
            self._template_depth = 0
            self._state = LexState.TEMPLATE
            return index + 1
        if self._state is LexState.TEMPLATE_EXPR:
            if ch == "{":
                self._template_depth += 1
            elif ch == "}":
                self._template_depth -= 1
                if self._template_depth == 0:
                    self._state = LexState.TEMPLATE
                    return index + 1
        return None

    def _note_code_char(self, index: int) -> None:
        ch = self._source[index]
        if ch.isspace():
            return
        self._prev = index
        self._prev_is_value = ch in _VALUE_PUNCTUATION or _is_identifier_char(ch)

    def _mark_value(self, index: int) -> None:
        self._prev = index
        self._prev_is_value = True

    def _regex_allowed(self) -> bool:
        """Decide whether ``/`` starts a regex based on the previous token."""

        if self._prev < 0 or not self._prev_is_value:
            return True
        source = self._source
        if not _is_identifier_char(source[self._prev]):
            return False
        begin = self._prev
        while begin > 0 and _is_identifier_char(source[begin - 1]):
            begin -= 1
        return source[begin : self._prev + 1] in _REGEX_KEYWORDS

    # ------------------------------------------------------------------
    # Non-code contexts
    # ------------------------------------------------------------------
    def _skip(self, index: int, limit: int) -> int:
        """Consume non-code text from ``index``, returning the next offset."""

        state = self._state
        source = self._source

        if state is LexState.LINE_COMMENT:
            newline = source.find("\n", index, limit)
            if newline < 0:
                return limit
            self._state = self._resume
            return newline

        if state is LexState.BLOCK_COMMENT:
            close = source.find("*/", index, limit)
            if close < 0:
                return limit
            self._state = self._resume
            return close + 2

        if state is LexState.TEMPLATE:
            return self._skip_template(index, limit)

        if state is LexState.REGEX:
            return self._skip_regex(index, limit)

        match = _STRING_STOPS[state].search(source, index, limit)
        if match is None:
            return limit
        found = match.start()
        if source[found] == "\\":
            return found + 2
        self._state = self._resume
        self._mark_value(found)
        return found + 1

    def _skip_template(self, index: int, limit: int) -> int:
        source = self._source
        match = _TEMPLATE_STOPS.search(source, index, limit)
        if match is None:
            return limit
        found = match.start()
        ch = source[found]
        if ch == "\\":
            return found + 2
        if ch == "`":
            depth = self._depth_stack.pop() if self._depth_stack else 0
            self._template_depth = depth
            self._state = LexState.TEMPLATE_EXPR if depth else LexState.CODE
            self._mark_value(found)
            return found + 1
        if source[found + 1 : found + 2] == "{":
            self._state = LexState.TEMPLATE_EXPR
            self._template_depth = 1
            return found + 2
        return found + 1

    def _skip_regex(self, index: int, limit: int) -> int:
        source = self._source
        match = _REGEX_STOPS.search(source, index, limit)
        if match is None:
            return limit
        found = match.start()
        ch = source[found]
        if ch == "\\":
            return found + 2
        if ch == "\n":
            # Regex literals cannot span lines; a misread division recovers here.
            self._state = self._resume
            return found
        if ch == "[":
            self._in_char_class = True
        elif ch == "]":
            self._in_char_class = False
        elif not self._in_char_class:
            self._state = self._resume
            self._mark_value(found)
        return found + 1


def find_next_marker(source: str, from_offset: int = 0) -> int | None:
    """Return the offset of the next ``__d(`` in plain code, if any.

    Markers inside template ``${...}`` interpolations are not reported.
    """

    scanner = LexicalScanner(source)
    for index in scanner.iter_code(from_offset):
        if scanner.state is not LexState.CODE:
            continue
        if source[index] == "_" and source.startswith(MARKER, index):
            return index
    return None


def find_matching_close(
    source: str,
    open_offset: int,
    *,
    opener: str = "(",
    closer: str = ")",
) -> int:
    """Return the offset closing the delimiter opened at ``open_offset``.

    Delimiters inside strings, templates, comments, and regexes are ignored.

    Raises:
        UnterminatedCallError: If input ends before depth returns to zero.
    """

    depth = 1
    scanner = LexicalScanner(source)
    for index in scanner.iter_code(open_offset + 1):
        ch = source[index]
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return index
    raise UnterminatedCallError(open_offset)


def state_at(source: str, offset: int) -> LexState:
    """Return the lexical context in effect at ``offset``."""

    scanner = LexicalScanner(source)
    for _ in scanner.iter_code(0, offset):
        pass
    return scanner.state
