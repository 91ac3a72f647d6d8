"""Tests for :mod:`bundlesplit.modules.extract.lexer`."""

from __future__ import annotations

import pytest

from bundlesplit.modules.extract import (
    LexicalScanner,
    LexState,
    UnterminatedCallError,
    find_matching_close,
    find_next_marker,
    state_at,
)


@pytest.mark.parametrize(
    "decoy",
    [
        "'__d('",
        '"__d("',
        "`__d(`",
        "`${'__d('}`",
        "`${__d('X',1)}`",
        "/__d\\(/",
        "// __d(\n",
        "/* __d( */",
    ],
)
def test_marker_inside_non_code_context_is_ignored(decoy: str) -> None:
    source = f"var x = {decoy};\n__d('Real', 1);"

    assert find_next_marker(source) == source.index("__d('Real'")


def test_marker_after_division_is_found() -> None:
    source = "var q = a / b; __d('X', 1); var r = c / d;"

    assert find_next_marker(source) == source.index("__d(")


def test_regex_after_return_keyword_hides_marker() -> None:
    source = "function f(){ return /__d\\(/.test(s); }\n__d('After', 1);"

    assert find_next_marker(source) == source.index("__d('After'")


def test_regex_character_class_may_contain_slash() -> None:
    source = "var re = /[/]__d(/; __d('X', 1);"

    assert find_next_marker(source) == source.index("__d('X'")


def test_find_next_marker_honours_start_offset() -> None:
    source = "__d('A', 1);__d('B', 2);"

    assert find_next_marker(source, 1) == source.index("__d('B'")
    assert find_next_marker(source, len(source)) is None


def test_matching_close_skips_delimiters_in_literals() -> None:
    source = "__d('A', \")\", `${f(')')}`, /\\)/, (function(){ return ')'; }));"
    open_offset = source.index("(")

    assert find_matching_close(source, open_offset) == source.rindex(")")


def test_matching_close_with_braces_tracks_template_expressions() -> None:
    source = "{ var s = `a ${ {k: '}'}.k } b`; }"

    assert find_matching_close(source, 0, opener="{", closer="}") == len(source) - 1


def test_unterminated_call_reports_opening_offset() -> None:
    source = "__d('Broken', function(){ return ')'; }"

    with pytest.raises(UnterminatedCallError) as excinfo:
        find_matching_close(source, 3)

    assert excinfo.value.offset == 3


@pytest.mark.parametrize(
    ("source", "offset", "expected"),
    [
        ("a 'bc' d", 4, LexState.SINGLE_QUOTE_STRING),
        ('a "bc" d', 4, LexState.DOUBLE_QUOTE_STRING),
        ("a // bc\nd", 5, LexState.LINE_COMMENT),
        ("a // bc\nd", 8, LexState.CODE),
        ("a /* b */ c", 5, LexState.BLOCK_COMMENT),
        ("`a ${b} c`", 2, LexState.TEMPLATE),
        ("`a ${b} c`", 5, LexState.TEMPLATE_EXPR),
        ("`a ${b} c`", 8, LexState.TEMPLATE),
        ("x = /ab/", 6, LexState.REGEX),
    ],
)
def test_state_at_classifies_offsets(source: str, offset: int, expected: LexState) -> None:
    assert state_at(source, offset) is expected


def test_nested_template_returns_to_outer_expression() -> None:
    source = "`a ${ `b ${c} d` } e`"
    scanner = LexicalScanner(source)

    code = "".join(source[index] for index in scanner.iter_code())

    assert "c" in code
    assert " e" not in code
    assert scanner.state is LexState.CODE


def test_string_inside_template_expression_resumes_expression() -> None:
    source = "`${ '}' + x }`; y"

    assert state_at(source, source.index("x")) is LexState.TEMPLATE_EXPR
    assert state_at(source, source.index("y")) is LexState.CODE


def test_scanner_tracks_character_class() -> None:
    source = "x = /[ab"
    scanner = LexicalScanner(source)

    list(scanner.iter_code())

    assert scanner.state is LexState.REGEX
    assert scanner.in_char_class is True
