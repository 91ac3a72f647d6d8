"""Tests for :mod:`bundlesplit.modules.extract.extractor`."""

from __future__ import annotations

import pytest

from bundlesplit.modules.extract import (
    ExtractionFailure,
    extract_all,
    read_declared_name,
)


def test_duplicate_names_are_extracted_in_source_order() -> None:
    source = "__d('A',function(a,b){return 1;});__d('A',function(a,b){return 2;});"

    spans = extract_all(source)

    assert [span.declared_name for span in spans] == ["A", "A"]
    assert spans[0].raw_text == "__d('A',function(a,b){return 1;});"
    assert spans[1].raw_text == "__d('A',function(a,b){return 2;});"
    assert spans[0].end_offset == spans[1].start_offset


def test_regex_literal_marker_is_not_a_call() -> None:
    source = "var re = /__d\\(/; __d('X',function(){});"

    spans = extract_all(source)

    assert len(spans) == 1
    assert spans[0].declared_name == "X"
    assert spans[0].raw_text == "__d('X',function(){});"


def test_template_interpolation_marker_is_not_a_call() -> None:
    source = "var t = `${__d('X',1)}`;\n__d('Real',function(){});"

    spans = extract_all(source)

    assert [span.declared_name for span in spans] == ["Real"]


def test_spans_reproduce_original_substrings(sample_bundle: str) -> None:
    spans = extract_all(sample_bundle)

    assert [span.declared_name for span in spans] == [
        "WAWebFooBar",
        "WAWebFooBaz",
        "Unrelated",
    ]
    for span in spans:
        assert sample_bundle[span.start_offset : span.end_offset] == span.raw_text
    for left, right in zip(spans, spans[1:]):
        assert left.end_offset <= right.start_offset


def test_span_includes_trailing_whitespace_and_terminator() -> None:
    source = "__d('A', 1)  ;\nvar after = 1;"

    (span,) = extract_all(source)

    assert span.raw_text == "__d('A', 1)  ;"


def test_no_markers_yields_no_spans() -> None:
    assert extract_all("var a = '__d(';\n// __d(\n") == ()


def test_unterminated_call_is_skipped_and_reported() -> None:
    source = "__d('Good', 1);\n__d('Broken', function(){ return 1; }"
    failures: list[ExtractionFailure] = []

    spans = extract_all(source, failure_sink=failures)

    assert [span.declared_name for span in spans] == ["Good"]
    broken_offset = source.index("__d('Broken'")
    assert failures == [
        ExtractionFailure(
            offset=broken_offset,
            message=f"extraction failed at offset {broken_offset}",
        )
    ]


def test_scanning_resumes_after_failed_marker() -> None:
    source = "__d('Outer', __d('Inner', 1);"

    spans = extract_all(source)

    assert [span.declared_name for span in spans] == ["Inner"]


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        ("__d('Plain', 1)", "Plain"),
        ('__d(  "Spaced", 1)', "Spaced"),
        ("__d('It\\'s', 1)", "It's"),
        ("__d('\\x41\\u0042\\u{43}', 1)", "ABC"),
        ("__d(`Tpl`, 1)", "Tpl"),
        ("__d(`T${x}`, 1)", None),
        ("__d(function(){}, 1)", None),
        ("__d(name, 1)", None),
    ],
)
def test_read_declared_name(source: str, expected: str | None) -> None:
    assert read_declared_name(source, source.index("(")) == expected
