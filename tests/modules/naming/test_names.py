"""Tests for :mod:`bundlesplit.modules.naming.names`."""

from __future__ import annotations

import pytest

from bundlesplit.modules.naming import NameAllocator, sanitize_component, sanitize_name


@pytest.mark.parametrize(
    ("declared", "expected"),
    [
        ("WAWebChat", "WAWebChat"),
        ("WAWebChat.react", "WAWebChat_react"),
        ("[id]-page", "[id]-page"),
        ("a/b\\c", "a_b_c"),
        ("./relative", None),
        ("@scope/pkg", None),
        ("", None),
        (None, None),
    ],
)
def test_sanitize_name(declared: str | None, expected: str | None) -> None:
    assert sanitize_name(declared) == expected


def test_sanitize_component_collapses_unsafe_runs() -> None:
    assert sanitize_component("a .. b") == "a_b"


def test_first_occurrence_keeps_name_and_later_ones_are_suffixed() -> None:
    allocator = NameAllocator()

    assert [allocator.allocate(name) for name in ("A", "B", "A", "A")] == [
        "A",
        "B",
        "A_2",
        "A_3",
    ]


def test_suffix_skips_names_already_taken() -> None:
    allocator = NameAllocator()

    assert [allocator.allocate(name) for name in ("A", "A_2", "A")] == [
        "A",
        "A_2",
        "A_3",
    ]


def test_synthetic_names_count_only_unnamed_modules() -> None:
    allocator = NameAllocator()

    names = [allocator.allocate(name) for name in (None, "Named", "./bad", None)]

    assert names == ["module_1", "Named", "module_2", "module_3"]


def test_disambiguation_disabled_repeats_names() -> None:
    allocator = NameAllocator(disambiguate=False)

    assert [allocator.allocate("A"), allocator.allocate("A")] == ["A", "A"]


def test_names_sanitizing_to_the_same_base_are_disambiguated() -> None:
    allocator = NameAllocator()

    assert [allocator.allocate("a.b"), allocator.allocate("a_b")] == ["a_b", "a_b_2"]


def test_claim_keeps_base_verbatim_and_shares_the_taken_set() -> None:
    allocator = NameAllocator()

    assert allocator.claim("main.abc123") == "main.abc123"
    assert allocator.claim("main.abc123") == "main.abc123_2"
    assert allocator.claim("main.abc123_2") == "main.abc123_2_2"
