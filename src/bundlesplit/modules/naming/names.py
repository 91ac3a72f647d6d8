"""Filesystem-safe, collision-free module file names."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

__all__ = [
    "NameAllocator",
    "SYNTHETIC_PREFIX",
    "sanitize_component",
    "sanitize_name",
]

SYNTHETIC_PREFIX = "module_"

_NAME_START = re.compile(r"^[A-Za-z0-9_\[\]-]+")
_UNSAFE_RUN = re.compile(r"[^A-Za-z0-9_\-\[\]]+")


def sanitize_component(value: str) -> str:
    """Replace every run of unsafe characters with ``_``.

    Example:
        >>> sanitize_component("Foo.Bar baz")
        'Foo_Bar_baz'
    """

    return _UNSAFE_RUN.sub("_", value)


def sanitize_name(declared: str | None) -> str | None:
    """Return a safe base name, or ``None`` when a synthetic one is needed.

    Only names that start with a character from ``[A-Za-z0-9_[]-]`` qualify.

    Example:
        >>> sanitize_name("WAWebChat.react")
        'WAWebChat_react'
        >>> sanitize_name("./relative") is None
        True
    """

    if not declared or not _NAME_START.match(declared):
        return None
    return sanitize_component(declared)


@dataclass(slots=True)
class NameAllocator:
    """Per-run naming state threaded through one pipeline run.

    The synthetic counter only advances for modules without a usable declared
    name. With ``disambiguate`` enabled the first occurrence of a base name
    keeps it and later ones receive ``_<n>`` suffixes; a suffixed candidate
    that is already taken advances to the next free number.
    """

    disambiguate: bool = True
    synthetic_count: int = 0
    occurrences: dict[str, int] = field(default_factory=dict)
    taken: set[str] = field(default_factory=set)

    def base_name(self, declared: str | None) -> str:
        safe = sanitize_name(declared)
        if safe is not None:
            return safe
        self.synthetic_count += 1
        return f"{SYNTHETIC_PREFIX}{self.synthetic_count}"

    def allocate(self, declared: str | None) -> str:
        """Return the final file stem for a module declared as ``declared``."""

        return self.claim(self.base_name(declared))

    def claim(self, base: str) -> str:
        """Reserve ``base`` as given, suffixing it if already taken."""

        if not self.disambiguate:
            return base

        count = self.occurrences.get(base, 0)
        candidate = base if count == 0 else f"{base}_{count + 1}"
        while candidate in self.taken:
            count += 1
            candidate = f"{base}_{count + 1}"
        self.occurrences[base] = count + 1
        self.taken.add(candidate)
        return candidate
