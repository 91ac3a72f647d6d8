"""Domain-specific exceptions for module extraction."""

from __future__ import annotations

from bundlesplit.core.errors import BundleSplitError

__all__ = ["ExtractionError", "UnterminatedCallError"]


class ExtractionError(BundleSplitError):
    """Base error for extraction failures."""


class UnterminatedCallError(ExtractionError):
    """Raised when input ends before a call's closing parenthesis."""

    def __init__(self, offset: int) -> None:
        super().__init__(f"extraction failed at offset {offset}")
        self.offset = offset
