"""Root exception types shared across :mod:`bundlesplit` modules."""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "BundleSplitError",
    "InvalidConfigurationError",
    "BundleIOError",
]


class BundleSplitError(RuntimeError):
    """Base error for every failure raised by :mod:`bundlesplit`."""


class InvalidConfigurationError(BundleSplitError):
    """Raised when configuration is rejected before any work starts."""


class BundleIOError(BundleSplitError):
    """Raised when reading, fetching, or writing a single item fails."""

    def __init__(self, message: str, *, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = path
