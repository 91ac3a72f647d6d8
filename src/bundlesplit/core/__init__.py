"""Core utilities shared across :mod:`bundlesplit` modules.

The core namespace provides cohesive seams for logging setup, error types, and
output path resolution so feature modules remain lightweight. Configuration
lives in :mod:`bundlesplit.core.config`, which depends on the feature modules
and is therefore imported explicitly.

Example:
    >>> from bundlesplit.core import get_logger
    >>> logger = get_logger(__name__)
    >>> isinstance(logger, object)
    True
"""

from __future__ import annotations

from .errors import BundleIOError, BundleSplitError, InvalidConfigurationError
from .logging import configure_logging, get_logger
from .paths import default_output_dir, resolve_bundle_output

__all__ = [
    "BundleIOError",
    "BundleSplitError",
    "InvalidConfigurationError",
    "configure_logging",
    "default_output_dir",
    "get_logger",
    "resolve_bundle_output",
]
