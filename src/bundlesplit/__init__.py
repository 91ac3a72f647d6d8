"""Top-level package for :mod:`bundlesplit`.

The package splits concatenated ``__d(...)`` module bundles into one file per
module and exposes version metadata so downstream tooling can surface the
installed build.

Example:
    >>> from bundlesplit import __version__
    >>> __version__.split(".")[0]
    '0'
"""

from importlib import metadata

try:
    __version__ = metadata.version("bundlesplit")
except metadata.PackageNotFoundError:  # pragma: no cover - fallback for editable installs
    __version__ = "0.0.0"

__all__ = ["__version__"]
