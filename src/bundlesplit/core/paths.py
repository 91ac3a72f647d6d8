"""Output path helpers for :mod:`bundlesplit`."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from urllib.parse import urlsplit

__all__ = [
    "DEOBFUSCATED_DIRNAME",
    "bundle_label",
    "default_output_dir",
    "is_remote_source",
    "resolve_bundle_output",
    "resolve_path",
]

DEOBFUSCATED_DIRNAME = "deobfuscated"

_REMOTE_SCHEMES = frozenset({"http", "https"})


def resolve_path(candidate: Path | str) -> Path:
    """Return ``candidate`` as an absolute path anchored at the CWD."""

    raw = Path(candidate).expanduser()
    if raw.is_absolute():
        return raw.resolve(strict=False)
    return (Path.cwd() / raw).resolve(strict=False)


def is_remote_source(source: str) -> bool:
    """Return ``True`` when ``source`` is an ``http(s)`` URL.

    Example:
        >>> is_remote_source("https://example.com/app.js")
        True
        >>> is_remote_source("bundles/app.js")
        False
    """

    return urlsplit(source).scheme.lower() in _REMOTE_SCHEMES


def bundle_label(source: str) -> str:
    """Return the file stem used to name a bundle's output directory.

    Example:
        >>> bundle_label("https://cdn.example.com/js/main.abc123.js?v=2")
        'main.abc123'
        >>> bundle_label("/tmp/vendor.js")
        'vendor'
    """

    if is_remote_source(source):
        name = PurePosixPath(urlsplit(source).path).name
    else:
        name = Path(source).name
    stem = PurePosixPath(name).stem if name else ""
    return stem or "bundle"


def default_output_dir(input_file: Path) -> Path:
    """Return ``<inputDir>/deobfuscated/<inputStem>`` for ``input_file``.

    Example:
        >>> default_output_dir(Path("/data/app.js")).as_posix()
        '/data/deobfuscated/app'
    """

    return input_file.parent / DEOBFUSCATED_DIRNAME / input_file.stem


def resolve_bundle_output(
    output_root: Path,
    label: str,
    *,
    flatten: bool = False,
) -> Path:
    """Return the directory one bundle writes into during a batch job.

    ``label`` must be unique within the batch so bundles get disjoint
    subdirectories; with ``flatten`` every bundle shares ``output_root``.
    """

    if flatten:
        return output_root
    return output_root / label
