"""Inline bundle-to-files pipeline and the service facade over it."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Sequence

from bundlesplit.core.errors import BundleIOError, InvalidConfigurationError
from bundlesplit.core.logging import Logger, get_logger
from bundlesplit.modules.extract import ExtractionFailure, ModuleSpan, extract_all
from bundlesplit.modules.naming import (
    NameAllocator,
    PrefixCluster,
    compute_clusters,
    match_cluster,
    sanitize_component,
)

from .concurrency import run_bounded
from .models import ExportFile, ExportOptions, ExportReport
from .transform import ModuleTransform, build_transform, transform_or_fallback

if TYPE_CHECKING:
    from .pool import WorkerPool

__all__ = [
    "BuildResult",
    "ExportService",
    "build_export_files",
    "decode_bundle",
    "process_inline",
    "read_bundle",
    "resolve_clusters",
    "write_encoded_files",
    "write_export_files",
]

_LOGGER = get_logger(__name__, component="export")


@dataclass(frozen=True, slots=True)
class BuildResult:
    """Files produced for one bundle plus per-run diagnostics."""

    files: tuple[ExportFile, ...]
    failures: tuple[ExtractionFailure, ...] = ()
    transform_fallbacks: int = 0

    @property
    def modules(self) -> int:
        return len(self.files)


def decode_bundle(bundle: bytes | str) -> str:
    if isinstance(bundle, str):
        return bundle
    return bundle.decode("utf-8", errors="replace")


def read_bundle(path: Path) -> bytes:
    """Read a bundle from disk, mapping OS errors to :class:`BundleIOError`."""

    try:
        return path.read_bytes()
    except OSError as exc:
        raise BundleIOError(f"Unable to read bundle {path}: {exc}", path=path) from exc


def resolve_clusters(
    spans: Sequence[ModuleSpan],
    options: ExportOptions,
) -> tuple[PrefixCluster, ...]:
    """Return the clusters to group by, or an empty tuple when disabled."""

    if not options.group_by_common_prefix:
        return ()
    if options.explicit_prefixes is not None:
        return options.explicit_prefixes
    return compute_clusters(
        (span.declared_name for span in spans if span.declared_name),
        min_prefix_length=options.min_prefix_length,
        min_cluster_size=options.min_cluster_size,
        branding_prefix=options.branding_prefix,
    )


def build_export_files(
    text: str,
    options: ExportOptions,
    *,
    transform: ModuleTransform | None = None,
    logger: Logger | None = None,
) -> BuildResult:
    """Extract, name, group, and optionally transform every module in ``text``.

    ``transform`` overrides the command configured in ``options``; it is only
    consulted when ``options.apply_transform`` is set.
    """

    log = logger or _LOGGER
    failures: list[ExtractionFailure] = []
    spans = extract_all(text, failure_sink=failures, logger=log)
    clusters = resolve_clusters(spans, options)
    allocator = NameAllocator(disambiguate=options.disambiguate)

    transformer: ModuleTransform | None = None
    if options.apply_transform:
        transformer = transform or build_transform(options)

    files: list[ExportFile] = []
    fallbacks = 0
    for span in spans:
        stem = allocator.allocate(span.declared_name)
        relative = PurePosixPath(f"{stem}.js")
        cluster = match_cluster(
            span.declared_name,
            clusters,
            branding_prefix=options.branding_prefix,
        )
        if cluster is not None:
            relative = PurePosixPath(sanitize_component(cluster.raw)) / relative

        content = span.raw_text
        if transformer is not None:
            content, applied = transform_or_fallback(
                transformer,
                content,
                name=span.declared_name,
                logger=log,
            )
            if not applied:
                fallbacks += 1
        files.append(ExportFile(relative_path=relative.as_posix(), content=content))

    return BuildResult(
        files=tuple(files),
        failures=tuple(failures),
        transform_fallbacks=fallbacks,
    )


def _write_one(output_dir: Path, relative_path: str, data: bytes) -> str:
    target = output_dir / relative_path
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    except OSError as exc:
        raise BundleIOError(f"Unable to write {target}: {exc}", path=target) from exc
    return relative_path


def write_encoded_files(
    output_dir: Path,
    files: Sequence[tuple[str, bytes]],
    *,
    concurrency: int,
) -> list[str]:
    """Write already-encoded ``(relative_path, data)`` pairs concurrently.

    Later entries for the same path win, matching a sequential overwrite.
    """

    unique: dict[str, bytes] = {}
    for relative_path, data in files:
        unique.pop(relative_path, None)
        unique[relative_path] = data
    return run_bounded(
        list(unique.items()),
        concurrency,
        lambda item: _write_one(output_dir, item[0], item[1]),
        thread_name_prefix="bundlesplit-write",
    )


def write_export_files(
    output_dir: Path,
    files: Sequence[ExportFile],
    *,
    concurrency: int = 16,
) -> list[str]:
    return write_encoded_files(
        output_dir,
        [(item.relative_path, item.content.encode("utf-8")) for item in files],
        concurrency=concurrency,
    )


def process_inline(
    bundle: bytes | str,
    output_dir: Path,
    options: ExportOptions,
    *,
    label: str = "bundle",
    write_concurrency: int = 16,
    transform: ModuleTransform | None = None,
    logger: Logger | None = None,
) -> ExportReport:
    """Run the whole pipeline on the calling thread and write the results."""

    log = (logger or _LOGGER).bind(bundle=label)
    result = build_export_files(
        decode_bundle(bundle),
        options,
        transform=transform,
        logger=log,
    )
    if not result.files:
        log.warning("export-no-modules", output_dir=str(output_dir))
        return ExportReport(
            label=label,
            output_dir=output_dir,
            modules=0,
            failures=result.failures,
        )

    written = write_export_files(
        output_dir,
        result.files,
        concurrency=write_concurrency,
    )
    log.info(
        "export-written",
        output_dir=str(output_dir),
        modules=result.modules,
        failures=len(result.failures),
        transform_fallbacks=result.transform_fallbacks,
    )
    return ExportReport(
        label=label,
        output_dir=output_dir,
        modules=result.modules,
        files=tuple(written),
        failures=result.failures,
        transform_fallbacks=result.transform_fallbacks,
    )


class ExportService:
    """Process bundles inline or through a pool of worker processes.

    With ``worker_pool_size`` of zero every request runs on the calling thread.
    A positive size starts a :class:`~bundlesplit.modules.export.pool.WorkerPool`
    lazily on first use; custom ``transform`` callables are honoured inline only.
    """

    def __init__(
        self,
        *,
        worker_pool_size: int = 0,
        write_concurrency: int = 16,
        transform: ModuleTransform | None = None,
        log_level: str = "INFO",
        logger: Logger | None = None,
    ) -> None:
        if worker_pool_size < 0:
            raise InvalidConfigurationError(
                f"Worker pool size must be >= 0 (got {worker_pool_size})."
            )
        if write_concurrency < 1:
            raise InvalidConfigurationError(
                f"Write concurrency must be >= 1 (got {write_concurrency})."
            )
        self._worker_pool_size = worker_pool_size
        self._write_concurrency = write_concurrency
        self._transform = transform
        self._log_level = log_level
        self._logger = logger or _LOGGER
        self._pool: WorkerPool | None = None

    @property
    def pooled(self) -> bool:
        return self._worker_pool_size > 0

    def _ensure_pool(self) -> WorkerPool:
        if self._pool is None:
            from .pool import WorkerPool

            self._pool = WorkerPool(
                self._worker_pool_size,
                write_concurrency=self._write_concurrency,
                log_level=self._log_level,
                logger=self._logger,
            )
        return self._pool

    def process(
        self,
        bundle: bytes | str,
        output_dir: Path,
        options: ExportOptions,
        *,
        label: str = "bundle",
    ) -> ExportReport:
        if not self.pooled:
            return process_inline(
                bundle,
                output_dir,
                options,
                label=label,
                write_concurrency=self._write_concurrency,
                transform=self._transform,
                logger=self._logger,
            )
        payload = bundle.encode("utf-8") if isinstance(bundle, str) else bundle
        return self._ensure_pool().process(payload, output_dir, options, label=label)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    def __enter__(self) -> "ExportService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
