"""Export pipeline: inline processing, worker pool, and batch jobs."""

from __future__ import annotations

from .batch import (
    BatchOutcome,
    BatchResult,
    assign_bundle_labels,
    collect_declared_names,
    run_batch,
)
from .concurrency import run_bounded
from .errors import ExportError, TransformError, WorkerFaultError
from .fetch import BundleFetcher
from .models import (
    ChunkMessage,
    DoneMessage,
    ErrorMessage,
    ExportFile,
    ExportOptions,
    ExportReport,
    ExportRequest,
    MessageKind,
)
from .pipeline import (
    BuildResult,
    ExportService,
    build_export_files,
    decode_bundle,
    process_inline,
    read_bundle,
    resolve_clusters,
    write_export_files,
)
from .pool import WorkerPool
from .transform import (
    CommandTransform,
    ModuleTransform,
    build_transform,
    reformat_for_readability,
    transform_or_fallback,
)

__all__ = [
    "BatchOutcome",
    "BatchResult",
    "assign_bundle_labels",
    "BuildResult",
    "BundleFetcher",
    "ChunkMessage",
    "CommandTransform",
    "DoneMessage",
    "ErrorMessage",
    "ExportError",
    "ExportFile",
    "ExportOptions",
    "ExportReport",
    "ExportRequest",
    "ExportService",
    "MessageKind",
    "ModuleTransform",
    "TransformError",
    "WorkerFaultError",
    "WorkerPool",
    "build_export_files",
    "build_transform",
    "collect_declared_names",
    "decode_bundle",
    "process_inline",
    "read_bundle",
    "reformat_for_readability",
    "resolve_clusters",
    "run_batch",
    "run_bounded",
    "transform_or_fallback",
    "write_export_files",
]
