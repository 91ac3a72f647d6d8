"""Value types shared by the inline pipeline and pooled workers.

Everything here is immutable and picklable so it can cross the process
boundary between the coordinator and worker units unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import ClassVar

from bundlesplit.modules.extract import ExtractionFailure
from bundlesplit.modules.naming import DEFAULT_BRANDING_PREFIX, PrefixCluster

__all__ = [
    "ChunkMessage",
    "DoneMessage",
    "ErrorMessage",
    "ExportFile",
    "ExportOptions",
    "ExportReport",
    "ExportRequest",
    "MessageKind",
    "WorkerMessage",
]


@dataclass(frozen=True, slots=True)
class ExportOptions:
    """Per-run options recognised by the extraction/export core."""

    disambiguate: bool = True
    group_by_common_prefix: bool = False
    explicit_prefixes: tuple[PrefixCluster, ...] | None = None
    min_prefix_length: int = 3
    min_cluster_size: int = 2
    branding_prefix: str = DEFAULT_BRANDING_PREFIX
    apply_transform: bool = False
    transform_command: tuple[str, ...] = ("terser", "--compress", "--mangle")
    transform_timeout: float = 60.0
    batch_size: int = 100


@dataclass(frozen=True, slots=True)
class ExportFile:
    """One output file: a POSIX relative path and its text content."""

    relative_path: str
    content: str


@dataclass(frozen=True, slots=True)
class ExportReport:
    """Outcome of processing a single bundle."""

    label: str
    output_dir: Path
    modules: int
    files: tuple[str, ...] = ()
    failures: tuple[ExtractionFailure, ...] = ()
    transform_fallbacks: int = 0

    @property
    def empty(self) -> bool:
        """``True`` when the bundle held no module calls at all."""

        return self.modules == 0


@dataclass(frozen=True, slots=True)
class ExportRequest:
    """Work item sent from the coordinator to a worker unit."""

    request_id: int
    bundle: bytes
    options: ExportOptions


class MessageKind(StrEnum):
    CHUNK = "chunk"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ChunkMessage:
    """A batch of encoded files for one request, in source order."""

    kind: ClassVar[MessageKind] = MessageKind.CHUNK

    request_id: int
    files: tuple[tuple[str, bytes], ...]


@dataclass(frozen=True, slots=True)
class DoneMessage:
    """Terminal signal: every chunk for the request has been sent."""

    kind: ClassVar[MessageKind] = MessageKind.DONE

    request_id: int
    modules: int
    failures: tuple[ExtractionFailure, ...] = ()
    transform_fallbacks: int = 0


@dataclass(frozen=True, slots=True)
class ErrorMessage:
    """Terminal signal: the worker could not finish the request."""

    kind: ClassVar[MessageKind] = MessageKind.ERROR

    request_id: int
    message: str


WorkerMessage = ChunkMessage | DoneMessage | ErrorMessage
