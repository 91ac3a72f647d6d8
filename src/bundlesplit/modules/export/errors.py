"""Typed errors raised by the export pipeline."""

from __future__ import annotations

from bundlesplit.core.errors import BundleSplitError

__all__ = ["ExportError", "TransformError", "WorkerFaultError"]


class ExportError(BundleSplitError):
    """Base error for export pipeline failures."""


class TransformError(ExportError):
    """Raised when the external transformation collaborator fails."""


class WorkerFaultError(ExportError):
    """Raised for requests owned by a worker unit that failed."""

    def __init__(self, message: str, *, worker_id: int, request_id: int | None = None) -> None:
        super().__init__(message)
        self.worker_id = worker_id
        self.request_id = request_id
