"""Bundle scanning and module extraction surface."""

from __future__ import annotations

from .errors import ExtractionError, UnterminatedCallError
from .extractor import (
    ExtractionFailure,
    ModuleSpan,
    extract_all,
    read_declared_name,
)
from .lexer import (
    MARKER,
    LexState,
    LexicalScanner,
    find_matching_close,
    find_next_marker,
    state_at,
)

__all__ = [
    "MARKER",
    "ExtractionError",
    "ExtractionFailure",
    "LexState",
    "LexicalScanner",
    "ModuleSpan",
    "UnterminatedCallError",
    "extract_all",
    "find_matching_close",
    "find_next_marker",
    "read_declared_name",
    "state_at",
]
