"""Registry and discovery helpers for re-registering exported modules."""

from __future__ import annotations

from .discovery import (
    ExportedModule,
    FunctionNotFoundError,
    extract_function_expression,
    iter_exported_modules,
    register_exported_modules,
)
from .registry import Factory, ModuleHandle, ModuleRegistry, UnknownModuleError

__all__ = [
    "ExportedModule",
    "Factory",
    "FunctionNotFoundError",
    "ModuleHandle",
    "ModuleRegistry",
    "UnknownModuleError",
    "extract_function_expression",
    "iter_exported_modules",
    "register_exported_modules",
]
