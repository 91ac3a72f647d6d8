"""Name-keyed module registry with lazy, one-time initialisation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from bundlesplit.core.errors import BundleSplitError

__all__ = [
    "Factory",
    "ModuleHandle",
    "ModuleRegistry",
    "UnknownModuleError",
]


class UnknownModuleError(BundleSplitError):
    """Raised when resolving a name that was never registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Module not found: {name}")
        self.name = name


@dataclass(slots=True)
class ModuleHandle:
    """Mutable exports holder handed to a factory."""

    exports: Any = field(default_factory=dict)


Factory = Callable[[Callable[[str], Any], ModuleHandle], Any]


@dataclass(slots=True)
class _Record:
    factory: Factory
    handle: ModuleHandle | None = None
    value: Any = None
    initialized: bool = False


def _unwrap_default(exports: Any) -> Any:
    if isinstance(exports, Mapping) and "default" in exports:
        return exports["default"]
    return exports


class ModuleRegistry:
    """Register factories by name and resolve them on demand.

    A factory receives ``require`` (resolving sibling modules) and a
    :class:`ModuleHandle`; it either fills ``handle.exports`` or replaces it.
    Factories run at most once. Exports holding a ``default`` key resolve to
    that value. A module required again while its own factory is still
    running sees its partially built exports.
    """

    def __init__(self) -> None:
        self._records: dict[str, _Record] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def names(self) -> list[str]:
        return list(self._records)

    def register_factory(self, name: str, factory: Factory) -> bool:
        """Register ``factory`` under ``name``; the first registration wins.

        Returns:
            ``True`` when the factory was stored.
        """

        if name in self._records:
            return False
        self._records[name] = _Record(factory=factory)
        return True

    def register_value(self, name: str, value: Any) -> bool:
        def _factory(require: Callable[[str], Any], handle: ModuleHandle) -> None:
            handle.exports = value

        return self.register_factory(name, _factory)

    def register_loader(self, name: str, loader: Callable[[], Any]) -> bool:
        """Register a zero-argument loader evaluated on first resolve."""

        def _factory(require: Callable[[str], Any], handle: ModuleHandle) -> None:
            handle.exports = _unwrap_default(loader())

        return self.register_factory(name, _factory)

    def resolve(self, name: str) -> Any:
        record = self._records.get(name)
        if record is None:
            raise UnknownModuleError(name)
        if record.initialized:
            return record.value
        if record.handle is not None:
            return record.handle.exports

        handle = ModuleHandle()
        record.handle = handle
        try:
            record.factory(self.resolve, handle)
        except Exception:
            record.handle = None
            raise
        record.value = _unwrap_default(handle.exports)
        record.initialized = True
        return record.value
