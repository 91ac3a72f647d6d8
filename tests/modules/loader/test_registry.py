"""Tests for :mod:`bundlesplit.modules.loader.registry`."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from bundlesplit.modules.loader import ModuleHandle, ModuleRegistry, UnknownModuleError


def test_factory_runs_once_and_is_cached() -> None:
    registry = ModuleRegistry()
    calls: list[str] = []

    def factory(require: Callable[[str], Any], handle: ModuleHandle) -> None:
        calls.append("A")
        handle.exports["value"] = 1

    registry.register_factory("A", factory)

    first = registry.resolve("A")
    second = registry.resolve("A")

    assert first == {"value": 1}
    assert first is second
    assert calls == ["A"]


def test_first_registration_wins() -> None:
    registry = ModuleRegistry()

    assert registry.register_value("A", "first") is True
    assert registry.register_value("A", "second") is False
    assert registry.resolve("A") == "first"
    assert len(registry) == 1
    assert "A" in registry


def test_default_export_is_unwrapped() -> None:
    registry = ModuleRegistry()
    registry.register_value("Component", {"default": "render"})
    registry.register_loader("Lazy", lambda: {"default": 42, "other": 1})

    assert registry.resolve("Component") == "render"
    assert registry.resolve("Lazy") == 42


def test_require_resolves_siblings_lazily() -> None:
    registry = ModuleRegistry()
    order: list[str] = []

    def dep(require: Callable[[str], Any], handle: ModuleHandle) -> None:
        order.append("Dep")
        handle.exports = "dep-value"

    def main(require: Callable[[str], Any], handle: ModuleHandle) -> None:
        order.append("Main")
        handle.exports = {"dep": require("Dep")}

    registry.register_factory("Main", main)
    registry.register_factory("Dep", dep)

    assert order == []
    assert registry.resolve("Main") == {"dep": "dep-value"}
    assert order == ["Main", "Dep"]


def test_cycle_sees_partial_exports() -> None:
    registry = ModuleRegistry()

    def left(require: Callable[[str], Any], handle: ModuleHandle) -> None:
        handle.exports["name"] = "left"
        handle.exports["right"] = require("Right")

    def right(require: Callable[[str], Any], handle: ModuleHandle) -> None:
        handle.exports["left_name"] = require("Left").get("name")

    registry.register_factory("Left", left)
    registry.register_factory("Right", right)

    resolved = registry.resolve("Left")

    assert resolved["right"] == {"left_name": "left"}


def test_failed_factory_can_be_retried() -> None:
    registry = ModuleRegistry()
    attempts: list[int] = []

    def flaky(require: Callable[[str], Any], handle: ModuleHandle) -> None:
        attempts.append(1)
        if len(attempts) == 1:
            raise ValueError("not yet")
        handle.exports = "ready"

    registry.register_factory("Flaky", flaky)

    with pytest.raises(ValueError):
        registry.resolve("Flaky")
    assert registry.resolve("Flaky") == "ready"


def test_unknown_module_raises() -> None:
    registry = ModuleRegistry()

    with pytest.raises(UnknownModuleError, match="Module not found: Missing") as excinfo:
        registry.resolve("Missing")

    assert excinfo.value.name == "Missing"
    assert registry.names() == []
