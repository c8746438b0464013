"""Tests for ModuleRegistry and built-in module discovery."""

from __future__ import annotations

from typing import Any

import pytest

from masstransit_mcp.modules.base import Module
from masstransit_mcp.modules.registry import ModuleRegistry, default_registry

pytestmark = pytest.mark.unit


def _make_module(name: str) -> type[Module]:
    """Dynamically create a concrete Module subclass for testing."""
    _name = name

    class DynamicModule(Module):
        @property
        def name(self) -> str:
            return _name

        async def register_tools(self, mcp: Any, client: Any, config: Any) -> None:
            pass

    DynamicModule.__qualname__ = f"DynamicModule_{_name}"
    DynamicModule.__name__ = f"DynamicModule_{_name}"
    return DynamicModule


ModuleA = _make_module("a")
ModuleB = _make_module("b")


class TestModuleRegistry:
    def test_register_and_list(self):
        registry = ModuleRegistry()
        registry.register(ModuleB)
        registry.register(ModuleA)
        assert registry.available_modules == ["a", "b"]

    def test_duplicate_name_rejected(self):
        registry = ModuleRegistry()
        registry.register(ModuleA)
        with pytest.raises(ValueError, match="already registered"):
            registry.register(_make_module("a"))

    def test_load_all_instantiates_in_name_order(self):
        registry = ModuleRegistry()
        registry.register(ModuleB)
        registry.register(ModuleA)
        modules = registry.load_all()
        assert [m.name for m in modules] == ["a", "b"]
        assert isinstance(modules[0], ModuleA)

    def test_empty_registry(self):
        assert ModuleRegistry().load_all() == []


class TestDefaultRegistry:
    def test_discovers_builtin_modules(self):
        assert default_registry().available_modules == [
            "connections",
            "exchanges",
            "masstransit",
            "messages",
            "overview",
            "queues",
        ]

    def test_readonly_tool_surface(self):
        names = {
            name
            for module in default_registry().load_all()
            for name in module.tool_names(allow_mutative=False)
        }
        assert names == {
            "get_overview",
            "list_queues",
            "get_queue",
            "list_exchanges",
            "get_exchange",
            "list_bindings",
            "list_connections",
            "list_consumers",
            "peek_messages",
            "list_error_queues",
            "list_skipped_queues",
            "peek_errors",
            "get_queue_health",
        }

    def test_mutative_tools(self):
        destructive = {
            name
            for module in default_registry().load_all()
            for name, meta in module.tool_metadata().items()
            if meta.destructive
        }
        assert destructive == {
            "purge_queue",
            "publish_message",
            "move_messages",
            "republish_from_error",
        }
