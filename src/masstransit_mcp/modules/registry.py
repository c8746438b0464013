"""Module registry with package discovery."""

from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil

import masstransit_mcp.modules
from masstransit_mcp.modules.base import Module

logger = logging.getLogger(__name__)


def default_registry() -> ModuleRegistry:
    """Create a ModuleRegistry pre-populated with all built-in modules.

    Discovers all concrete ``Module`` subclasses in the
    ``masstransit_mcp.modules`` package by walking it and inspecting the
    members of each submodule.
    """
    registry = ModuleRegistry()
    package = masstransit_mcp.modules
    for _importer, modname, _ispkg in pkgutil.walk_packages(
        package.__path__, prefix=package.__name__ + "."
    ):
        mod = importlib.import_module(modname)
        for _name, obj in inspect.getmembers(mod, inspect.isclass):
            if issubclass(obj, Module) and obj is not Module and not inspect.isabstract(obj):
                try:
                    registry.register(obj)
                except ValueError:
                    pass  # Already registered (e.g. imported into another module)
    return registry


class ModuleRegistry:
    """Registry of module classes, keyed by module name."""

    def __init__(self) -> None:
        self._modules: dict[str, type[Module]] = {}

    def register(self, module_cls: type[Module]) -> None:
        """Register a module class.

        Raises ``ValueError`` if a module with the same name is already
        registered.  The name is read from a temporary instance.
        """
        name = module_cls().name
        if name in self._modules:
            raise ValueError(f"Module '{name}' is already registered")
        self._modules[name] = module_cls

    @property
    def available_modules(self) -> list[str]:
        """List all registered module names (sorted for determinism)."""
        return sorted(self._modules.keys())

    def load_all(self) -> list[Module]:
        """Instantiate every registered module, ordered by name."""
        modules = [self._modules[name]() for name in self.available_modules]
        logger.debug("Loaded %d module(s): %s", len(modules), self.available_modules)
        return modules
