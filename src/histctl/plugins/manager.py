"""Plugin discovery and loading.

Plugins come from two places: distributions exposing the ``histctl.plugins``
entry-point group, and single ``*.py`` files in the workspace's
``.histctl/plugins/`` directory. A plugin can observe lifecycle events and
contribute command types to the registry.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from typing import TYPE_CHECKING

import pluggy

from histctl.plugins.hookspecs import HistctlHookSpec

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path
    from types import ModuleType

    from histctl.domain.commands import CommandRegistry, CommandType

PROJECT_NAME = "histctl"
ENTRY_POINT_GROUP = "histctl.plugins"
LOCAL_MODULE_PREFIX = "histctl_local_plugin_"

# Attribute HookimplMarker(PROJECT_NAME) stamps on decorated methods.
_HOOKIMPL_ATTR = f"{PROJECT_NAME}_impl"

logger = logging.getLogger(__name__)


class PluginManager:
    """Wraps a pluggy manager with histctl's discovery rules."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(HistctlHookSpec)
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        """True once :meth:`discover_and_load` has run."""
        return self._loaded

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def discover_and_load(self, *, local_dir: Path | None = None) -> list[str]:
        """Load entry-point plugins, then local ones. Returns all plugin names."""
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        self._instantiate_entry_point_classes()
        if local_dir is not None:
            self._discover_local(local_dir)
        self._loaded = True
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        name = name or type(plugin).__name__
        self._pm.register(plugin, name=name)
        logger.debug("Registered plugin: %s", name)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)

    def get_plugins(self) -> list[object]:
        return list(self._pm.get_plugins())

    def list_plugin_names(self) -> list[str]:
        return [self._name_of(p) for p in self._pm.get_plugins()]

    def register_command_types(self, registry: CommandRegistry) -> list[str]:
        """Add every plugin's command types to *registry*.

        Misbehaving plugins and colliding names are skipped with a warning;
        the rest still register. Returns the names added.
        """
        added: list[str] = []
        for plugin in self._pm.get_plugins():
            plugin_name = self._name_of(plugin)
            for command_type in self._command_types_of(plugin, plugin_name):
                try:
                    registry.register(command_type)
                except (TypeError, ValueError, AttributeError):
                    logger.warning(
                        "Skipping command type %r from plugin %s",
                        getattr(command_type, "name", command_type),
                        plugin_name,
                        exc_info=True,
                    )
                else:
                    added.append(command_type.name)
        return added

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _name_of(self, plugin: object) -> str:
        return self._pm.get_name(plugin) or type(plugin).__name__

    @staticmethod
    def _command_types_of(plugin: object, plugin_name: str) -> list[CommandType]:
        provider = getattr(plugin, "register_command_types", None)
        if provider is None:
            return []
        try:
            provided = provider()
        except Exception:
            logger.warning(
                "Plugin %s failed to provide command types", plugin_name, exc_info=True
            )
            return []
        if provided is None:
            return []
        if not isinstance(provided, (list, tuple)):
            logger.warning(
                "Plugin %s returned %s instead of a list of command types",
                plugin_name,
                type(provided).__name__,
            )
            return []
        return list(provided)

    def _instantiate_entry_point_classes(self) -> None:
        """Entry points may name a class; pluggy needs an instance to bind ``self``."""
        for plugin in self._pm.get_plugins():
            if inspect.isclass(plugin) and self._has_hook_impls(plugin):
                name = self._name_of(plugin)
                self._pm.unregister(plugin)
                self._register_instance(plugin, name, origin="entry point")

    def _discover_local(self, local_dir: Path) -> None:
        """Register hook-bearing classes from ``*.py`` files in *local_dir*.

        Files starting with ``_`` are ignored. A file that fails to import
        or a class that fails to instantiate is logged and skipped.
        """
        if not local_dir.is_dir():
            return
        for path in sorted(local_dir.glob("*.py")):
            if path.name.startswith("_"):
                continue
            module = self._import_file(path)
            if module is None:
                continue
            for cls in self._plugin_classes(module):
                self._register_instance(cls, f"{module.__name__}.{cls.__name__}", origin=str(path))

    @staticmethod
    def _import_file(path: Path) -> ModuleType | None:
        module_name = LOCAL_MODULE_PREFIX + path.stem
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            logger.warning("Cannot import local plugin %s", path)
            return None
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            sys.modules.pop(module_name, None)
            logger.warning("Failed to load local plugin %s", path, exc_info=True)
            return None
        return module

    @classmethod
    def _plugin_classes(cls, module: ModuleType) -> Iterator[type]:
        """Classes defined (not imported) in *module* that implement hooks."""
        for _, candidate in inspect.getmembers(module, inspect.isclass):
            if candidate.__module__ == module.__name__ and cls._has_hook_impls(candidate):
                yield candidate

    def _register_instance(self, plugin_cls: type, name: str, *, origin: str) -> None:
        try:
            instance = plugin_cls()
        except Exception:
            logger.warning(
                "Failed to instantiate plugin %s (%s)", plugin_cls.__name__, origin, exc_info=True
            )
            return
        self.register_plugin(instance, name=name)

    @staticmethod
    def _has_hook_impls(cls: type) -> bool:
        """Whether any public method of *cls* carries ``@hookimpl``."""
        return any(
            callable(member) and getattr(member, _HOOKIMPL_ATTR, None)
            for attr, member in inspect.getmembers(cls)
            if not attr.startswith("_")
        )
