"""Module and plugin system.

This module provides the machinery that lets external bundles extend a registry at runtime:

    * `ModuleRegistry` applies `UnitModule` batches to a registry, once per ``name:version``.
    * `UnitPlugin` / `AbstractUnitPlugin` describe lifecycle-managed providers of modules.
    * `PluginManager` initializes plugins in ascending priority order, isolating failures.
    * `entry_point_provider` discovers plugins advertised under the ``py_ecu.plugins`` entry-point group.

Discovery is injected: `PluginManager.load_plugins` consumes any callable (or iterable) producing plugin
instances, so hosts and tests can supply plugins directly.

Examples:
    ```python
    class NauticalPlugin(AbstractUnitPlugin):
        name = 'nautical'
        priority = 50

        def get_modules(self):
            return [SimpleUnitModule('nautical', definitions=[
                UnitDefinition('nmi', 'nautical mile', UnitCategory.LENGTH, 1852.0),
            ])]

    manager = PluginManager(registry)
    manager.load_plugins(lambda: [NauticalPlugin()])
    ```
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from importlib.metadata import EntryPoint, entry_points
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from py_ecu.builder import BuilderBlock, custom_unit
from py_ecu.definitions import UnitDefinition
from py_ecu.exceptions import PluginError
from py_ecu.generics.plugin import LogLevel, PluginContext, UnitModule, UnitTarget, module_id
from py_ecu.logger import logger
from py_ecu.registry import ThreadSafeRegistry, default_registry

__all__ = (
    'SimpleUnitModule',
    'ModuleRegistry',
    'UnitPlugin',
    'AbstractUnitPlugin',
    'DefaultPluginContext',
    'PluginManager',
    'PluginProvider',
    'entry_point_provider',
    'DEFAULT_ENTRY_GROUP',
    'LogLevel',
)

DEFAULT_ENTRY_GROUP = 'py_ecu.plugins'


class SimpleUnitModule:
    """Module registering a fixed list of definitions, optionally extended by `define()` in subclasses."""

    name: str = 'unnamed'
    version: str = '1.0.0'
    description: str = ''

    def __init__(self, name: Optional[str] = None, version: Optional[str] = None,
                 description: Optional[str] = None, definitions: Iterable[UnitDefinition] = ()):
        if name is not None:
            self.name = name
        if version is not None:
            self.version = version
        if description is not None:
            self.description = description
        self.definitions: List[UnitDefinition] = list(definitions)

    @property
    def module_id(self) -> str:
        return module_id(self)

    def configure(self, registry: UnitTarget) -> None:
        if self.definitions:
            registry.register_all(self.definitions)
        self.define(registry)

    def define(self, registry: UnitTarget) -> None:
        """Hook for subclasses registering units programmatically."""

    @staticmethod
    def unit(registry: UnitTarget, block: BuilderBlock) -> UnitDefinition:
        """Build a unit with `CustomUnitBuilder` and register it."""
        definition = custom_unit(block)
        registry.register(definition)
        return definition

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.module_id}>"


class ModuleRegistry:
    """Applies modules to a registry and remembers which ones were applied."""

    def __init__(self, registry: Optional[UnitTarget] = None):
        self.registry: UnitTarget = registry if registry is not None else default_registry()
        self._modules: Dict[str, UnitModule] = {}

    def register(self, module: UnitModule, force: bool = False, registry: Optional[UnitTarget] = None) -> bool:
        """Configure `module` against the registry.

        Returns:
            False if a module with the same ``name:version`` was already registered and `force` is not set.
        """
        mid = module_id(module)
        if mid in self._modules and not force:
            logger.debug(f"Module {mid} already registered, skipped")
            return False
        module.configure(registry if registry is not None else self.registry)
        self._modules[mid] = module
        logger.info(f"Registered unit module {mid}")
        return True

    def register_all(self, modules: Iterable[UnitModule], force: bool = False) -> int:
        """Register several modules. Returns how many were applied."""
        return sum(1 for module in modules if self.register(module, force))

    def is_registered(self, module_or_id: Union[UnitModule, str]) -> bool:
        mid = module_or_id if isinstance(module_or_id, str) else module_id(module_or_id)
        return mid in self._modules

    def registered_modules(self) -> List[UnitModule]:
        return list(self._modules.values())

    def get_module(self, mid: str) -> Optional[UnitModule]:
        return self._modules.get(mid)


class UnitPlugin(ABC):
    """Lifecycle-managed provider of unit modules.

    Attributes:
        name: Unique plugin name.
        version: Plugin version.
        description: Free-form description.
        priority: Load order; lower values load first.
    """

    name: str = ''
    version: str = '1.0.0'
    description: str = ''
    priority: int = 100

    def is_enabled(self) -> bool:
        return True

    @abstractmethod
    def initialize(self, context: PluginContext) -> None:
        """Called once before the plugin's modules are configured."""

    def shutdown(self) -> None:
        """Called on unload. Registry entries stay published."""

    def get_modules(self) -> Sequence[UnitModule]:
        return ()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.name} {self.version} (priority {self.priority})>"


class AbstractUnitPlugin(UnitPlugin):
    """Plugin base that keeps the context and exposes `on_initialize()` for subclasses."""

    context: Optional[PluginContext] = None

    def initialize(self, context: PluginContext) -> None:
        self.context = context
        self.on_initialize()

    def on_initialize(self) -> None:
        """Hook for subclasses."""

    def get_config(self, key: str, default: Optional[str] = None) -> Optional[str]:
        if self.context is None:
            return default
        return self.context.get_config(key, default)

    def log(self, level: LogLevel, message: str) -> None:
        if self.context is not None:
            self.context.log(level, f"{self.name}: {message}")


@dataclass
class DefaultPluginContext:
    """Context handed to plugins by `PluginManager`."""

    registry: UnitTarget
    config: Mapping[str, str] = field(default_factory=dict)
    manager: Optional[PluginManager] = field(default=None, repr=False)

    def get_config(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.config.get(key, default)

    def get_plugin(self, name: str) -> Optional[UnitPlugin]:
        return self.manager.get_plugin(name) if self.manager is not None else None

    def log(self, level: LogLevel, message: str) -> None:
        logger.log(level.value, message)


PluginProvider = Union[Callable[[], Iterable[UnitPlugin]], Iterable[UnitPlugin]]


class PluginManager:
    """Loads, tracks and unloads plugins for one registry.

    Plugin loading is meant to run once, from one thread, before steady-state traffic.
    """

    def __init__(self, registry: Optional[ThreadSafeRegistry] = None,
                 config: Optional[Mapping[str, str]] = None,
                 modules: Optional[ModuleRegistry] = None):
        self.registry: ThreadSafeRegistry = registry if registry is not None else default_registry()
        self.modules = modules if modules is not None else ModuleRegistry(self.registry)
        self.config: Dict[str, str] = dict(config or {})
        self._plugins: Dict[str, UnitPlugin] = {}

    def create_context(self) -> DefaultPluginContext:
        return DefaultPluginContext(self.registry, self.config, self)

    def load_plugins(self, provider: Optional[PluginProvider] = None,
                     context: Optional[PluginContext] = None) -> List[str]:
        """Initialize every enabled plugin in ascending priority order.

        A plugin that fails to initialize (or whose modules fail to configure) is logged and skipped;
        the remaining plugins still load.

        Args:
            provider: Callable or iterable producing plugin instances. Defaults to `entry_point_provider()`.
            context: Context passed to each plugin. Defaults to `create_context()`.

        Returns:
            Names of the plugins loaded by this call, in load order.
        """
        if provider is None:
            provider = entry_point_provider()
        if context is None:
            context = self.create_context()
        discovered = list(provider() if callable(provider) else provider)

        enabled: List[UnitPlugin] = []
        for plugin in discovered:
            try:
                if plugin.is_enabled():
                    enabled.append(plugin)
                else:
                    logger.info(f"Plugin {plugin.name!r} is disabled, skipped")
            except Exception as e:
                logger.error(f"Plugin {getattr(plugin, 'name', plugin)!r} skipped: {e}")

        loaded: List[str] = []
        for plugin in sorted(enabled, key=lambda p: p.priority):
            try:
                self._activate(plugin, context)
            except Exception as e:
                logger.error(f"Failed to load plugin {plugin.name!r}: {e}")
                continue
            loaded.append(plugin.name)
        logger.info(f"Loaded {len(loaded)} of {len(discovered)} plugins")
        return loaded

    def load_plugin(self, plugin: UnitPlugin, context: Optional[PluginContext] = None) -> None:
        """Initialize a single plugin.

        Raises:
            PluginError: If the plugin is already loaded or fails to initialize.
        """
        try:
            self._activate(plugin, context if context is not None else self.create_context())
        except PluginError:
            raise
        except Exception as e:
            raise PluginError(plugin.name, str(e)) from e

    def _activate(self, plugin: UnitPlugin, context: PluginContext) -> None:
        if plugin.name in self._plugins:
            raise PluginError(plugin.name, "already loaded")
        plugin.initialize(context)
        target = context.registry
        try:
            for module in plugin.get_modules():
                self.modules.register(module, registry=target)
        except Exception:
            # initialized but not loaded
            self._shutdown(plugin)
            raise
        self._plugins[plugin.name] = plugin
        logger.info(f"Loaded plugin {plugin.name} {plugin.version} (priority {plugin.priority})")

    def get_plugin(self, name: str) -> Optional[UnitPlugin]:
        return self._plugins.get(name)

    def get_all_plugins(self) -> List[UnitPlugin]:
        """Loaded plugins in load order."""
        return list(self._plugins.values())

    def unload_plugin(self, name: str) -> bool:
        """Shut a plugin down and forget it. Definitions it registered stay in the registry."""
        plugin = self._plugins.pop(name, None)
        if plugin is None:
            return False
        self._shutdown(plugin)
        logger.info(f"Unloaded plugin {name}")
        return True

    @staticmethod
    def _shutdown(plugin: UnitPlugin) -> None:
        try:
            plugin.shutdown()
        except Exception as e:
            logger.exception(f"Error shutting down plugin {plugin.name!r}: {e}")

    def unload_all(self) -> None:
        for name in reversed(list(self._plugins)):
            self.unload_plugin(name)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins

    def __len__(self) -> int:
        return len(self._plugins)


def _get_entries_by_group(group: str) -> Set[EntryPoint]:
    all_entry_points = entry_points()
    if hasattr(all_entry_points, 'select'):
        return set(all_entry_points.select(group=group))
    return set(all_entry_points.get(group, []))  # type: ignore[attr-defined]


def _load_from_entry(ep: EntryPoint) -> Optional[UnitPlugin]:
    try:
        handle = ep.load()
        plugin = handle() if isinstance(handle, type) else handle
        if not isinstance(plugin, UnitPlugin):
            raise TypeError(f"{ep.value} does not provide a UnitPlugin")
        logger.debug(f"Discovered plugin {plugin.name!r} from {ep.value}")
        return plugin
    except ImportError as e:
        logger.error(f"Error loading plugin from {ep.value}: {e}")
    except AttributeError as e:
        logger.error(f"Error loading attribute from {ep.value}: {e}")
    except Exception as e:
        logger.exception(f"An unexpected error occurred loading {ep.value}: {e}")
    return None


def entry_point_provider(group: str = DEFAULT_ENTRY_GROUP) -> Callable[[], List[UnitPlugin]]:
    """Provider discovering plugins through installed package entry points.

    Each entry point may reference a `UnitPlugin` subclass (instantiated without arguments) or an instance.
    Entries that fail to load are logged and skipped.
    """
    def provide() -> List[UnitPlugin]:
        plugins = []
        for ep in sorted(_get_entries_by_group(group), key=lambda e: e.name):
            if (plugin := _load_from_entry(ep)) is not None:
                plugins.append(plugin)
        return plugins
    return provide
