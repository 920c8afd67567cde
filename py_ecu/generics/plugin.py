"""Extension protocols for py_ecu.

This module defines the structural contracts consumed by the module/plugin system. Any object with the
right attributes satisfies them; inheriting from `py_ecu.plugins.SimpleUnitModule` or
`py_ecu.plugins.AbstractUnitPlugin` is a convenience, not a requirement.

Classes:
    UnitModule: A named batch of unit definitions registered together.
    PluginContext: Services handed to a plugin when it is initialized.
    UnitTarget: Anything a module can register definitions into.

Lifecycle:
    A plugin moves through **discovered -> initialized -> active -> shutdown**. The manager orders
    discovered plugins by ascending ``priority``, calls ``initialize(context)`` once, then hands each of
    the plugin's modules the registry through ``configure(registry)``. ``shutdown()`` runs on explicit
    unload and never retracts definitions already published to the registry.
"""

# Standard library imports
from enum import Enum
import logging
from typing import Any, Iterable, Optional

# Third-party imports
from typing_extensions import Protocol, runtime_checkable

# Local imports
from py_ecu.definitions import UnitDefinition

__all__ = ('UnitModule', 'PluginContext', 'UnitTarget', 'LogLevel', 'module_id')


class LogLevel(Enum):
    """Severity accepted by `PluginContext.log`, mapped onto `logging` levels."""

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARN = logging.WARNING
    ERROR = logging.ERROR


@runtime_checkable
class UnitTarget(Protocol):
    """`RegistryBuilder` and `ThreadSafeRegistry` both satisfy this."""

    def register(self, definition: UnitDefinition) -> Any:
        ...

    def register_all(self, definitions: Iterable[UnitDefinition]) -> Any:
        ...


@runtime_checkable
class UnitModule(Protocol):
    """Protocol for a batch of related unit definitions.

    Attributes:
        name: Module name.
        version: Module version; ``name:version`` identifies the module.
        description: Free-form description.

    Examples:
        ```python
        class NauticalModule:
            name = 'nautical'
            version = '1.0'
            description = 'Nautical length units'

            def configure(self, registry):
                registry.register(UnitDefinition('nmi', 'nautical mile', UnitCategory.LENGTH, 1852.0))
        ```
    """

    name: str
    version: str
    description: str

    def configure(self, registry: UnitTarget) -> None:
        """Register this module's definitions into `registry`."""
        ...


@runtime_checkable
class PluginContext(Protocol):
    """Services shared by every plugin during initialization."""

    @property
    def registry(self) -> UnitTarget:
        ...

    def get_config(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Configuration value for `key`, or `default`."""
        ...

    def get_plugin(self, name: str) -> Optional[Any]:
        """An already loaded plugin by name."""
        ...

    def log(self, level: LogLevel, message: str) -> None:
        ...


def module_id(module: UnitModule) -> str:
    """Identifier ``name:version`` used to de-duplicate modules."""
    return f"{module.name}:{module.version}"
