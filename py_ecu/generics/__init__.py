"""Structural protocols for py_ecu extensions.

Protocol Definitions:
    UnitModule: Batch of unit definitions registered together
    PluginContext: Services available to a plugin during initialization
    UnitTarget: Registry-like object a module registers into

See Also:
    py_ecu.plugins: Module registry and plugin manager built on these protocols
"""

# Local imports
from .plugin import LogLevel, PluginContext, UnitModule, UnitTarget, module_id

__all__ = (
    'LogLevel',
    'PluginContext',
    'UnitModule',
    'UnitTarget',
    'module_id',
)
