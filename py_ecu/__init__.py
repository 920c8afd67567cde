"""Typed unit-of-measure engine with a runtime-extensible unit registry."""

import importlib.metadata

__version__ = importlib.metadata.version("py-ecu")

# Standard library imports
import importlib.resources
import os
import sys

# Third-party imports
from typing_extensions import Dict, Optional

# Local imports
from .logger import logger as log
from .loader import definitions_from_tables
from .registry import default_registry
from .settings import PreferredUnits, Settings

if sys.version_info[:2] < (3, 11):
    import tomli as tomllib
else:
    import tomllib


def _load_config(filepath: Optional[str] = None, suppress_warnings: bool = False) -> None:
    """Load configuration from a .pyecu.toml file.

    Args:
        filepath: Path to configuration file. If None, searches for .pyecu.toml or pyecu.toml
        suppress_warnings: If True, suppress warning messages
    """
    def find_pyecu_toml(start_dir: str = os.getcwd()) -> Optional[str]:
        """Search upward from `start_dir` for .pyecu.toml or pyecu.toml."""
        current_dir = os.path.abspath(start_dir)
        while True:
            for candidate in (os.path.join(current_dir, '.pyecu.toml'),
                              os.path.join(current_dir, 'pyecu.toml')):
                if os.path.exists(candidate):
                    return os.path.abspath(candidate)

            parent_dir = os.path.dirname(current_dir)
            if parent_dir == current_dir:
                return None
            current_dir = parent_dir

    if filepath is None:
        if (filepath := find_pyecu_toml()) is None:
            filepath = find_pyecu_toml(os.path.dirname(__file__))

    if filepath is not None:
        log.debug(f"Found {os.path.basename(filepath)} at {os.path.dirname(filepath)}")

        with open(filepath, "rb") as fp:
            _config = tomllib.load(fp)

        if _pyecu := _config.get('pyecu'):
            if units := _pyecu.get('units'):
                definitions = definitions_from_tables(units, filepath)
                default_registry().register_all(definitions)
                log.debug(f"Registered {len(definitions)} units from {filepath}")
            if cache := _pyecu.get('cache'):
                Settings.set_cache(cache.get('max_size'), cache.get('ttl'))
            if plugins := _pyecu.get('plugins'):
                Settings.set_plugin_config(plugins)
            if preferred_units := _pyecu.get('preferred_units'):
                PreferredUnits.set(**preferred_units)
            elif not suppress_warnings:
                log.warning("Config has no `pyecu.preferred_units` section")
        elif not suppress_warnings:
            log.warning("Config has no `pyecu` section")

    log.debug("PreferredUnits and Settings load success")


def _basic_config(filename: Optional[str] = None,
                  preferred_units: Optional[Dict[str, str]] = None,
                  suppress_warnings: bool = False) -> None:
    """Load preferred units and settings from file or Mapping.

    Args:
        filename: Configuration file path
        preferred_units: Dictionary of preferred units, category name to unit symbol
        suppress_warnings: If True, suppress warning messages

    Raises:
        ValueError: If both filename and preferred_units are provided
    """
    if filename and preferred_units:
        raise ValueError("Can't use preferred_units and config file at same time")
    if not filename and preferred_units:
        PreferredUnits.set(**preferred_units)
    else:
        _load_config(filename, suppress_warnings)


def _resolve_resource_path(path: str) -> str:
    """Resolve a resource path relative to the package."""
    return str(importlib.resources.files('py_ecu').joinpath(path))


def _load_imperial_units() -> None:
    """Load imperial unit preferences."""
    _basic_config(_resolve_resource_path('assets/.pyecu-imperial.toml'), suppress_warnings=True)


def _load_metric_units() -> None:
    """Load metric unit preferences."""
    _basic_config(_resolve_resource_path('assets/.pyecu-metric.toml'), suppress_warnings=True)


loadImperialUnits = _load_imperial_units
loadMetricUnits = _load_metric_units

basicConfig = _basic_config

basicConfig()


from .builder import CustomUnitBuilder, custom_unit
from .cache import CacheKey, CacheStats, ConversionCache, cached_convert, configure_default_cache, default_cache
from .definitions import Affine, Multiplicative, RoundingMode, UnitCategory, UnitDefinition
from .exceptions import (UnitError, UnknownUnitError, CategoryMismatchError, InvalidFormatError,
                         InvalidArgumentError, PluginError)
from .generics import LogLevel, PluginContext, UnitModule
from .interface import Converter
from .loader import apply_definitions, default_definitions, load_definitions, loads_definitions
from .logger import logger, enable_file_logging, disable_file_logging
from .metrics import ConversionMetrics, ConversionPair, MetricsSnapshot, default_metrics
from .plugins import (AbstractUnitPlugin, DefaultPluginContext, ModuleRegistry, PluginManager,
                      SimpleUnitModule, UnitPlugin, entry_point_provider)
from .registry import RegistryBuilder, ThreadSafeRegistry, UnitRegistry, set_default_registry
from .unit import (ConvertibleValue, Measurement, Length, Weight, Volume, Temperature, Area, Quantity,
                   parse, of)
from .validation import UnitValidator, ValidationResult, ValidationRule

# DRY: build __all__ from global symbols
_SKIP_GLOBALS = {
    # Skip Python builtins
    "__name__", "__doc__", "__package__", "__loader__", "__spec__",
    "__file__", "__cached__", "__builtins__",
    # Skip imported modules and helpers
    "tomllib", "sys", "os", "importlib", "log", "Dict", "Optional", "definitions_from_tables",
    # Skip private/internal symbols
    "_load_config", "_basic_config", "_resolve_resource_path",
    "_load_imperial_units", "_load_metric_units",
}
# Build __all__ from the module's global namespace
__all__ = [
    name for name in globals()
    if not name.startswith("_") and name not in _SKIP_GLOBALS
]
