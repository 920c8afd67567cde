"""Converter interface.

This module provides the `Converter` class, the single entry point that ties a registry, a conversion cache,
a module registry and a plugin manager together. Every component it holds can be injected, so a converter
built around an isolated `ThreadSafeRegistry` never touches the process-wide defaults.

Examples:
    >>> ecu = Converter()
    >>> round(ecu.length("1 ft").to("in").value, 9)
    12.0
    >>> ecu.convert(1, "km", "m")
    1000.0
    >>> ecu.weight(2.5).symbol        # bare numbers use PreferredUnits
    'kg'
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Type, TypeVar, Union

from py_ecu.builder import BuilderBlock
from py_ecu.cache import CacheKey, ConversionCache, default_cache
from py_ecu.definitions import Number, UnitCategory, UnitDefinition, is_number
from py_ecu.exceptions import InvalidArgumentError
from py_ecu.generics.plugin import UnitModule
from py_ecu.loader import apply_definitions, load_definitions
from py_ecu.logger import logger
from py_ecu.metrics import ConversionMetrics, default_metrics
from py_ecu.plugins import ModuleRegistry, PluginManager, PluginProvider
from py_ecu.registry import ThreadSafeRegistry, default_registry
from py_ecu.settings import PreferredUnits, Settings
from py_ecu.unit import Area, ConvertibleValue, Length, Quantity, Temperature, Volume, Weight

__all__ = ('Converter',)

ValueT = TypeVar('ValueT', bound=ConvertibleValue)
ValueInput = Union[str, Number, ConvertibleValue]


@dataclass
class Converter:
    """Facade over the unit engine."""

    registry: ThreadSafeRegistry = field(default_factory=default_registry)
    cache: ConversionCache = field(default_factory=default_cache)
    metrics: ConversionMetrics = field(default_factory=default_metrics)
    config: Dict[str, str] = field(default_factory=Settings.plugin_config)
    modules: ModuleRegistry = field(init=False, repr=False, compare=False)
    plugins: PluginManager = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.modules = ModuleRegistry(self.registry)
        self.plugins = PluginManager(self.registry, self.config, self.modules)

    # region values
    def _value(self, cls: Type[ValueT], value: ValueInput, unit: Optional[str]) -> ValueT:
        if isinstance(value, str):
            parsed = cls.parse(value, self.registry)
            return parsed.to(unit) if unit is not None else parsed
        if isinstance(value, ConvertibleValue):
            typed = cls.from_base(value.base_value, value.unit, self.registry)
            return typed.to(unit) if unit is not None else typed
        if is_number(value):
            if unit is None and cls.category is not None:
                unit = PreferredUnits.for_category(cls.category)
            if unit is None:
                raise InvalidArgumentError(f"No unit given and no preferred unit for {cls.__name__}")
            return cls.of(value, unit, self.registry)
        raise TypeError(f"Expected text, number or value, got {type(value).__name__}")

    def length(self, value: ValueInput, unit: Optional[str] = None) -> Length:
        return self._value(Length, value, unit)

    def weight(self, value: ValueInput, unit: Optional[str] = None) -> Weight:
        return self._value(Weight, value, unit)

    def volume(self, value: ValueInput, unit: Optional[str] = None) -> Volume:
        return self._value(Volume, value, unit)

    def temperature(self, value: ValueInput, unit: Optional[str] = None) -> Temperature:
        return self._value(Temperature, value, unit)

    def area(self, value: ValueInput, unit: Optional[str] = None) -> Area:
        return self._value(Area, value, unit)

    def quantity(self, value: ValueInput, unit: Optional[str] = None) -> Quantity:
        return self._value(Quantity, value, unit)

    def parse(self, text: str) -> ConvertibleValue:
        """Parse text into the value type bound to the unit's category."""
        return ConvertibleValue.parse(text, self.registry)
    # endregion values

    # region conversion
    def convert(self, value: Number, from_unit: str, to_unit: str, precision: int = -1) -> float:
        """Convert a plain number, memoized in the conversion cache and recorded in `metrics`.

        Results are keyed by the registry snapshot they were computed against, so a registry write or
        another converter's registry never serves a stale result.

        Raises:
            TypeError: If `value` is not a number or a unit is not a string.
            UnknownUnitError: If either unit is not registered.
            CategoryMismatchError: If the units belong to different categories.
            InvalidArgumentError: If `precision` is below -1.
        """
        if not is_number(value):
            raise TypeError(f"Numeric value expected, got {type(value).__name__}")
        for unit in (from_unit, to_unit):
            if not isinstance(unit, str):
                raise TypeError(f"Unit symbol expected, got {type(unit).__name__}")
        if precision < -1:
            raise InvalidArgumentError(f"Precision must be -1 or non-negative, got {precision}")
        snapshot = self.registry.snapshot()
        from_key, to_key = from_unit.strip().lower(), to_unit.strip().lower()
        key = CacheKey(float(value), from_key, to_key, precision, snapshot.generation)

        def compute() -> float:
            converted = ConvertibleValue.of(value, from_unit, snapshot).to(to_unit)
            if precision >= 0:
                converted = converted.with_precision(precision)
            return converted.rounded_value

        source = snapshot.get_definition(from_unit)
        with self.metrics.measure(from_key, to_key, source.category if source is not None else None):
            return self.cache.get_or_compute(key, compute)

    def convert_all(self, values: Iterable[ValueInput], to_unit: str, from_unit: Optional[str] = None
                    ) -> List[ConvertibleValue]:
        """Convert a batch of texts, values or numbers (in `from_unit`) to `to_unit`."""
        converted = []
        for item in values:
            if isinstance(item, str):
                value = self.parse(item)
            elif isinstance(item, ConvertibleValue):
                value = item
            elif from_unit is not None:
                value = ConvertibleValue.of(item, from_unit, self.registry)
            else:
                raise InvalidArgumentError(f"Cannot convert bare number {item!r} without from_unit")
            converted.append(value.to(to_unit))
        return converted
    # endregion conversion

    # region info
    def supported_units(self, category: Union[UnitCategory, str]) -> List[str]:
        return sorted(self.registry.get_units_by_category(UnitCategory.from_name(category)))

    def is_valid_unit(self, symbol: str) -> bool:
        return self.registry.is_valid_unit(symbol)

    def unit_info(self, symbol: str) -> Optional[UnitDefinition]:
        return self.registry.get_definition(symbol)
    # endregion info

    # region extension
    def register(self, definition: UnitDefinition) -> None:
        self.registry.register(definition)
        self.cache.clear()

    def register_custom_unit(self, block: BuilderBlock) -> UnitDefinition:
        definition = self.registry.register_custom_unit(block)
        self.cache.clear()
        return definition

    def register_module(self, module: UnitModule, force: bool = False) -> bool:
        registered = self.modules.register(module, force)
        if registered:
            self.cache.clear()
        return registered

    def register_modules(self, modules: Iterable[UnitModule], force: bool = False) -> int:
        count = self.modules.register_all(modules, force)
        if count:
            self.cache.clear()
        return count

    def load_definitions(self, path: Union[str, os.PathLike]) -> int:
        """Register every definition from a TOML document."""
        count = apply_definitions(self.registry, load_definitions(path))
        self.cache.clear()
        logger.info(f"Registered {count} units from {path}")
        return count

    def load_plugins(self, provider: Optional[PluginProvider] = None) -> List[str]:
        loaded = self.plugins.load_plugins(provider)
        if loaded:
            self.cache.clear()
        return loaded

    def unload_plugins(self) -> None:
        self.plugins.unload_all()
    # endregion extension
