"""Unit definition records, categories and conversion strategies.

A `UnitDefinition` is an immutable description of a single unit symbol. It carries no behaviour of its
own apart from the conversion strategy derived from its category:

    * multiplicative categories convert with ``base = value * base_ratio``
    * affine categories (temperature) convert with ``base = (value + offset) * base_ratio``

Examples:
    >>> km = UnitDefinition('km', 'kilometer', UnitCategory.LENGTH, 1000.0, aliases={'kilometers'})
    >>> km.strategy.to_base(2)
    2000.0
    >>> fahrenheit = UnitDefinition('°F', 'fahrenheit', UnitCategory.TEMPERATURE, 5 / 9, offset=459.67)
    >>> round(fahrenheit.strategy.to_base(32), 2)
    273.15
"""
from __future__ import annotations

import decimal
import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, FrozenSet, Iterable, Mapping, NamedTuple, Optional, Union

from typing_extensions import TypeAlias

from py_ecu.exceptions import InvalidArgumentError

__all__ = (
    'Number',
    'UnitCategory',
    'RoundingMode',
    'Multiplicative',
    'Affine',
    'ConversionStrategy',
    'UnitDefinition',
    'is_number',
)

Number: TypeAlias = Union[float, int]


class UnitCategory(Enum):
    """Dimensional domain a unit belongs to. Conversions never cross categories."""

    LENGTH = 'length'
    WEIGHT = 'weight'
    VOLUME = 'volume'
    TEMPERATURE = 'temperature'
    AREA = 'area'
    QUANTITY = 'quantity'
    PRESSURE = 'pressure'
    SPEED = 'speed'
    ENERGY = 'energy'
    FLOW = 'flow'
    POWER = 'power'
    TORQUE = 'torque'
    FREQUENCY = 'frequency'

    @property
    def is_affine(self) -> bool:
        """True when units of this category convert with an offset as well as a scale."""
        return self is UnitCategory.TEMPERATURE

    @classmethod
    def from_name(cls, name: Union[str, UnitCategory]) -> UnitCategory:
        """Resolve a category from its name or value, case-insensitively.

        Raises:
            InvalidArgumentError: If no category has that name.
        """
        if isinstance(name, UnitCategory):
            return name
        if isinstance(name, str):
            key = name.strip().lower()
            for member in cls:
                if member.value == key:
                    return member
        raise InvalidArgumentError(f"Unknown unit category: {name!r}")

    def __repr__(self) -> str:
        return self.name


class RoundingMode(Enum):
    """Rounding policy applied when a value is formatted with a fixed precision."""

    HALF_UP = decimal.ROUND_HALF_UP
    HALF_DOWN = decimal.ROUND_HALF_DOWN
    HALF_EVEN = decimal.ROUND_HALF_EVEN
    UP = decimal.ROUND_CEILING
    DOWN = decimal.ROUND_FLOOR


class Multiplicative(NamedTuple):
    """``base = value * ratio``"""

    ratio: float

    def to_base(self, value: Number) -> float:
        return value * self.ratio

    def from_base(self, base: Number) -> float:
        return base / self.ratio


class Affine(NamedTuple):
    """``base = (value + offset) * scale``"""

    scale: float
    offset: float

    def to_base(self, value: Number) -> float:
        return (value + self.offset) * self.scale

    def from_base(self, base: Number) -> float:
        return base / self.scale - self.offset


ConversionStrategy: TypeAlias = Union[Multiplicative, Affine]
CustomConverter: TypeAlias = Callable[[float], float]


def is_number(value: object) -> bool:
    """True for int and float, but not bool."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class UnitDefinition:
    """Immutable description of one unit symbol.

    Attributes:
        symbol: Canonical symbol, unique (case-insensitively) within a registry.
        display_name: Human-readable label.
        category: Dimensional category of the unit.
        base_ratio: Factor converting one unit of this symbol into the category's base unit.
            For affine categories this is the scale applied after the offset.
        is_base_unit: True for the category's canonical base unit.
        aliases: Additional symbols resolving to this definition.
        offset: Offset added before scaling; only allowed for affine categories.
        conversions: Optional direct conversion functions keyed by lower-cased target symbol.
    """

    symbol: str
    display_name: str
    category: UnitCategory
    base_ratio: float
    is_base_unit: bool = False
    aliases: FrozenSet[str] = frozenset()
    offset: float = 0.0
    conversions: Mapping[str, CustomConverter] = field(default_factory=dict, compare=False, hash=False,
                                                      repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.symbol, str) or not self.symbol.strip():
            raise InvalidArgumentError("Unit symbol must be a non-empty string")
        if not isinstance(self.category, UnitCategory):
            object.__setattr__(self, 'category', UnitCategory.from_name(self.category))
        try:
            ratio = float(self.base_ratio)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(f"{self.symbol}: base ratio must be a number, got {self.base_ratio!r}") from e
        if not math.isfinite(ratio) or ratio <= 0:
            raise InvalidArgumentError(f"{self.symbol}: base ratio must be positive and finite, got {ratio}")
        if self.offset and not self.category.is_affine:
            raise InvalidArgumentError(f"{self.symbol}: offset is not allowed for {self.category.value} units")
        object.__setattr__(self, 'base_ratio', ratio)
        object.__setattr__(self, 'offset', float(self.offset))
        object.__setattr__(self, 'aliases', frozenset(_as_aliases(self.aliases)))
        object.__setattr__(self, 'conversions', MappingProxyType(
            {target.lower(): fn for target, fn in dict(self.conversions).items()}
        ))

    @property
    def key(self) -> str:
        """Lower-cased canonical symbol used as the registry key."""
        return self.symbol.lower()

    @property
    def keys(self) -> FrozenSet[str]:
        """Every lower-cased key this definition is registered under."""
        return frozenset({self.key, *(alias.lower() for alias in self.aliases)})

    @property
    def strategy(self) -> ConversionStrategy:
        """Conversion strategy selected by the category tag."""
        if self.category.is_affine:
            return Affine(self.base_ratio, self.offset)
        return Multiplicative(self.base_ratio)

    def to_base(self, value: Number) -> float:
        return self.strategy.to_base(value)

    def from_base(self, base: Number) -> float:
        return self.strategy.from_base(base)

    def custom_converter(self, target: str) -> Optional[CustomConverter]:
        """Return the direct conversion function registered for `target`, if any."""
        return self.conversions.get(target.lower())


def _as_aliases(aliases: Union[str, Iterable[str], None]) -> Iterable[str]:
    if aliases is None:
        return ()
    if isinstance(aliases, str):
        return (aliases,)
    return (a for a in aliases if isinstance(a, str) and a.strip())
