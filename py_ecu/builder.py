"""Declarative construction of `UnitDefinition` records.

Examples:
    >>> definition = (CustomUnitBuilder()
    ...               .symbol('ftm')
    ...               .display_name('fathom')
    ...               .category(UnitCategory.LENGTH)
    ...               .base_ratio(1.8288)
    ...               .alias('fathoms')
    ...               .build())
    >>> definition.base_ratio
    1.8288

    >>> barrel = custom_unit(lambda b: b.symbol('bbl').display_name('barrel').category('volume').base_ratio(158.987))
    >>> barrel.category
    VOLUME
"""
from __future__ import annotations

import math
from typing import Callable, Dict, List, Optional, Union

from typing_extensions import Self

from py_ecu.definitions import CustomConverter, Number, UnitCategory, UnitDefinition
from py_ecu.exceptions import InvalidArgumentError

__all__ = ('CustomUnitBuilder', 'custom_unit', 'BuilderBlock')


class CustomUnitBuilder:
    """Fluent builder producing a single `UnitDefinition`."""

    __slots__ = ('_symbol', '_display_name', '_category', '_base_ratio', '_is_base_unit',
                 '_aliases', '_offset', '_conversions')

    def __init__(self) -> None:
        self._symbol: Optional[str] = None
        self._display_name: Optional[str] = None
        self._category: Optional[UnitCategory] = None
        self._base_ratio: float = 1.0
        self._is_base_unit: bool = False
        self._aliases: List[str] = []
        self._offset: float = 0.0
        self._conversions: Dict[str, CustomConverter] = {}

    def symbol(self, symbol: str) -> Self:
        self._symbol = symbol
        return self

    def display_name(self, name: str) -> Self:
        self._display_name = name
        return self

    def category(self, category: Union[UnitCategory, str]) -> Self:
        self._category = UnitCategory.from_name(category)
        return self

    def base_ratio(self, ratio: Number) -> Self:
        """Set the factor to the category base unit.

        Raises:
            InvalidArgumentError: If `ratio` is not a positive finite number.
        """
        if not isinstance(ratio, (int, float)) or not math.isfinite(ratio) or ratio <= 0:
            raise InvalidArgumentError(f"Base ratio must be positive, got {ratio!r}")
        self._base_ratio = float(ratio)
        return self

    def offset(self, offset: Number) -> Self:
        self._offset = float(offset)
        return self

    def base_unit(self, is_base: bool = True) -> Self:
        self._is_base_unit = is_base
        return self

    def alias(self, *aliases: str) -> Self:
        self._aliases.extend(aliases)
        return self

    def custom_conversion(self, target_symbol: str, fn: CustomConverter) -> Self:
        """Attach a direct conversion function to `target_symbol`."""
        if not callable(fn):
            raise InvalidArgumentError(f"Custom conversion to {target_symbol!r} must be callable")
        self._conversions[target_symbol] = fn
        return self

    def build(self) -> UnitDefinition:
        """Build the definition.

        Raises:
            InvalidArgumentError: If symbol, display name or category has not been set.
        """
        symbol, display_name, category = self._symbol, self._display_name, self._category
        if not symbol or not display_name or category is None:
            missing = [name for name, value in (('symbol', symbol), ('display_name', display_name),
                                                ('category', category)) if not value]
            raise InvalidArgumentError(f"Custom unit is missing required field(s): {', '.join(missing)}")
        return UnitDefinition(
            symbol=symbol,
            display_name=display_name,
            category=category,
            base_ratio=self._base_ratio,
            is_base_unit=self._is_base_unit,
            aliases=frozenset(self._aliases),
            offset=self._offset,
            conversions=dict(self._conversions),
        )


BuilderBlock = Callable[[CustomUnitBuilder], object]


def custom_unit(block: BuilderBlock) -> UnitDefinition:
    """Run `block` against a fresh builder and return the built definition."""
    builder = CustomUnitBuilder()
    block(builder)
    return builder.build()
