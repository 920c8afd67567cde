"""Typed values with units.

This module provides the type-safe value layer on top of the unit registry. Every value is stored as a
canonical magnitude in its category's base unit (meters, kilograms, liters, kelvin, square meters, pieces)
together with the definition it is displayed in and a precision/rounding policy used for formatting.

The base class [`ConvertibleValue`][py_ecu.unit.ConvertibleValue] carries all behaviour; each category has a
thin subclass bound to it, so a `Length` can never be constructed from, converted to or added to a weight.

Key Features:
    * Parsing of ``"<numeral> <unit>"`` strings, exponents included
    * Conversion, arithmetic and ordering on canonical magnitudes
    * Uniform precision and rounding policy for every category
    * Ad-hoc packaging units for counted quantities

Examples:
    >>> # ----------------- Creation and conversion -----------------
    >>> d = Length.parse("1m")
    >>> d.to("cm").value
    100.0
    >>> d << "ft"                  # Conversion operator -> Length
    <Length: 3.280839895013123 ft (1.0)>
    >>> d >> "mm"                  # Conversion operator -> float
    1000.0
    >>> # ----------------------- Arithmetic -----------------------
    >>> (Length.parse("5m") + Length.parse("300cm")).base_value
    8.0
    >>> str(Length.meters(10) / 4)
    '2.5 m'
    >>> Length.meters(3) / Length.centimeters(50)
    6.0
    >>> # ----------------------- Formatting -----------------------
    >>> Weight.parse("1.23456 kg").with_precision(2).format()
    '1.23 kg'
"""
from __future__ import annotations

import decimal
import math
import re
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional, Tuple, Type, Union

from deprecated import deprecated
from typing_extensions import Self

from py_ecu.definitions import Number, RoundingMode, UnitCategory, UnitDefinition, is_number
from py_ecu.exceptions import (CategoryMismatchError, InvalidArgumentError, InvalidFormatError,
                               UnknownUnitError)
from py_ecu.registry import RegistryLike, default_registry

__all__ = (
    'ConvertibleValue',
    'Measurement',
    'Length',
    'Weight',
    'Volume',
    'Temperature',
    'Area',
    'Quantity',
    'parse',
    'of',
    'split_value_and_unit',
    'EQUALITY_TOLERANCE',
)

EQUALITY_TOLERANCE: float = 1e-10

_VALUE_WITH_UNIT = re.compile(r'^([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)\s*(.*)$', re.DOTALL)

UnitArg = Union[str, UnitDefinition]


def split_value_and_unit(text: str) -> Tuple[float, str]:
    """Split ``"<numeral> <unit>"`` into a float and the trimmed unit token.

    Raises:
        TypeError: If `text` is not a string.
        InvalidFormatError: If the text does not match the grammar or the numeral is not finite.

    Examples:
        >>> split_value_and_unit("  -1.5e3 fl oz ")
        (-1500.0, 'fl oz')
    """
    if not isinstance(text, str):
        raise TypeError(f"Expected str, got {type(text).__name__}")
    match = _VALUE_WITH_UNIT.match(text.strip())
    if match is None:
        raise InvalidFormatError(f"Invalid value format: {text!r}")
    numeral, unit = match.group(1), match.group(2).strip()
    if not unit:
        raise InvalidFormatError(f"Missing unit in {text!r}")
    value = float(numeral)
    if not math.isfinite(value):
        raise InvalidFormatError(f"Numeral out of range in {text!r}")
    return value, unit


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


class ConvertibleValue:
    """Base class for typed values.

    Attributes:
        _base: Canonical magnitude in the category's base unit.
        _definition: Definition the value is displayed in.
        _precision: Decimal digits used by `format()`; -1 means full precision.
        _rounding: Rounding mode used by `format()`.
        _registry: Registry used to resolve target units in `to()`.

    Subclasses bind themselves to a category with a class keyword and are then used by
    the module-level `parse()` / `of()` for values of that category:

    ```python
    class Pressure(ConvertibleValue, category=UnitCategory.PRESSURE):
        __slots__ = ()
    ```
    """

    __slots__ = ('_base', '_definition', '_precision', '_rounding', '_registry')

    category: ClassVar[Optional[UnitCategory]] = None
    _types: ClassVar[Dict[UnitCategory, Type[ConvertibleValue]]] = {}

    _base: float
    _definition: UnitDefinition
    _precision: int
    _rounding: RoundingMode
    _registry: Optional[RegistryLike]

    def __init_subclass__(cls, category: Optional[UnitCategory] = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if category is not None:
            cls.category = category
            ConvertibleValue._types[category] = cls

    def __init__(self, value: Number, unit: UnitArg, registry: Optional[RegistryLike] = None):
        """Create a value of `value` in `unit`.

        Raises:
            TypeError: If `value` is not a number.
            UnknownUnitError: If `unit` is not registered.
            CategoryMismatchError: If `unit` belongs to another category than this type.
        """
        if not is_number(value):
            raise TypeError(f"Numeric value expected, got {type(value).__name__}")
        definition = self._resolve(unit, registry)
        self._check_category(definition)
        self._base = definition.to_base(value)
        self._definition = definition
        self._precision = -1
        self._rounding = RoundingMode.HALF_UP
        self._registry = registry

    @classmethod
    def _resolve(cls, unit: UnitArg, registry: Optional[RegistryLike]) -> UnitDefinition:
        if isinstance(unit, UnitDefinition):
            return unit
        if not isinstance(unit, str):
            raise TypeError(f"Unit symbol expected, got {type(unit).__name__}")
        definition = (registry if registry is not None else default_registry()).get_definition(unit)
        if definition is None:
            raise UnknownUnitError(unit)
        return definition

    @classmethod
    def _check_category(cls, definition: UnitDefinition) -> None:
        if cls.category is not None and definition.category is not cls.category:
            raise CategoryMismatchError(
                cls.category, definition.category,
                f"{cls.__name__}: unit {definition.symbol!r} is a {definition.category.value} unit"
            )

    @classmethod
    def _type_for(cls, definition: UnitDefinition) -> Type[ConvertibleValue]:
        if cls is ConvertibleValue:
            return ConvertibleValue._types.get(definition.category, Measurement)
        return cls

    @classmethod
    def of(cls, value: Number, unit: UnitArg, registry: Optional[RegistryLike] = None) -> Self:
        """Create a value from a number and a unit symbol.

        Called on `ConvertibleValue` itself, returns an instance of the type bound to the unit's category.
        """
        definition = cls._resolve(unit, registry)
        return cls._type_for(definition)(value, definition, registry)  # type: ignore[return-value]

    @classmethod
    def parse(cls, text: str, registry: Optional[RegistryLike] = None) -> Self:
        """Create a value from ``"<numeral> <unit>"`` text, e.g. ``"1.5 km"`` or ``"-2e3mm"``.

        Raises:
            InvalidFormatError: If the text does not match the grammar.
            UnknownUnitError: If the unit token is not registered.
            CategoryMismatchError: If the unit belongs to another category than this type.
        """
        value, unit = split_value_and_unit(text)
        return cls.of(value, unit, registry)

    @classmethod
    def from_base(cls, base_value: Number, unit: UnitArg, registry: Optional[RegistryLike] = None) -> Self:
        """Create a value from a canonical magnitude, displayed in `unit`."""
        definition = cls._resolve(unit, registry)
        target = cls._type_for(definition)
        target._check_category(definition)
        instance = object.__new__(target)
        instance._base = float(base_value)
        instance._definition = definition
        instance._precision = -1
        instance._rounding = RoundingMode.HALF_UP
        instance._registry = registry
        return instance  # type: ignore[return-value]

    def _replace(self, base: Optional[float] = None, definition: Optional[UnitDefinition] = None,
                 precision: Optional[int] = None, rounding: Optional[RoundingMode] = None) -> Self:
        clone = object.__new__(self.__class__)
        clone._base = self._base if base is None else base
        clone._definition = self._definition if definition is None else definition
        clone._precision = self._precision if precision is None else precision
        clone._rounding = self._rounding if rounding is None else rounding
        clone._registry = self._registry
        return clone

    @property
    def base_value(self) -> float:
        """Canonical magnitude in the category's base unit."""
        return self._base

    @property
    def value(self) -> float:
        """Magnitude expressed in the display unit."""
        return self._definition.from_base(self._base)

    @property
    def unit(self) -> UnitDefinition:
        return self._definition

    @property
    def symbol(self) -> str:
        return self._definition.symbol

    @property
    def display_name(self) -> str:
        return self._definition.display_name

    @property
    def unit_category(self) -> UnitCategory:
        return self._definition.category

    @property
    def precision(self) -> int:
        return self._precision

    @property
    def rounding_mode(self) -> RoundingMode:
        return self._rounding

    @property
    def registry(self) -> RegistryLike:
        return self._registry if self._registry is not None else default_registry()

    def to(self, unit: UnitArg) -> Self:
        """Same canonical magnitude, displayed in `unit`.

        Raises:
            UnknownUnitError: If `unit` is not registered.
            CategoryMismatchError: If `unit` belongs to another category.
        """
        definition = self._resolve(unit, self._registry)
        if definition.category is not self.unit_category:
            raise CategoryMismatchError(
                self.unit_category, definition.category,
                f"Cannot convert {self.symbol!r} to {definition.symbol!r}"
            )
        return self._replace(definition=definition)

    def get_in(self, unit: UnitArg) -> float:
        """Numeric magnitude in `unit`."""
        return self.to(unit).value

    def convert_custom(self, target: str) -> float:
        """Apply the direct conversion function the display unit registered for `target`.

        Raises:
            InvalidArgumentError: If the display unit has no custom conversion to `target`.
        """
        fn = self._definition.custom_converter(target)
        if fn is None:
            raise InvalidArgumentError(f"No custom conversion from {self.symbol!r} to {target!r}")
        return float(fn(self.value))

    @deprecated(reason="Use `to()` instead", version="1.0.0")
    def convert(self, unit: UnitArg) -> Self:
        return self.to(unit)

    __rshift__ = get_in

    def __lshift__(self, unit: UnitArg) -> Self:
        return self.to(unit)

    def with_precision(self, digits: int) -> Self:
        """Copy formatted with a fixed number of decimal digits.

        Raises:
            InvalidArgumentError: If `digits` is negative or not an integer.
        """
        if not isinstance(digits, int) or isinstance(digits, bool) or digits < 0:
            raise InvalidArgumentError(f"Precision must be a non-negative integer, got {digits!r}")
        return self._replace(precision=digits)

    def with_full_precision(self) -> Self:
        return self._replace(precision=-1)

    def with_rounding(self, mode: RoundingMode) -> Self:
        if not isinstance(mode, RoundingMode):
            raise InvalidArgumentError(f"RoundingMode expected, got {mode!r}")
        return self._replace(rounding=mode)

    def _quantized(self) -> Optional[Decimal]:
        value = self.value
        if self._precision < 0 or not math.isfinite(value):
            return None
        exact = Decimal(repr(value))
        with decimal.localcontext() as ctx:
            ctx.prec = max(28, exact.adjusted() + self._precision + 2)
            return exact.quantize(Decimal(1).scaleb(-self._precision), rounding=self._rounding.value)

    @property
    def rounded_value(self) -> float:
        """Display magnitude after applying precision and rounding."""
        quantized = self._quantized()
        return self.value if quantized is None else float(quantized)

    def format(self) -> str:
        """Render ``"<numeral> <symbol>"``.

        The numeral has exactly `precision` decimal digits when precision >= 0,
        otherwise it is the full representation of the floating value.
        """
        quantized = self._quantized()
        numeral = repr(self.value) if quantized is None else str(quantized)
        return f"{numeral} {self.symbol}"

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.value!r} {self.symbol} ({self._base!r})>"

    def __float__(self) -> float:
        return float(self._base)

    def is_valid(self) -> bool:
        """True when the canonical magnitude is finite."""
        return math.isfinite(self._base)

    def is_within_range(self, low: Union[Number, ConvertibleValue], high: Union[Number, ConvertibleValue]) -> bool:
        """Inclusive range check on canonical magnitudes. Plain numbers are read as base-unit magnitudes."""
        return self._base_of(low) <= self._base <= self._base_of(high)

    def _base_of(self, other: Union[Number, ConvertibleValue]) -> float:
        if isinstance(other, ConvertibleValue):
            self._same_category(other, 'compare')
            return other._base
        if is_number(other):
            return float(other)
        raise TypeError(f"Number or {self.__class__.__name__} expected, got {type(other).__name__}")

    def _same_category(self, other: ConvertibleValue, operation: str) -> None:
        if other.unit_category is not self.unit_category:
            raise CategoryMismatchError(
                self.unit_category, other.unit_category,
                f"Cannot {operation} {other.unit_category.value} and {self.unit_category.value} values"
            )

    # region comparison
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConvertibleValue):
            return NotImplemented
        return (other.unit_category is self.unit_category
                and abs(self._base - other._base) < EQUALITY_TOLERANCE)

    def __hash__(self) -> int:
        # equality is tolerance based, so only the category can take part
        return hash(self.unit_category)

    def __lt__(self, other: ConvertibleValue) -> bool:
        if not isinstance(other, ConvertibleValue):
            return NotImplemented
        self._same_category(other, 'compare')
        return self._base < other._base

    def __le__(self, other: ConvertibleValue) -> bool:
        if not isinstance(other, ConvertibleValue):
            return NotImplemented
        self._same_category(other, 'compare')
        return self._base <= other._base

    def __gt__(self, other: ConvertibleValue) -> bool:
        if not isinstance(other, ConvertibleValue):
            return NotImplemented
        self._same_category(other, 'compare')
        return self._base > other._base

    def __ge__(self, other: ConvertibleValue) -> bool:
        if not isinstance(other, ConvertibleValue):
            return NotImplemented
        self._same_category(other, 'compare')
        return self._base >= other._base
    # endregion comparison

    # region arithmetic
    def __add__(self, other: ConvertibleValue) -> Self:
        """Sum of canonical magnitudes, displayed in the left operand's unit."""
        if not isinstance(other, ConvertibleValue):
            return NotImplemented
        self._same_category(other, 'add')
        return self._replace(base=self._base + other._base)

    def __sub__(self, other: ConvertibleValue) -> Self:
        if not isinstance(other, ConvertibleValue):
            return NotImplemented
        self._same_category(other, 'subtract')
        return self._replace(base=self._base - other._base)

    def __mul__(self, factor: Number) -> Self:
        if not is_number(factor):
            return NotImplemented
        return self._replace(base=self._base * factor)

    def __rmul__(self, factor: Number) -> Self:
        return self.__mul__(factor)

    def __truediv__(self, other: Union[Number, ConvertibleValue]) -> Union[Self, float]:
        """Divide by a scalar, or by a same-category value for a plain ratio.

        Raises:
            InvalidArgumentError: On division by zero.
            CategoryMismatchError: When dividing by a value of another category.
        """
        if isinstance(other, ConvertibleValue):
            self._same_category(other, 'divide')
            if other._base == 0:
                raise InvalidArgumentError("Division by zero")
            return self._base / other._base
        if not is_number(other):
            return NotImplemented
        if other == 0:
            raise InvalidArgumentError("Division by zero")
        return self._replace(base=self._base / other)

    def __neg__(self) -> Self:
        return self._replace(base=-self._base)

    def __abs__(self) -> Self:
        return self._replace(base=abs(self._base))
    # endregion arithmetic


def _named(symbol: str):
    def factory(cls, value: Number, registry: Optional[RegistryLike] = None):
        return cls.of(value, symbol, registry)
    factory.__doc__ = f"Create a value in `{symbol}`."
    return classmethod(factory)


class Measurement(ConvertibleValue):
    """Value of any category, for categories without a dedicated type."""

    __slots__ = ()


class Length(ConvertibleValue, category=UnitCategory.LENGTH):
    """Length, canonical unit meter."""

    __slots__ = ()

    meters = _named('m')
    centimeters = _named('cm')
    millimeters = _named('mm')
    kilometers = _named('km')
    inches = _named('in')
    feet = _named('ft')
    yards = _named('yd')
    miles = _named('mi')

    @property
    def in_meters(self) -> float:
        return self._base


class Weight(ConvertibleValue, category=UnitCategory.WEIGHT):
    """Weight, canonical unit kilogram."""

    __slots__ = ()

    kilograms = _named('kg')
    grams = _named('g')
    milligrams = _named('mg')
    tonnes = _named('t')
    pounds = _named('lb')
    ounces = _named('oz')

    @property
    def in_kilograms(self) -> float:
        return self._base


class Volume(ConvertibleValue, category=UnitCategory.VOLUME):
    """Volume, canonical unit liter."""

    __slots__ = ()

    liters = _named('l')
    milliliters = _named('ml')
    cubic_meters = _named('m³')
    gallons = _named('gal')
    quarts = _named('qt')
    pints = _named('pt')
    fluid_ounces = _named('fl oz')

    @property
    def in_liters(self) -> float:
        return self._base


class Temperature(ConvertibleValue, category=UnitCategory.TEMPERATURE):
    """Temperature, canonical unit kelvin.

    Temperature units convert affinely, so readouts go through each definition's strategy
    rather than a plain ratio:

        >>> round(Temperature.celsius(100).get_in('°F'), 6)
        212.0
    """

    __slots__ = ()

    kelvin = _named('K')
    celsius = _named('°C')
    fahrenheit = _named('°F')
    rankine = _named('°R')

    @property
    def in_kelvin(self) -> float:
        return self._base

    @property
    def in_celsius(self) -> float:
        return self.get_in('°C')

    @property
    def in_fahrenheit(self) -> float:
        return self.get_in('°F')

    def difference(self, other: Temperature) -> float:
        """Temperature difference ``self - other`` in kelvin."""
        if not isinstance(other, ConvertibleValue):
            raise TypeError(f"Temperature expected, got {type(other).__name__}")
        self._same_category(other, 'subtract')
        return self._base - other._base

    def __sub__(self, other: ConvertibleValue) -> float:  # type: ignore[override]
        """``a - b`` is the difference in kelvin, see `difference()`."""
        if not isinstance(other, ConvertibleValue):
            return NotImplemented
        return self.difference(other)

    def __add__(self, other: ConvertibleValue) -> Self:
        raise TypeError("Absolute temperatures cannot be added, use shift() to apply a delta")

    def shift(self, delta: Number) -> Self:
        """Raise (or lower, for a negative `delta`) by `delta` degrees of the display unit."""
        if not is_number(delta):
            raise TypeError(f"Numeric delta expected, got {type(delta).__name__}")
        return self._replace(base=self._base + delta * self._definition.base_ratio)


class Area(ConvertibleValue, category=UnitCategory.AREA):
    """Area, canonical unit square meter."""

    __slots__ = ()

    square_meters = _named('m²')
    square_centimeters = _named('cm²')
    square_kilometers = _named('km²')
    square_feet = _named('ft²')
    hectares = _named('ha')
    acres = _named('ac')

    @property
    def in_square_meters(self) -> float:
        return self._base


class Quantity(ConvertibleValue, category=UnitCategory.QUANTITY):
    """Counted quantity, canonical unit piece.

    Besides the registered counting units (dozen, gross, ream, ...) a quantity can be displayed in
    ad-hoc packaging units whose size is chosen by the caller and which are never registered:

        >>> Quantity.pieces(120).to_boxes(12).format()
        '10.0 box(12)'
        >>> Quantity.pieces(120).to_boxes(12).to_pieces().value
        120.0
    """

    __slots__ = ()

    pieces = _named('pcs')
    dozens = _named('dz')
    gross = _named('gr')
    scores = _named('score')
    reams = _named('ream')

    @property
    def in_pieces(self) -> float:
        return self._base

    def _packaged(self, kind: str, size: Number) -> Self:
        if not is_number(size) or not math.isfinite(size) or size <= 0:
            raise InvalidArgumentError(f"{kind.capitalize()} size must be positive, got {size!r}")
        label = _format_number(size)
        definition = UnitDefinition(
            symbol=f"{kind}({label})",
            display_name=f"{label}-{kind}",
            category=UnitCategory.QUANTITY,
            base_ratio=float(size),
        )
        return self._replace(definition=definition)

    def to_boxes(self, pieces_per_box: Number) -> Self:
        return self._packaged('box', pieces_per_box)

    def to_pallets(self, pieces_per_pallet: Number) -> Self:
        return self._packaged('pallet', pieces_per_pallet)

    def to_packages(self, pieces_per_package: Number) -> Self:
        return self._packaged('pack', pieces_per_package)

    def to_pieces(self) -> Self:
        base = self.registry.get_base_unit(UnitCategory.QUANTITY)
        return self.to(base if base is not None else 'pcs')


def parse(text: str, registry: Optional[RegistryLike] = None) -> ConvertibleValue:
    """Parse text into the value type bound to the unit's category.

    Examples:
        >>> type(parse("3 lb")).__name__
        'Weight'
    """
    return ConvertibleValue.parse(text, registry)


def of(value: Number, unit: UnitArg, registry: Optional[RegistryLike] = None) -> ConvertibleValue:
    """Create a value of the type bound to `unit`'s category."""
    return ConvertibleValue.of(value, unit, registry)
