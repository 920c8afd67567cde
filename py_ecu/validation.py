"""Validation of value/unit pairs before they enter a calculation.

`UnitValidator` runs a fixed set of generic rules (finite value, known unit) followed by the rules
registered for the unit's category. Default category rules reject temperatures below absolute zero
and negative lengths, weights, volumes and areas.

Examples:
    >>> validator = UnitValidator()
    >>> validator.validate(-300, '°C').is_valid
    False
    >>> validator.validate(5, 'kg').is_valid
    True
"""
from __future__ import annotations

import math
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

from py_ecu.definitions import Number, UnitCategory, UnitDefinition
from py_ecu.exceptions import InvalidArgumentError
from py_ecu.registry import RegistryLike, default_registry

__all__ = ('ValidationResult', 'ValidationRule', 'UnitValidator')

ABSOLUTE_ZERO_K: float = 0.0


class ValidationResult(NamedTuple):
    is_valid: bool
    errors: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.is_valid


class ValidationRule(NamedTuple):
    """Named check. `check` receives the value and its definition and returns an error message or None."""

    name: str
    check: Callable[[float, UnitDefinition], Optional[str]]


def _above_absolute_zero(value: float, definition: UnitDefinition) -> Optional[str]:
    if definition.to_base(value) < ABSOLUTE_ZERO_K:
        return f"{value} {definition.symbol} is below absolute zero"
    return None


def _non_negative(value: float, definition: UnitDefinition) -> Optional[str]:
    if value < 0:
        return f"{definition.category.value.capitalize()} cannot be negative: {value} {definition.symbol}"
    return None


def _default_rules() -> Dict[UnitCategory, List[ValidationRule]]:
    non_negative = ValidationRule('non_negative', _non_negative)
    return {
        UnitCategory.TEMPERATURE: [ValidationRule('above_absolute_zero', _above_absolute_zero)],
        UnitCategory.LENGTH: [non_negative],
        UnitCategory.WEIGHT: [non_negative],
        UnitCategory.VOLUME: [non_negative],
        UnitCategory.AREA: [non_negative],
    }


class UnitValidator:
    """Rule-based checker for value/unit pairs."""

    def __init__(self, registry: Optional[RegistryLike] = None):
        self._registry = registry
        self._rules = _default_rules()

    @property
    def registry(self) -> RegistryLike:
        return self._registry if self._registry is not None else default_registry()

    def register_rule(self, category: UnitCategory, rule: ValidationRule) -> None:
        self._rules.setdefault(category, []).append(rule)

    def rules_for(self, category: UnitCategory) -> List[ValidationRule]:
        return list(self._rules.get(category, ()))

    def validate(self, value: Number, unit: str) -> ValidationResult:
        if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value):
            return ValidationResult(False, (f"Value must be a finite number, got {value!r}",))
        definition = self.registry.get_definition(unit)
        if definition is None:
            return ValidationResult(False, (f"Unknown unit: {unit!r}",))
        errors = tuple(message for rule in self._rules.get(definition.category, ())
                       if (message := rule.check(float(value), definition)) is not None)
        return ValidationResult(not errors, errors)

    def validate_or_raise(self, value: Number, unit: str) -> None:
        """Raises `InvalidArgumentError` listing every failed rule."""
        result = self.validate(value, unit)
        if not result.is_valid:
            raise InvalidArgumentError("; ".join(result.errors))

    def validate_range(self, value: Number, unit: str, minimum: Number, maximum: Number) -> ValidationResult:
        """Validate, then check ``minimum <= value <= maximum`` in the same unit."""
        result = self.validate(value, unit)
        if not result.is_valid:
            return result
        if not minimum <= value <= maximum:
            return ValidationResult(False, (f"{value} {unit} is outside [{minimum}, {maximum}]",))
        return result
