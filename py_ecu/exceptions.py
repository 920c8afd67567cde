"""py_ecu exception types.

This module provides the exception hierarchy for the error conditions that can occur
while resolving unit symbols, converting values and loading extensions.

Exception Hierarchy
-------------------

Every py_ecu error also derives from the closest built-in exception, so generic
handlers (``except ValueError``) keep working:

Exception (built-in Python)
└── UnitError
    ├── UnknownUnitError        (also LookupError)
    ├── CategoryMismatchError   (also TypeError)
    ├── InvalidFormatError      (also ValueError)
    ├── InvalidArgumentError    (also ValueError)
    └── PluginError             (also RuntimeError)

Exception Types
---------------

- UnknownUnitError: A unit symbol is not present in the registry. Contains:
  - symbol: The symbol that failed to resolve

- CategoryMismatchError: A resolved unit belongs to a different category than the one
  required by the value type, or the two operands of ``+``/``-`` differ in category. Contains:
  - expected: The required category
  - actual: The category that was found

- InvalidFormatError: Input text does not match the ``<numeral> <unit>`` grammar, or a
  definition document is malformed.

- InvalidArgumentError: A precondition on an argument was violated: non-positive packaging size,
  division by zero, negative precision, non-positive base ratio and so on.

- PluginError: Raised by `PluginManager.load_plugin` for a plugin that cannot be initialized.
  `PluginManager.load_plugins` never raises it; failures there are logged and the plugin skipped.
"""
from __future__ import annotations

from typing import Any, Optional

__all__ = (
    'UnitError',
    'UnknownUnitError',
    'CategoryMismatchError',
    'InvalidFormatError',
    'InvalidArgumentError',
    'PluginError',
)


class UnitError(Exception):
    """Base class for all py_ecu errors."""


class UnknownUnitError(UnitError, LookupError):
    """Unit symbol not present in the registry."""

    def __init__(self, symbol: str, message: Optional[str] = None):
        self.symbol = symbol
        super().__init__(message or f"Unknown unit: {symbol!r}")


class CategoryMismatchError(UnitError, TypeError):
    """Unit category differs from the required one."""

    def __init__(self, expected: Any, actual: Any, message: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(message or f"Category mismatch: expected {expected}, got {actual}")


class InvalidFormatError(UnitError, ValueError):
    """Text could not be parsed as a value with a unit."""


class InvalidArgumentError(UnitError, ValueError):
    """Argument precondition violated."""


class PluginError(UnitError, RuntimeError):
    """Plugin could not be initialized."""

    def __init__(self, plugin_name: str, message: str):
        self.plugin_name = plugin_name
        super().__init__(f"Plugin {plugin_name!r}: {message}")
