"""Loading unit definitions from TOML documents.

A definition document holds one ``[[units]]`` table per unit:

```toml
[[units]]
symbol = "ftm"
display_name = "fathom"
category = "length"
base_ratio = 1.8288
aliases = ["fathom", "fathoms"]
```

Optional keys are ``is_base_unit`` (bool, default false) and ``offset`` (temperature only).
The default table shipped with the package lives in ``py_ecu/assets/units.toml``.
"""
from __future__ import annotations

import importlib.resources
import os
import sys
from functools import lru_cache
from typing import Any, Iterable, List, Mapping, Protocol, Sequence, Tuple, Union

from py_ecu.definitions import UnitCategory, UnitDefinition
from py_ecu.exceptions import InvalidFormatError
from py_ecu.logger import logger

if sys.version_info[:2] < (3, 11):
    import tomli as tomllib
else:
    import tomllib

__all__ = (
    'load_definitions',
    'loads_definitions',
    'definitions_from_tables',
    'apply_definitions',
    'default_definitions',
    'DEFAULT_UNITS_RESOURCE',
)

DEFAULT_UNITS_RESOURCE = 'assets/units.toml'

_REQUIRED_KEYS = ('symbol', 'display_name', 'category', 'base_ratio')
_KNOWN_KEYS = frozenset(_REQUIRED_KEYS + ('is_base_unit', 'aliases', 'offset'))


class _DefinitionTarget(Protocol):
    def register_all(self, definitions: Iterable[UnitDefinition]) -> Any: ...


def definitions_from_tables(tables: Any, source: str = '<tables>') -> List[UnitDefinition]:
    """Convert a sequence of ``[[units]]`` tables to definitions.

    Raises:
        InvalidFormatError: If the tables are not a list of mappings or a required key is missing.
        InvalidArgumentError: If a category is unknown or a ratio is invalid.
    """
    if not isinstance(tables, Sequence) or isinstance(tables, (str, bytes)):
        raise InvalidFormatError(f"{source}: `units` must be an array of tables")

    definitions: List[UnitDefinition] = []
    for index, table in enumerate(tables):
        if not isinstance(table, Mapping):
            raise InvalidFormatError(f"{source}: units[{index}] is not a table")
        if missing := [key for key in _REQUIRED_KEYS if key not in table]:
            raise InvalidFormatError(f"{source}: units[{index}] is missing {', '.join(missing)}")
        if unknown := sorted(set(table) - _KNOWN_KEYS):
            logger.warning(f"{source}: units[{index}] ignores unknown keys {unknown}")
        aliases = table.get('aliases', ())
        if isinstance(aliases, str):
            aliases = (aliases,)
        definitions.append(UnitDefinition(
            symbol=str(table['symbol']),
            display_name=str(table['display_name']),
            category=UnitCategory.from_name(table['category']),
            base_ratio=table['base_ratio'],
            is_base_unit=bool(table.get('is_base_unit', False)),
            aliases=frozenset(aliases),
            offset=table.get('offset', 0.0),
        ))
    return definitions


def loads_definitions(text: str, source: str = '<string>') -> List[UnitDefinition]:
    """Parse definitions from a TOML string."""
    try:
        document = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise InvalidFormatError(f"{source}: {e}") from e
    return definitions_from_tables(document.get('units', []), source)


def load_definitions(path: Union[str, os.PathLike]) -> List[UnitDefinition]:
    """Read definitions from a TOML file."""
    with open(path, 'rb') as fp:
        try:
            document = tomllib.load(fp)
        except tomllib.TOMLDecodeError as e:
            raise InvalidFormatError(f"{path}: {e}") from e
    definitions = definitions_from_tables(document.get('units', []), str(path))
    logger.debug(f"Loaded {len(definitions)} unit definitions from {path}")
    return definitions


def apply_definitions(target: _DefinitionTarget, definitions: Iterable[UnitDefinition]) -> int:
    """Register `definitions` into a `RegistryBuilder` or `ThreadSafeRegistry`. Returns the count."""
    definitions = list(definitions)
    target.register_all(definitions)
    return len(definitions)


@lru_cache(maxsize=None)
def default_definitions() -> Tuple[UnitDefinition, ...]:
    """The default unit table shipped with the package."""
    resource = importlib.resources.files('py_ecu').joinpath(DEFAULT_UNITS_RESOURCE)
    return tuple(loads_definitions(resource.read_text(encoding='utf-8'), DEFAULT_UNITS_RESOURCE))
