"""Unit registry: immutable snapshots, a copy-on-write builder and a thread-safe holder.

`UnitRegistry` maps lower-cased symbols (aliases included, as separate keys to the same definition)
to `UnitDefinition` records and indexes the distinct definitions by category. It is never mutated
after construction, so a snapshot may be shared between threads without locking.

`RegistryBuilder` accumulates `register()` / `import_from()` calls and freezes them with `build()`.

`ThreadSafeRegistry` publishes a new snapshot for every write. Writers build the replacement
snapshot first and take the exclusive lock only to swap the reference, so readers are blocked
for the duration of a pointer assignment and never observe a half-built table.

Examples:
    >>> registry = UnitRegistry.with_defaults()
    >>> registry.get_conversion_ratio('km', 'm')
    1000.0
    >>> registry.get_definition('FEET').symbol
    'ft'
    >>> registry.get_conversion_ratio('km', 'kg') is None
    True
"""
from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager
from types import MappingProxyType
from typing import (Callable, Dict, FrozenSet, Generator, ItemsView, Iterable, Iterator, List, Mapping,
                    Optional, Tuple, Union)

from typing_extensions import Self

from py_ecu.builder import BuilderBlock, custom_unit
from py_ecu.definitions import Number, UnitCategory, UnitDefinition
from py_ecu.exceptions import CategoryMismatchError, UnknownUnitError
from py_ecu.logger import logger

__all__ = (
    'UnitRegistry',
    'RegistryBuilder',
    'ThreadSafeRegistry',
    'RegistryLike',
    'default_registry',
    'set_default_registry',
)

_generations = itertools.count(1)


class UnitRegistry:
    """Immutable snapshot of unit definitions."""

    __slots__ = ('_definitions', '_by_category', '_generation')

    def __init__(self, definitions: Optional[Mapping[str, UnitDefinition]] = None):
        self._generation = next(_generations)
        table = {key.lower(): definition for key, definition in (definitions or {}).items()}
        self._definitions: Mapping[str, UnitDefinition] = MappingProxyType(table)

        # distinct definitions per category, by identity, in first-seen order
        index: Dict[UnitCategory, Dict[int, UnitDefinition]] = {}
        for definition in table.values():
            index.setdefault(definition.category, {}).setdefault(id(definition), definition)
        self._by_category: Mapping[UnitCategory, Tuple[UnitDefinition, ...]] = MappingProxyType(
            {category: tuple(group.values()) for category, group in index.items()}
        )

    @property
    def generation(self) -> int:
        """Process-unique number of this snapshot. Memoized results are keyed by it."""
        return self._generation

    @classmethod
    def builder(cls) -> RegistryBuilder:
        return RegistryBuilder()

    @classmethod
    def with_defaults(cls) -> UnitRegistry:
        """Snapshot holding the default unit table."""
        from py_ecu.loader import default_definitions
        return RegistryBuilder().register_all(default_definitions()).build()

    def to_builder(self) -> RegistryBuilder:
        """A builder pre-populated with this snapshot's table."""
        return RegistryBuilder().import_from(self)

    def get_definition(self, symbol: str) -> Optional[UnitDefinition]:
        """Case-insensitive lookup. Returns None when the symbol is not registered."""
        if not isinstance(symbol, str):
            return None
        return self._definitions.get(symbol.strip().lower())

    def resolve(self, symbol: str) -> UnitDefinition:
        """Like `get_definition`, but raises `UnknownUnitError` for an unregistered symbol."""
        definition = self.get_definition(symbol)
        if definition is None:
            raise UnknownUnitError(symbol)
        return definition

    def get_units_by_category(self, category: UnitCategory) -> FrozenSet[str]:
        """Canonical symbols of the distinct definitions in `category`."""
        return frozenset(d.symbol for d in self._by_category.get(category, ()))

    def get_definitions_by_category(self, category: UnitCategory) -> Tuple[UnitDefinition, ...]:
        return self._by_category.get(category, ())

    def get_conversion_ratio(self, from_symbol: str, to_symbol: str) -> Optional[float]:
        """Multiplicative ratio between two units of the same category.

        Returns None when either symbol is unknown, the categories differ,
        or the category converts affinely (temperature).
        """
        from_def = self.get_definition(from_symbol)
        to_def = self.get_definition(to_symbol)
        if from_def is None or to_def is None or from_def.category is not to_def.category:
            return None
        if from_def.category.is_affine:
            return None
        return from_def.base_ratio / to_def.base_ratio

    def convert(self, value: Number, from_symbol: str, to_symbol: str) -> float:
        """Convert a plain number between two units of the same category.

        Raises:
            UnknownUnitError: If either symbol is not registered.
            CategoryMismatchError: If the units belong to different categories.
        """
        from_def = self.resolve(from_symbol)
        to_def = self.resolve(to_symbol)
        if from_def.category is not to_def.category:
            raise CategoryMismatchError(from_def.category, to_def.category,
                                        f"Cannot convert {from_def.symbol} to {to_def.symbol}")
        return to_def.from_base(from_def.to_base(value))

    def is_valid_unit(self, symbol: str) -> bool:
        return self.get_definition(symbol) is not None

    def get_base_unit(self, category: UnitCategory) -> Optional[UnitDefinition]:
        """First definition flagged as base unit for `category`."""
        for definition in self._by_category.get(category, ()):
            if definition.is_base_unit:
                return definition
        return None

    def get_all_units(self) -> FrozenSet[str]:
        """Every resolvable key, aliases included."""
        return frozenset(self._definitions)

    def categories(self) -> FrozenSet[UnitCategory]:
        return frozenset(self._by_category)

    def definitions(self) -> List[UnitDefinition]:
        """Distinct definitions across all categories."""
        return [d for group in self._by_category.values() for d in group]

    def items(self) -> ItemsView[str, UnitDefinition]:
        return self._definitions.items()

    def __contains__(self, symbol: object) -> bool:
        return isinstance(symbol, str) and self.is_valid_unit(symbol)

    def __len__(self) -> int:
        return len(self._definitions)

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {len(self.definitions())} units, {len(self)} keys>"


class RegistryBuilder:
    """Copy-on-write accumulator producing `UnitRegistry` snapshots."""

    __slots__ = ('_definitions',)

    def __init__(self) -> None:
        self._definitions: Dict[str, UnitDefinition] = {}

    def register(self, definition: UnitDefinition) -> Self:
        """Add `definition` under its symbol and every alias. Last write wins on collision."""
        for key in (definition.key, *sorted(definition.keys - {definition.key})):
            self._definitions[key] = definition
        return self

    def register_all(self, definitions: Iterable[UnitDefinition]) -> Self:
        for definition in definitions:
            self.register(definition)
        return self

    def register_custom_unit(self, block: BuilderBlock) -> Self:
        """Build a definition with `CustomUnitBuilder` and register it."""
        return self.register(custom_unit(block))

    def import_from(self, other: RegistryLike) -> Self:
        """Merge every key of another registry into this builder."""
        snapshot = other.snapshot() if isinstance(other, ThreadSafeRegistry) else other
        self._definitions.update(snapshot.items())
        return self

    def build(self) -> UnitRegistry:
        return UnitRegistry(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)


class _ReadWriteLock:
    """Shared/exclusive lock on top of `threading.Condition`. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Generator[None, None, None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Generator[None, None, None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ThreadSafeRegistry:
    """Mutable holder of the current `UnitRegistry` snapshot.

    Reads take the shared lock just long enough to fetch the current snapshot reference.
    Every write rebuilds a full snapshot from the previous one plus the change and publishes it
    under the exclusive lock. A snapshot obtained before a write keeps resolving exactly
    as it did, since snapshots are never mutated.

    Examples:
        >>> registry = ThreadSafeRegistry(UnitRegistry.with_defaults())
        >>> before = registry.snapshot()
        >>> _ = registry.register_custom_unit(
        ...     lambda b: b.symbol('ftm').display_name('fathom').category('length').base_ratio(1.8288))
        >>> before.is_valid_unit('ftm'), registry.snapshot().is_valid_unit('ftm')
        (False, True)
    """

    __slots__ = ('_snapshot', '_lock', '_write_mutex')

    def __init__(self, initial: Optional[UnitRegistry] = None):
        self._snapshot: UnitRegistry = initial if initial is not None else UnitRegistry()
        self._lock = _ReadWriteLock()
        self._write_mutex = threading.Lock()

    def snapshot(self) -> UnitRegistry:
        """The current snapshot. Its contents never change afterwards."""
        with self._lock.read():
            return self._snapshot

    def _update(self, change: Callable[[RegistryBuilder], object], reason: str) -> UnitRegistry:
        with self._write_mutex:
            builder = self.snapshot().to_builder()
            change(builder)
            rebuilt = builder.build()
            with self._lock.write():
                self._snapshot = rebuilt
        logger.debug(f"Registry updated ({reason}): {len(rebuilt)} keys")
        return rebuilt

    def register(self, definition: UnitDefinition) -> None:
        self._update(lambda b: b.register(definition), f"register {definition.symbol}")

    def register_all(self, definitions: Iterable[UnitDefinition]) -> None:
        definitions = list(definitions)
        self._update(lambda b: b.register_all(definitions), f"register {len(definitions)} units")

    def register_custom_unit(self, block: BuilderBlock) -> UnitDefinition:
        definition = custom_unit(block)
        self.register(definition)
        return definition

    def import_from(self, other: RegistryLike) -> None:
        snapshot = other.snapshot() if isinstance(other, ThreadSafeRegistry) else other
        self._update(lambda b: b.import_from(snapshot), "import")

    def replace_with(self, snapshot: UnitRegistry) -> None:
        """Publish `snapshot` as-is, discarding the current table."""
        with self._write_mutex:
            with self._lock.write():
                self._snapshot = snapshot
        logger.debug(f"Registry replaced: {len(snapshot)} keys")

    @property
    def generation(self) -> int:
        return self.snapshot().generation

    # read delegation
    def get_definition(self, symbol: str) -> Optional[UnitDefinition]:
        return self.snapshot().get_definition(symbol)

    def resolve(self, symbol: str) -> UnitDefinition:
        return self.snapshot().resolve(symbol)

    def get_units_by_category(self, category: UnitCategory) -> FrozenSet[str]:
        return self.snapshot().get_units_by_category(category)

    def get_definitions_by_category(self, category: UnitCategory) -> Tuple[UnitDefinition, ...]:
        return self.snapshot().get_definitions_by_category(category)

    def get_conversion_ratio(self, from_symbol: str, to_symbol: str) -> Optional[float]:
        return self.snapshot().get_conversion_ratio(from_symbol, to_symbol)

    def convert(self, value: Number, from_symbol: str, to_symbol: str) -> float:
        return self.snapshot().convert(value, from_symbol, to_symbol)

    def is_valid_unit(self, symbol: str) -> bool:
        return self.snapshot().is_valid_unit(symbol)

    def get_base_unit(self, category: UnitCategory) -> Optional[UnitDefinition]:
        return self.snapshot().get_base_unit(category)

    def get_all_units(self) -> FrozenSet[str]:
        return self.snapshot().get_all_units()

    def definitions(self) -> List[UnitDefinition]:
        return self.snapshot().definitions()

    def items(self) -> ItemsView[str, UnitDefinition]:
        return self.snapshot().items()

    def __contains__(self, symbol: object) -> bool:
        return symbol in self.snapshot()

    def __len__(self) -> int:
        return len(self.snapshot())

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.snapshot()!r}>"


RegistryLike = Union[UnitRegistry, ThreadSafeRegistry]

_default_registry: Optional[ThreadSafeRegistry] = None
_default_registry_lock = threading.Lock()


def default_registry() -> ThreadSafeRegistry:
    """Process-wide registry holding the default unit table, created on first use."""
    global _default_registry
    with _default_registry_lock:
        if _default_registry is None:
            _default_registry = ThreadSafeRegistry(UnitRegistry.with_defaults())
        return _default_registry


def set_default_registry(registry: Optional[ThreadSafeRegistry]) -> None:
    """Replace the process-wide registry. ``None`` resets it to the default table on next use."""
    global _default_registry
    with _default_registry_lock:
        _default_registry = registry
