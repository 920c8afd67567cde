import threading

import pytest

from py_ecu.definitions import UnitCategory, UnitDefinition
from py_ecu.exceptions import CategoryMismatchError, UnknownUnitError
from py_ecu.registry import (RegistryBuilder, ThreadSafeRegistry, UnitRegistry, default_registry,
                             set_default_registry)

FATHOM = UnitDefinition('ftm', 'fathom', UnitCategory.LENGTH, 1.8288, aliases={'fathom', 'fathoms'})


class TestUnitRegistry:

    @pytest.mark.parametrize("symbol", ['ft', 'FT', 'feet', ' Foot '])
    def test_case_insensitive_lookup(self, snapshot, symbol):
        assert snapshot.get_definition(symbol).symbol == 'ft'

    def test_missing_symbol_is_none(self, snapshot):
        assert snapshot.get_definition('xyz') is None
        assert not snapshot.is_valid_unit('xyz')
        assert 'xyz' not in snapshot

    def test_resolve_raises(self, snapshot):
        with pytest.raises(UnknownUnitError) as exc:
            snapshot.resolve('xyz')
        assert exc.value.symbol == 'xyz'

    def test_aliases_resolve_to_same_definition(self, snapshot):
        lb = snapshot.get_definition('lb')
        for alias in lb.aliases:
            assert snapshot.get_definition(alias) is lb

    @pytest.mark.parametrize(
        "from_symbol, to_symbol, expected",
        [('km', 'm', 1000.0), ('m', 'cm', 100.0), ('ft', 'in', 12.0), ('dz', 'pcs', 12.0), ('ha', 'm²', 1e4)],
        ids=lambda v: str(v)
    )
    def test_conversion_ratio(self, snapshot, from_symbol, to_symbol, expected):
        assert snapshot.get_conversion_ratio(from_symbol, to_symbol) == pytest.approx(expected)

    @pytest.mark.parametrize("from_symbol, to_symbol", [('km', 'kg'), ('km', 'xyz'), ('xyz', 'm'), ('°C', '°F')])
    def test_conversion_ratio_not_available(self, snapshot, from_symbol, to_symbol):
        assert snapshot.get_conversion_ratio(from_symbol, to_symbol) is None

    def test_convert(self, snapshot):
        assert snapshot.convert(2, 'km', 'm') == pytest.approx(2000.0)
        assert snapshot.convert(100, '°C', '°F') == pytest.approx(212.0)
        with pytest.raises(CategoryMismatchError):
            snapshot.convert(1, 'km', 'kg')
        with pytest.raises(UnknownUnitError):
            snapshot.convert(1, 'km', 'xyz')

    def test_category_index_counts_each_definition_once(self, snapshot):
        length = snapshot.get_units_by_category(UnitCategory.LENGTH)
        assert length == {'m', 'cm', 'mm', 'km', 'in', 'ft', 'yd', 'mi'}
        assert len(snapshot.get_definitions_by_category(UnitCategory.LENGTH)) == 8

    def test_unknown_category_is_empty(self, snapshot):
        assert snapshot.get_units_by_category(UnitCategory.TORQUE) == frozenset()
        assert snapshot.get_base_unit(UnitCategory.TORQUE) is None

    @pytest.mark.parametrize(
        "category, symbol",
        [(UnitCategory.LENGTH, 'm'), (UnitCategory.WEIGHT, 'kg'), (UnitCategory.VOLUME, 'l'),
         (UnitCategory.TEMPERATURE, 'K'), (UnitCategory.AREA, 'm²'), (UnitCategory.QUANTITY, 'pcs')],
        ids=lambda v: getattr(v, 'value', v)
    )
    def test_base_units(self, snapshot, category, symbol):
        assert snapshot.get_base_unit(category).symbol == symbol

    def test_get_all_units_includes_aliases(self, snapshot):
        keys = snapshot.get_all_units()
        assert {'m', 'meter', 'metres', 'fl oz', 'floz'} <= keys
        assert len(keys) == len(snapshot)

    def test_snapshot_is_read_only(self, snapshot):
        with pytest.raises(TypeError):
            snapshot._definitions['x'] = FATHOM  # type: ignore[index]


class TestRegistryBuilder:

    def test_register_symbol_and_aliases(self):
        registry = RegistryBuilder().register(FATHOM).build()
        assert registry.get_definition('FATHOMS') is FATHOM
        assert registry.get_units_by_category(UnitCategory.LENGTH) == {'ftm'}

    def test_last_write_wins(self):
        first = UnitDefinition('u', 'first', UnitCategory.LENGTH, 1.0)
        second = UnitDefinition('U', 'second', UnitCategory.LENGTH, 2.0)
        registry = RegistryBuilder().register(first).register(second).build()
        assert registry.get_definition('u') is second
        assert registry.get_units_by_category(UnitCategory.LENGTH) == {'U'}

    def test_alias_overridden_by_later_symbol(self):
        nautical = UnitDefinition('nmi', 'nautical mile', UnitCategory.LENGTH, 1852.0, aliases={'nm'})
        nanometer = UnitDefinition('nm', 'nanometer', UnitCategory.LENGTH, 1e-9)
        registry = RegistryBuilder().register(nautical).register(nanometer).build()
        assert registry.get_definition('nm') is nanometer
        assert registry.get_definition('nmi') is nautical
        assert registry.get_units_by_category(UnitCategory.LENGTH) == {'nmi', 'nm'}

    def test_import_from_keeps_other_snapshot_intact(self, snapshot):
        extended = snapshot.to_builder().register(FATHOM).build()
        assert extended.is_valid_unit('ftm')
        assert not snapshot.is_valid_unit('ftm')
        assert extended.get_definition('km') is snapshot.get_definition('km')

    def test_import_from_thread_safe_registry(self, registry):
        merged = RegistryBuilder().import_from(registry).build()
        assert len(merged) == len(registry)

    def test_register_custom_unit(self):
        registry = (UnitRegistry.builder()
                    .register_custom_unit(lambda b: b.symbol('bbl').display_name('barrel')
                                          .category(UnitCategory.VOLUME).base_ratio(158.987))
                    .build())
        assert registry.get_definition('bbl').base_ratio == 158.987

    def test_build_is_a_snapshot(self):
        builder = RegistryBuilder().register(FATHOM)
        first = builder.build()
        builder.register(UnitDefinition('cable', 'cable', UnitCategory.LENGTH, 185.2))
        assert not first.is_valid_unit('cable')
        assert builder.build().is_valid_unit('cable')


class TestThreadSafeRegistry:

    def test_snapshot_isolation(self, registry):
        before = registry.snapshot()
        registry.register(FATHOM)
        after = registry.snapshot()
        assert before is not after
        assert before.get_definition('ftm') is None
        assert after.get_definition('ftm') is FATHOM
        assert before.get_definition('km') is after.get_definition('km')

    def test_reads_delegate_to_current_snapshot(self, registry):
        registry.register(FATHOM)
        assert registry.is_valid_unit('fathoms')
        assert 'ftm' in registry.get_units_by_category(UnitCategory.LENGTH)
        assert registry.get_conversion_ratio('ftm', 'm') == pytest.approx(1.8288)
        assert registry.get_base_unit(UnitCategory.LENGTH).symbol == 'm'

    def test_register_custom_unit_returns_definition(self, registry):
        definition = registry.register_custom_unit(
            lambda b: b.symbol('bbl').display_name('barrel').category('volume').base_ratio(158.987))
        assert registry.get_definition('BBL') is definition

    def test_replace_with(self, registry):
        empty = UnitRegistry()
        registry.replace_with(empty)
        assert registry.snapshot() is empty
        assert len(registry) == 0

    def test_import_from(self):
        target = ThreadSafeRegistry()
        source = ThreadSafeRegistry(RegistryBuilder().register(FATHOM).build())
        target.import_from(source)
        assert target.get_definition('fathom') is FATHOM

    def test_default_registry_is_replaceable(self, registry):
        original = default_registry()
        try:
            set_default_registry(registry)
            assert default_registry() is registry
        finally:
            set_default_registry(original)
        assert default_registry() is original


@pytest.mark.extended
class TestThreadSafeRegistryConcurrency:

    def test_concurrent_writers_lose_nothing(self):
        registry = ThreadSafeRegistry()
        errs = []

        def writer(n):
            try:
                for i in range(20):
                    registry.register(UnitDefinition(f'u{n}_{i}', 'unit', UnitCategory.LENGTH, 1.0 + i))
            except Exception as e:
                errs.append(e)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errs
        assert len(registry) == 8 * 20

    def test_readers_see_complete_snapshots(self, registry):
        errs = []
        stop = threading.Event()

        def reader():
            try:
                while not stop.is_set():
                    snap = registry.snapshot()
                    for key, definition in snap.items():
                        assert snap.get_definition(key) is definition
            except Exception as e:
                errs.append(e)

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        for i in range(50):
            registry.register(UnitDefinition(f'w{i}', 'unit', UnitCategory.WEIGHT, 1.0, aliases={f'w{i}x'}))
        stop.set()
        for t in readers:
            t.join()

        assert not errs
        assert registry.is_valid_unit('w49x')
