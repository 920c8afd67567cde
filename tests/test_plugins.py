from importlib.metadata import EntryPoint
from types import SimpleNamespace
from typing import cast

import pytest

import py_ecu.plugins as plugins_module
from py_ecu.definitions import UnitCategory, UnitDefinition
from py_ecu.exceptions import PluginError
from py_ecu.generics.plugin import LogLevel, PluginContext, UnitModule, module_id
from py_ecu.plugins import (AbstractUnitPlugin, DefaultPluginContext, ModuleRegistry, PluginManager,
                            SimpleUnitModule, UnitPlugin, entry_point_provider, _load_from_entry)
from py_ecu.registry import ThreadSafeRegistry

FATHOM = UnitDefinition('ftm', 'fathom', UnitCategory.LENGTH, 1.8288, aliases={'fathom'})
NAUTICAL_MILE = UnitDefinition('nmi', 'nautical mile', UnitCategory.LENGTH, 1852.0)


class RecordingContext(DefaultPluginContext):
    """Context remembering the order plugins were initialized in."""

    def __init__(self, registry, config=None):
        super().__init__(registry, config or {})
        self.order = []


class RecordingPlugin(AbstractUnitPlugin):

    def __init__(self, name, priority, definitions=(), fail=False, enabled=True):
        self.name = name
        self.priority = priority
        self.definitions = list(definitions)
        self.fail = fail
        self.enabled = enabled
        self.shutdown_calls = 0

    def is_enabled(self):
        return self.enabled

    def on_initialize(self):
        if self.fail:
            raise RuntimeError(f"{self.name} failed")
        self.context.order.append(self.name)

    def get_modules(self):
        return [SimpleUnitModule(self.name, definitions=self.definitions)] if self.definitions else []

    def shutdown(self):
        self.shutdown_calls += 1


@pytest.fixture
def manager(registry):
    return PluginManager(registry, config={'region': 'eu'})


class TestModuleRegistry:

    def test_protocol(self):
        module = SimpleUnitModule('marine', '2.0', 'marine units', [FATHOM])
        assert isinstance(module, UnitModule)
        assert module_id(module) == 'marine:2.0'
        assert module.module_id == 'marine:2.0'

    def test_register(self, registry):
        modules = ModuleRegistry(registry)
        assert modules.register(SimpleUnitModule('marine', definitions=[FATHOM, NAUTICAL_MILE]))
        assert registry.is_valid_unit('fathom')
        assert registry.convert(1, 'nmi', 'm') == pytest.approx(1852.0)
        assert modules.is_registered('marine:1.0.0')

    def test_same_id_is_applied_once(self, registry):
        modules = ModuleRegistry(registry)
        calls = []

        class Counting(SimpleUnitModule):
            name = 'counting'

            def define(self, target):
                calls.append(target)

        assert modules.register(Counting())
        assert not modules.register(Counting())
        assert len(calls) == 1
        assert modules.register(Counting(), force=True)
        assert len(calls) == 2
        assert modules.register(Counting(version='2.0'))
        assert modules.register_all([Counting(), Counting(version='3.0')]) == 1
        assert [m.version for m in modules.registered_modules()] == ['1.0.0', '2.0', '3.0']

    def test_define_hook(self, registry):
        class Marine(SimpleUnitModule):
            name = 'marine'

            def define(self, target):
                self.unit(target, lambda b: b.symbol('cable').display_name('cable').category('length')
                          .base_ratio(185.2))

        ModuleRegistry(registry).register(Marine())
        assert registry.get_definition('cable').base_ratio == 185.2

    def test_module_targets_builder(self, snapshot):
        builder = snapshot.to_builder()
        ModuleRegistry(ThreadSafeRegistry()).register(SimpleUnitModule('marine', definitions=[FATHOM]),
                                                      registry=builder)
        assert builder.build().is_valid_unit('ftm')


class TestPluginManager:

    def test_priority_order(self, manager, registry):
        context = RecordingContext(registry)
        plugins = [RecordingPlugin('c', 30), RecordingPlugin('a', 10), RecordingPlugin('b', 20)]
        assert manager.load_plugins(lambda: plugins, context) == ['a', 'b', 'c']
        assert context.order == ['a', 'b', 'c']
        assert [p.name for p in manager.get_all_plugins()] == ['a', 'b', 'c']

    def test_iterable_provider(self, manager):
        assert manager.load_plugins([RecordingPlugin('a', 1)], RecordingContext(manager.registry)) == ['a']

    def test_module_failure_shuts_plugin_down(self, manager, registry, caplog):
        class BrokenModule(SimpleUnitModule):
            name = 'broken-module'

            def define(self, target):
                raise ValueError('bad table')

        class Partial(RecordingPlugin):
            def get_modules(self):
                return [SimpleUnitModule('good', definitions=[FATHOM]), BrokenModule()]

        plugin = Partial('partial', 1)
        with caplog.at_level('ERROR', logger='py_ecu'):
            assert manager.load_plugins([plugin, RecordingPlugin('next', 2)], RecordingContext(registry)) == ['next']
        assert plugin.shutdown_calls == 1
        assert 'partial' not in manager
        assert 'bad table' in caplog.text
        with pytest.raises(PluginError, match='bad table'):
            manager.load_plugin(Partial('partial', 1), RecordingContext(registry))

    def test_failure_is_isolated(self, manager, registry, caplog):
        context = RecordingContext(registry)
        plugins = [
            RecordingPlugin('first', 10, [FATHOM]),
            RecordingPlugin('broken', 20, [NAUTICAL_MILE], fail=True),
            RecordingPlugin('last', 30),
        ]
        with caplog.at_level('ERROR', logger='py_ecu'):
            loaded = manager.load_plugins(plugins, context)
        assert loaded == ['first', 'last']
        assert 'broken' in caplog.text
        assert 'broken' not in manager
        assert registry.is_valid_unit('ftm')
        assert not registry.is_valid_unit('nmi')

    def test_disabled_plugins_are_skipped(self, manager, registry):
        context = RecordingContext(registry)
        loaded = manager.load_plugins([RecordingPlugin('on', 1), RecordingPlugin('off', 0, enabled=False)], context)
        assert loaded == ['on']
        assert manager.get_plugin('off') is None

    def test_modules_configured_after_initialize(self, manager, registry):
        manager.load_plugins([RecordingPlugin('marine', 5, [FATHOM, NAUTICAL_MILE])],
                             RecordingContext(registry))
        assert registry.is_valid_unit('nmi')
        assert manager.modules.is_registered('marine:1.0.0')

    def test_context_services(self, manager, registry, caplog):
        seen = {}

        class Inspecting(AbstractUnitPlugin):
            name = 'inspecting'

            def on_initialize(self):
                seen['region'] = self.get_config('region')
                seen['missing'] = self.get_config('missing', 'fallback')
                seen['other'] = self.context.get_plugin('a')
                self.log(LogLevel.WARN, 'hello')

        manager.load_plugins([RecordingPlugin('a', 1)], RecordingContext(registry))
        context = manager.create_context()
        assert isinstance(context, PluginContext)
        with caplog.at_level('WARNING', logger='py_ecu'):
            manager.load_plugins([Inspecting()], context)
        assert seen['region'] == 'eu'
        assert seen['missing'] == 'fallback'
        assert seen['other'] is manager.get_plugin('a')
        assert 'inspecting: hello' in caplog.text

    def test_load_plugin_raises(self, manager, registry):
        with pytest.raises(PluginError) as exc_info:
            manager.load_plugin(RecordingPlugin('broken', 1, fail=True), RecordingContext(registry))
        assert exc_info.value.plugin_name == 'broken'
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_already_loaded(self, manager, registry):
        manager.load_plugin(RecordingPlugin('a', 1), RecordingContext(registry))
        with pytest.raises(PluginError, match='already loaded'):
            manager.load_plugin(RecordingPlugin('a', 2), RecordingContext(registry))
        assert manager.load_plugins([RecordingPlugin('a', 3)], RecordingContext(registry)) == []
        assert len(manager) == 1

    def test_unload(self, manager, registry):
        plugin = RecordingPlugin('marine', 1, [FATHOM])
        manager.load_plugins([plugin], RecordingContext(registry))
        assert manager.unload_plugin('marine')
        assert plugin.shutdown_calls == 1
        assert 'marine' not in manager
        assert registry.is_valid_unit('ftm')
        assert not manager.unload_plugin('marine')

    def test_unload_all_reverse_order(self, manager, registry):
        order = []

        class Tracking(RecordingPlugin):
            def shutdown(self):
                order.append(self.name)

        manager.load_plugins([Tracking('a', 1), Tracking('b', 2)], RecordingContext(registry))
        manager.unload_all()
        assert order == ['b', 'a']
        assert len(manager) == 0

    def test_shutdown_error_is_logged(self, manager, registry, caplog):
        class Failing(RecordingPlugin):
            def shutdown(self):
                raise RuntimeError('stuck')

        manager.load_plugins([Failing('a', 1)], RecordingContext(registry))
        with caplog.at_level('ERROR', logger='py_ecu'):
            assert manager.unload_plugin('a')
        assert 'stuck' in caplog.text


@pytest.mark.extended
class TestEntryPointProvider:

    class DummyEP:
        def __init__(self, name: str, value: str, loader):
            self.name = name
            self.value = value
            self.group = plugins_module.DEFAULT_ENTRY_GROUP
            self._loader = loader

        def load(self):  # Mimic importlib.metadata.EntryPoint API
            return self._loader()

    def test_load_from_entry_class(self):
        class Marine(AbstractUnitPlugin):
            name = 'marine'

        plugin = _load_from_entry(cast(EntryPoint, self.DummyEP('marine', 'x.y:Marine', lambda: Marine)))
        assert isinstance(plugin, Marine)

    def test_load_from_entry_import_error(self):
        def boom():
            raise ImportError("nope")

        assert _load_from_entry(cast(EntryPoint, self.DummyEP('bad', 'x.y:Z', boom))) is None

    def test_load_from_entry_type_error(self):
        ep = self.DummyEP('not_plugin', 'x.y:Z', lambda: SimpleNamespace())
        assert _load_from_entry(cast(EntryPoint, ep)) is None

    def test_provider(self, monkeypatch, manager, registry):
        eps = {
            self.DummyEP('b', 'x.y:B', lambda: RecordingPlugin('b', 2)),
            self.DummyEP('a', 'x.y:A', lambda: RecordingPlugin('a', 1)),
            self.DummyEP('bad', 'x.y:Z', lambda: SimpleNamespace()),
        }
        monkeypatch.setattr(plugins_module, '_get_entries_by_group', lambda group: eps)
        provided = entry_point_provider()()
        assert [p.name for p in provided] == ['a', 'b']
        assert all(isinstance(p, UnitPlugin) for p in provided)
        assert manager.load_plugins(entry_point_provider(), RecordingContext(registry)) == ['a', 'b']

    def test_no_installed_plugins(self):
        assert entry_point_provider('py_ecu.tests.nothing')() == []
