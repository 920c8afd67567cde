"""Global settings of the py_ecu library"""
from dataclasses import dataclass, fields, MISSING
from typing import Any, ClassVar, Dict, Mapping, Optional

from py_ecu.cache import DEFAULT_MAX_SIZE, DEFAULT_TTL, configure_default_cache
from py_ecu.definitions import UnitCategory
from py_ecu.logger import logger
from py_ecu.registry import default_registry

__all__ = ('PreferredUnits', 'Settings')


class PreferredUnitsMeta(type):
    """Provide representation method for static dataclasses."""

    def __repr__(cls):
        return '\n'.join(f'{field} = {getattr(cls, field)!r}'
                         for field in getattr(cls, '__dataclass_fields__'))


@dataclass
class PreferredUnits(metaclass=PreferredUnitsMeta):
    """Default display unit per category, used when a bare number is given without a unit.

    Examples:
        >>> PreferredUnits.set(length='ft', temperature='fahrenheit')
        >>> PreferredUnits.length
        'ft'
        >>> PreferredUnits.restore_defaults()
    """

    length: str = 'm'
    weight: str = 'kg'
    volume: str = 'l'
    temperature: str = '°C'
    area: str = 'm²'
    quantity: str = 'pcs'

    @classmethod
    def restore_defaults(cls):
        for f in fields(cls):
            if f.default is not MISSING:
                setattr(cls, f.name, f.default)

    @classmethod
    def set(cls, **kwargs: str):
        """Set preferred units by category name.

        Values must be symbols or aliases registered in the default registry under the same category.
        Invalid attributes or values are logged as warnings and ignored.
        """
        registry = default_registry()
        for attribute, value in kwargs.items():
            if attribute not in {f.name for f in fields(cls)}:
                logger.warning(f"{attribute=} not found in preferred_units")
                continue
            if not isinstance(value, str):
                logger.warning(f"type of {value=} is not a unit symbol")
                continue
            definition = registry.get_definition(value)
            if definition is None:
                logger.warning(f"{value=} is not a registered unit")
            elif definition.category.value != attribute:
                logger.warning(f"{value=} is a {definition.category.value} unit, not {attribute}")
            else:
                setattr(PreferredUnits, attribute, definition.symbol)

    @classmethod
    def for_category(cls, category: UnitCategory) -> Optional[str]:
        return getattr(cls, category.value, None)


class Settings:  # pylint: disable=too-few-public-methods
    """Global settings class of the py_ecu library"""

    CACHE_MAX_SIZE: ClassVar[int] = DEFAULT_MAX_SIZE
    CACHE_TTL: ClassVar[float] = DEFAULT_TTL
    _plugin_config: ClassVar[Dict[str, str]] = {}

    @classmethod
    def set_cache(cls, max_size: Optional[int] = None, ttl: Optional[float] = None) -> None:
        """Reconfigure the process-wide conversion cache. Cached entries are dropped."""
        if max_size is not None:
            cls.CACHE_MAX_SIZE = max_size
        if ttl is not None:
            cls.CACHE_TTL = float(ttl)
        configure_default_cache(cls.CACHE_MAX_SIZE, cls.CACHE_TTL)

    @classmethod
    def set_plugin_config(cls, config: Mapping[str, Any]) -> None:
        cls._plugin_config.update({str(k): str(v) for k, v in config.items()})

    @classmethod
    def plugin_config(cls) -> Dict[str, str]:
        return dict(cls._plugin_config)

    @classmethod
    def restore_defaults(cls) -> None:
        cls.CACHE_MAX_SIZE = DEFAULT_MAX_SIZE
        cls.CACHE_TTL = DEFAULT_TTL
        cls._plugin_config.clear()
        configure_default_cache(cls.CACHE_MAX_SIZE, cls.CACHE_TTL)
