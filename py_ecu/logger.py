"""Logging configuration and utilities for the py_ecu library.

Every py_ecu component logs through the single ``py_ecu`` logger defined here. What goes where:

    * INFO: plugin load/unload, module registration, definition files applied by `Converter`
    * WARNING: ignored configuration entries and unknown keys in unit tables
    * ERROR: plugins skipped because they failed to initialize
    * DEBUG: registry snapshot swaps, cache expiry and eviction, failed conversions

Only the console handler at INFO is installed by default. `enable_file_logging()` adds a file
handler, by default at DEBUG, which also lowers the logger level so the registry and cache traces
reach the file. `disable_file_logging()` restores the previous logger level.

Global Variables:
    - logger: Pre-configured logger instance for the library.
    - file_handler: Global file handler reference (None when file logging disabled).

Examples:
    ```python
    from py_ecu.logger import enable_file_logging, disable_file_logging

    enable_file_logging("units_debug.log")
    registry.register(definition)      # "Registry updated (register ftm): 412 keys"
    disable_file_logging()
    ```
"""
import logging
from typing import Optional, Union

__all__ = ('logger',
           'enable_file_logging',
           'disable_file_logging',
)

LOGGER_NAME = 'py_ecu'

formatter = logging.Formatter("%(levelname)s:%(name)s:%(message)s")
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
console_handler.setLevel(logging.DEBUG)

logger: logging.Logger = logging.getLogger(LOGGER_NAME)
logger.addHandler(console_handler)
logger.setLevel(logging.INFO)

file_handler: Optional[logging.FileHandler] = None
_level_before_file: Optional[int] = None


def enable_file_logging(filename: str = "py_ecu.log", level: Union[int, str] = logging.DEBUG) -> None:
    """Append library log records of `level` and above to `filename`.

    A previously enabled file handler is closed and replaced. The logger level is lowered to `level`
    when needed, so console output follows it too while file logging is on.
    """
    global file_handler, _level_before_file
    if file_handler is not None:
        disable_file_logging()

    file_handler = logging.FileHandler(filename, encoding='utf-8')
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter("%(asctime)s:%(levelname)s:%(name)s:%(message)s"))
    logger.addHandler(file_handler)

    _level_before_file = logger.level
    if file_handler.level < logger.getEffectiveLevel():
        logger.setLevel(file_handler.level)


def disable_file_logging() -> None:
    """Remove and close the file handler. Safe to call when file logging is not enabled."""
    global file_handler, _level_before_file
    if file_handler is not None:
        logger.removeHandler(file_handler)
        file_handler.close()
        file_handler = None
    if _level_before_file is not None:
        logger.setLevel(_level_before_file)
        _level_before_file = None
