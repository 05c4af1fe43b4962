"""Control of the foreign library's own log output.

The foreign library logs through a callback; :func:`bridge_foreign_logs`
forwards those lines to the ``sigrokpy.foreign`` logger so they are handled by
the application's normal :mod:`logging` configuration.
"""

import logging
from typing import Optional

from sigrokpy.errors import ForeignLogError, NoActiveContextError, check_status
from sigrokpy.foreign.library import ForeignLibrary
from sigrokpy.models import LogLevel

foreign_logger = logging.getLogger("sigrokpy.foreign")

_PYTHON_LEVELS = {
    LogLevel.ERR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.DBG: logging.DEBUG,
    LogLevel.SPEW: logging.DEBUG,
}


def python_level(level: int) -> int:
    """Map a foreign log level onto the closest :mod:`logging` level."""
    try:
        return _PYTHON_LEVELS.get(LogLevel(level), logging.DEBUG)
    except ValueError:
        return logging.DEBUG


def _resolve(library: Optional[ForeignLibrary]) -> ForeignLibrary:
    if library is not None:
        return library
    from sigrokpy.context import Context

    ctx = Context.active()
    if ctx is None:
        raise NoActiveContextError()
    return ctx.library


def get_log_level(library: Optional[ForeignLibrary] = None) -> LogLevel:
    """Return the foreign library's current log level."""
    return LogLevel(_resolve(library).log_level_get())


def set_log_level(level: LogLevel, library: Optional[ForeignLibrary] = None) -> None:
    """Set the foreign library's log level.

    Raises:
        ForeignLogError: If the library rejects the level.
    """
    code = _resolve(library).log_level_set(int(level))
    check_status(code, lambda c: ForeignLogError(f"log level {level!r}", c))


def _forward(level: int, message: str) -> None:
    foreign_logger.log(python_level(level), "%s", message.rstrip())


def bridge_foreign_logs(library: Optional[ForeignLibrary] = None, enabled: bool = True) -> None:
    """Route foreign log lines into :mod:`logging` (or stop doing so)."""
    lib = _resolve(library)
    code = lib.log_callback_set(_forward if enabled else None)
    check_status(code, lambda c: ForeignLogError("log callback", c))
