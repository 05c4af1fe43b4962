"""Foreign library boundary: capability contract, sample memory and backends."""

from typing import Callable

from sigrokpy.errors import UnknownBackendError
from sigrokpy.foreign.demo import DemoDeviceSpec, DemoDriverSpec, DemoLibrary
from sigrokpy.foreign.library import ForeignLibrary
from sigrokpy.foreign.memory import ForeignBuffer

BACKENDS: dict[str, Callable[[], ForeignLibrary]] = {
    "demo": DemoLibrary,
}


def load_backend(name: str) -> ForeignLibrary:
    """Instantiate the foreign library backend registered under ``name``.

    Raises:
        UnknownBackendError: If no backend has that name.
    """
    factory = BACKENDS.get(name)
    if factory is None:
        raise UnknownBackendError(name, sorted(BACKENDS))
    return factory()


__all__ = [
    "BACKENDS",
    "DemoDeviceSpec",
    "DemoDriverSpec",
    "DemoLibrary",
    "ForeignBuffer",
    "ForeignLibrary",
    "load_backend",
]
