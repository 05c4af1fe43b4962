"""Driver descriptors and live driver instances."""

import logging
from typing import TYPE_CHECKING, Optional, Sequence, Union

from sigrokpy.config.options import ScanOption, scan_pairs
from sigrokpy.device import Device
from sigrokpy.errors import (
    DependentsAliveError,
    ForeignDriverError,
    HandleClosedError,
    check_status,
)
from sigrokpy.models import DriverFunction, coerce_enum

if TYPE_CHECKING:
    from sigrokpy.context import Context

logger = logging.getLogger(__name__)


class Driver:
    """An acquisition backend offered by the foreign library.

    Descriptors are minted by :meth:`Context.drivers` and are valid only while
    that context lives.

    Attributes:
        name: Short driver name (e.g. ``"demo"``).
        long_name: Human-readable driver description.
        api_version: Driver API version reported by the library.
    """

    def __init__(self, context: "Context", handle: int) -> None:
        self._context = context
        self._handle = handle
        info = context.library.driver_info(handle)
        self.name = info.name
        self.long_name = info.long_name
        self.api_version = info.api_version

    @property
    def context(self) -> "Context":
        return self._context

    @property
    def handle(self) -> int:
        return self._handle

    @property
    def is_initialized(self) -> bool:
        """Whether a live instance of this driver exists."""
        return self._context._instance_for(self) is not None

    def functions(self) -> tuple[Union[DriverFunction, int], ...]:
        """Return the device classes this driver implements.

        Raises:
            ForeignDriverError: If the library cannot report them.
        """
        self._context._ensure_live()
        code, functions = self._context.library.driver_functions(self._handle)
        check_status(code, lambda c: ForeignDriverError(self.name, "function query", c))
        return tuple(coerce_enum(DriverFunction, f) for f in functions)

    def init(self) -> "DriverInstance":
        """Activate the driver. Shorthand for ``context.init_driver(driver)``."""
        return self._context.init_driver(self)

    def __repr__(self) -> str:
        return f"Driver({self.name!r})"


class DriverInstance:
    """A driver activated against a context.

    Owns the devices its scans discover. Release it (or leave the ``with``
    block) after every session using its devices has been closed.

    Example:
        >>> with context.init_driver("demo") as demo:
        ...     devices = demo.scan()
    """

    def __init__(self, context: "Context", driver: Driver) -> None:
        self._context = context
        self._driver = driver
        self._devices: list[Device] = []
        self._known: dict[int, Device] = {}
        self._released = False

    @property
    def context(self) -> "Context":
        return self._context

    @property
    def driver(self) -> Driver:
        return self._driver

    @property
    def name(self) -> str:
        return self._driver.name

    @property
    def is_released(self) -> bool:
        return self._released

    def _ensure_live(self) -> None:
        if self._released:
            raise HandleClosedError(f"DriverInstance '{self.name}'")
        self._context._ensure_live()

    def scan(self, options: Sequence[ScanOption] = ()) -> tuple[Device, ...]:
        """Probe for devices.

        Each scan replaces the previous result. Finding nothing is not an
        error. Devices found again keep their identity.

        Args:
            options: Scan options such as :class:`~sigrokpy.config.Connection`.

        Returns:
            The devices found by this scan.

        Raises:
            InvalidValueError: If a scan option value has the wrong type.
            ForeignDriverError: If the driver fails to scan.
        """
        self._ensure_live()
        pairs = scan_pairs(options)
        code, handles = self._context.library.driver_scan(self._driver.handle, pairs)
        check_status(code, lambda c: ForeignDriverError(self.name, "scan", c))

        devices = []
        for handle in handles:
            device = self._known.get(handle)
            if device is None:
                device = Device(self, handle)
                self._known[handle] = device
            devices.append(device)
        self._devices = devices
        logger.debug("%s: scan found %d device(s)", self.name, len(devices))
        return tuple(devices)

    def devices(self) -> tuple[Device, ...]:
        """Return the result of the most recent scan (empty before any scan)."""
        self._ensure_live()
        return tuple(self._devices)

    def release(self) -> None:
        """Deactivate the driver, closing any devices it opened.

        Raises:
            DependentsAliveError: If an open session still holds one of its devices.
            ForeignDriverError: If the library fails to clean the driver up.
        """
        if self._released:
            return
        holders = self._context._sessions_using(self)
        if holders:
            raise DependentsAliveError(f"driver instance '{self.name}'", holders)

        for device in self._known.values():
            device._close()
        code = self._context.library.driver_cleanup(self._driver.handle)
        self._released = True
        self._devices = []
        self._context._forget_instance(self)
        logger.debug("%s: driver released", self.name)
        check_status(code, lambda c: ForeignDriverError(self.name, "cleanup", c))

    def __enter__(self) -> "DriverInstance":
        return self

    def __exit__(self, exc_type: Optional[type], exc: Optional[BaseException], tb: object) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else f"{len(self._devices)} device(s)"
        return f"DriverInstance({self.name!r}, {state})"

