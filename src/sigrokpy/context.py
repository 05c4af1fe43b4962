"""Process-wide handle to the foreign acquisition library.

At most one :class:`Context` may be live per process. Everything else (drivers,
driver instances, devices, sessions) is minted from it and becomes unusable
once it is closed. Teardown is strictly the reverse of construction: sessions,
then driver instances, then the context.

Example:
    >>> with Context() as ctx:
    ...     demo = ctx.init_driver("demo")
    ...     device = demo.scan()[0]
"""

import logging
import threading
from typing import TYPE_CHECKING, ClassVar, Optional, Union

from sigrokpy.config.preferences import BridgeSettings
from sigrokpy.driver import Driver, DriverInstance
from sigrokpy.errors import (
    ContextAlreadyActiveError,
    ContextMismatchError,
    DependentsAliveError,
    DriverAlreadyInitializedError,
    DriverNotFoundError,
    ForeignDriverError,
    ForeignInitError,
    ForeignStatus,
    HandleClosedError,
    InvalidSettingsError,
    SigrokError,
    check_status,
)
from sigrokpy.foreign import load_backend
from sigrokpy.foreign.library import ForeignLibrary
from sigrokpy.log import bridge_foreign_logs, set_log_level
from sigrokpy.models import LogLevel

if TYPE_CHECKING:
    from sigrokpy.acquisition.session import Session

logger = logging.getLogger(__name__)


class Context:
    """Root handle of the foreign library.

    Args:
        library: Foreign library implementation. Defaults to the backend named
            in ``settings``.
        settings: Bridge settings. Defaults to :class:`BridgeSettings()`.

    Raises:
        InvalidSettingsError: If ``settings`` fail validation.
        ContextAlreadyActiveError: If another context is still live.
        ForeignInitError: If the library fails to initialize.
        ForeignLogError: If the library rejects the log setup; the context is
            torn down again before the error propagates.
    """

    _active: ClassVar[Optional["Context"]] = None
    _active_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, library: Optional[ForeignLibrary] = None, settings: Optional[BridgeSettings] = None) -> None:
        self._settings = settings if settings is not None else BridgeSettings()
        self._closed = True
        self._drivers: Optional[tuple[Driver, ...]] = None
        self._instances: list[DriverInstance] = []
        self._sessions: list["Session"] = []
        problems = self._settings.validate()
        if problems:
            raise InvalidSettingsError(problems)
        log_level = LogLevel(self._settings.foreign_log_level)

        with Context._active_lock:
            if Context._active is not None:
                raise ContextAlreadyActiveError()
            lib = library if library is not None else load_backend(self._settings.backend)
            code, handle = lib.init()
            check_status(code, ForeignInitError)
            Context._active = self

        self._library = lib
        self._handle = handle
        self._closed = False

        try:
            if self._settings.bridge_foreign_logs:
                bridge_foreign_logs(lib)
            set_log_level(log_level, lib)
        except SigrokError:
            self._abandon()
            raise
        logger.info("Context initialized")

    def _abandon(self) -> None:
        self._closed = True
        code = self._library.exit(self._handle)
        with Context._active_lock:
            if Context._active is self:
                Context._active = None
        if code != ForeignStatus.OK:
            logger.warning("Context teardown after failed setup returned %s", ForeignStatus.describe(code))

    @classmethod
    def active(cls) -> Optional["Context"]:
        """Return the live context, if any."""
        return cls._active

    @property
    def library(self) -> ForeignLibrary:
        """The foreign library this context drives."""
        return self._library

    @property
    def settings(self) -> BridgeSettings:
        return self._settings

    @property
    def handle(self) -> int:
        return self._handle

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _ensure_live(self) -> None:
        if self._closed:
            raise HandleClosedError("Context")

    def _ensure_owned(self, obj: Union[Driver, DriverInstance], kind: str) -> None:
        if obj.context is not self:
            raise ContextMismatchError(kind)

    # Drivers

    def drivers(self) -> tuple[Driver, ...]:
        """Return the drivers the library offers.

        The list is read on first use and stays stable for the context's lifetime.
        """
        self._ensure_live()
        if self._drivers is None:
            self._drivers = tuple(Driver(self, h) for h in self._library.driver_list(self._handle))
        return self._drivers

    def driver(self, name: str) -> Driver:
        """Return the driver called ``name``.

        Raises:
            DriverNotFoundError: If the library has no such driver.
        """
        for drv in self.drivers():
            if drv.name == name:
                return drv
        raise DriverNotFoundError(name)

    def init_driver(self, driver: Union[Driver, str, None] = None) -> DriverInstance:
        """Activate a driver.

        Args:
            driver: Driver descriptor or name. Defaults to the configured default driver.

        Raises:
            DriverNotFoundError: If no driver has the given name.
            DriverAlreadyInitializedError: If the driver already has a live instance.
            ForeignDriverError: If the library rejects the activation.
            ContextMismatchError: If the descriptor came from another context.
        """
        self._ensure_live()
        if driver is None:
            driver = self._settings.default_driver
        if isinstance(driver, str):
            driver = self.driver(driver)
        self._ensure_owned(driver, f"Driver '{driver.name}'")
        if self._instance_for(driver) is not None:
            raise DriverAlreadyInitializedError(driver.name)

        code = self._library.driver_init(self._handle, driver.handle)
        check_status(code, lambda c: ForeignDriverError(driver.name, "init", c))
        instance = DriverInstance(self, driver)
        self._instances.append(instance)
        logger.debug("Driver %s initialized", driver.name)
        return instance

    def instances(self) -> tuple[DriverInstance, ...]:
        """Return the live driver instances, oldest first."""
        return tuple(self._instances)

    def _instance_for(self, driver: Driver) -> Optional[DriverInstance]:
        for instance in self._instances:
            if instance.driver is driver:
                return instance
        return None

    def _forget_instance(self, instance: DriverInstance) -> None:
        if instance in self._instances:
            self._instances.remove(instance)

    # Sessions

    def _register_session(self, session: "Session") -> None:
        self._sessions.append(session)

    def _forget_session(self, session: "Session") -> None:
        if session in self._sessions:
            self._sessions.remove(session)

    def _sessions_using(self, instance: DriverInstance) -> list[str]:
        return [repr(s) for s in self._sessions if any(d.instance is instance for d in s.devices)]

    # Teardown

    def close(self) -> None:
        """Shut the foreign library down.

        Raises:
            DependentsAliveError: If sessions or driver instances are still live.
            ForeignInitError: If the library reports a teardown failure.
        """
        if self._closed:
            return
        dependents = [repr(s) for s in self._sessions] + [repr(i) for i in self._instances]
        if dependents:
            raise DependentsAliveError("context", dependents)

        code = self._library.exit(self._handle)
        self._closed = True
        with Context._active_lock:
            if Context._active is self:
                Context._active = None
        logger.info("Context closed")
        check_status(code, lambda c: ForeignInitError(c, "teardown"))

    def __enter__(self) -> "Context":
        return self

    def __exit__(self, exc_type: Optional[type], exc: Optional[BaseException], tb: object) -> None:
        if self._closed:
            return
        for session in reversed(list(self._sessions)):
            session.close()
        for instance in reversed(list(self._instances)):
            instance.release()
        self.close()

    def __repr__(self) -> str:
        return f"Context({'closed' if self._closed else 'live'}, {len(self._instances)} driver instance(s))"
