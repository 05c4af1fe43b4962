"""Error types for the acquisition session engine.

Error taxonomy:
- INIT: Foreign library initialization failures
- DRIVER: Driver activation failures (already initialized, native rejection)
- CONFIG: Configuration option failures (unsupported, invalid, session active)
- SESSION: Session lifecycle failures (already running, empty, native rejection)
- DATAFEED: Malformed datafeed packets and expired packet views
- LIFETIME: Handle ordering violations (use after close, out-of-order teardown)

Every native status code is translated into one of these kinds at the foreign
boundary by :func:`check_status`.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable, Optional


class ErrorCategory(Enum):
    """Error category for classification and routing."""

    INIT = "INIT"
    DRIVER = "DRV"
    CONFIG = "CFG"
    SESSION = "SES"
    DATAFEED = "FEED"
    LIFETIME = "LIFE"


class RecoveryAction(Enum):
    """Suggested recovery action for the caller."""

    RETRY = "retry"
    RESCAN = "rescan"
    STOP_SESSION = "stop_session"
    FIX_VALUE = "fix_value"
    RELEASE_DEPENDENTS = "release_dependents"
    COPY_DATA = "copy_data"
    MANUAL = "manual"


class ForeignStatus(IntEnum):
    """Status codes returned by the foreign acquisition library."""

    OK = 0
    ERR = -1
    ERR_MALLOC = -2
    ERR_ARG = -3
    ERR_BUG = -4
    ERR_SAMPLERATE = -5
    ERR_NA = -6
    ERR_DEV_CLOSED = -7
    ERR_TIMEOUT = -8
    ERR_CHANNEL_GROUP = -9
    ERR_DATA = -10
    ERR_IO = -11

    @classmethod
    def describe(cls, code: int) -> str:
        """Return a readable name for a native code, including unknown ones."""
        try:
            return cls(code).name
        except ValueError:
            return f"UNKNOWN({code})"


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Additional context for an error.

    Attributes:
        driver: Driver name involved.
        device: Device description (vendor/model) involved.
        option: Configuration option name involved.
        packet_type: Datafeed packet type name involved.
        foreign_code: Native status code returned by the foreign library.
    """

    driver: Optional[str] = None
    device: Optional[str] = None
    option: Optional[str] = None
    packet_type: Optional[str] = None
    foreign_code: Optional[int] = None


class SigrokError(Exception):
    """Base exception for all sigrokpy errors.

    Attributes:
        category: Error category for classification.
        code: Short error code (e.g., "CFG-001").
        message: Human-readable error message.
        recovery: Suggested recovery action.
        context: Additional error context.
    """

    def __init__(
        self,
        category: ErrorCategory,
        code: str,
        message: str,
        recovery: RecoveryAction,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.code = code
        self.message = message
        self.recovery = recovery
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    @property
    def foreign_code(self) -> Optional[int]:
        """Native status code behind this error, if any."""
        return self.context.foreign_code


class InitError(SigrokError):
    """The foreign library could not be initialized."""

    def __init__(
        self,
        code: str,
        message: str,
        recovery: RecoveryAction = RecoveryAction.MANUAL,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(ErrorCategory.INIT, code, message, recovery, context)


class ForeignInitError(InitError):
    """Native library initialization (or teardown) returned an error code."""

    def __init__(self, foreign_code: int, operation: str = "initialization") -> None:
        super().__init__(
            code="INIT-001",
            message=f"Foreign library {operation} failed: {ForeignStatus.describe(foreign_code)}.",
            recovery=RecoveryAction.RETRY,
            context=ErrorContext(foreign_code=foreign_code),
        )


class ContextAlreadyActiveError(InitError):
    """A live context already exists in this process."""

    def __init__(self) -> None:
        super().__init__(
            code="INIT-002",
            message="A context is already active in this process; close it before creating another.",
            recovery=RecoveryAction.RELEASE_DEPENDENTS,
        )


class UnknownBackendError(InitError):
    """The configured foreign library backend is not available."""

    def __init__(self, backend: str, available: list[str]) -> None:
        super().__init__(
            code="INIT-003",
            message=f"Unknown foreign library backend '{backend}'. Available: {', '.join(available)}.",
            recovery=RecoveryAction.MANUAL,
        )


class NoActiveContextError(InitError):
    """A library-wide call was made without a live context."""

    def __init__(self) -> None:
        super().__init__(
            code="INIT-004",
            message="No live context; pass a library explicitly or create a Context first.",
            recovery=RecoveryAction.MANUAL,
        )


class ForeignLogError(InitError):
    """The foreign library rejected a log configuration request."""

    def __init__(self, what: str, foreign_code: int) -> None:
        super().__init__(
            code="INIT-005",
            message=f"Foreign library rejected {what}: {ForeignStatus.describe(foreign_code)}.",
            recovery=RecoveryAction.FIX_VALUE,
            context=ErrorContext(foreign_code=foreign_code),
        )


class InvalidSettingsError(InitError):
    """The bridge settings handed to a context are not usable."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__(
            code="INIT-006",
            message=f"Invalid bridge settings: {'; '.join(problems)}.",
            recovery=RecoveryAction.FIX_VALUE,
        )
        self.problems = problems


class DriverError(SigrokError):
    """Driver activation or scanning failures."""

    def __init__(
        self,
        code: str,
        message: str,
        recovery: RecoveryAction = RecoveryAction.MANUAL,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(ErrorCategory.DRIVER, code, message, recovery, context)


class DriverAlreadyInitializedError(DriverError):
    """The driver already has a live instance."""

    def __init__(self, driver: str) -> None:
        super().__init__(
            code="DRV-001",
            message=f"Driver '{driver}' is already initialized; release the existing instance first.",
            recovery=RecoveryAction.RELEASE_DEPENDENTS,
            context=ErrorContext(driver=driver),
        )


class ForeignDriverError(DriverError):
    """The foreign library rejected a driver operation."""

    def __init__(self, driver: str, operation: str, foreign_code: int) -> None:
        super().__init__(
            code="DRV-002",
            message=f"Driver '{driver}' {operation} failed: {ForeignStatus.describe(foreign_code)}.",
            recovery=RecoveryAction.RETRY,
            context=ErrorContext(driver=driver, foreign_code=foreign_code),
        )


class DriverNotFoundError(DriverError):
    """No driver with the requested name is available."""

    def __init__(self, driver: str) -> None:
        super().__init__(
            code="DRV-003",
            message=f"No driver named '{driver}' is available.",
            recovery=RecoveryAction.MANUAL,
            context=ErrorContext(driver=driver),
        )


class ConfigError(SigrokError):
    """Configuration option failures."""

    def __init__(
        self,
        code: str,
        message: str,
        recovery: RecoveryAction = RecoveryAction.FIX_VALUE,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(ErrorCategory.CONFIG, code, message, recovery, context)


class UnsupportedOptionError(ConfigError):
    """The option is not offered by the driver (or not for this access)."""

    def __init__(self, option: str, target: str, access: str = "access") -> None:
        super().__init__(
            code="CFG-001",
            message=f"Option {option} does not support {access} on {target}.",
            recovery=RecoveryAction.MANUAL,
            context=ErrorContext(device=target, option=option),
        )


class InvalidValueError(ConfigError):
    """The value does not match the option's declared type or range."""

    def __init__(self, option: str, value: object, reason: str) -> None:
        super().__init__(
            code="CFG-002",
            message=f"Invalid value {value!r} for option {option}: {reason}",
            recovery=RecoveryAction.FIX_VALUE,
            context=ErrorContext(option=option),
        )


class SessionActiveError(ConfigError):
    """The change is not allowed while a session using the device runs."""

    def __init__(self, target: str, what: str) -> None:
        super().__init__(
            code="CFG-003",
            message=f"Cannot change {what} on {target} while an acquisition session is running.",
            recovery=RecoveryAction.STOP_SESSION,
            context=ErrorContext(device=target),
        )


class ForeignConfigError(ConfigError):
    """The driver rejected a configuration request."""

    def __init__(self, option: str, target: str, foreign_code: int) -> None:
        super().__init__(
            code="CFG-004",
            message=f"Driver rejected option {option} on {target}: {ForeignStatus.describe(foreign_code)}.",
            recovery=RecoveryAction.FIX_VALUE,
            context=ErrorContext(device=target, option=option, foreign_code=foreign_code),
        )


class SessionError(SigrokError):
    """Session lifecycle failures."""

    def __init__(
        self,
        code: str,
        message: str,
        recovery: RecoveryAction = RecoveryAction.MANUAL,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(ErrorCategory.SESSION, code, message, recovery, context)


class AlreadyRunningError(SessionError):
    """The operation requires an idle session."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            code="SES-001",
            message=f"Cannot {operation} while the session is running.",
            recovery=RecoveryAction.STOP_SESSION,
        )


class EmptySessionError(SessionError):
    """The session has no attached devices."""

    def __init__(self) -> None:
        super().__init__(
            code="SES-002",
            message="Cannot start a session with no attached devices.",
            recovery=RecoveryAction.RESCAN,
        )


class ForeignSessionError(SessionError):
    """The foreign library rejected a session operation."""

    def __init__(self, operation: str, foreign_code: int, device: Optional[str] = None) -> None:
        super().__init__(
            code="SES-003",
            message=f"Session {operation} failed: {ForeignStatus.describe(foreign_code)}.",
            recovery=RecoveryAction.RETRY,
            context=ErrorContext(device=device, foreign_code=foreign_code),
        )


class DatafeedError(SigrokError):
    """Datafeed packet failures raised or reported mid-run."""

    def __init__(
        self,
        code: str,
        message: str,
        recovery: RecoveryAction = RecoveryAction.MANUAL,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(ErrorCategory.DATAFEED, code, message, recovery, context)


class MalformedPacketError(DatafeedError):
    """A packet failed length-for-type validation and was dropped."""

    def __init__(self, packet_type: str, reason: str, device: Optional[str] = None) -> None:
        super().__init__(
            code="FEED-001",
            message=f"Malformed {packet_type} packet dropped: {reason}",
            recovery=RecoveryAction.MANUAL,
            context=ErrorContext(device=device, packet_type=packet_type),
        )
        self.reason = reason


class BorrowExpiredError(DatafeedError):
    """A packet view was used after its dispatch call returned."""

    def __init__(self, packet_type: str) -> None:
        super().__init__(
            code="FEED-002",
            message=(
                f"{packet_type} packet data is only valid inside the callback that received it; "
                "call detach() to keep a copy."
            ),
            recovery=RecoveryAction.COPY_DATA,
            context=ErrorContext(packet_type=packet_type),
        )


class LifetimeError(SigrokError):
    """Handle lifetime and ordering violations."""

    def __init__(
        self,
        code: str,
        message: str,
        recovery: RecoveryAction = RecoveryAction.RELEASE_DEPENDENTS,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(ErrorCategory.LIFETIME, code, message, recovery, context)


class HandleClosedError(LifetimeError):
    """The handle (or the context it came from) has already been released."""

    def __init__(self, kind: str) -> None:
        super().__init__(
            code="LIFE-001",
            message=f"{kind} handle has been released and can no longer be used.",
            recovery=RecoveryAction.MANUAL,
        )


class DependentsAliveError(LifetimeError):
    """Teardown was requested while dependent handles are still alive."""

    def __init__(self, kind: str, dependents: list[str]) -> None:
        listed = ", ".join(dependents)
        super().__init__(
            code="LIFE-002",
            message=f"Cannot release {kind} while dependents are alive: {listed}.",
            recovery=RecoveryAction.RELEASE_DEPENDENTS,
        )
        self.dependents = dependents


class ContextMismatchError(LifetimeError):
    """A handle from one context was used with another."""

    def __init__(self, kind: str) -> None:
        super().__init__(
            code="LIFE-003",
            message=f"{kind} belongs to a different context.",
            recovery=RecoveryAction.MANUAL,
        )


def check_status(code: int, error_factory: Callable[[int], SigrokError]) -> None:
    """Raise the translated error for a non-OK native status code.

    Args:
        code: Status code returned by the foreign library.
        error_factory: Builds the domain error from the native code.

    Raises:
        SigrokError: The translated error when ``code`` is not OK.
    """
    if code != ForeignStatus.OK:
        raise error_factory(code)
