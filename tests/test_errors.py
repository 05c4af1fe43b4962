"""Tests for sigrokpy error types and status translation."""

import pytest

from sigrokpy.errors import (
    AlreadyRunningError,
    BorrowExpiredError,
    ConfigError,
    ContextAlreadyActiveError,
    ContextMismatchError,
    DatafeedError,
    DependentsAliveError,
    DriverAlreadyInitializedError,
    DriverError,
    DriverNotFoundError,
    EmptySessionError,
    ErrorCategory,
    ErrorContext,
    ForeignConfigError,
    ForeignDriverError,
    ForeignInitError,
    ForeignSessionError,
    ForeignStatus,
    HandleClosedError,
    InitError,
    InvalidSettingsError,
    InvalidValueError,
    LifetimeError,
    MalformedPacketError,
    RecoveryAction,
    SessionActiveError,
    SessionError,
    SigrokError,
    UnknownBackendError,
    UnsupportedOptionError,
    check_status,
)


class TestErrorContext:
    """Tests for ErrorContext dataclass."""

    def test_default_values(self) -> None:
        """ErrorContext has all None defaults."""
        ctx = ErrorContext()
        assert ctx.driver is None
        assert ctx.device is None
        assert ctx.option is None
        assert ctx.packet_type is None
        assert ctx.foreign_code is None

    def test_frozen(self) -> None:
        """ErrorContext is immutable."""
        ctx = ErrorContext(driver="demo")
        with pytest.raises(AttributeError):
            ctx.driver = "other"  # type: ignore[misc]


class TestSigrokError:
    """Tests for the base error class."""

    def test_str_includes_code_and_message(self) -> None:
        err = SigrokError(
            category=ErrorCategory.SESSION,
            code="TEST-001",
            message="Test error message",
            recovery=RecoveryAction.RETRY,
        )
        assert str(err) == "[TEST-001] Test error message"

    def test_context_defaults_to_empty(self) -> None:
        err = SigrokError(ErrorCategory.INIT, "X", "msg", RecoveryAction.MANUAL)
        assert err.context == ErrorContext()
        assert err.foreign_code is None

    def test_is_exception(self) -> None:
        with pytest.raises(SigrokError):
            raise SigrokError(ErrorCategory.INIT, "X", "msg", RecoveryAction.MANUAL)


class TestForeignStatus:
    """Tests for native status code naming."""

    def test_known_code(self) -> None:
        assert ForeignStatus.describe(-3) == "ERR_ARG"

    def test_unknown_code(self) -> None:
        assert ForeignStatus.describe(-99) == "UNKNOWN(-99)"

    def test_ok_is_zero(self) -> None:
        assert ForeignStatus.OK == 0


class TestInitErrors:
    """Tests for library initialization errors."""

    def test_foreign_init_error(self) -> None:
        err = ForeignInitError(ForeignStatus.ERR_MALLOC)
        assert isinstance(err, InitError)
        assert err.category == ErrorCategory.INIT
        assert err.code == "INIT-001"
        assert err.foreign_code == ForeignStatus.ERR_MALLOC
        assert "ERR_MALLOC" in err.message

    def test_foreign_teardown_error_names_operation(self) -> None:
        err = ForeignInitError(ForeignStatus.ERR, "teardown")
        assert "teardown" in err.message

    def test_context_already_active(self) -> None:
        err = ContextAlreadyActiveError()
        assert err.code == "INIT-002"
        assert err.recovery == RecoveryAction.RELEASE_DEPENDENTS

    def test_unknown_backend_lists_available(self) -> None:
        err = UnknownBackendError("usb", ["demo"])
        assert err.code == "INIT-003"
        assert "demo" in err.message

    def test_invalid_settings_lists_problems(self) -> None:
        err = InvalidSettingsError(["backend must not be empty", "poll_timeout_ms must be positive, got 0"])
        assert isinstance(err, InitError)
        assert err.code == "INIT-006"
        assert err.recovery == RecoveryAction.FIX_VALUE
        assert "backend must not be empty; poll_timeout_ms" in err.message


class TestDriverErrors:
    """Tests for driver activation errors."""

    def test_already_initialized(self) -> None:
        err = DriverAlreadyInitializedError("demo")
        assert isinstance(err, DriverError)
        assert err.code == "DRV-001"
        assert err.context.driver == "demo"

    def test_foreign_driver_error_carries_code(self) -> None:
        err = ForeignDriverError("demo", "scan", ForeignStatus.ERR_IO)
        assert err.code == "DRV-002"
        assert err.foreign_code == ForeignStatus.ERR_IO
        assert "scan" in err.message

    def test_not_found(self) -> None:
        err = DriverNotFoundError("nope")
        assert err.code == "DRV-003"
        assert "nope" in str(err)


class TestConfigErrors:
    """Tests for configuration errors."""

    def test_unsupported(self) -> None:
        err = UnsupportedOptionError("VDIV", "Demo Logic Analyzer", "set")
        assert isinstance(err, ConfigError)
        assert err.code == "CFG-001"
        assert err.context.option == "VDIV"

    def test_invalid_value(self) -> None:
        err = InvalidValueError("SAMPLERATE", "fast", "expected an unsigned 64-bit integer")
        assert err.code == "CFG-002"
        assert err.recovery == RecoveryAction.FIX_VALUE
        assert "'fast'" in err.message

    def test_session_active(self) -> None:
        err = SessionActiveError("Demo Logic Analyzer", "channel D0")
        assert err.code == "CFG-003"
        assert err.recovery == RecoveryAction.STOP_SESSION

    def test_foreign_config_error(self) -> None:
        err = ForeignConfigError("SAMPLERATE", "Demo", ForeignStatus.ERR_SAMPLERATE)
        assert err.code == "CFG-004"
        assert err.foreign_code == ForeignStatus.ERR_SAMPLERATE


class TestSessionErrors:
    """Tests for session lifecycle errors."""

    def test_already_running(self) -> None:
        err = AlreadyRunningError("add a device")
        assert isinstance(err, SessionError)
        assert err.code == "SES-001"
        assert "add a device" in err.message

    def test_empty(self) -> None:
        assert EmptySessionError().code == "SES-002"

    def test_foreign_session_error(self) -> None:
        err = ForeignSessionError("start", ForeignStatus.ERR_DEV_CLOSED, device="Demo")
        assert err.code == "SES-003"
        assert err.context.device == "Demo"
        assert err.foreign_code == ForeignStatus.ERR_DEV_CLOSED


class TestDatafeedErrors:
    """Tests for datafeed errors."""

    def test_malformed_packet(self) -> None:
        err = MalformedPacketError("LOGIC", "length 3 is not a multiple of unit size 2", device="Demo")
        assert isinstance(err, DatafeedError)
        assert err.code == "FEED-001"
        assert err.reason == "length 3 is not a multiple of unit size 2"
        assert err.context.packet_type == "LOGIC"

    def test_borrow_expired_suggests_copy(self) -> None:
        err = BorrowExpiredError("Analog")
        assert err.code == "FEED-002"
        assert err.recovery == RecoveryAction.COPY_DATA
        assert "detach()" in err.message


class TestLifetimeErrors:
    """Tests for handle lifetime errors."""

    def test_handle_closed(self) -> None:
        err = HandleClosedError("Context")
        assert isinstance(err, LifetimeError)
        assert err.code == "LIFE-001"

    def test_dependents_alive_lists_dependents(self) -> None:
        err = DependentsAliveError("context", ["Session('a')", "DriverInstance('demo')"])
        assert err.code == "LIFE-002"
        assert err.dependents == ["Session('a')", "DriverInstance('demo')"]
        assert "Session('a')" in err.message

    def test_context_mismatch(self) -> None:
        assert ContextMismatchError("Device").code == "LIFE-003"


class TestCheckStatus:
    """Tests for native status translation."""

    def test_ok_does_not_raise(self) -> None:
        check_status(ForeignStatus.OK, lambda c: ForeignDriverError("demo", "scan", c))

    def test_error_raises_translated_error(self) -> None:
        with pytest.raises(ForeignDriverError) as exc_info:
            check_status(ForeignStatus.ERR_IO, lambda c: ForeignDriverError("demo", "scan", c))
        assert exc_info.value.foreign_code == ForeignStatus.ERR_IO

    def test_unknown_negative_code_still_raises(self) -> None:
        with pytest.raises(ForeignInitError):
            check_status(-42, ForeignInitError)
