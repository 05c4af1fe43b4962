"""Tests for the event loop driving a session's datafeed."""

import pytest
from conftest import Recorder

from sigrokpy.acquisition import EventLoop, Session, SessionState
from sigrokpy.datafeed import Datafeed, End, Header, Logic
from sigrokpy.device import Device
from sigrokpy.errors import ForeignSessionError, ForeignStatus
from sigrokpy.foreign import DemoLibrary


class TestIterate:
    """Tests for single-step iteration."""

    def test_idle_session(self, attached: Session) -> None:
        assert not attached.loop.iterate()

    def test_poll_timeout_from_settings(self, attached: Session) -> None:
        assert attached.loop.poll_timeout_ms == 5

    def test_poll_timeout_override(self, attached: Session) -> None:
        assert EventLoop(attached, poll_timeout_ms=20).poll_timeout_ms == 20

    def test_iterate_without_events_keeps_running(self, attached: Session) -> None:
        attached.start()
        assert attached.loop.iterate(0)
        assert attached.loop.iterate(0)
        assert attached.is_running

    def test_request_stop(self, attached: Session, recorder: Recorder) -> None:
        attached.callback_add(recorder)
        attached.start()
        attached.loop.request_stop()
        assert attached.loop.stop_requested
        assert not attached.loop.iterate(0)
        assert attached.state is SessionState.IDLE
        assert not attached.loop.stop_requested
        assert isinstance(recorder.packets[-1], End)

    def test_start_clears_stale_stop_request(self, attached: Session) -> None:
        attached.loop.request_stop()
        attached.start()
        assert not attached.loop.stop_requested
        assert attached.loop.iterate(0)

    def test_iteration_failure(self, attached: Session, demo_library: DemoLibrary) -> None:
        attached.start()
        demo_library.fail_next("session_iteration", ForeignStatus.ERR_IO)
        with pytest.raises(ForeignSessionError, match="iteration") as exc_info:
            attached.loop.iterate(0)
        assert exc_info.value.foreign_code == ForeignStatus.ERR_IO
        assert attached.is_running


class TestRun:
    """Tests for the blocking loop."""

    def test_run_until_end(
        self, attached: Session, device: Device, demo_library: DemoLibrary, recorder: Recorder
    ) -> None:
        attached.callback_add(recorder)
        attached.start()
        demo_library.inject_logic(device.handle, b"\x01\x02")
        demo_library.inject_end(device.handle)
        attached.run()
        assert [type(p) for p in recorder.packets] == [Header, Logic, End]
        assert not attached.loop.is_running

    def test_run_on_idle_session_returns(self, attached: Session) -> None:
        attached.run()
        assert attached.state is SessionState.IDLE

    def test_stop_from_callback_ends_run(
        self, attached: Session, device: Device, demo_library: DemoLibrary
    ) -> None:
        attached.callback_add(lambda dev, p: attached.stop() if isinstance(p, Logic) else None)
        attached.start()
        demo_library.inject_logic(device.handle, b"\x01")
        attached.run()
        assert attached.state is SessionState.IDLE

    def test_reentrant_run_rejected(self, attached: Session, device: Device, demo_library: DemoLibrary) -> None:
        errors: list[Exception] = []

        def nested(dev: Device, packet: Datafeed) -> None:
            if isinstance(packet, Header):
                try:
                    attached.loop.run()
                except RuntimeError as e:
                    errors.append(e)
                attached.stop()

        attached.callback_add(nested)
        attached.start()
        attached.run()
        assert len(errors) == 1
        assert "already running" in str(errors[0])


class TestLoopThread:
    """Tests for running the loop on a dedicated thread."""

    def test_join_without_thread(self, attached: Session) -> None:
        assert attached.loop.join()

    def test_not_on_other_thread_when_idle(self, attached: Session) -> None:
        assert not attached.loop.runs_on_other_thread()

    def test_thread_runs_until_stop(self, attached: Session) -> None:
        attached.start()
        thread = attached.loop.start_thread()
        assert thread.name == "SigrokEventLoop"
        assert thread.daemon
        assert attached.loop.runs_on_other_thread()
        with pytest.raises(RuntimeError, match="already running"):
            attached.loop.start_thread()
        attached.stop()
        assert attached.loop.join(timeout=2.0)
        assert attached.state is SessionState.IDLE

    def test_thread_error_reraised_by_join(
        self, attached: Session, device: Device, demo_library: DemoLibrary
    ) -> None:
        def explode(dev: Device, packet: Datafeed) -> None:
            if isinstance(packet, Logic):
                raise ValueError("bad sample")

        attached.callback_add(explode)
        attached.start()
        demo_library.inject_logic(device.handle, b"\x01")
        attached.loop.start_thread()
        with pytest.raises(ValueError, match="bad sample"):
            attached.loop.join(timeout=2.0)
        assert attached.state is SessionState.IDLE
        assert attached.loop.join()

    def test_thread_ends_with_datafeed(
        self, attached: Session, device: Device, demo_library: DemoLibrary, recorder: Recorder
    ) -> None:
        attached.callback_add(recorder)
        attached.start()
        demo_library.inject_end(device.handle)
        attached.loop.start_thread()
        assert attached.loop.join(timeout=2.0)
        assert attached.wait_idle(0)
        assert isinstance(recorder.packets[-1], End)
