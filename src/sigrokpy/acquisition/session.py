"""Acquisition sessions.

A :class:`Session` gathers devices from one or more driver instances into a
single acquisition run and owns the ordered registry of datafeed callbacks.

State machine::

    IDLE --start()--> RUNNING --stop() / end of datafeed--> IDLE

Callbacks run synchronously on the thread driving the event loop, in
registration order, one packet at a time. Packets decoded while the session is
idle are discarded, so no callback fires once a run has ended.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence, assert_never

from sigrokpy.acquisition.event_loop import EventLoop
from sigrokpy.acquisition.triggers import TriggerMatch, TriggerStage, raw_stages
from sigrokpy.config.options import ConfigKey, OptionKey
from sigrokpy.datafeed.decoder import DatafeedDecoder
from sigrokpy.datafeed.packets import (
    Analog,
    Datafeed,
    End,
    FrameBegin,
    FrameEnd,
    Header,
    Logic,
    Meta,
    Trigger,
    ViewLease,
)
from sigrokpy.device import Device
from sigrokpy.errors import (
    AlreadyRunningError,
    ContextMismatchError,
    DatafeedError,
    EmptySessionError,
    ForeignSessionError,
    ForeignStatus,
    HandleClosedError,
    MalformedPacketError,
    check_status,
)
from sigrokpy.foreign.library import RawPacket
from sigrokpy.models import ConfigCapability

if TYPE_CHECKING:
    from sigrokpy.context import Context
    from sigrokpy.driver import DriverInstance

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """State of an acquisition session."""

    IDLE = auto()
    RUNNING = auto()


@dataclass(frozen=True, slots=True)
class SessionStats:
    """Packet counters for a session, accumulated across runs.

    Attributes:
        state: Session state when the snapshot was taken.
        runs: Number of successful starts.
        packets_delivered: Packets decoded and handed to callbacks.
        packets_malformed: Packets dropped by the decoder.
        packets_discarded: Packets that arrived while the session was idle.
    """

    state: SessionState
    runs: int
    packets_delivered: int
    packets_malformed: int
    packets_discarded: int


# (device, packet) -> None
DatafeedCallback = Callable[[Device, Datafeed], None]

# (device, error) -> None
ErrorCallback = Callable[[Device, DatafeedError], None]

StoppedCallback = Callable[[], None]

# How long a cross-thread stop() waits for the loop thread to go idle.
STOP_WAIT_SECONDS = 5.0


class Session:
    """One acquisition run over a set of attached devices.

    Example:
        >>> session = Session(ctx)
        >>> session.add_device(device)
        >>> session.callback_add(lambda dev, packet: print(packet))
        >>> session.start()
        >>> session.run()  # blocks until stop() or the datafeed ends
        >>> session.close()

    Args:
        context: Live context the session belongs to.
        name: Optional label used in logs.

    Raises:
        ForeignSessionError: If the foreign library cannot create a session.
    """

    def __init__(self, context: "Context", name: Optional[str] = None) -> None:
        context._ensure_live()
        self._context = context
        lib = context.library
        code, handle = lib.session_new(context.handle)
        check_status(code, lambda c: ForeignSessionError("creation", c))
        self._handle = handle
        self._name = name or f"session-{handle}"
        self._closed = False

        self._devices: list[Device] = []
        self._by_handle: dict[int, Device] = {}
        self._callbacks: list[DatafeedCallback] = []
        self._error_callbacks: list[ErrorCallback] = []
        self._stopped_callbacks: list[StoppedCallback] = []
        self._triggers: tuple[tuple[TriggerMatch, ...], ...] = ()
        self._parameters: dict[Device, dict[OptionKey, Any]] = {}

        self._state = SessionState.IDLE
        self._state_lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()
        self._dispatching = False
        self._stop_pending = False
        self._stopping = False

        self._runs = 0
        self._delivered = 0
        self._malformed = 0
        self._discarded = 0

        self._decoder = DatafeedDecoder()
        self._loop = EventLoop(self)

        code = lib.session_datafeed_callback_add(handle, self._on_raw_packet)
        if code != ForeignStatus.OK:
            lib.session_destroy(handle)
            raise ForeignSessionError("callback registration", code)
        context._register_session(self)

    # Properties

    @property
    def context(self) -> "Context":
        return self._context

    @property
    def handle(self) -> int:
        return self._handle

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> SessionState:
        """Current session state."""
        with self._state_lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state == SessionState.RUNNING

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def devices(self) -> tuple[Device, ...]:
        """Attached devices in attachment order."""
        return tuple(self._devices)

    @property
    def triggers(self) -> tuple[tuple[TriggerMatch, ...], ...]:
        return self._triggers

    @property
    def loop(self) -> EventLoop:
        """Event loop driving this session's datafeed."""
        return self._loop

    def _ensure_live(self) -> None:
        if self._closed:
            raise HandleClosedError(f"Session '{self._name}'")
        self._context._ensure_live()

    def _ensure_idle(self, operation: str) -> None:
        if self.is_running:
            raise AlreadyRunningError(operation)

    # Device set

    def add_device(self, device: Device) -> None:
        """Attach a device to the acquisition set. Attaching twice is a no-op.

        Raises:
            AlreadyRunningError: If the session is running.
            ContextMismatchError: If the device comes from another context.
            ForeignSessionError: If the device cannot be opened or attached.
        """
        self._ensure_live()
        self._ensure_idle("add a device")
        if device.instance.context is not self._context:
            raise ContextMismatchError(f"Device '{device.description}'")
        device._ensure_live()
        if device in self._devices:
            return

        lib = self._context.library
        code = device._open()
        check_status(code, lambda c: ForeignSessionError("device open", c, device.description))
        code = lib.session_dev_add(self._handle, device.handle)
        check_status(code, lambda c: ForeignSessionError("device attach", c, device.description))
        self._devices.append(device)
        self._by_handle[device.handle] = device
        logger.debug("%s: attached %s", self._name, device.description)

    def add_instance(self, instance: "DriverInstance") -> None:
        """Attach every device from the instance's most recent scan.

        Raises:
            AlreadyRunningError: If the session is running.
        """
        self._ensure_live()
        self._ensure_idle("add a driver instance")
        for device in instance.devices():
            self.add_device(device)

    # Callbacks

    def callback_add(self, callback: DatafeedCallback) -> None:
        """Register a datafeed callback. Callbacks fire in registration order.

        Raises:
            AlreadyRunningError: If the session is running.
        """
        self._ensure_live()
        self._ensure_idle("add a callback")
        self._callbacks.append(callback)

    def error_callback_add(self, callback: ErrorCallback) -> None:
        """Register a callback for packets dropped as malformed."""
        self._ensure_live()
        self._ensure_idle("add a callback")
        self._error_callbacks.append(callback)

    def stopped_callback_add(self, callback: StoppedCallback) -> None:
        """Register a callback invoked each time a run returns to idle."""
        self._ensure_live()
        self._ensure_idle("add a callback")
        self._stopped_callbacks.append(callback)

    def callbacks_remove_all(self) -> None:
        """Remove every datafeed, error and stopped callback."""
        self._ensure_live()
        self._ensure_idle("remove callbacks")
        self._callbacks.clear()
        self._error_callbacks.clear()
        self._stopped_callbacks.clear()

    # Triggers

    def set_triggers(self, stages: Sequence[TriggerStage]) -> None:
        """Install trigger stages for the next run; an empty sequence clears them.

        Raises:
            AlreadyRunningError: If the session is running.
            InvalidValueError: If a match does not apply to its channel.
            ContextMismatchError: If a channel's device is not attached.
            ForeignSessionError: If the library rejects the trigger.
        """
        self._ensure_live()
        self._ensure_idle("change triggers")
        for stage in stages:
            for match in stage:
                if match.channel.device not in self._devices:
                    raise ContextMismatchError(f"Trigger channel '{match.channel.name}'")
        raw = raw_stages(stages)
        code = self._context.library.session_trigger_set(self._handle, raw)
        check_status(code, lambda c: ForeignSessionError("trigger setup", c))
        self._triggers = tuple(tuple(stage) for stage in stages if stage)

    # Acquisition parameters

    def parameters(self, device: Device) -> dict[OptionKey, Any]:
        """Current acquisition parameters of ``device`` as reported by the datafeed.

        Seeded from the device configuration at start and updated by every
        :class:`Meta` packet.
        """
        return dict(self._parameters.get(device, {}))

    def _seed_parameters(self, device: Device) -> dict[OptionKey, Any]:
        params: dict[OptionKey, Any] = {}
        if device.config_capabilities(ConfigKey.SAMPLERATE) & ConfigCapability.GET:
            params[ConfigKey.SAMPLERATE] = device.config_get(ConfigKey.SAMPLERATE)
        return params

    # Lifecycle

    def start(self) -> None:
        """Arm every attached device and enter RUNNING.

        Raises:
            AlreadyRunningError: If the session is already running.
            EmptySessionError: If no devices are attached.
            ForeignSessionError: If the library refuses to start; the session stays idle.
        """
        self._ensure_live()
        self._ensure_idle("start the session")
        if not self._devices:
            raise EmptySessionError()

        parameters = {device: self._seed_parameters(device) for device in self._devices}
        self._loop._reset()
        code = self._context.library.session_start(self._handle)
        check_status(code, lambda c: ForeignSessionError("start", c))

        with self._state_lock:
            self._state = SessionState.RUNNING
            self._parameters = parameters
            self._stop_pending = False
            self._stopping = False
            self._runs += 1
        self._idle.clear()
        for device in self._devices:
            device._acquiring += 1
        logger.info("%s: started with %d device(s)", self._name, len(self._devices))

    def stop(self) -> None:
        """Stop the run. Calling it on an idle session does nothing.

        Inside a datafeed callback the stop takes effect once the current
        packet has been delivered to every callback. From another thread
        while the event loop runs, the loop thread performs the stop and this
        call waits for the session to become idle.

        Raises:
            ForeignSessionError: If the library reports a stop failure.
        """
        if not self.is_running or self._stopping:
            return
        if self._loop.runs_on_other_thread():
            self._loop.request_stop()
            if not self._idle.wait(STOP_WAIT_SECONDS):
                logger.warning("%s: event loop did not stop within %.1fs", self._name, STOP_WAIT_SECONDS)
            return
        if self._dispatching:
            self._stop_pending = True
            return
        self._stop_now()

    def _stop_now(self) -> None:
        self._stopping = True
        try:
            code = self._context.library.session_stop(self._handle)
        finally:
            self._finish("stopped")
        check_status(code, lambda c: ForeignSessionError("stop", c))

    def _finish(self, reason: str) -> None:
        with self._state_lock:
            if self._state is SessionState.IDLE:
                return
            self._state = SessionState.IDLE
            self._stop_pending = False
        for device in self._devices:
            device._acquiring -= 1
        self._stopping = False
        self._idle.set()
        logger.info("%s: %s", self._name, reason)
        for callback in list(self._stopped_callbacks):
            callback()

    def iterate(self, timeout_ms: Optional[int] = None) -> bool:
        """Run one event loop iteration. See :meth:`EventLoop.iterate`."""
        return self._loop.iterate(timeout_ms)

    def run(self) -> None:
        """Block until the run ends. See :meth:`EventLoop.run`."""
        self._loop.run()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until the session is idle. Returns False on timeout."""
        return self._idle.wait(timeout)

    def stats(self) -> SessionStats:
        """Snapshot of the session's packet counters."""
        return SessionStats(
            state=self.state,
            runs=self._runs,
            packets_delivered=self._delivered,
            packets_malformed=self._malformed,
            packets_discarded=self._discarded,
        )

    def close(self) -> None:
        """Stop the session if needed and release it. Idempotent.

        Raises:
            ForeignSessionError: If the library fails to destroy the session.
        """
        if self._closed:
            return
        if self.is_running:
            self.stop()
        code = self._context.library.session_destroy(self._handle)
        self._closed = True
        self._context._forget_session(self)
        logger.debug("%s: closed", self._name)
        check_status(code, lambda c: ForeignSessionError("destroy", c))

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type: Optional[type], exc: Optional[BaseException], tb: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else self.state.name.lower()
        return f"Session({self._name!r}, {state}, {len(self._devices)} device(s))"

    # Datafeed dispatch

    def _on_raw_packet(self, device_handle: int, raw: RawPacket) -> None:
        """Decode one foreign packet and hand it to the callbacks."""
        if not self.is_running:
            self._discarded += 1
            logger.debug("%s: discarding packet type %d delivered while idle", self._name, raw.type)
            return
        device = self._by_handle.get(device_handle)
        if device is None:
            self._discarded += 1
            logger.warning("%s: discarding packet from unattached device handle %d", self._name, device_handle)
            return

        lease = ViewLease()
        try:
            try:
                packet = self._decoder.decode(device, raw, lease)
            except MalformedPacketError as e:
                self._malformed += 1
                logger.warning("%s: %s", self._name, e)
                for callback in list(self._error_callbacks):
                    callback(device, e)
                return

            self._observe(device, packet)
            self._dispatching = True
            try:
                for callback in list(self._callbacks):
                    callback(device, packet)
            finally:
                self._dispatching = False
            self._delivered += 1
        finally:
            lease.release()
            if self._stop_pending and not self._stopping:
                self._stop_pending = False
                self._stop_now()

    def _observe(self, device: Device, packet: Datafeed) -> None:
        match packet:
            case Meta(config=config):
                self._parameters.setdefault(device, {}).update(config)
                logger.debug("%s: %s parameters updated: %r", self._name, device.description, dict(config))
            case Header(start_time=start):
                logger.debug("%s: %s datafeed started at %s", self._name, device.description, start.isoformat())
            case End():
                logger.debug("%s: %s datafeed ended", self._name, device.description)
            case Logic() | Analog() | Trigger() | FrameBegin() | FrameEnd():
                pass
            case _:
                assert_never(packet)
