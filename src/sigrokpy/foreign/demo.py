"""Deterministic in-memory foreign library for testing without hardware.

This backend implements the :class:`~sigrokpy.foreign.library.ForeignLibrary`
contract entirely in Python:
- Configurable drivers and devices (default: driver ``demo`` with one device
  exposing logic channels D0-D1 and analog channel A0)
- Per-device and per-channel-group option stores with capabilities and listings
- Pattern generation when ``LIMIT_SAMPLES`` is configured
- Packet injection for scripted datafeeds (logic, analog, frames, meta, end)
- Fault injection (``fail_next``) for exercising native error paths

Sample memory is copied into :class:`ForeignBuffer` blocks right before a
packet is delivered and freed as soon as every callback has returned, which is
how a native driver treats its transfer buffers.

Example:
    >>> lib = DemoLibrary()
    >>> code, ctx = lib.init()
    >>> drv = lib.driver_list(ctx)[0]
    >>> lib.driver_init(ctx, drv)
    0
"""

import collections
import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

import numpy as np

from sigrokpy.config.options import ConfigKey, ValueRange
from sigrokpy.errors import ForeignStatus
from sigrokpy.foreign.library import (
    RawAnalog,
    RawChannel,
    RawChannelGroup,
    RawDatafeedCallback,
    RawDeviceInfo,
    RawDriverInfo,
    RawEncoding,
    RawHeader,
    RawLogCallback,
    RawLogic,
    RawMeaning,
    RawMeta,
    RawPacket,
    RawTriggerMatch,
)
from sigrokpy.foreign.memory import ForeignBuffer
from sigrokpy.models import (
    ChannelType,
    ConfigCapability,
    DriverFunction,
    LogLevel,
    MeasuredQuantity,
    MqFlag,
    PacketType,
    Unit,
)

OK = ForeignStatus.OK

LOGIC_PATTERNS = ("sigrok", "random", "incremental", "walking-one", "all-low", "all-high")
ANALOG_PATTERNS = ("square", "sine", "triangle", "sawtooth")

# Repeating 8-channel bitmap used by the "sigrok" logic pattern.
SIGROK_PATTERN = (0x4C, 0x92, 0x92, 0x92, 0x64, 0x00, 0x7C, 0x82, 0x82, 0x82, 0x44, 0x00)

ANALOG_PERIOD_SAMPLES = 64
CHUNK_SAMPLES = 256
MAX_LOGIC_CHANNELS = 64

_GSL = ConfigCapability.GET | ConfigCapability.SET | ConfigCapability.LIST
_GS = ConfigCapability.GET | ConfigCapability.SET


@dataclass(frozen=True, slots=True)
class OptionDef:
    """Declared capability, default value and accepted values of an option."""

    capability: ConfigCapability
    default: Any
    listing: Any = None


DEVICE_OPTIONS: dict[int, OptionDef] = {
    ConfigKey.SAMPLERATE: OptionDef(_GSL, 200_000, ValueRange(1, 1_000_000_000, 1)),
    ConfigKey.LIMIT_SAMPLES: OptionDef(_GS, 0),
    ConfigKey.AVERAGING: OptionDef(_GS, False),
    ConfigKey.AVG_SAMPLES: OptionDef(_GS, 0),
}

LOGIC_GROUP_OPTIONS: dict[int, OptionDef] = {
    ConfigKey.PATTERN_MODE: OptionDef(_GSL, "sigrok", LOGIC_PATTERNS),
}

ANALOG_GROUP_OPTIONS: dict[int, OptionDef] = {
    ConfigKey.PATTERN_MODE: OptionDef(_GSL, "sine", ANALOG_PATTERNS),
    ConfigKey.AMPLITUDE: OptionDef(_GSL, 10.0, ValueRange(0.0, 100.0)),
    ConfigKey.OFFSET: OptionDef(_GS, 0.0),
}


@dataclass
class DemoDeviceSpec:
    """Description of one simulated device."""

    vendor: str = "Demo"
    model: str = "Logic Analyzer"
    version: str = "1.0"
    serial_number: str = ""
    connection_id: str = ""
    logic_channels: int = 2
    analog_channels: int = 1

    def __post_init__(self) -> None:
        if not 0 <= self.logic_channels <= MAX_LOGIC_CHANNELS:
            raise ValueError(f"logic_channels must be in 0..{MAX_LOGIC_CHANNELS}, got {self.logic_channels}")
        if self.analog_channels < 0:
            raise ValueError(f"analog_channels must be non-negative, got {self.analog_channels}")


@dataclass
class DemoDriverSpec:
    """Description of one simulated driver and the devices it finds."""

    name: str = "demo"
    long_name: str = "Demo driver and pattern generator"
    api_version: int = 1
    functions: tuple[DriverFunction, ...] = (
        DriverFunction.DEMO_DEV,
        DriverFunction.LOGIC_ANALYZER,
        DriverFunction.OSCILLOSCOPE,
    )
    devices: list[DemoDeviceSpec] = field(default_factory=lambda: [DemoDeviceSpec()])


@dataclass
class _Pending:
    """A packet waiting for delivery; sample bytes are copied out at emission."""

    device: int
    type: int
    data: Optional[bytes] = None
    params: dict[str, Any] = field(default_factory=dict)


class _DemoDriver:
    def __init__(self, handle: int, spec: DemoDriverSpec) -> None:
        self.handle = handle
        self.spec = spec
        self.initialized = False
        self.devices: list["_DemoDevice"] = []
        self.scanned: list[int] = []


class _DemoDevice:
    def __init__(self, handle: int, driver: _DemoDriver, spec: DemoDeviceSpec, ordinal: int) -> None:
        self.handle = handle
        self.driver = driver
        self.spec = spec
        self.connection_id = spec.connection_id or f"demo:{ordinal}"
        self.is_open = False

        self.channels: list[RawChannel] = []
        for i in range(spec.logic_channels):
            self.channels.append(RawChannel(i, f"D{i}", ChannelType.LOGIC, True))
        for i in range(spec.analog_channels):
            index = spec.logic_channels + i
            self.channels.append(RawChannel(index, f"A{i}", ChannelType.ANALOG, True))

        self.groups: list[RawChannelGroup] = []
        self.group_config: dict[str, dict[int, Any]] = {}
        self.group_options: dict[str, dict[int, OptionDef]] = {}
        logic = tuple(c.index for c in self.channels if c.type == ChannelType.LOGIC)
        analog = tuple(c.index for c in self.channels if c.type == ChannelType.ANALOG)
        if logic:
            self._add_group("Logic", logic, LOGIC_GROUP_OPTIONS)
        if analog:
            self._add_group("Analog", analog, ANALOG_GROUP_OPTIONS)
            for index in analog:
                self._add_group(self.channels[index].name, (index,), ANALOG_GROUP_OPTIONS)

        self.config: dict[int, Any] = {k: d.default for k, d in DEVICE_OPTIONS.items()}

    def _add_group(self, name: str, channels: tuple[int, ...], options: dict[int, OptionDef]) -> None:
        self.groups.append(RawChannelGroup(name, channels))
        self.group_options[name] = options
        self.group_config[name] = {k: d.default for k, d in options.items()}

    @property
    def logic_indices(self) -> list[int]:
        return [c.index for c in self.channels if c.type == ChannelType.LOGIC]

    @property
    def analog_channels(self) -> list[RawChannel]:
        return [c for c in self.channels if c.type == ChannelType.ANALOG]

    def set_enabled(self, index: int, enabled: bool) -> None:
        ch = self.channels[index]
        self.channels[index] = RawChannel(ch.index, ch.name, ch.type, enabled)


class _DemoSession:
    def __init__(self, handle: int, ctx: int) -> None:
        self.handle = handle
        self.ctx = ctx
        self.devices: list[_DemoDevice] = []
        self.callbacks: list[RawDatafeedCallback] = []
        self.triggers: list[list[RawTriggerMatch]] = []
        self.running = False
        self.queue: collections.deque[_Pending] = collections.deque()
        self.generated: dict[int, int] = {}
        self.ended: set[int] = set()
        self.lock = threading.Lock()
        self.wake = threading.Event()


class DemoLibrary:
    """In-memory implementation of the foreign acquisition library.

    Args:
        drivers: Driver descriptions. Defaults to a single ``demo`` driver.
        seed: Seed for the ``random`` logic pattern.
    """

    def __init__(self, drivers: Optional[Sequence[DemoDriverSpec]] = None, seed: Optional[int] = 0) -> None:
        self._handles = itertools.count(1)
        self._rng = np.random.default_rng(seed)
        self._contexts: set[int] = set()
        self._drivers: dict[int, _DemoDriver] = {}
        for spec in drivers if drivers is not None else [DemoDriverSpec()]:
            handle = next(self._handles)
            self._drivers[handle] = _DemoDriver(handle, spec)
        self._devices: dict[int, _DemoDevice] = {}
        self._sessions: dict[int, _DemoSession] = {}
        self._faults: dict[str, collections.deque[int]] = collections.defaultdict(collections.deque)
        self._log_level = LogLevel.WARN
        self._log_callback: Optional[RawLogCallback] = None

    # -- Fault injection ---------------------------------------------------

    def fail_next(self, operation: str, code: int = ForeignStatus.ERR) -> None:
        """Make the next call to ``operation`` (an entry point name) return ``code``."""
        self._faults[operation].append(int(code))

    def _fault(self, operation: str) -> Optional[int]:
        queue = self._faults.get(operation)
        if queue:
            return queue.popleft()
        return None

    def _log(self, level: LogLevel, message: str) -> None:
        if self._log_callback is not None and level <= self._log_level:
            self._log_callback(int(level), message)

    # -- Context -----------------------------------------------------------

    def init(self) -> tuple[int, int]:
        code = self._fault("init")
        if code is not None:
            return code, 0
        handle = next(self._handles)
        self._contexts.add(handle)
        return OK, handle

    def exit(self, ctx: int) -> int:
        code = self._fault("exit")
        if code is not None:
            return code
        if ctx not in self._contexts:
            return ForeignStatus.ERR_ARG
        for ses in [s for s in self._sessions.values() if s.ctx == ctx]:
            self.session_destroy(ses.handle)
        for drv in self._drivers.values():
            if drv.initialized:
                self.driver_cleanup(drv.handle)
        self._contexts.discard(ctx)
        return OK

    @property
    def active_contexts(self) -> int:
        """Number of contexts initialized and not yet exited."""
        return len(self._contexts)

    # -- Drivers -----------------------------------------------------------

    def driver_list(self, ctx: int) -> list[int]:
        if ctx not in self._contexts:
            return []
        return list(self._drivers)

    def driver_info(self, drv: int) -> RawDriverInfo:
        spec = self._drivers[drv].spec
        return RawDriverInfo(spec.name, spec.long_name, spec.api_version)

    def driver_functions(self, drv: int) -> tuple[int, list[int]]:
        driver = self._drivers.get(drv)
        if driver is None:
            return ForeignStatus.ERR_ARG, []
        return OK, [int(f) for f in driver.spec.functions]

    def driver_init(self, ctx: int, drv: int) -> int:
        code = self._fault("driver_init")
        if code is not None:
            return code
        driver = self._drivers.get(drv)
        if driver is None or ctx not in self._contexts:
            return ForeignStatus.ERR_ARG
        driver.initialized = True
        if not driver.devices:
            for ordinal, spec in enumerate(driver.spec.devices):
                handle = next(self._handles)
                device = _DemoDevice(handle, driver, spec, ordinal)
                driver.devices.append(device)
                self._devices[handle] = device
        return OK

    def driver_cleanup(self, drv: int) -> int:
        driver = self._drivers.get(drv)
        if driver is None:
            return ForeignStatus.ERR_ARG
        for device in driver.devices:
            device.is_open = False
            self._devices.pop(device.handle, None)
        driver.devices = []
        driver.scanned = []
        driver.initialized = False
        return OK

    def driver_scan(self, drv: int, options: Sequence[tuple[int, Any]]) -> tuple[int, list[int]]:
        code = self._fault("driver_scan")
        if code is not None:
            return code, []
        driver = self._drivers.get(drv)
        if driver is None or not driver.initialized:
            return ForeignStatus.ERR_ARG, []
        conn = dict(options).get(ConfigKey.CONN)
        found = [d.handle for d in driver.devices if conn is None or d.connection_id == conn]
        driver.scanned = found
        self._log(LogLevel.DBG, f"{driver.spec.name}: scan found {len(found)} device(s)")
        return OK, list(found)

    # -- Devices -----------------------------------------------------------

    def dev_list(self, drv: int) -> list[int]:
        driver = self._drivers.get(drv)
        return list(driver.scanned) if driver is not None else []

    def dev_info(self, dev: int) -> RawDeviceInfo:
        d = self._devices[dev]
        return RawDeviceInfo(d.spec.vendor, d.spec.model, d.spec.version, d.spec.serial_number, d.connection_id)

    def dev_channels(self, dev: int) -> list[RawChannel]:
        return list(self._devices[dev].channels)

    def dev_channel_groups(self, dev: int) -> list[RawChannelGroup]:
        return list(self._devices[dev].groups)

    def dev_channel_enable(self, dev: int, index: int, enabled: bool) -> int:
        code = self._fault("dev_channel_enable")
        if code is not None:
            return code
        device = self._devices.get(dev)
        if device is None or not 0 <= index < len(device.channels):
            return ForeignStatus.ERR_ARG
        device.set_enabled(index, enabled)
        return OK

    def dev_open(self, dev: int) -> int:
        code = self._fault("dev_open")
        if code is not None:
            return code
        device = self._devices.get(dev)
        if device is None:
            return ForeignStatus.ERR_ARG
        if device.is_open:
            return ForeignStatus.ERR
        device.is_open = True
        return OK

    def dev_close(self, dev: int) -> int:
        device = self._devices.get(dev)
        if device is None:
            return ForeignStatus.ERR_ARG
        device.is_open = False
        return OK

    def is_open(self, dev: int) -> bool:
        """Whether a device handle is currently open."""
        device = self._devices.get(dev)
        return device is not None and device.is_open

    # -- Configuration -----------------------------------------------------

    def _option_table(self, dev: Optional[int], group: Optional[str]) -> Optional[tuple[dict[int, OptionDef], dict[int, Any]]]:
        if dev is None:
            return {}, {}
        device = self._devices.get(dev)
        if device is None:
            return None
        if group is None:
            return DEVICE_OPTIONS, device.config
        if group not in device.group_options:
            return None
        return device.group_options[group], device.group_config[group]

    def config_options(self, drv: int, dev: Optional[int], group: Optional[str]) -> tuple[int, dict[int, int]]:
        table = self._option_table(dev, group)
        if table is None:
            return ForeignStatus.ERR_CHANNEL_GROUP, {}
        options, _ = table
        return OK, {int(k): int(d.capability) for k, d in options.items()}

    def config_get(self, drv: int, dev: Optional[int], group: Optional[str], key: int) -> tuple[int, Any]:
        code = self._fault("config_get")
        if code is not None:
            return code, None
        table = self._option_table(dev, group)
        if table is None:
            return ForeignStatus.ERR_CHANNEL_GROUP, None
        options, values = table
        definition = options.get(key)
        if definition is None or not definition.capability & ConfigCapability.GET:
            return ForeignStatus.ERR_NA, None
        return OK, values[key]

    def config_set(self, dev: int, group: Optional[str], key: int, value: Any) -> int:
        code = self._fault("config_set")
        if code is not None:
            return code
        table = self._option_table(dev, group)
        if table is None:
            return ForeignStatus.ERR_CHANNEL_GROUP
        options, values = table
        definition = options.get(key)
        if definition is None or not definition.capability & ConfigCapability.SET:
            return ForeignStatus.ERR_NA
        listing = definition.listing
        if listing is not None and value not in listing:
            return ForeignStatus.ERR_SAMPLERATE if key == ConfigKey.SAMPLERATE else ForeignStatus.ERR_ARG
        values[key] = value
        device = self._devices[dev]
        if group == "Analog":
            # The aggregate analog group fans out to every analog channel group.
            for ch in device.analog_channels:
                device.group_config[ch.name][key] = value
        return OK

    def config_list(self, drv: int, dev: Optional[int], group: Optional[str], key: int) -> tuple[int, Any]:
        table = self._option_table(dev, group)
        if table is None:
            return ForeignStatus.ERR_CHANNEL_GROUP, None
        options, _ = table
        definition = options.get(key)
        if definition is None or not definition.capability & ConfigCapability.LIST:
            return ForeignStatus.ERR_NA, None
        return OK, definition.listing

    # -- Sessions ----------------------------------------------------------

    def session_new(self, ctx: int) -> tuple[int, int]:
        code = self._fault("session_new")
        if code is not None:
            return code, 0
        if ctx not in self._contexts:
            return ForeignStatus.ERR_ARG, 0
        handle = next(self._handles)
        self._sessions[handle] = _DemoSession(handle, ctx)
        return OK, handle

    def session_destroy(self, ses: int) -> int:
        session = self._sessions.get(ses)
        if session is None:
            return ForeignStatus.ERR_ARG
        if session.running:
            self.session_stop(ses)
        del self._sessions[ses]
        return OK

    def session_dev_add(self, ses: int, dev: int) -> int:
        code = self._fault("session_dev_add")
        if code is not None:
            return code
        session = self._sessions.get(ses)
        device = self._devices.get(dev)
        if session is None or device is None:
            return ForeignStatus.ERR_ARG
        if device not in session.devices:
            session.devices.append(device)
        return OK

    def session_datafeed_callback_add(self, ses: int, callback: RawDatafeedCallback) -> int:
        session = self._sessions.get(ses)
        if session is None:
            return ForeignStatus.ERR_ARG
        session.callbacks.append(callback)
        return OK

    def session_datafeed_callback_remove_all(self, ses: int) -> int:
        session = self._sessions.get(ses)
        if session is None:
            return ForeignStatus.ERR_ARG
        session.callbacks.clear()
        return OK

    def session_trigger_set(self, ses: int, stages: Sequence[Sequence[RawTriggerMatch]]) -> int:
        session = self._sessions.get(ses)
        if session is None:
            return ForeignStatus.ERR_ARG
        session.triggers = [list(stage) for stage in stages if stage]
        return OK

    def session_start(self, ses: int) -> int:
        code = self._fault("session_start")
        if code is not None:
            return code
        session = self._sessions.get(ses)
        if session is None or not session.devices:
            return ForeignStatus.ERR_ARG
        if session.running:
            return ForeignStatus.ERR
        if any(not d.is_open for d in session.devices):
            return ForeignStatus.ERR_DEV_CLOSED

        now = time.time()
        start_time = (int(now), int((now % 1) * 1_000_000))
        with session.lock:
            session.generated = {d.handle: 0 for d in session.devices}
            session.ended = set()
            preamble = [_Pending(d.handle, PacketType.HEADER, params={"start_time": start_time}) for d in session.devices]
            if session.triggers:
                preamble += [_Pending(d.handle, PacketType.TRIGGER) for d in session.devices]
            session.queue.extendleft(reversed(preamble))
            session.running = True
            session.wake.set()
        self._log(LogLevel.INFO, f"Starting session with {len(session.devices)} device(s)")
        return OK

    def session_stop(self, ses: int) -> int:
        code = self._fault("session_stop")
        if code is not None:
            return code
        session = self._sessions.get(ses)
        if session is None:
            return ForeignStatus.ERR_ARG
        if not session.running:
            return OK
        with session.lock:
            session.queue.clear()
            remaining = [d.handle for d in session.devices if d.handle not in session.ended]
        for dev in remaining:
            self._emit(session, _Pending(dev, PacketType.END))
        session.running = False
        session.wake.set()
        self._log(LogLevel.INFO, "Stopped session")
        return OK

    def session_iteration(self, ses: int, timeout_ms: int) -> tuple[int, bool]:
        session = self._sessions.get(ses)
        if session is None:
            return ForeignStatus.ERR_ARG, False
        code = self._fault("session_iteration")
        if code is not None:
            return code, session.running
        if not session.running:
            return OK, False

        pending = self._next_pending(session)
        if pending is None:
            session.wake.wait(max(timeout_ms, 0) / 1000.0)
            return OK, session.running

        self._emit(session, pending)
        if pending.type == PacketType.END:
            session.ended.add(pending.device)
            if all(d.handle in session.ended for d in session.devices):
                session.running = False
        return OK, session.running

    def session_running(self, ses: int) -> bool:
        """Whether the foreign session is currently acquiring."""
        session = self._sessions.get(ses)
        return session is not None and session.running

    # -- Injection ---------------------------------------------------------

    def _session_for(self, dev: int) -> _DemoSession:
        candidates = [s for s in self._sessions.values() if any(d.handle == dev for d in s.devices)]
        if not candidates:
            raise ValueError(f"device {dev} is not attached to any session")
        running = [s for s in candidates if s.running]
        return (running or candidates)[-1]

    def _enqueue(self, pending: _Pending) -> None:
        session = self._session_for(pending.device)
        with session.lock:
            session.queue.append(pending)
            session.wake.set()

    def inject_logic(self, dev: int, data: bytes, unit_size: int = 1, length: Optional[int] = None) -> None:
        """Queue a logic packet; ``length`` defaults to ``len(data)``."""
        self._enqueue(
            _Pending(dev, PacketType.LOGIC, bytes(data), {"unitsize": unit_size, "length": len(data) if length is None else length})
        )

    def inject_analog(
        self,
        dev: int,
        samples: np.ndarray | bytes,
        *,
        encoding: Optional[RawEncoding] = None,
        meaning: Optional[RawMeaning] = None,
        num_samples: Optional[int] = None,
        length: Optional[int] = None,
    ) -> None:
        """Queue an analog packet.

        A numpy array supplies its own encoding (width, signedness, float,
        byte order); raw bytes need an explicit ``encoding`` and ``num_samples``.
        """
        if isinstance(samples, np.ndarray):
            data = samples.tobytes()
            if encoding is None:
                encoding = encoding_for_dtype(samples.dtype)
            if num_samples is None:
                num_samples = int(samples.shape[0])
        else:
            data = bytes(samples)
            if encoding is None or num_samples is None:
                raise ValueError("raw analog bytes need an explicit encoding and num_samples")
        if meaning is None:
            device = self._devices[dev]
            first = device.analog_channels[:1]
            meaning = RawMeaning(MeasuredQuantity.VOLTAGE, MqFlag.DC, Unit.VOLT, tuple(c.index for c in first))
        self._enqueue(
            _Pending(
                dev,
                PacketType.ANALOG,
                data,
                {
                    "encoding": encoding,
                    "meaning": meaning,
                    "num_samples": num_samples,
                    "length": len(data) if length is None else length,
                },
            )
        )

    def inject_meta(self, dev: int, config: dict[int, Any]) -> None:
        self._enqueue(_Pending(dev, PacketType.META, params={"config": tuple(config.items())}))

    def inject_frame_begin(self, dev: int) -> None:
        self._enqueue(_Pending(dev, PacketType.FRAME_BEGIN))

    def inject_frame_end(self, dev: int) -> None:
        self._enqueue(_Pending(dev, PacketType.FRAME_END))

    def inject_trigger(self, dev: int) -> None:
        self._enqueue(_Pending(dev, PacketType.TRIGGER))

    def inject_end(self, dev: int) -> None:
        self._enqueue(_Pending(dev, PacketType.END))

    def inject_packet(self, dev: int, packet_type: int, payload: Any = None) -> None:
        """Queue a packet with an arbitrary type tag and a prebuilt payload."""
        self._enqueue(_Pending(dev, packet_type, params={"payload": payload}))

    # -- Emission ----------------------------------------------------------

    def _next_pending(self, session: _DemoSession) -> Optional[_Pending]:
        with session.lock:
            if not session.queue:
                self._generate(session)
            if session.queue:
                return session.queue.popleft()
            session.wake.clear()
            return None

    def _emit(self, session: _DemoSession, pending: _Pending) -> None:
        buffers: list[ForeignBuffer] = []
        packet = self._materialize(pending, buffers)
        try:
            for callback in list(session.callbacks):
                callback(pending.device, packet)
        finally:
            for buf in buffers:
                buf.free()

    def _materialize(self, pending: _Pending, buffers: list[ForeignBuffer]) -> RawPacket:
        params = pending.params
        if "payload" in params:
            return RawPacket(pending.type, params["payload"])
        if pending.type == PacketType.HEADER:
            return RawPacket(pending.type, RawHeader(1, params["start_time"]))
        if pending.type == PacketType.LOGIC:
            buf = ForeignBuffer.from_bytes(pending.data or b"")
            buffers.append(buf)
            return RawPacket(pending.type, RawLogic(params["length"], params["unitsize"], buf))
        if pending.type == PacketType.ANALOG:
            buf = ForeignBuffer.from_bytes(pending.data or b"")
            buffers.append(buf)
            return RawPacket(
                pending.type,
                RawAnalog(buf, params["length"], params["num_samples"], params["encoding"], params["meaning"]),
            )
        if pending.type == PacketType.META:
            return RawPacket(pending.type, RawMeta(params["config"]))
        return RawPacket(pending.type)

    # -- Pattern generation ------------------------------------------------

    def _generate(self, session: _DemoSession) -> None:
        """Queue the next chunk for every device with a sample limit (lock held)."""
        for device in session.devices:
            limit = device.config.get(ConfigKey.LIMIT_SAMPLES, 0)
            if not limit or device.handle in session.ended:
                continue
            done = session.generated.get(device.handle, 0)
            if done >= limit:
                if not any(p.device == device.handle and p.type == PacketType.END for p in session.queue):
                    session.queue.append(_Pending(device.handle, PacketType.END))
                continue
            count = min(CHUNK_SAMPLES, limit - done)
            if device.logic_indices:
                session.queue.append(self._logic_chunk(device, done, count))
            for ch in device.analog_channels:
                if ch.enabled:
                    session.queue.append(self._analog_chunk(device, ch, done, count))
            session.generated[device.handle] = done + count

    def _logic_chunk(self, device: _DemoDevice, start: int, count: int) -> _Pending:
        nlogic = len(device.logic_indices)
        unit_size = max(1, (nlogic + 7) // 8)
        full = (1 << nlogic) - 1
        mode = device.group_config["Logic"][ConfigKey.PATTERN_MODE]
        idx = np.arange(start, start + count, dtype=np.uint64)

        if mode == "sigrok":
            pattern = np.array(SIGROK_PATTERN, dtype=np.uint64)
            values = pattern[idx % len(pattern)]
        elif mode == "random":
            values = self._rng.integers(0, full, size=count, dtype=np.uint64, endpoint=True)
        elif mode == "incremental":
            values = idx.copy()
        elif mode == "walking-one":
            values = np.left_shift(np.uint64(1), idx % np.uint64(max(nlogic, 1)))
        elif mode == "all-high":
            values = np.full(count, full, dtype=np.uint64)
        else:
            values = np.zeros(count, dtype=np.uint64)

        mask = sum(1 << c.index for c in device.channels if c.type == ChannelType.LOGIC and c.enabled)
        values = values & np.uint64(mask & full)
        raw = values.astype("<u8").view(np.uint8).reshape(count, 8)[:, :unit_size]
        data = raw.tobytes()
        return _Pending(device.handle, PacketType.LOGIC, data, {"unitsize": unit_size, "length": len(data)})

    def _analog_chunk(self, device: _DemoDevice, channel: RawChannel, start: int, count: int) -> _Pending:
        cfg = device.group_config[channel.name]
        phase = (np.arange(start, start + count) % ANALOG_PERIOD_SAMPLES) / ANALOG_PERIOD_SAMPLES
        mode = cfg[ConfigKey.PATTERN_MODE]
        if mode == "square":
            wave = np.where(phase < 0.5, 1.0, -1.0)
        elif mode == "triangle":
            wave = 4.0 * np.abs(phase - 0.5) - 1.0
        elif mode == "sawtooth":
            wave = 2.0 * phase - 1.0
        else:
            wave = np.sin(2.0 * np.pi * phase)
        values = (cfg[ConfigKey.AMPLITUDE] * wave + cfg[ConfigKey.OFFSET]).astype("<f4")
        data = values.tobytes()
        return _Pending(
            device.handle,
            PacketType.ANALOG,
            data,
            {
                "encoding": encoding_for_dtype(values.dtype),
                "meaning": RawMeaning(MeasuredQuantity.VOLTAGE, MqFlag.DC, Unit.VOLT, (channel.index,)),
                "num_samples": count,
                "length": len(data),
            },
        )

    # -- Logging -----------------------------------------------------------

    def log_level_get(self) -> int:
        return int(self._log_level)

    def log_level_set(self, level: int) -> int:
        code = self._fault("log_level_set")
        if code is not None:
            return code
        try:
            self._log_level = LogLevel(level)
        except ValueError:
            return ForeignStatus.ERR_ARG
        return OK

    def log_callback_set(self, callback: Optional[Callable[[int, str], None]]) -> int:
        code = self._fault("log_callback_set")
        if code is not None:
            return code
        self._log_callback = callback
        return OK


def encoding_for_dtype(dtype: np.dtype, scale: tuple[int, int] = (1, 1), offset: tuple[int, int] = (0, 1)) -> RawEncoding:
    """Build the analog encoding that describes samples of ``dtype``."""
    dtype = np.dtype(dtype)
    if dtype.kind not in "iuf":
        raise ValueError(f"unsupported analog sample dtype {dtype}")
    big = dtype.byteorder == ">" or (dtype.byteorder == "=" and np.little_endian is False)
    return RawEncoding(
        unitsize=dtype.itemsize,
        is_signed=dtype.kind in "if",
        is_float=dtype.kind == "f",
        is_bigendian=big,
        digits=4,
        is_digits_decimal=True,
        scale=scale,
        offset=offset,
    )
