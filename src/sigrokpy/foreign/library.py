"""Capability contract of the foreign acquisition library.

The native library is consumed as an opaque set of entry points. Handles are
opaque integers; every entry point that can fail returns a native status code
(see :class:`sigrokpy.errors.ForeignStatus`) which callers must check.

The ``Raw*`` structures mirror the payloads the library passes across the
boundary. Sample memory inside them is :class:`ForeignBuffer`, valid only for
the duration of the callback that receives it.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, Sequence, Union

from sigrokpy.foreign.memory import ForeignBuffer


@dataclass(frozen=True, slots=True)
class RawDriverInfo:
    name: str
    long_name: str
    api_version: int


@dataclass(frozen=True, slots=True)
class RawDeviceInfo:
    vendor: str
    model: str
    version: str
    serial_number: str
    connection_id: str


@dataclass(frozen=True, slots=True)
class RawChannel:
    index: int
    name: str
    type: int
    enabled: bool


@dataclass(frozen=True, slots=True)
class RawChannelGroup:
    name: str
    channels: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class RawTriggerMatch:
    channel: int
    match: int
    value: float = 0.0


@dataclass(frozen=True, slots=True)
class RawHeader:
    feed_version: int
    start_time: tuple[int, int]  # (seconds, microseconds) since the epoch


@dataclass(frozen=True, slots=True)
class RawLogic:
    """Logic payload: ``length`` bytes of ``unitsize``-byte sample groups."""

    length: int
    unitsize: int
    data: ForeignBuffer


@dataclass(frozen=True, slots=True)
class RawEncoding:
    """How analog samples are laid out and scaled.

    ``scale`` and ``offset`` are rationals given as ``(numerator, denominator)``.
    """

    unitsize: int
    is_signed: bool
    is_float: bool
    is_bigendian: bool
    digits: int = 0
    is_digits_decimal: bool = False
    scale: tuple[int, int] = (1, 1)
    offset: tuple[int, int] = (0, 1)


@dataclass(frozen=True, slots=True)
class RawMeaning:
    mq: int
    mqflags: int
    unit: int
    channels: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class RawAnalog:
    """Analog payload: ``num_samples`` samples per channel, interleaved."""

    data: ForeignBuffer
    length: int
    num_samples: int
    encoding: RawEncoding
    meaning: RawMeaning


@dataclass(frozen=True, slots=True)
class RawMeta:
    config: tuple[tuple[int, Any], ...] = field(default_factory=tuple)


RawPayload = Union[RawHeader, RawLogic, RawAnalog, RawMeta, None]


@dataclass(frozen=True, slots=True)
class RawPacket:
    type: int
    payload: RawPayload = None


# (device handle, packet) -> None, invoked on the thread running session_iteration.
RawDatafeedCallback = Callable[[int, RawPacket], None]

# (native log level, message) -> None
RawLogCallback = Callable[[int, str], None]


class ForeignLibrary(Protocol):
    """Entry points the acquisition core consumes."""

    # Context
    def init(self) -> tuple[int, int]: ...

    def exit(self, ctx: int) -> int: ...

    # Drivers
    def driver_list(self, ctx: int) -> list[int]: ...

    def driver_info(self, drv: int) -> RawDriverInfo: ...

    def driver_functions(self, drv: int) -> tuple[int, list[int]]: ...

    def driver_init(self, ctx: int, drv: int) -> int: ...

    def driver_cleanup(self, drv: int) -> int: ...

    def driver_scan(self, drv: int, options: Sequence[tuple[int, Any]]) -> tuple[int, list[int]]: ...

    # Devices
    def dev_list(self, drv: int) -> list[int]: ...

    def dev_info(self, dev: int) -> RawDeviceInfo: ...

    def dev_channels(self, dev: int) -> list[RawChannel]: ...

    def dev_channel_groups(self, dev: int) -> list[RawChannelGroup]: ...

    def dev_channel_enable(self, dev: int, index: int, enabled: bool) -> int: ...

    def dev_open(self, dev: int) -> int: ...

    def dev_close(self, dev: int) -> int: ...

    # Configuration (``group`` is a channel group name, or None for the device)
    def config_options(self, drv: int, dev: Optional[int], group: Optional[str]) -> tuple[int, dict[int, int]]: ...

    def config_get(self, drv: int, dev: Optional[int], group: Optional[str], key: int) -> tuple[int, Any]: ...

    def config_set(self, dev: int, group: Optional[str], key: int, value: Any) -> int: ...

    def config_list(self, drv: int, dev: Optional[int], group: Optional[str], key: int) -> tuple[int, Any]: ...

    # Sessions
    def session_new(self, ctx: int) -> tuple[int, int]: ...

    def session_destroy(self, ses: int) -> int: ...

    def session_dev_add(self, ses: int, dev: int) -> int: ...

    def session_datafeed_callback_add(self, ses: int, callback: RawDatafeedCallback) -> int: ...

    def session_datafeed_callback_remove_all(self, ses: int) -> int: ...

    def session_trigger_set(self, ses: int, stages: Sequence[Sequence[RawTriggerMatch]]) -> int: ...

    def session_start(self, ses: int) -> int: ...

    def session_stop(self, ses: int) -> int: ...

    def session_iteration(self, ses: int, timeout_ms: int) -> tuple[int, bool]: ...

    # Logging
    def log_level_get(self) -> int: ...

    def log_level_set(self, level: int) -> int: ...

    def log_callback_set(self, callback: Optional[RawLogCallback]) -> int: ...
