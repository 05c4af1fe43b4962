"""Devices, channels and channel groups discovered by a driver instance.

A :class:`Device` is owned by the :class:`~sigrokpy.driver.DriverInstance`
whose scan produced it. Topology (channels and groups) is read once, at scan
time; channel enable flags are the only mutable part and may only change while
no running session contains the device.

Both devices and channel groups expose the same configuration surface:

    >>> device.config_list()
    frozenset({<ConfigKey.SAMPLERATE: 30000>, ...})
    >>> device.config_set(ConfigKey.SAMPLERATE, 1_000_000)
    >>> device.channel_group("Logic").config_get(ConfigKey.PATTERN_MODE)
    'sigrok'
"""

import logging
from typing import TYPE_CHECKING, Any, Optional, Union

from sigrokpy.config.options import (
    OptionKey,
    ValueRange,
    check_listed,
    normalize_key,
    option_name,
    validate_value,
)
from sigrokpy.errors import (
    ForeignConfigError,
    ForeignStatus,
    SessionActiveError,
    UnsupportedOptionError,
    check_status,
)
from sigrokpy.models import ChannelType, ConfigCapability, coerce_enum

if TYPE_CHECKING:
    from sigrokpy.driver import DriverInstance
    from sigrokpy.foreign.library import ForeignLibrary

logger = logging.getLogger(__name__)


class Configurable:
    """Option get/set/list against a device, or one of its channel groups."""

    def _config_scope(self) -> tuple["Device", Optional[str]]:
        raise NotImplementedError

    @property
    def _target(self) -> str:
        raise NotImplementedError

    def _config_handles(self) -> tuple["ForeignLibrary", int, int, Optional[str]]:
        device, group = self._config_scope()
        device._ensure_live()
        return device.instance.context.library, device.instance.driver.handle, device.handle, group

    def config_options(self) -> dict[OptionKey, ConfigCapability]:
        """Return every supported option with the access the driver grants on it.

        Raises:
            ForeignConfigError: If the driver cannot enumerate its options.
        """
        lib, drv, dev, group = self._config_handles()
        code, options = lib.config_options(drv, dev, group)
        check_status(code, lambda c: ForeignConfigError("options", self._target, c))
        return {normalize_key(key): ConfigCapability(caps) for key, caps in options.items()}

    def config_list(self) -> frozenset[OptionKey]:
        """Return the set of supported option identifiers."""
        return frozenset(self.config_options())

    def config_capabilities(self, key: int) -> ConfigCapability:
        """Return GET/SET/LIST access for ``key`` (``NONE`` when unsupported)."""
        return self.config_options().get(normalize_key(key), ConfigCapability.NONE)

    def _require(self, key: int, capability: ConfigCapability, access: str) -> None:
        if not self.config_capabilities(key) & capability:
            raise UnsupportedOptionError(option_name(key), self._target, access)

    def config_get(self, key: int) -> Any:
        """Read the current value of an option.

        Raises:
            UnsupportedOptionError: If the option cannot be read here.
            ForeignConfigError: If the driver fails to report the value.
        """
        self._require(key, ConfigCapability.GET, "get")
        lib, drv, dev, group = self._config_handles()
        code, value = lib.config_get(drv, dev, group, int(key))
        check_status(code, lambda c: ForeignConfigError(option_name(key), self._target, c))
        return value

    def config_values(self, key: int) -> Union[tuple[Any, ...], ValueRange]:
        """Return the values the driver accepts for ``key``.

        Returns:
            A tuple of discrete choices, or a :class:`ValueRange`.

        Raises:
            UnsupportedOptionError: If the driver does not list values for the option.
            ForeignConfigError: If the driver fails to produce the listing.
        """
        self._require(key, ConfigCapability.LIST, "listing")
        lib, drv, dev, group = self._config_handles()
        code, listing = lib.config_list(drv, dev, group, int(key))
        check_status(code, lambda c: ForeignConfigError(option_name(key), self._target, c))
        if isinstance(listing, ValueRange):
            return listing
        return tuple(listing or ())

    def config_set(self, key: int, value: Any) -> None:
        """Change an option.

        The value is checked against the option's declared type and, when the
        driver lists accepted values, against that listing before it is sent.

        Raises:
            UnsupportedOptionError: If the option is absent or read-only.
            InvalidValueError: If the value does not fit the option.
            ForeignConfigError: If the driver rejects the change.
        """
        capabilities = self.config_capabilities(key)
        if not capabilities & ConfigCapability.SET:
            raise UnsupportedOptionError(option_name(key), self._target, "set")
        value = validate_value(key, value)
        if capabilities & ConfigCapability.LIST:
            check_listed(key, value, self.config_values(key))

        lib, _, dev, group = self._config_handles()
        code = lib.config_set(dev, group, int(key), value)
        check_status(code, lambda c: ForeignConfigError(option_name(key), self._target, c))
        logger.debug("%s: set %s = %r", self._target, option_name(key), value)


class Channel:
    """A single signal line of a device."""

    def __init__(self, device: "Device", index: int, name: str, type: int, enabled: bool) -> None:
        self._device = device
        self._index = index
        self._name = name
        self._type = coerce_enum(ChannelType, type)
        self._enabled = enabled

    @property
    def device(self) -> "Device":
        return self._device

    @property
    def index(self) -> int:
        return self._index

    @property
    def name(self) -> str:
        return self._name

    @property
    def type(self) -> Union[ChannelType, int]:
        return self._type

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable the channel.

        Raises:
            SessionActiveError: If a running session contains the device.
            ForeignConfigError: If the driver rejects the change.
        """
        device = self._device
        device._ensure_live()
        if device.is_acquiring:
            raise SessionActiveError(device.description, f"channel {self._name}")
        lib = device.instance.context.library
        code = lib.dev_channel_enable(device.handle, self._index, bool(enabled))
        check_status(code, lambda c: ForeignConfigError("ENABLED", f"{device.description}/{self._name}", c))
        self._enabled = bool(enabled)

    def enable(self) -> None:
        self.set_enabled(True)

    def disable(self) -> None:
        self.set_enabled(False)

    def __repr__(self) -> str:
        kind = self._type.name if isinstance(self._type, ChannelType) else self._type
        return f"Channel({self._name!r}, index={self._index}, type={kind}, enabled={self._enabled})"


class ChannelGroup(Configurable):
    """A named set of channels that can be configured together."""

    def __init__(self, device: "Device", name: str, channels: tuple[Channel, ...]) -> None:
        self._device = device
        self._name = name
        self._channels = channels

    @property
    def device(self) -> "Device":
        return self._device

    @property
    def name(self) -> str:
        return self._name

    @property
    def channels(self) -> tuple[Channel, ...]:
        return self._channels

    def _config_scope(self) -> tuple["Device", Optional[str]]:
        return self._device, self._name

    @property
    def _target(self) -> str:
        return f"{self._device.description}/{self._name}"

    def __repr__(self) -> str:
        return f"ChannelGroup({self._name!r}, channels={[c.name for c in self._channels]})"


class Device(Configurable):
    """A hardware unit discovered by a driver instance scan.

    Attributes:
        vendor: Vendor name.
        model: Model name.
        version: Hardware or firmware version string.
        serial_number: Serial number (may be empty).
        connection_id: Bus-specific connection identifier.
    """

    def __init__(self, instance: "DriverInstance", handle: int) -> None:
        self._instance = instance
        self._handle = handle
        lib = instance.context.library

        info = lib.dev_info(handle)
        self.vendor = info.vendor
        self.model = info.model
        self.version = info.version
        self.serial_number = info.serial_number
        self.connection_id = info.connection_id

        self._channels = tuple(Channel(self, c.index, c.name, c.type, c.enabled) for c in lib.dev_channels(handle))
        by_index = {c.index: c for c in self._channels}
        self._groups = tuple(
            ChannelGroup(self, g.name, tuple(by_index[i] for i in g.channels if i in by_index))
            for g in lib.dev_channel_groups(handle)
        )
        self._is_open = False
        self._acquiring = 0

    @property
    def instance(self) -> "DriverInstance":
        """The driver instance that discovered this device."""
        return self._instance

    @property
    def handle(self) -> int:
        return self._handle

    @property
    def description(self) -> str:
        return " ".join(part for part in (self.vendor, self.model) if part) or f"device {self._handle}"

    @property
    def is_acquiring(self) -> bool:
        """Whether a running session currently contains this device."""
        return self._acquiring > 0

    @property
    def is_open(self) -> bool:
        return self._is_open

    def _ensure_live(self) -> None:
        self._instance._ensure_live()

    def channels(self) -> tuple[Channel, ...]:
        """Return the channels reported at scan time."""
        return self._channels

    def channel(self, name: str) -> Channel:
        """Return the channel called ``name``.

        Raises:
            KeyError: If the device has no such channel.
        """
        for ch in self._channels:
            if ch.name == name:
                return ch
        raise KeyError(name)

    def channel_groups(self) -> tuple[ChannelGroup, ...]:
        """Return the channel groups reported at scan time."""
        return self._groups

    def channel_group(self, name: str) -> ChannelGroup:
        """Return the channel group called ``name``.

        Raises:
            KeyError: If the device has no such group.
        """
        for group in self._groups:
            if group.name == name:
                return group
        raise KeyError(name)

    def _config_scope(self) -> tuple["Device", Optional[str]]:
        return self, None

    @property
    def _target(self) -> str:
        return self.description

    # Session bookkeeping

    def _open(self) -> int:
        """Open the device for acquisition; already-open devices are accepted."""
        if self._is_open:
            return ForeignStatus.OK
        code = self._instance.context.library.dev_open(self._handle)
        if code in (ForeignStatus.OK, ForeignStatus.ERR):
            # The foreign library reports a generic error for devices it already has open.
            self._is_open = True
            return ForeignStatus.OK
        return code

    def _close(self) -> None:
        if self._is_open:
            code = self._instance.context.library.dev_close(self._handle)
            self._is_open = False
            if code != ForeignStatus.OK:
                logger.warning("%s: close failed: %s", self.description, ForeignStatus.describe(code))

    def __repr__(self) -> str:
        return f"Device({self.description!r}, channels={[c.name for c in self._channels]})"
