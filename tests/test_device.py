"""Tests for device topology, channels and configuration."""

import pytest

from sigrokpy.acquisition import Session
from sigrokpy.config import ConfigKey, ValueRange
from sigrokpy.device import Device
from sigrokpy.driver import DriverInstance
from sigrokpy.errors import (
    ForeignConfigError,
    ForeignStatus,
    HandleClosedError,
    InvalidValueError,
    SessionActiveError,
    UnsupportedOptionError,
)
from sigrokpy.foreign import DemoLibrary
from sigrokpy.foreign.demo import LOGIC_PATTERNS
from sigrokpy.models import ChannelType, ConfigCapability


class TestTopology:
    """Tests for channels and channel groups read at scan time."""

    def test_metadata(self, device: Device) -> None:
        assert device.vendor == "Demo"
        assert device.model == "Logic Analyzer"
        assert device.version == "1.0"
        assert device.serial_number == ""

    def test_channels(self, device: Device) -> None:
        channels = device.channels()
        assert [c.name for c in channels] == ["D0", "D1", "A0"]
        assert [c.index for c in channels] == [0, 1, 2]
        assert channels[0].type is ChannelType.LOGIC
        assert channels[2].type is ChannelType.ANALOG
        assert all(c.enabled for c in channels)
        assert all(c.device is device for c in channels)

    def test_channel_lookup(self, device: Device) -> None:
        assert device.channel("A0").index == 2
        with pytest.raises(KeyError):
            device.channel("D9")

    def test_groups(self, device: Device) -> None:
        assert [g.name for g in device.channel_groups()] == ["Logic", "Analog", "A0"]
        logic = device.channel_group("Logic")
        assert logic.channels == (device.channel("D0"), device.channel("D1"))
        with pytest.raises(KeyError):
            device.channel_group("Digital")

    def test_topology_is_stable(self, device: Device) -> None:
        assert device.channels() is device.channels()
        assert device.channel_groups() is device.channel_groups()


class TestDeviceConfig:
    """Tests for device-level options."""

    def test_config_list(self, device: Device) -> None:
        assert device.config_list() == {
            ConfigKey.SAMPLERATE,
            ConfigKey.LIMIT_SAMPLES,
            ConfigKey.AVERAGING,
            ConfigKey.AVG_SAMPLES,
        }

    def test_capabilities(self, device: Device) -> None:
        caps = device.config_capabilities(ConfigKey.SAMPLERATE)
        assert caps == ConfigCapability.GET | ConfigCapability.SET | ConfigCapability.LIST
        assert device.config_capabilities(ConfigKey.VDIV) == ConfigCapability.NONE

    def test_get_default(self, device: Device) -> None:
        assert device.config_get(ConfigKey.SAMPLERATE) == 200_000

    def test_set_then_get(self, device: Device) -> None:
        device.config_set(ConfigKey.SAMPLERATE, 1_000_000)
        assert device.config_get(ConfigKey.SAMPLERATE) == 1_000_000

    def test_set_bool(self, device: Device) -> None:
        device.config_set(ConfigKey.AVERAGING, True)
        assert device.config_get(ConfigKey.AVERAGING) is True

    def test_values_range(self, device: Device) -> None:
        listing = device.config_values(ConfigKey.SAMPLERATE)
        assert isinstance(listing, ValueRange)
        assert 1_000_000 in listing

    def test_values_unsupported(self, device: Device) -> None:
        with pytest.raises(UnsupportedOptionError, match="listing"):
            device.config_values(ConfigKey.LIMIT_SAMPLES)

    def test_get_unsupported(self, device: Device) -> None:
        with pytest.raises(UnsupportedOptionError) as exc_info:
            device.config_get(ConfigKey.VDIV)
        assert exc_info.value.context.option == "VDIV"

    def test_set_unsupported(self, device: Device) -> None:
        with pytest.raises(UnsupportedOptionError, match="set"):
            device.config_set(ConfigKey.VDIV, (1, 10))

    def test_set_wrong_type(self, device: Device) -> None:
        with pytest.raises(InvalidValueError):
            device.config_set(ConfigKey.SAMPLERATE, "fast")
        assert device.config_get(ConfigKey.SAMPLERATE) == 200_000

    def test_set_outside_listing(self, device: Device) -> None:
        with pytest.raises(InvalidValueError, match="outside accepted range"):
            device.config_set(ConfigKey.SAMPLERATE, 0)

    def test_foreign_rejection(self, device: Device, demo_library: DemoLibrary) -> None:
        demo_library.fail_next("config_set", ForeignStatus.ERR_IO)
        with pytest.raises(ForeignConfigError) as exc_info:
            device.config_set(ConfigKey.LIMIT_SAMPLES, 100)
        assert exc_info.value.foreign_code == ForeignStatus.ERR_IO
        assert device.config_get(ConfigKey.LIMIT_SAMPLES) == 0

    def test_foreign_get_failure(self, device: Device, demo_library: DemoLibrary) -> None:
        demo_library.fail_next("config_get", ForeignStatus.ERR_TIMEOUT)
        with pytest.raises(ForeignConfigError):
            device.config_get(ConfigKey.SAMPLERATE)

    def test_released_instance(self, device: Device, instance: DriverInstance) -> None:
        instance.release()
        with pytest.raises(HandleClosedError):
            device.config_get(ConfigKey.SAMPLERATE)


class TestChannelGroupConfig:
    """Tests for channel-group options."""

    def test_logic_pattern(self, device: Device) -> None:
        group = device.channel_group("Logic")
        assert group.config_get(ConfigKey.PATTERN_MODE) == "sigrok"
        assert group.config_values(ConfigKey.PATTERN_MODE) == LOGIC_PATTERNS
        group.config_set(ConfigKey.PATTERN_MODE, "walking-one")
        assert group.config_get(ConfigKey.PATTERN_MODE) == "walking-one"

    def test_unlisted_pattern(self, device: Device) -> None:
        with pytest.raises(InvalidValueError, match="not one of"):
            device.channel_group("Logic").config_set(ConfigKey.PATTERN_MODE, "bogus")

    def test_group_options_are_separate(self, device: Device) -> None:
        assert ConfigKey.PATTERN_MODE not in device.config_list()
        assert ConfigKey.AMPLITUDE in device.channel_group("Analog").config_list()
        assert ConfigKey.AMPLITUDE not in device.channel_group("Logic").config_list()

    def test_analog_group_fans_out(self, device: Device) -> None:
        device.channel_group("Analog").config_set(ConfigKey.AMPLITUDE, 5.0)
        assert device.channel_group("A0").config_get(ConfigKey.AMPLITUDE) == 5.0

    def test_amplitude_int_normalized(self, device: Device) -> None:
        device.channel_group("A0").config_set(ConfigKey.AMPLITUDE, 3)
        value = device.channel_group("A0").config_get(ConfigKey.AMPLITUDE)
        assert value == 3.0
        assert isinstance(value, float)

    def test_error_names_group(self, device: Device) -> None:
        with pytest.raises(UnsupportedOptionError, match="Demo Logic Analyzer/Logic"):
            device.channel_group("Logic").config_get(ConfigKey.AMPLITUDE)


class TestChannelEnable:
    """Tests for channel enable flags."""

    def test_disable_and_enable(self, device: Device, demo_library: DemoLibrary) -> None:
        d1 = device.channel("D1")
        d1.disable()
        assert not d1.enabled
        assert not demo_library.dev_channels(device.handle)[1].enabled
        d1.enable()
        assert d1.enabled

    def test_blocked_while_running(self, attached: Session, device: Device) -> None:
        attached.start()
        assert device.is_acquiring
        with pytest.raises(SessionActiveError, match="channel D0"):
            device.channel("D0").disable()
        attached.stop()
        assert not device.is_acquiring
        device.channel("D0").disable()
        assert not device.channel("D0").enabled

    def test_foreign_rejection(self, device: Device, demo_library: DemoLibrary) -> None:
        demo_library.fail_next("dev_channel_enable", ForeignStatus.ERR)
        with pytest.raises(ForeignConfigError):
            device.channel("D0").disable()
        assert device.channel("D0").enabled
