"""Tests for datafeed decoding and borrowed sample views."""

from datetime import datetime, timezone
from fractions import Fraction

import numpy as np
import pytest

from sigrokpy.config.options import ConfigKey
from sigrokpy.datafeed import (
    Analog,
    DatafeedDecoder,
    End,
    FrameBegin,
    FrameEnd,
    Header,
    Logic,
    Meta,
    Trigger,
    ViewLease,
    detach,
)
from sigrokpy.device import Device
from sigrokpy.errors import BorrowExpiredError, MalformedPacketError
from sigrokpy.foreign import ForeignBuffer
from sigrokpy.foreign.demo import encoding_for_dtype
from sigrokpy.foreign.library import (
    RawAnalog,
    RawEncoding,
    RawHeader,
    RawLogic,
    RawMeaning,
    RawMeta,
    RawPacket,
)
from sigrokpy.models import MeasuredQuantity, MqFlag, PacketType, Unit

VOLTS = RawMeaning(MeasuredQuantity.VOLTAGE, MqFlag.DC, Unit.VOLT, (2,))


def logic_packet(data: bytes, unitsize: int = 1, length: int | None = None) -> RawPacket:
    buf = ForeignBuffer.from_bytes(data)
    return RawPacket(PacketType.LOGIC, RawLogic(len(data) if length is None else length, unitsize, buf))


def analog_packet(
    samples: np.ndarray,
    encoding: RawEncoding | None = None,
    meaning: RawMeaning = VOLTS,
    num_samples: int | None = None,
    length: int | None = None,
) -> RawPacket:
    data = samples.tobytes()
    payload = RawAnalog(
        ForeignBuffer.from_bytes(data),
        len(data) if length is None else length,
        samples.shape[0] if num_samples is None else num_samples,
        encoding or encoding_for_dtype(samples.dtype),
        meaning,
    )
    return RawPacket(PacketType.ANALOG, payload)


@pytest.fixture
def decoder() -> DatafeedDecoder:
    return DatafeedDecoder()


@pytest.fixture
def lease() -> ViewLease:
    return ViewLease()


class TestSimplePackets:
    """Tests for packets without sample data."""

    def test_header_time_is_utc(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        packet = decoder.decode(device, RawPacket(PacketType.HEADER, RawHeader(1, (1_700_000_000, 250_000))), lease)
        assert isinstance(packet, Header)
        assert packet.feed_version == 1
        assert packet.start_time == datetime(2023, 11, 14, 22, 13, 20, 250_000, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        ("start_time", "reason"),
        [
            ((10**20, 0), "not representable"),
            ((1_700_000_000, 1_000_000), "out of range"),
            ((1_700_000_000, -5), "out of range"),
            (("soon", 0), "not a (seconds, micros) pair"),
            ((1, 2, 3), "not a (seconds, micros) pair"),
        ],
    )
    def test_bad_header_time(
        self, decoder: DatafeedDecoder, device: Device, lease: ViewLease, start_time: object, reason: str
    ) -> None:
        raw = RawPacket(PacketType.HEADER, RawHeader(1, start_time))  # type: ignore[arg-type]
        with pytest.raises(MalformedPacketError) as exc_info:
            decoder.decode(device, raw, lease)
        assert reason in exc_info.value.reason
        assert exc_info.value.context.device == device.description

    @pytest.mark.parametrize(
        ("ptype", "kind"),
        [
            (PacketType.TRIGGER, Trigger),
            (PacketType.FRAME_BEGIN, FrameBegin),
            (PacketType.FRAME_END, FrameEnd),
            (PacketType.END, End),
        ],
    )
    def test_markers(
        self, decoder: DatafeedDecoder, device: Device, lease: ViewLease, ptype: PacketType, kind: type
    ) -> None:
        assert isinstance(decoder.decode(device, RawPacket(ptype), lease), kind)

    def test_meta_keys_normalized(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        raw = RawPacket(PacketType.META, RawMeta(((int(ConfigKey.SAMPLERATE), 500_000), (99999, "x"))))
        packet = decoder.decode(device, raw, lease)
        assert isinstance(packet, Meta)
        assert packet.config[ConfigKey.SAMPLERATE] == 500_000
        assert packet.config[99999] == "x"
        assert any(key is ConfigKey.SAMPLERATE for key in packet.config)

    def test_header_without_payload(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        with pytest.raises(MalformedPacketError, match="missing header payload"):
            decoder.decode(device, RawPacket(PacketType.HEADER), lease)


class TestLogicDecoding:
    """Tests for logic packet invariants."""

    def test_valid(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        packet = decoder.decode(device, logic_packet(b"\x01\x02\x03\x04", unitsize=2), lease)
        assert isinstance(packet, Logic)
        assert packet.unit_size == 2
        assert packet.length == 4
        assert packet.num_samples == 2
        assert bytes(packet.data) == b"\x01\x02\x03\x04"
        assert packet.borrowed

    def test_view_bounded_by_declared_length(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        packet = decoder.decode(device, logic_packet(b"\x01\x02\x03\x04", length=2), lease)
        assert bytes(packet.data) == b"\x01\x02"

    def test_length_not_multiple_of_unit_size(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        with pytest.raises(MalformedPacketError, match="not a multiple of unit size 2") as exc_info:
            decoder.decode(device, logic_packet(b"\x01\x02\x03", unitsize=2), lease)
        assert exc_info.value.context.packet_type == "LOGIC"
        assert exc_info.value.context.device == device.description

    def test_zero_unit_size(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        with pytest.raises(MalformedPacketError, match="unit size must be positive"):
            decoder.decode(device, logic_packet(b"\x01", unitsize=0), lease)

    def test_length_past_buffer(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        with pytest.raises(MalformedPacketError, match="exceeds buffer"):
            decoder.decode(device, logic_packet(b"\x01\x02", length=8), lease)

    def test_negative_length(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        with pytest.raises(MalformedPacketError):
            decoder.decode(device, logic_packet(b"\x01", length=-1), lease)

    def test_freed_buffer(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        raw = logic_packet(b"\x01")
        raw.payload.data.free()
        with pytest.raises(MalformedPacketError, match="already released"):
            decoder.decode(device, raw, lease)

    def test_empty_payload_is_valid(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        packet = decoder.decode(device, logic_packet(b""), lease)
        assert packet.num_samples == 0

    def test_samples_and_bits(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        packet = decoder.decode(device, logic_packet(b"\x01\x02\x03"), lease)
        assert packet.samples().shape == (3, 1)
        bits = packet.bits()
        assert bits.shape == (3, 8)
        assert bits[:, 0].tolist() == [True, False, True]
        assert bits[:, 1].tolist() == [False, True, True]


class TestAnalogDecoding:
    """Tests for analog packet invariants and scaling."""

    def test_scale_and_offset(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        samples = np.array([0, 1, 2, -3], dtype="<i2")
        encoding = encoding_for_dtype(samples.dtype, scale=(2, 1), offset=(-1, 1))
        packet = decoder.decode(device, analog_packet(samples, encoding), lease)
        assert isinstance(packet, Analog)
        assert packet.encoding.scale == Fraction(2)
        assert packet.encoding.offset == Fraction(-1)
        np.testing.assert_array_equal(packet.values()[:, 0], [-1.0, 1.0, 3.0, -7.0])

    def test_channels_resolved(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        samples = np.array([0.5, 1.5], dtype="<f4")
        packet = decoder.decode(device, analog_packet(samples), lease)
        assert packet.channels == (device.channel("A0"),)
        assert packet.meaning.mq is MeasuredQuantity.VOLTAGE
        assert packet.meaning.unit is Unit.VOLT
        np.testing.assert_allclose(packet.channel_values(device.channel("A0")), [0.5, 1.5])

    def test_big_endian(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        samples = np.array([256, 1], dtype=">u2")
        packet = decoder.decode(device, analog_packet(samples), lease)
        assert packet.raw()[:, 0].tolist() == [256, 1]

    def test_channel_values_rejects_foreign_channel(
        self, decoder: DatafeedDecoder, device: Device, lease: ViewLease
    ) -> None:
        packet = decoder.decode(device, analog_packet(np.zeros(2, dtype="<f4")), lease)
        with pytest.raises(KeyError):
            packet.channel_values(device.channel("D0"))

    def test_length_mismatch(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        samples = np.zeros(4, dtype="<f4")
        with pytest.raises(MalformedPacketError, match="does not match"):
            decoder.decode(device, analog_packet(samples, num_samples=5), lease)

    def test_unsupported_width(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        encoding = RawEncoding(unitsize=3, is_signed=True, is_float=False, is_bigendian=False)
        raw = RawPacket(PacketType.ANALOG, RawAnalog(ForeignBuffer(6), 6, 2, encoding, VOLTS))
        with pytest.raises(MalformedPacketError, match="unsupported sample width 3"):
            decoder.decode(device, raw, lease)

    def test_two_byte_float(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        encoding = RawEncoding(unitsize=2, is_signed=True, is_float=True, is_bigendian=False)
        raw = RawPacket(PacketType.ANALOG, RawAnalog(ForeignBuffer(4), 4, 2, encoding, VOLTS))
        with pytest.raises(MalformedPacketError, match="float"):
            decoder.decode(device, raw, lease)

    def test_zero_denominator(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        samples = np.zeros(2, dtype="<i2")
        encoding = encoding_for_dtype(samples.dtype, scale=(1, 0))
        with pytest.raises(MalformedPacketError, match="zero denominator"):
            decoder.decode(device, analog_packet(samples, encoding), lease)

    def test_unknown_channel_index(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        meaning = RawMeaning(MeasuredQuantity.VOLTAGE, MqFlag.DC, Unit.VOLT, (42,))
        with pytest.raises(MalformedPacketError, match="unknown channel index 42"):
            decoder.decode(device, analog_packet(np.zeros(2, dtype="<f4"), meaning=meaning), lease)

    def test_logic_channel_in_analog_packet(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        meaning = RawMeaning(MeasuredQuantity.VOLTAGE, MqFlag.DC, Unit.VOLT, (0,))
        with pytest.raises(MalformedPacketError, match="not an analog channel"):
            decoder.decode(device, analog_packet(np.zeros(2, dtype="<f4"), meaning=meaning), lease)


class TestUnknownPackets:
    """Tests for packet types outside the known set."""

    def test_unknown_type(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        with pytest.raises(MalformedPacketError, match="unknown packet type") as exc_info:
            decoder.decode(device, RawPacket(4242), lease)
        assert exc_info.value.context.packet_type == "type 4242"


class TestViewLease:
    """Tests for borrowed view lifetimes."""

    def test_accessors_fail_after_release(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        packet = decoder.decode(device, logic_packet(b"\x01\x02"), lease)
        lease.release()
        assert not lease.active
        with pytest.raises(BorrowExpiredError):
            _ = packet.data
        with pytest.raises(BorrowExpiredError):
            packet.samples()

    def test_analog_accessors_fail_after_release(
        self, decoder: DatafeedDecoder, device: Device, lease: ViewLease
    ) -> None:
        packet = decoder.decode(device, analog_packet(np.zeros(2, dtype="<f4")), lease)
        lease.release()
        with pytest.raises(BorrowExpiredError):
            packet.values()

    def test_detached_copy_outlives_lease(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        raw = logic_packet(b"\x07\x08")
        packet = decoder.decode(device, raw, lease)
        owned = detach(packet)
        lease.release()
        raw.payload.data.free()
        assert not owned.borrowed
        assert bytes(owned.data) == b"\x07\x08"

    def test_detached_analog_keeps_values(self, decoder: DatafeedDecoder, device: Device, lease: ViewLease) -> None:
        packet = decoder.decode(device, analog_packet(np.array([1.0, 2.0], dtype="<f8")), lease)
        owned = packet.detach()
        lease.release()
        np.testing.assert_array_equal(owned.values()[:, 0], [1.0, 2.0])

    def test_detach_passes_markers_through(self) -> None:
        marker = End()
        assert detach(marker) is marker

    def test_release_is_idempotent(self) -> None:
        lease = ViewLease()
        lease.release()
        lease.release()
        assert not lease.active

    def test_arrays_do_not_alias_foreign_memory(
        self, decoder: DatafeedDecoder, device: Device, lease: ViewLease
    ) -> None:
        raw = logic_packet(b"\x07\x09")
        packet = decoder.decode(device, raw, lease)
        foreign = np.frombuffer(raw.payload.data.view(2), dtype=np.uint8)
        kept = packet.samples()
        assert not np.shares_memory(kept, foreign)
        assert not np.shares_memory(packet.bits(), foreign)

        lease.release()
        raw.payload.data.free()
        assert kept.ravel().tolist() == [7, 9]

    def test_analog_arrays_do_not_alias_foreign_memory(
        self, decoder: DatafeedDecoder, device: Device, lease: ViewLease
    ) -> None:
        raw = analog_packet(np.array([3, -4], dtype="<i2"))
        packet = decoder.decode(device, raw, lease)
        foreign = np.frombuffer(raw.payload.data.view(4), dtype="<i2")
        kept = packet.raw()
        assert not np.shares_memory(kept, foreign)
        assert not np.shares_memory(packet.values(), foreign)

        lease.release()
        raw.payload.data.free()
        assert kept[:, 0].tolist() == [3, -4]
