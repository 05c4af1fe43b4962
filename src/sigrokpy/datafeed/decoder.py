"""Decoding of raw foreign packets into typed datafeed variants.

Decoding fails closed: every length-for-type invariant is checked before a
view is created, and a view never extends past the declared payload length.
Packets that fail a check raise :class:`~sigrokpy.errors.MalformedPacketError`
and never reach user callbacks.
"""

import logging
from datetime import datetime, timezone
from fractions import Fraction
from typing import TYPE_CHECKING, Optional

from sigrokpy.config.options import normalize_key
from sigrokpy.datafeed.packets import (
    Analog,
    AnalogEncoding,
    AnalogMeaning,
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
from sigrokpy.errors import MalformedPacketError
from sigrokpy.foreign.library import RawAnalog, RawHeader, RawLogic, RawMeta, RawPacket
from sigrokpy.models import ChannelType, MeasuredQuantity, MqFlag, PacketType, Unit, coerce_enum

if TYPE_CHECKING:
    from sigrokpy.device import Channel, Device

logger = logging.getLogger(__name__)

VALID_ANALOG_WIDTHS = (1, 2, 4, 8)
VALID_FLOAT_WIDTHS = (4, 8)


def _rational(pair: tuple[int, int], what: str, packet_type: str) -> Fraction:
    p, q = pair
    if q == 0:
        raise MalformedPacketError(packet_type, f"{what} has a zero denominator")
    return Fraction(p, q)


class DatafeedDecoder:
    """Turns :class:`RawPacket` values into :data:`Datafeed` variants.

    The decoder is stateless; the device it is given resolves channel indices.

    Example:
        >>> lease = ViewLease()
        >>> packet = DatafeedDecoder().decode(device, raw, lease)
        >>> lease.release()
    """

    def decode(self, device: "Device", raw: RawPacket, lease: ViewLease) -> Datafeed:
        """Decode one packet, binding any sample views to ``lease``.

        Raises:
            MalformedPacketError: If the packet type is unknown or its payload
                violates the invariants of its type.
        """
        try:
            ptype = PacketType(raw.type)
        except ValueError:
            raise MalformedPacketError(f"type {raw.type}", "unknown packet type", device.description) from None

        try:
            match ptype:
                case PacketType.HEADER:
                    return self._header(raw.payload)
                case PacketType.LOGIC:
                    return self._logic(raw.payload, lease)
                case PacketType.ANALOG:
                    return self._analog(device, raw.payload, lease)
                case PacketType.META:
                    return self._meta(raw.payload)
                case PacketType.TRIGGER:
                    return Trigger()
                case PacketType.FRAME_BEGIN:
                    return FrameBegin()
                case PacketType.FRAME_END:
                    return FrameEnd()
                case PacketType.END:
                    return End()
        except MalformedPacketError as e:
            if e.context.device is None:
                raise MalformedPacketError(ptype.name, e.reason, device.description) from None
            raise
        raise MalformedPacketError(ptype.name, "unhandled packet type", device.description)

    def _header(self, payload: object) -> Header:
        if not isinstance(payload, RawHeader):
            raise MalformedPacketError("HEADER", "missing header payload")
        try:
            seconds, micros = payload.start_time
            seconds, micros = int(seconds), int(micros)
        except (TypeError, ValueError):
            raise MalformedPacketError(
                "HEADER", f"start time {payload.start_time!r} is not a (seconds, micros) pair"
            ) from None
        if not 0 <= micros < 1_000_000:
            raise MalformedPacketError("HEADER", f"start time microseconds {micros} out of range")
        try:
            start = datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=micros)
        except (OverflowError, OSError, ValueError):
            raise MalformedPacketError("HEADER", f"start time {seconds}s is not representable") from None
        return Header(payload.feed_version, start)

    def _logic(self, payload: object, lease: ViewLease) -> Logic:
        if not isinstance(payload, RawLogic):
            raise MalformedPacketError("LOGIC", "missing logic payload")
        if payload.unitsize <= 0:
            raise MalformedPacketError("LOGIC", f"unit size must be positive, got {payload.unitsize}")
        if payload.data.freed:
            raise MalformedPacketError("LOGIC", "sample buffer already released")
        if not 0 <= payload.length <= payload.data.size:
            raise MalformedPacketError(
                "LOGIC", f"declared length {payload.length} exceeds buffer of {payload.data.size} bytes"
            )
        if payload.length % payload.unitsize:
            raise MalformedPacketError(
                "LOGIC", f"length {payload.length} is not a multiple of unit size {payload.unitsize}"
            )
        view = lease.track(payload.data.view(payload.length))
        return Logic(payload.unitsize, view, lease)

    def _analog(self, device: "Device", payload: object, lease: ViewLease) -> Analog:
        if not isinstance(payload, RawAnalog):
            raise MalformedPacketError("ANALOG", "missing analog payload")
        enc = payload.encoding
        if enc.unitsize not in VALID_ANALOG_WIDTHS:
            raise MalformedPacketError("ANALOG", f"unsupported sample width {enc.unitsize}")
        if enc.is_float and enc.unitsize not in VALID_FLOAT_WIDTHS:
            raise MalformedPacketError("ANALOG", f"no {enc.unitsize}-byte float encoding")
        if payload.num_samples < 0:
            raise MalformedPacketError("ANALOG", f"negative sample count {payload.num_samples}")
        if payload.data.freed:
            raise MalformedPacketError("ANALOG", "sample buffer already released")

        channels = self._analog_channels(device, payload.meaning.channels)
        expected = payload.num_samples * enc.unitsize * max(1, len(channels))
        if payload.length != expected:
            raise MalformedPacketError(
                "ANALOG",
                f"length {payload.length} does not match {payload.num_samples} samples x "
                f"{max(1, len(channels))} channel(s) x {enc.unitsize} bytes",
            )
        if payload.length > payload.data.size:
            raise MalformedPacketError(
                "ANALOG", f"declared length {payload.length} exceeds buffer of {payload.data.size} bytes"
            )

        encoding = AnalogEncoding(
            unit_size=enc.unitsize,
            is_signed=enc.is_signed or enc.is_float,
            is_float=enc.is_float,
            is_big_endian=enc.is_bigendian,
            digits=enc.digits,
            is_digits_decimal=enc.is_digits_decimal,
            scale=_rational(enc.scale, "scale", "ANALOG"),
            offset=_rational(enc.offset, "offset", "ANALOG"),
        )
        meaning = AnalogMeaning(
            mq=coerce_enum(MeasuredQuantity, payload.meaning.mq),
            mq_flags=MqFlag(payload.meaning.mqflags),
            unit=coerce_enum(Unit, payload.meaning.unit),
        )
        view = lease.track(payload.data.view(payload.length))
        return Analog(channels, encoding, meaning, payload.num_samples, view, lease)

    def _analog_channels(self, device: "Device", indices: tuple[int, ...]) -> tuple["Channel", ...]:
        by_index = {ch.index: ch for ch in device.channels()}
        resolved = []
        for index in indices:
            ch: Optional["Channel"] = by_index.get(index)
            if ch is None:
                raise MalformedPacketError("ANALOG", f"unknown channel index {index}")
            if ch.type != ChannelType.ANALOG:
                raise MalformedPacketError("ANALOG", f"channel {ch.name} is not an analog channel")
            resolved.append(ch)
        return tuple(resolved)

    def _meta(self, payload: object) -> Meta:
        if not isinstance(payload, RawMeta):
            raise MalformedPacketError("META", "missing meta payload")
        return Meta({normalize_key(key): value for key, value in payload.config})
