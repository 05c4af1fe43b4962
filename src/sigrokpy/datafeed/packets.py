"""Typed datafeed packet variants.

A datafeed is a closed set of packet kinds. Consumers dispatch on them with
``match`` and close the match with :func:`typing.assert_never` so that a new
kind shows up as a type-checking error at every consumer.

Sample-carrying packets (:class:`Logic`, :class:`Analog`) borrow memory owned
by the foreign library. Their views are bound to a :class:`ViewLease` that
expires when the dispatch call delivering the packet returns; afterwards any
data accessor raises :class:`~sigrokpy.errors.BorrowExpiredError`. Decoding
and scaling read the foreign memory in place; the numpy arrays handed out
(``samples()``, ``bits()``, ``raw()``, ``values()``) are owned copies and never
alias it. Call ``detach()`` inside the callback to keep the whole packet.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from fractions import Fraction
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

import numpy as np

from sigrokpy.errors import BorrowExpiredError
from sigrokpy.models import MeasuredQuantity, MqFlag, Unit

if TYPE_CHECKING:
    from sigrokpy.device import Channel

logger = logging.getLogger(__name__)


class ViewLease:
    """Validity window shared by every view handed out during one dispatch."""

    __slots__ = ("_views", "_active")

    def __init__(self) -> None:
        self._views: list[memoryview] = []
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def track(self, view: memoryview) -> memoryview:
        """Register ``view`` so it is released with the lease."""
        self._views.append(view)
        return view

    def release(self) -> None:
        """Expire the lease and release the tracked views. Idempotent."""
        self._active = False
        for view in self._views:
            try:
                view.release()
            except BufferError:
                # An exported array still references the view. The memory
                # itself stays referenced, but the caller broke the contract.
                logger.warning("Packet sample view still referenced after dispatch; use detach() to keep data")
        self._views.clear()


@dataclass(frozen=True, slots=True)
class Header:
    """Start of a device's datafeed."""

    feed_version: int
    start_time: datetime


@dataclass(frozen=True, slots=True)
class Logic:
    """Logic samples: ``unit_size`` bytes per sample, one bit per channel.

    Attributes:
        unit_size: Bytes per sample group.
    """

    unit_size: int
    _data: memoryview = field(repr=False)
    _lease: Optional[ViewLease] = field(default=None, repr=False, compare=False)

    def _check(self) -> None:
        if self._lease is not None and not self._lease.active:
            raise BorrowExpiredError("Logic")

    @property
    def data(self) -> memoryview:
        """Read-only view of the raw sample bytes."""
        self._check()
        return self._data

    @property
    def length(self) -> int:
        """Payload length in bytes."""
        self._check()
        return self._data.nbytes

    @property
    def num_samples(self) -> int:
        return self.length // self.unit_size

    @property
    def borrowed(self) -> bool:
        """Whether the data is foreign memory bound to the current dispatch."""
        return self._lease is not None

    def _array(self) -> np.ndarray:
        self._check()
        return np.frombuffer(self._data, dtype=np.uint8).reshape(-1, self.unit_size)

    def samples(self) -> np.ndarray:
        """Return the samples as an owned ``(num_samples, unit_size)`` uint8 array."""
        return self._array().copy()

    def bits(self) -> np.ndarray:
        """Return per-channel levels as an owned ``(num_samples, unit_size * 8)`` bool array.

        Column ``i`` is the channel at bit position ``i`` (LSB first).
        """
        return np.unpackbits(self._array(), axis=1, bitorder="little").astype(bool)

    def detach(self) -> "Logic":
        """Return an owned copy that stays valid after the callback returns."""
        self._check()
        return Logic(self.unit_size, memoryview(bytes(self._data)).toreadonly())


@dataclass(frozen=True, slots=True)
class AnalogEncoding:
    """Binary layout and scaling of analog samples.

    Physical values are ``raw * scale + offset``.
    """

    unit_size: int
    is_signed: bool
    is_float: bool
    is_big_endian: bool
    digits: int = 0
    is_digits_decimal: bool = False
    scale: Fraction = Fraction(1)
    offset: Fraction = Fraction(0)

    @property
    def dtype(self) -> np.dtype:
        """numpy dtype describing one raw sample."""
        kind = "f" if self.is_float else ("i" if self.is_signed else "u")
        order = ">" if self.is_big_endian else "<"
        return np.dtype(f"{order}{kind}{self.unit_size}")


@dataclass(frozen=True, slots=True)
class AnalogMeaning:
    """What an analog packet measures."""

    mq: Union[MeasuredQuantity, int]
    mq_flags: MqFlag
    unit: Union[Unit, int]


@dataclass(frozen=True, slots=True)
class Analog:
    """Analog samples for one or more channels, interleaved per sample.

    Attributes:
        channels: Channels the samples belong to, in interleave order.
        encoding: Layout and scaling of the raw samples.
        meaning: Measured quantity, flags and unit.
        num_samples: Samples per channel.
    """

    channels: tuple["Channel", ...]
    encoding: AnalogEncoding
    meaning: AnalogMeaning
    num_samples: int
    _data: memoryview = field(repr=False)
    _lease: Optional[ViewLease] = field(default=None, repr=False, compare=False)

    def _check(self) -> None:
        if self._lease is not None and not self._lease.active:
            raise BorrowExpiredError("Analog")

    @property
    def data(self) -> memoryview:
        """Read-only view of the raw sample bytes."""
        self._check()
        return self._data

    @property
    def borrowed(self) -> bool:
        return self._lease is not None

    def _array(self) -> np.ndarray:
        self._check()
        width = max(1, len(self.channels))
        return np.frombuffer(self._data, dtype=self.encoding.dtype).reshape(self.num_samples, width)

    def raw(self) -> np.ndarray:
        """Raw samples as an owned ``(num_samples, channels)`` array."""
        return self._array().copy()

    def values(self) -> np.ndarray:
        """Physical values as an owned ``(num_samples, channels)`` float64 array."""
        raw = self._array().astype(np.float64)
        return raw * float(self.encoding.scale) + float(self.encoding.offset)

    def channel_values(self, channel: "Channel") -> np.ndarray:
        """Physical values of a single channel.

        Raises:
            KeyError: If ``channel`` is not part of this packet.
        """
        try:
            column = self.channels.index(channel)
        except ValueError:
            raise KeyError(channel.name) from None
        return self.values()[:, column]

    def detach(self) -> "Analog":
        """Return an owned copy that stays valid after the callback returns."""
        self._check()
        return Analog(
            self.channels,
            self.encoding,
            self.meaning,
            self.num_samples,
            memoryview(bytes(self._data)).toreadonly(),
        )


@dataclass(frozen=True, slots=True)
class Meta:
    """Acquisition parameter changes reported by the driver."""

    config: Mapping[int, Any]


@dataclass(frozen=True, slots=True)
class Trigger:
    """The trigger condition matched at this point in the stream."""


@dataclass(frozen=True, slots=True)
class FrameBegin:
    """Start of a logical block of samples."""


@dataclass(frozen=True, slots=True)
class FrameEnd:
    """End of a logical block of samples."""


@dataclass(frozen=True, slots=True)
class End:
    """End of a device's datafeed."""


Datafeed = Union[Header, Logic, Analog, Meta, Trigger, FrameBegin, FrameEnd, End]


def detach(packet: Datafeed) -> Datafeed:
    """Return ``packet`` with any borrowed sample data copied into owned memory."""
    if isinstance(packet, (Logic, Analog)):
        return packet.detach()
    return packet
