"""Datafeed bridge: typed packet variants and the fail-closed decoder."""

from sigrokpy.datafeed.decoder import DatafeedDecoder
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
    detach,
)

__all__ = [
    "Analog",
    "AnalogEncoding",
    "AnalogMeaning",
    "Datafeed",
    "DatafeedDecoder",
    "End",
    "FrameBegin",
    "FrameEnd",
    "Header",
    "Logic",
    "Meta",
    "Trigger",
    "ViewLease",
    "detach",
]
