"""Acquisition sessions, triggers and the event loop."""

from sigrokpy.acquisition.channel import PacketChannel
from sigrokpy.acquisition.event_loop import EventLoop
from sigrokpy.acquisition.session import (
    DatafeedCallback,
    ErrorCallback,
    Session,
    SessionState,
    SessionStats,
    StoppedCallback,
)
from sigrokpy.acquisition.triggers import TriggerMatch, TriggerStage

__all__ = [
    "DatafeedCallback",
    "ErrorCallback",
    "EventLoop",
    "PacketChannel",
    "Session",
    "SessionState",
    "SessionStats",
    "StoppedCallback",
    "TriggerMatch",
    "TriggerStage",
]
