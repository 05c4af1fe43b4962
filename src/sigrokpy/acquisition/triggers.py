"""Trigger conditions for an acquisition run.

A trigger is a sequence of stages; each stage is a set of channel matches that
must hold at the same time before the next stage is armed.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from sigrokpy.errors import InvalidValueError
from sigrokpy.foreign.library import RawTriggerMatch
from sigrokpy.models import ChannelType, TriggerType

if TYPE_CHECKING:
    from sigrokpy.device import Channel

LOGIC_MATCHES = frozenset({TriggerType.ZERO, TriggerType.ONE, TriggerType.RISING, TriggerType.FALLING, TriggerType.EDGE})
ANALOG_MATCHES = frozenset({TriggerType.RISING, TriggerType.FALLING, TriggerType.EDGE, TriggerType.OVER, TriggerType.UNDER})


@dataclass(frozen=True, slots=True)
class TriggerMatch:
    """One channel condition within a trigger stage.

    Attributes:
        channel: Channel to watch.
        match: Condition to wait for.
        value: Threshold for analog OVER/UNDER matches.
    """

    channel: "Channel"
    match: TriggerType
    value: float = 0.0

    def validate(self) -> None:
        """Check that the condition makes sense for the channel's type.

        Raises:
            InvalidValueError: If the match type does not apply to the channel.
        """
        allowed = LOGIC_MATCHES if self.channel.type == ChannelType.LOGIC else ANALOG_MATCHES
        if self.match not in allowed:
            raise InvalidValueError(
                "TRIGGER_MATCH",
                self.match,
                f"{self.match.name} is not a valid condition for channel {self.channel.name}",
            )

    def to_raw(self) -> RawTriggerMatch:
        return RawTriggerMatch(self.channel.index, int(self.match), float(self.value))


TriggerStage = Sequence[TriggerMatch]


def raw_stages(stages: Sequence[TriggerStage]) -> list[list[RawTriggerMatch]]:
    """Validate trigger stages and convert them for the foreign boundary."""
    converted = []
    for stage in stages:
        for match in stage:
            match.validate()
        converted.append([m.to_raw() for m in stage])
    return converted
