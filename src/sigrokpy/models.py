"""Core identifiers shared between the foreign boundary and the Python API.

Numeric values follow the foreign library's enumerations so that they can be
passed through the boundary unchanged.
"""

from enum import IntEnum, IntFlag


class ChannelType(IntEnum):
    """Kind of signal a channel carries."""

    LOGIC = 10000
    ANALOG = 10001


class DriverFunction(IntEnum):
    """Device classes a driver (or device) implements."""

    LOGIC_ANALYZER = 10000
    OSCILLOSCOPE = 10001
    MULTIMETER = 10002
    DEMO_DEV = 10003
    SOUND_LEVEL_METER = 10004
    THERMOMETER = 10005
    HYGROMETER = 10006
    ENERGY_METER = 10007
    DEMODULATOR = 10008
    POWER_SUPPLY = 10009
    LCR_METER = 10010
    ELECTRONIC_LOAD = 10011
    SCALE = 10012
    SIGNAL_GENERATOR = 10013
    POWER_METER = 10014


class PacketType(IntEnum):
    """Type tag of a datafeed packet header."""

    HEADER = 10000
    END = 10001
    META = 10002
    TRIGGER = 10003
    LOGIC = 10004
    FRAME_BEGIN = 10005
    FRAME_END = 10006
    ANALOG = 10007


class TriggerType(IntEnum):
    """Condition a trigger match waits for."""

    ZERO = 1
    ONE = 2
    RISING = 3
    FALLING = 4
    EDGE = 5
    OVER = 6
    UNDER = 7


class LogLevel(IntEnum):
    """Verbosity of the foreign library's own log output."""

    NONE = 0
    ERR = 1
    WARN = 2
    INFO = 3
    DBG = 4
    SPEW = 5


class ConfigCapability(IntFlag):
    """Access a driver grants on a configuration option."""

    NONE = 0
    GET = 1
    SET = 2
    LIST = 4


class MeasuredQuantity(IntEnum):
    """Physical quantity an analog packet measures."""

    VOLTAGE = 10000
    CURRENT = 10001
    RESISTANCE = 10002
    CAPACITANCE = 10003
    TEMPERATURE = 10004
    FREQUENCY = 10005
    DUTY_CYCLE = 10006
    CONTINUITY = 10007
    PULSE_WIDTH = 10008
    CONDUCTANCE = 10009
    POWER = 10010
    GAIN = 10011
    SOUND_PRESSURE_LEVEL = 10012
    CARBON_MONOXIDE = 10013
    RELATIVE_HUMIDITY = 10014
    TIME = 10015


class MqFlag(IntFlag):
    """Modifiers on a measured quantity."""

    NONE = 0
    AC = 0x01
    DC = 0x02
    RMS = 0x04
    DIODE = 0x08
    HOLD = 0x10
    MAX = 0x20
    MIN = 0x40
    AUTORANGE = 0x80
    RELATIVE = 0x100


class Unit(IntEnum):
    """Unit of an analog measurement."""

    VOLT = 10000
    AMPERE = 10001
    OHM = 10002
    FARAD = 10003
    KELVIN = 10004
    CELSIUS = 10005
    FAHRENHEIT = 10006
    HERTZ = 10007
    PERCENTAGE = 10008
    BOOLEAN = 10009
    SECOND = 10010
    SIEMENS = 10011
    DECIBEL_MW = 10012
    DECIBEL_VOLT = 10013
    UNITLESS = 10014
    DECIBEL_SPL = 10015
    CONCENTRATION = 10016
    REVOLUTIONS_PER_MINUTE = 10017
    VOLT_AMPERE = 10018
    WATT = 10019
    WATT_HOUR = 10020


def coerce_enum(enum_type: type[IntEnum], value: int) -> IntEnum | int:
    """Map a native integer onto ``enum_type``, keeping unknown values as ints."""
    try:
        return enum_type(value)
    except ValueError:
        return value
