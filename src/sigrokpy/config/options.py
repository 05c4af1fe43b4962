"""Configuration option identifiers, declared value types and validation.

Option identifiers are driver-defined integers. The ones the foreign library
publishes are listed in :class:`ConfigKey` together with the value type the
library declares for them; drivers may still report keys outside this table,
which are passed through with only minimal checks.
"""

import math
from dataclasses import dataclass
from enum import Enum, IntEnum
from fractions import Fraction
from typing import Any, Sequence, Union

from sigrokpy.errors import InvalidValueError
from sigrokpy.models import MeasuredQuantity, MqFlag


class ConfigKey(IntEnum):
    """Known configuration option identifiers."""

    # Scan options
    CONN = 20000
    SERIALCOMM = 20001
    MODBUSADDR = 20002

    # Device options
    SAMPLERATE = 30000
    CAPTURE_RATIO = 30001
    PATTERN_MODE = 30002
    RLE = 30003
    TRIGGER_SLOPE = 30004
    AVERAGING = 30005
    AVG_SAMPLES = 30006
    TRIGGER_SOURCE = 30007
    HORIZ_TRIGGERPOS = 30008
    BUFFERSIZE = 30009
    TIMEBASE = 30010
    FILTER = 30011
    VDIV = 30012
    COUPLING = 30013
    TRIGGER_MATCH = 30014
    SAMPLE_INTERVAL = 30015
    NUM_HDIV = 30016
    NUM_VDIV = 30017
    SPL_MEASUREMENT_RANGE = 30020
    VOLTAGE_THRESHOLD = 30023
    EXTERNAL_CLOCK = 30024
    CENTER_FREQUENCY = 30026
    NUM_LOGIC_CHANNELS = 30027
    NUM_ANALOG_CHANNELS = 30028
    VOLTAGE = 30029
    CURRENT = 30031
    ENABLED = 30033
    CHANNEL_CONFIG = 30034
    AMPLITUDE = 30042
    MEASURED_QUANTITY = 30047
    TRIGGER_LEVEL = 30053
    OFFSET = 30055
    LOGIC_THRESHOLD = 30059
    RANGE = 30061

    # Special options
    SESSIONFILE = 40000
    CAPTUREFILE = 40001
    CAPTURE_UNITSIZE = 40002
    DATA_SOURCE = 40004
    PROBE_FACTOR = 40005

    # Acquisition limits
    LIMIT_MSEC = 50000
    LIMIT_SAMPLES = 50001
    LIMIT_FRAMES = 50002
    CONTINUOUS = 50003
    DEVICE_MODE = 50005


class ValueType(Enum):
    """Value type a configuration option is declared with."""

    BOOL = "bool"
    STRING = "string"
    UINT64 = "uint64"
    INT32 = "int32"
    FLOAT = "float"
    RATIONAL = "rational"
    UINT64_RANGE = "uint64_range"
    FLOAT_RANGE = "float_range"
    MQ = "mq"


OPTION_TYPES: dict[ConfigKey, ValueType] = {
    ConfigKey.CONN: ValueType.STRING,
    ConfigKey.SERIALCOMM: ValueType.STRING,
    ConfigKey.MODBUSADDR: ValueType.UINT64,
    ConfigKey.SAMPLERATE: ValueType.UINT64,
    ConfigKey.CAPTURE_RATIO: ValueType.UINT64,
    ConfigKey.PATTERN_MODE: ValueType.STRING,
    ConfigKey.RLE: ValueType.BOOL,
    ConfigKey.TRIGGER_SLOPE: ValueType.STRING,
    ConfigKey.AVERAGING: ValueType.BOOL,
    ConfigKey.AVG_SAMPLES: ValueType.UINT64,
    ConfigKey.TRIGGER_SOURCE: ValueType.STRING,
    ConfigKey.HORIZ_TRIGGERPOS: ValueType.FLOAT,
    ConfigKey.BUFFERSIZE: ValueType.UINT64,
    ConfigKey.TIMEBASE: ValueType.RATIONAL,
    ConfigKey.FILTER: ValueType.BOOL,
    ConfigKey.VDIV: ValueType.RATIONAL,
    ConfigKey.COUPLING: ValueType.STRING,
    ConfigKey.SAMPLE_INTERVAL: ValueType.UINT64,
    ConfigKey.NUM_HDIV: ValueType.INT32,
    ConfigKey.NUM_VDIV: ValueType.INT32,
    ConfigKey.SPL_MEASUREMENT_RANGE: ValueType.UINT64_RANGE,
    ConfigKey.VOLTAGE_THRESHOLD: ValueType.FLOAT_RANGE,
    ConfigKey.EXTERNAL_CLOCK: ValueType.BOOL,
    ConfigKey.CENTER_FREQUENCY: ValueType.UINT64,
    ConfigKey.NUM_LOGIC_CHANNELS: ValueType.INT32,
    ConfigKey.NUM_ANALOG_CHANNELS: ValueType.INT32,
    ConfigKey.VOLTAGE: ValueType.FLOAT,
    ConfigKey.CURRENT: ValueType.FLOAT,
    ConfigKey.ENABLED: ValueType.BOOL,
    ConfigKey.CHANNEL_CONFIG: ValueType.STRING,
    ConfigKey.AMPLITUDE: ValueType.FLOAT,
    ConfigKey.MEASURED_QUANTITY: ValueType.MQ,
    ConfigKey.TRIGGER_LEVEL: ValueType.FLOAT,
    ConfigKey.OFFSET: ValueType.FLOAT,
    ConfigKey.LOGIC_THRESHOLD: ValueType.STRING,
    ConfigKey.RANGE: ValueType.STRING,
    ConfigKey.SESSIONFILE: ValueType.STRING,
    ConfigKey.CAPTUREFILE: ValueType.STRING,
    ConfigKey.CAPTURE_UNITSIZE: ValueType.UINT64,
    ConfigKey.DATA_SOURCE: ValueType.STRING,
    ConfigKey.PROBE_FACTOR: ValueType.UINT64,
    ConfigKey.LIMIT_MSEC: ValueType.UINT64,
    ConfigKey.LIMIT_SAMPLES: ValueType.UINT64,
    ConfigKey.LIMIT_FRAMES: ValueType.UINT64,
    ConfigKey.CONTINUOUS: ValueType.BOOL,
    ConfigKey.DEVICE_MODE: ValueType.STRING,
}

# Keys reported by the driver but missing from ConfigKey stay plain ints.
OptionKey = Union[ConfigKey, int]

UINT64_MAX = 2**64 - 1
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


@dataclass(frozen=True, slots=True)
class ValueRange:
    """Numeric range a driver lists as the accepted values of an option.

    Attributes:
        minimum: Smallest accepted value.
        maximum: Largest accepted value.
        step: Granularity above ``minimum`` (0 means continuous).
    """

    minimum: float
    maximum: float
    step: float = 0

    def __contains__(self, value: object) -> bool:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return False
        if value < self.minimum or value > self.maximum:
            return False
        if not self.step:
            return True
        offset = value - self.minimum
        if all(isinstance(v, int) for v in (offset, self.step)):
            return offset % self.step == 0
        steps = offset / self.step
        return math.isclose(steps, round(steps), rel_tol=1e-9, abs_tol=1e-9)


def normalize_key(key: int) -> OptionKey:
    """Return the :class:`ConfigKey` for ``key`` when it is a known option."""
    try:
        return ConfigKey(key)
    except ValueError:
        return key


def option_name(key: int) -> str:
    """Readable name for an option identifier."""
    known = normalize_key(key)
    if isinstance(known, ConfigKey):
        return known.name
    return f"option {key}"


def declared_type(key: int) -> ValueType | None:
    """Value type declared for ``key``, or None when the key is driver-private."""
    known = normalize_key(key)
    if isinstance(known, ConfigKey):
        return OPTION_TYPES.get(known)
    return None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_value(key: int, value: Any) -> Any:
    """Check ``value`` against the type declared for ``key``.

    Args:
        key: Option identifier.
        value: Value offered by the caller.

    Returns:
        The value normalized to the representation the foreign library
        expects (e.g. ``Fraction`` rationals become ``(p, q)`` tuples).

    Raises:
        InvalidValueError: If the value does not fit the declared type.
    """
    name = option_name(key)
    if value is None:
        raise InvalidValueError(name, value, "a value is required")

    vtype = declared_type(key)
    if vtype is None:
        return value

    if vtype is ValueType.BOOL:
        if not isinstance(value, bool):
            raise InvalidValueError(name, value, "expected a bool")
        return value

    if vtype is ValueType.STRING:
        if not isinstance(value, str):
            raise InvalidValueError(name, value, "expected a string")
        if "\x00" in value:
            raise InvalidValueError(name, value, "strings may not contain NUL characters")
        return value

    if vtype is ValueType.UINT64:
        if not _is_int(value):
            raise InvalidValueError(name, value, "expected an unsigned 64-bit integer")
        if not 0 <= value <= UINT64_MAX:
            raise InvalidValueError(name, value, "out of range for an unsigned 64-bit integer")
        return value

    if vtype is ValueType.INT32:
        if not _is_int(value):
            raise InvalidValueError(name, value, "expected a 32-bit integer")
        if not INT32_MIN <= value <= INT32_MAX:
            raise InvalidValueError(name, value, "out of range for a 32-bit integer")
        return value

    if vtype is ValueType.FLOAT:
        if not _is_number(value):
            raise InvalidValueError(name, value, "expected a number")
        return float(value)

    if vtype is ValueType.RATIONAL:
        return _validate_rational(name, value)

    if vtype is ValueType.UINT64_RANGE:
        low, high = _validate_pair(name, value, _is_int)
        if low < 0 or high > UINT64_MAX:
            raise InvalidValueError(name, value, "bounds out of range for unsigned 64-bit integers")
        return (low, high)

    if vtype is ValueType.FLOAT_RANGE:
        low, high = _validate_pair(name, value, _is_number)
        return (float(low), float(high))

    if vtype is ValueType.MQ:
        if not (isinstance(value, tuple) and len(value) == 2):
            raise InvalidValueError(name, value, "expected a (MeasuredQuantity, MqFlag) pair")
        quantity, flags = value
        try:
            return (MeasuredQuantity(quantity), MqFlag(flags))
        except ValueError as e:
            raise InvalidValueError(name, value, str(e)) from e

    raise InvalidValueError(name, value, f"unhandled value type {vtype.value}")


def _validate_rational(name: str, value: Any) -> tuple[int, int]:
    if isinstance(value, Fraction):
        p, q = value.numerator, value.denominator
    elif isinstance(value, tuple) and len(value) == 2 and all(_is_int(v) for v in value):
        p, q = value
    else:
        raise InvalidValueError(name, value, "expected a Fraction or (numerator, denominator) tuple")
    if q == 0:
        raise InvalidValueError(name, value, "denominator must be non-zero")
    if p < 0 or q < 0:
        raise InvalidValueError(name, value, "rational values must be non-negative")
    return (p, q)


def _validate_pair(name: str, value: Any, accept: Any) -> tuple[Any, Any]:
    if not (isinstance(value, tuple) and len(value) == 2 and accept(value[0]) and accept(value[1])):
        raise InvalidValueError(name, value, "expected a (low, high) tuple")
    low, high = value
    if low > high:
        raise InvalidValueError(name, value, "low bound exceeds high bound")
    return low, high


def check_listed(key: int, value: Any, listing: Sequence[Any] | ValueRange | None) -> None:
    """Check ``value`` against the values the driver lists for ``key``.

    Raises:
        InvalidValueError: If the driver lists possibilities and ``value`` is
            not among them.
    """
    if listing is None:
        return
    if isinstance(listing, ValueRange):
        if value not in listing:
            raise InvalidValueError(
                option_name(key),
                value,
                f"outside accepted range {listing.minimum}..{listing.maximum}"
                + (f" (step {listing.step})" if listing.step else ""),
            )
        return
    if len(listing) and value not in listing:
        raise InvalidValueError(option_name(key), value, f"not one of {list(listing)!r}")


@dataclass(frozen=True, slots=True)
class Connection:
    """Scan option naming how to reach a device.

    A serial port path (``/dev/ttyUSB0``) when combined with :class:`SerialComm`,
    otherwise a USB ``<bus>.<address>`` or ``<vendorid>.<productid>`` string.
    """

    spec: str

    @property
    def key(self) -> ConfigKey:
        return ConfigKey.CONN

    @property
    def value(self) -> str:
        return self.spec


@dataclass(frozen=True, slots=True)
class SerialComm:
    """Scan option with serial parameters, e.g. ``9600/8n1``."""

    spec: str

    @property
    def key(self) -> ConfigKey:
        return ConfigKey.SERIALCOMM

    @property
    def value(self) -> str:
        return self.spec


@dataclass(frozen=True, slots=True)
class ModbusAddr:
    """Scan option with a Modbus slave address."""

    address: int

    @property
    def key(self) -> ConfigKey:
        return ConfigKey.MODBUSADDR

    @property
    def value(self) -> int:
        return self.address


ScanOption = Union[Connection, SerialComm, ModbusAddr]


def scan_pairs(options: Sequence[ScanOption]) -> list[tuple[int, Any]]:
    """Convert scan options into validated ``(key, value)`` pairs for the boundary."""
    return [(opt.key, validate_value(opt.key, opt.value)) for opt in options]
