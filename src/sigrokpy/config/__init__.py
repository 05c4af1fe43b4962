"""Configuration options and persisted bridge settings."""

from sigrokpy.config.options import (
    ConfigKey,
    Connection,
    ModbusAddr,
    OptionKey,
    ScanOption,
    SerialComm,
    ValueRange,
    ValueType,
    check_listed,
    declared_type,
    option_name,
    validate_value,
)
from sigrokpy.config.preferences import BridgeSettings, SettingsStore, get_settings_path

__all__ = [
    "BridgeSettings",
    "ConfigKey",
    "Connection",
    "ModbusAddr",
    "OptionKey",
    "ScanOption",
    "SerialComm",
    "SettingsStore",
    "ValueRange",
    "ValueType",
    "check_listed",
    "declared_type",
    "get_settings_path",
    "option_name",
    "validate_value",
]
