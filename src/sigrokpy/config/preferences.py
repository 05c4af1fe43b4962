"""Persistent bridge settings.

Settings are stored as JSON in the OS user config directory via platformdirs,
using atomic writes (temp file + rename) to prevent corruption. Unknown keys
are ignored and missing keys fall back to defaults, so files written by other
versions still load.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import platformdirs

from sigrokpy.models import LogLevel

logger = logging.getLogger(__name__)

# Settings format version for migrations
SETTINGS_VERSION = 1

# App name for platformdirs
APP_NAME = "sigrokpy"


@dataclass
class BridgeSettings:
    """Defaults used when creating a context and running sessions."""

    # Metadata
    settings_version: int = SETTINGS_VERSION
    last_updated_utc: str = ""

    # Foreign library
    backend: str = "demo"
    default_driver: str = "demo"
    foreign_log_level: int = int(LogLevel.WARN)
    bridge_foreign_logs: bool = True

    # Event loop
    poll_timeout_ms: int = 100

    def validate(self) -> list[str]:
        """Return a list of problems with the current values (empty when valid)."""
        problems = []
        if not self.backend:
            problems.append("backend must not be empty")
        if self.poll_timeout_ms <= 0:
            problems.append(f"poll_timeout_ms must be positive, got {self.poll_timeout_ms}")
        if self.foreign_log_level not in {int(level) for level in LogLevel}:
            problems.append(f"foreign_log_level {self.foreign_log_level} is not a known log level")
        return problems


def get_settings_dir() -> Path:
    """Return the OS-specific user config directory for sigrokpy."""
    return Path(platformdirs.user_config_dir(APP_NAME))


def get_settings_path() -> Path:
    """Return the full path to the settings.json file."""
    return get_settings_dir() / "settings.json"


class SettingsStore:
    """Handles loading and saving bridge settings with atomic writes.

    Example usage:
        store = SettingsStore()
        settings = store.load()
        settings.poll_timeout_ms = 50
        store.save(settings)
    """

    def __init__(self, settings_path: Path | None = None) -> None:
        """Initialize the settings store.

        Args:
            settings_path: Custom path for the settings file. If None, uses
                the default OS config directory location.
        """
        self._path = settings_path or get_settings_path()

    @property
    def path(self) -> Path:
        """Return the settings file path."""
        return self._path

    def load(self) -> BridgeSettings:
        """Load settings from disk.

        Returns:
            BridgeSettings with values from disk, or defaults if the file
            doesn't exist, is unreadable, or holds invalid values.
        """
        if not self._path.exists():
            return BridgeSettings()

        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", self._path, e)
            return BridgeSettings()

        if not isinstance(data, dict):
            logger.warning("Ignoring settings file %s: top level is not an object", self._path)
            return BridgeSettings()

        settings = self._from_dict(data)
        problems = settings.validate()
        if problems:
            logger.warning("Ignoring invalid settings in %s: %s", self._path, "; ".join(problems))
            return BridgeSettings()
        return settings

    def save(self, settings: BridgeSettings) -> None:
        """Save settings to disk using an atomic write.

        Args:
            settings: The settings to save.

        Raises:
            OSError: If the directory cannot be created or the write fails.
        """
        settings.last_updated_utc = datetime.now(timezone.utc).isoformat()
        settings.settings_version = SETTINGS_VERSION

        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(asdict(settings), indent=2, ensure_ascii=False)

        # Atomic write: temp file + rename
        dir_fd = None
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(suffix=".tmp", prefix="settings_", dir=self._path.parent)
            try:
                os.write(fd, content.encode("utf-8"))
                os.fsync(fd)
            finally:
                os.close(fd)

            os.replace(tmp_path, self._path)
            tmp_path = None

            # Sync directory so the rename is durable (Unix only)
            if hasattr(os, "O_DIRECTORY"):
                dir_fd = os.open(self._path.parent, os.O_RDONLY | os.O_DIRECTORY)
                os.fsync(dir_fd)
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            if dir_fd is not None:
                os.close(dir_fd)

    def _from_dict(self, data: dict[str, Any]) -> BridgeSettings:
        """Build settings from a dictionary; unknown keys are ignored."""
        valid_fields = set(BridgeSettings.__dataclass_fields__)
        return BridgeSettings(**{k: v for k, v in data.items() if k in valid_fields})
