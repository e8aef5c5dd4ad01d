"""YAML-based configuration for the device manager.

A configuration file is a flat YAML mapping::

    checkInterval: 60
    bus: system
    logLevel: INFO

Every key is optional.  Load strategy:

  1. A missing file yields the defaults.
  2. An unreadable or corrupt file, or one whose top level is not a
     mapping, is logged and also yields the defaults.
  3. Values that are present but invalid raise :class:`ValueError`.

Usage example::

    from pyDiskManager.config import ManagerConfig

    config = ManagerConfig.load("/etc/pydiskmanager.yaml")
    manager = DeviceManager(service, check_interval=config.check_interval)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from pyDiskManager.manager import DEFAULT_CHECK_INTERVAL

logger = logging.getLogger(__name__)

#: Bus names accepted for ``bus``.
BUS_TYPES = ("system", "session")

#: Level names accepted for ``logLevel``.
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ManagerConfig:
    """Settings for a :class:`~pyDiskManager.manager.DeviceManager` run.

    * **check_interval**: seconds between connection health checks.
    * **bus**: ``"system"`` or ``"session"`` message bus.
    * **log_level**: name of the root logging level.
    """

    check_interval: float = DEFAULT_CHECK_INTERVAL
    bus: str = "system"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        try:
            self.check_interval = float(self.check_interval)
        except (TypeError, ValueError):
            raise ValueError(
                f"checkInterval must be a number, got {self.check_interval!r}"
            ) from None
        if self.check_interval <= 0:
            raise ValueError(
                f"checkInterval must be positive, got {self.check_interval!r}"
            )
        if self.bus not in BUS_TYPES:
            raise ValueError(
                f"bus must be one of {', '.join(BUS_TYPES)}, got {self.bus!r}"
            )
        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Unknown logLevel {self.log_level!r}")

    def to_dict(self) -> Dict[str, Any]:
        """Return the configuration as a ``{key: value}`` dictionary."""
        return {
            "checkInterval": self.check_interval,
            "bus": self.bus,
            "logLevel": self.log_level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ManagerConfig:
        """Create a :class:`ManagerConfig` from a parsed mapping."""
        return cls(
            check_interval=data.get("checkInterval", DEFAULT_CHECK_INTERVAL),
            bus=data.get("bus", "system"),
            log_level=data.get("logLevel", "INFO"),
        )

    @classmethod
    def load(cls, path: Optional[Union[str, Path]]) -> ManagerConfig:
        """Load the configuration from the YAML file at *path*.

        ``None`` or a file that cannot be used yields the defaults.

        Raises
        ------
        ValueError
            If the file parses but holds an invalid value.
        """
        if path is None:
            return cls()
        data = _try_load(Path(path))
        if data is None:
            return cls()
        return cls.from_dict(data)


def _try_load(path: Path) -> Optional[Dict[str, Any]]:
    """Attempt to load and parse a single YAML file.

    Returns ``None`` on any failure (missing, unreadable, corrupt).
    """
    if not path.is_file():
        logger.info("No configuration at %s, using defaults.", path)
        return None
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Failed to load %s: %s", path, exc)
        return None

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "Expected a mapping at top level in %s, got %s",
            path,
            type(data).__name__,
        )
        return None
    return data
