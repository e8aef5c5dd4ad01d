"""pyDiskManager - track block devices of a disk-management service."""

__version__ = "0.1.0"

from pyDiskManager.signals import Signal  # noqa: F401

from pyDiskManager.service import (  # noqa: F401
    ConnectionState,
    DiskService,
)

from pyDiskManager.device import Device  # noqa: F401

from pyDiskManager.manager import (  # noqa: F401
    DEFAULT_CHECK_INTERVAL,
    DeviceManager,
)

from pyDiskManager.config import ManagerConfig  # noqa: F401
