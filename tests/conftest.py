"""Shared fixtures: an in-memory disk service."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from pyDiskManager.service import ConnectionState, DiskService

JOBS = "/org/freedesktop/UDisks2/jobs"


class FakeDiskService(DiskService):
    """Dictionary-backed :class:`DiskService` that records every call."""

    job_namespace = JOBS

    def __init__(self) -> None:
        self.connected = True
        self.available = True
        self.devices: Dict[str, Dict[str, Any]] = {}
        self.drives: Dict[str, Dict[str, Any]] = {}

        self.mount_errors: Dict[str, str] = {}
        self.unmount_errors: Dict[str, str] = {}
        self.eject_errors: Dict[str, str] = {}
        #: Devices whose unmount "succeeds" but leaves them mounted.
        self.stuck: set = set()

        self.calls: List[Tuple[str, str]] = []
        self.connect_calls = 0
        self.get_devices_calls = 0

        self.on_added: Optional[Callable[[str], None]] = None
        self.on_removed: Optional[Callable[[str], None]] = None
        self.property_subscribers: Dict[int, Tuple[str, Callable]] = {}
        self._next_handle = 1

    # ---- test helpers ------------------------------------------------

    def add_device(
        self,
        path: str,
        *,
        drive: str = "",
        mountpoint: str = "",
        filesystem: str = "ext4",
        partition: bool = True,
        **drive_attrs: Any,
    ) -> None:
        drive = drive or f"{path}-drive"
        self.devices[path] = {
            "drive": drive,
            "mountpoint": mountpoint,
            "filesystem": filesystem,
            "partition": partition,
        }
        attrs = {
            "name": "Acme Disk",
            "removable": True,
            "optical": False,
            "media": True,
            "data_tracks": 0,
            "audio_tracks": 0,
            "blank": False,
        }
        attrs.update(drive_attrs)
        self.drives.setdefault(drive, {}).update(attrs)

    def set_device(self, path: str, **values: Any) -> None:
        self.devices[path].update(values)

    def set_drive(self, drive: str, **values: Any) -> None:
        self.drives[drive].update(values)

    def emit_properties_changed(self, path: str) -> None:
        for sub_path, callback in list(self.property_subscribers.values()):
            if sub_path == path:
                callback("org.freedesktop.UDisks2.Block", {}, [])

    def subscribed_paths(self) -> List[str]:
        return [p for p, _ in self.property_subscribers.values()]

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    # ---- connection --------------------------------------------------

    def connect(self) -> bool:
        self.connect_calls += 1
        return self.connected

    def is_connected(self) -> bool:
        return self.connected

    def is_service_available(self) -> bool:
        return self.available

    # ---- enumeration -------------------------------------------------

    def get_devices(self) -> List[str]:
        self.get_devices_calls += 1
        return list(self.devices)

    # ---- queries -----------------------------------------------------

    def _device(self, path: str) -> Dict[str, Any]:
        return self.devices.get(path, {})

    def _drive(self, drive: str) -> Dict[str, Any]:
        return self.drives.get(drive, {})

    def get_drive_path(self, device: str) -> str:
        self.calls.append(("get_drive_path", device))
        return self._device(device).get("drive", "")

    def get_device_name(self, drive: str) -> str:
        return self._drive(drive).get("name", "")

    def is_removable(self, drive: str) -> bool:
        return self._drive(drive).get("removable", False)

    def get_mount_point(self, device: str) -> str:
        return self._device(device).get("mountpoint", "")

    def get_filesystem(self, device: str) -> str:
        return self._device(device).get("filesystem", "")

    def is_optical(self, drive: str) -> bool:
        return self._drive(drive).get("optical", False)

    def has_media(self, drive: str) -> bool:
        return self._drive(drive).get("media", False)

    def optical_data_tracks(self, drive: str) -> int:
        return self._drive(drive).get("data_tracks", 0)

    def optical_audio_tracks(self, drive: str) -> int:
        return self._drive(drive).get("audio_tracks", 0)

    def is_blank_disc(self, drive: str) -> bool:
        return self._drive(drive).get("blank", False)

    def has_partition(self, device: str) -> bool:
        return self._device(device).get("partition", False)

    # ---- mutations ---------------------------------------------------

    def mount_device(self, device: str) -> str:
        self.calls.append(("mount_device", device))
        error = self.mount_errors.get(device, "")
        if not error:
            self.devices[device]["mountpoint"] = (
                "/media/" + device.split("/")[-1]
            )
        return error

    def unmount_device(self, device: str) -> str:
        self.calls.append(("unmount_device", device))
        error = self.unmount_errors.get(device, "")
        if not error and device not in self.stuck:
            self.devices[device]["mountpoint"] = ""
        return error

    def eject_device(self, drive: str) -> str:
        self.calls.append(("eject_device", drive))
        error = self.eject_errors.get(drive, "")
        if not error:
            self.drives[drive]["media"] = False
        return error

    # ---- notifications -----------------------------------------------

    def subscribe_objects(self, on_added, on_removed) -> None:
        self.on_added = on_added
        self.on_removed = on_removed

    def unsubscribe_objects(self) -> None:
        self.on_added = None
        self.on_removed = None

    def subscribe_properties(self, path: str, callback) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self.property_subscribers[handle] = (path, callback)
        return handle

    def unsubscribe(self, handle: Any) -> None:
        self.property_subscribers.pop(handle, None)


@pytest.fixture
def service():
    """An empty, connected fake disk service."""
    return FakeDiskService()


@pytest.fixture
def state():
    """A valid connection state."""
    return ConnectionState(connected=True, service_reachable=True)


class Recorder:
    """Collects the payload of every emission of a signal."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def __call__(self, *args: Any) -> None:
        self.calls.append(args)

    def __len__(self) -> int:
        return len(self.calls)


@pytest.fixture
def recorder():
    """Factory for :class:`Recorder` instances."""
    return Recorder
