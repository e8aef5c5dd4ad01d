"""Boundary to the external disk-management service.

The tracking core never talks to a bus directly.  Everything it needs
from the service (enumeration, attribute queries, mount / unmount /
eject, and change notifications) goes through the :class:`DiskService`
interface defined here.  :class:`~pyDiskManager.udisks2.UDisks2Service`
is the production implementation; tests provide an in-memory one.

Conventions shared by every implementation:

* Device and drive identifiers are opaque strings (D-Bus object paths
  for UDisks2).
* Mutating calls return an *error message*; an empty string means
  success.  They do not raise for service-side failures.
* Attribute queries return ``""``, ``False`` or ``0`` when the value is
  not available.
* Notifications are delivered on the caller's event loop, one at a time.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Callable, List

#: Callback for object added / removed notifications; receives the path.
ObjectCallback = Callable[[str], None]

#: Callback for a per-object property change.  The payload is opaque.
PropertiesCallback = Callable[..., None]


# ---------------------------------------------------------------------------
# Connection state
# ---------------------------------------------------------------------------

@dataclass
class ConnectionState:
    """Shared view of the service connection.

    Owned by the :class:`~pyDiskManager.manager.DeviceManager`, which
    recomputes both flags in
    :meth:`~pyDiskManager.manager.DeviceManager.check_connection`, and
    shared by reference with every device it creates.

    * **connected**: the transport (message bus) is usable.
    * **service_reachable**: the disk service answers on that bus.
    """

    connected: bool = False
    service_reachable: bool = False

    @property
    def valid(self) -> bool:
        """``True`` when operations against the service may be issued."""
        return self.connected and self.service_reachable


# ---------------------------------------------------------------------------
# DiskService
# ---------------------------------------------------------------------------

class DiskService(abc.ABC):
    """Abstract interface of the disk-management service."""

    #: Object-path prefix of transient job objects.  Added / removed
    #: notifications below this prefix are not devices.
    job_namespace: str = ""

    # ---- connection --------------------------------------------------

    @abc.abstractmethod
    def connect(self) -> bool:
        """(Re-)establish the transport.  Returns :meth:`is_connected`."""

    @abc.abstractmethod
    def is_connected(self) -> bool:
        """``True`` while the transport is usable."""

    @abc.abstractmethod
    def is_service_available(self) -> bool:
        """``True`` while the service itself answers on the transport."""

    # ---- enumeration -------------------------------------------------

    @abc.abstractmethod
    def get_devices(self) -> List[str]:
        """Return the identifiers of every block device."""

    # ---- attribute queries -------------------------------------------

    @abc.abstractmethod
    def get_drive_path(self, device: str) -> str:
        """Return the drive backing *device* (``""`` if none)."""

    @abc.abstractmethod
    def get_device_name(self, drive: str) -> str:
        """Return a human-readable name for *drive*."""

    @abc.abstractmethod
    def is_removable(self, drive: str) -> bool:
        """Return ``True`` if *drive* holds removable media."""

    @abc.abstractmethod
    def get_mount_point(self, device: str) -> str:
        """Return the first mount point of *device* (``""`` if unmounted)."""

    @abc.abstractmethod
    def get_filesystem(self, device: str) -> str:
        """Return the filesystem type of *device* (``""`` if unknown)."""

    @abc.abstractmethod
    def is_optical(self, drive: str) -> bool:
        """Return ``True`` if *drive* is an optical drive."""

    @abc.abstractmethod
    def has_media(self, drive: str) -> bool:
        """Return ``True`` if *drive* currently has media inserted."""

    @abc.abstractmethod
    def optical_data_tracks(self, drive: str) -> int:
        """Return the number of data tracks on the disc in *drive*."""

    @abc.abstractmethod
    def optical_audio_tracks(self, drive: str) -> int:
        """Return the number of audio tracks on the disc in *drive*."""

    @abc.abstractmethod
    def is_blank_disc(self, drive: str) -> bool:
        """Return ``True`` if the disc in *drive* is blank."""

    @abc.abstractmethod
    def has_partition(self, device: str) -> bool:
        """Return ``True`` if *device* is a partition."""

    # ---- mutations ---------------------------------------------------

    @abc.abstractmethod
    def mount_device(self, device: str) -> str:
        """Mount *device*.  Returns an error message, ``""`` on success."""

    @abc.abstractmethod
    def unmount_device(self, device: str) -> str:
        """Unmount *device*.  Returns an error message, ``""`` on success."""

    @abc.abstractmethod
    def eject_device(self, drive: str) -> str:
        """Eject *drive*.  Returns an error message, ``""`` on success."""

    # ---- notifications -----------------------------------------------

    @abc.abstractmethod
    def subscribe_objects(
        self,
        on_added: ObjectCallback,
        on_removed: ObjectCallback,
    ) -> None:
        """Deliver object added / removed notifications to the callbacks.

        Replaces any previous object subscription.
        """

    @abc.abstractmethod
    def subscribe_properties(
        self, path: str, callback: PropertiesCallback
    ) -> Any:
        """Call *callback* whenever a property of *path* changes.

        Returns a handle for :meth:`unsubscribe`.
        """

    @abc.abstractmethod
    def unsubscribe(self, handle: Any) -> None:
        """Cancel a subscription made with :meth:`subscribe_properties`."""

    def unsubscribe_objects(self) -> None:
        """Cancel the object added / removed subscription, if any."""
