"""Device: live model of one block device.

A :class:`Device` mirrors the attributes the disk service reports for
a single block device and re-derives all of them on every
:meth:`~Device.refresh`.  Nothing is patched incrementally: the service
is the source of truth, and every mutating operation (mount, unmount,
eject) ends by asking it again.

Change notifications
~~~~~~~~~~~~~~~~~~~~

Only three attributes are *notification-worthy*: ``has_media``,
``mountpoint`` and ``name``.  A refresh compares them with the previous
snapshot and emits one signal per changed field.  The remaining
attributes are updated silently.

Error reporting
~~~~~~~~~~~~~~~

:attr:`Device.error` is only emitted from :meth:`~Device.mount`,
:meth:`~Device.unmount` and :meth:`~Device.eject`, never from a passive
refresh.  When the service claims success but the post-condition does
not hold, a message is synthesized.

Devices are created and destroyed by
:class:`~pyDiskManager.manager.DeviceManager`; consumers should not
keep references to them beyond a callback.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pyDiskManager.service import ConnectionState, DiskService
from pyDiskManager.signals import Signal

logger = logging.getLogger(__name__)


class Device:
    """One block device known to the disk service.

    Construction subscribes to the device's property-changed
    notification and performs the initial :meth:`refresh`.

    Parameters
    ----------
    path:
        The service identifier of the block device (immutable).
    service:
        The :class:`DiskService` to query and mutate through.
    state:
        The shared :class:`ConnectionState`.  When it is not
        :attr:`~ConnectionState.valid` every operation is a no-op.
    """

    def __init__(
        self,
        path: str,
        service: DiskService,
        state: ConnectionState,
    ) -> None:
        self._path: str = path
        self._service = service
        self._state = state

        # --- derived attributes ---------------------------------------
        self.drive: str = ""
        self.name: str = ""
        self.dev: str = ""
        self.mountpoint: str = ""
        self.filesystem: str = ""
        self.is_removable: bool = False
        self.is_optical: bool = False
        self.has_media: bool = False
        self.optical_data_tracks: int = 0
        self.optical_audio_tracks: int = 0
        self.is_blank_disc: bool = False
        self.has_partition: bool = False

        # --- signals --------------------------------------------------
        self.media_changed = Signal("media_changed")
        self.mountpoint_changed = Signal("mountpoint_changed")
        self.name_changed = Signal("name_changed")
        self.error = Signal("error")

        self._subscription: Optional[Any] = None
        self.resubscribe()
        self.refresh()

    # ---- read-only accessors -----------------------------------------

    @property
    def path(self) -> str:
        """The device identifier (read-only)."""
        return self._path

    @property
    def is_mounted(self) -> bool:
        """``True`` when the device has a non-empty mount point."""
        return bool(self.mountpoint)

    # ---- refresh -----------------------------------------------------

    def refresh(self) -> None:
        """Re-query every derived attribute from the service.

        Emits :attr:`media_changed`, :attr:`mountpoint_changed` and
        :attr:`name_changed` for the watched fields that differ from
        the previous snapshot.
        """
        if not self._state.valid:
            logger.debug("Refresh of %s skipped: no connection", self._path)
            return

        had_media = self.has_media
        last_mountpoint = self.mountpoint
        last_name = self.name

        service = self._service
        self.drive = service.get_drive_path(self._path)
        self.name = service.get_device_name(self.drive)
        self.dev = self._path.split("/")[-1]
        self.is_removable = service.is_removable(self.drive)
        self.mountpoint = service.get_mount_point(self._path)
        self.filesystem = service.get_filesystem(self._path)
        self.is_optical = service.is_optical(self.drive)
        self.has_media = service.has_media(self.drive)
        self.optical_data_tracks = service.optical_data_tracks(self.drive)
        self.optical_audio_tracks = service.optical_audio_tracks(self.drive)
        self.is_blank_disc = service.is_blank_disc(self.drive)
        self.has_partition = service.has_partition(self._path)

        if had_media != self.has_media:
            self.media_changed.emit(self._path, self.has_media)
        if last_mountpoint != self.mountpoint:
            self.mountpoint_changed.emit(self._path, self.mountpoint)
        if last_name != self.name:
            self.name_changed.emit(self._path, self.name)

    # ---- mutating operations -----------------------------------------

    def mount(self) -> None:
        """Ask the service to mount this device.

        Mounting an already mounted device is a no-op.
        """
        if not self._state.valid or self.mountpoint:
            return
        logger.info("Mounting %s", self._path)
        reply = self._service.mount_device(self._path)
        if reply:
            self._report_error(reply)
            return
        self.refresh()

    def unmount(self) -> None:
        """Ask the service to unmount this device.

        The device is refreshed whatever the outcome.  An unmount that
        leaves a mount point behind is reported as an error.  A
        successful unmount of an optical device is followed by
        :meth:`eject`.
        """
        if not self._state.valid or not self.mountpoint:
            return
        logger.info("Unmounting %s", self._path)
        reply = self._service.unmount_device(self._path)
        self.refresh()
        if reply or self.mountpoint:
            self._report_error(reply or f"Failed to unmount {self.name}")
            return
        if self.is_optical:
            self.eject()

    def eject(self) -> None:
        """Ask the service to eject the drive backing this device."""
        if not self._state.valid:
            return
        logger.info("Ejecting %s (drive %s)", self._path, self.drive)
        reply = self._service.eject_device(self.drive)
        self.refresh()
        if reply:
            self._report_error(
                reply.strip() or f"Failed to eject {self.name}"
            )

    def _report_error(self, message: str) -> None:
        logger.warning("%s: %s", self._path, message)
        self.error.emit(self._path, message)

    # ---- notifications -----------------------------------------------

    def resubscribe(self) -> None:
        """(Re-)subscribe to property-changed notifications.

        Called on construction and again by the manager after the
        transport has been re-established.
        """
        if self._subscription is not None:
            self._service.unsubscribe(self._subscription)
        self._subscription = self._service.subscribe_properties(
            self._path, self._on_properties_changed
        )

    def _on_properties_changed(self, *_payload: Any) -> None:
        """Property-changed notification: the payload is not inspected."""
        self.refresh()

    # ---- teardown ----------------------------------------------------

    def close(self) -> None:
        """Drop the property subscription and every listener.

        Called by the owning manager when the device disappears.
        """
        if self._subscription is not None:
            self._service.unsubscribe(self._subscription)
            self._subscription = None
        for signal in (
            self.media_changed,
            self.mountpoint_changed,
            self.name_changed,
            self.error,
        ):
            signal.clear()

    # ---- snapshot ----------------------------------------------------

    def get_properties(self) -> Dict[str, Any]:
        """Return the current attributes as a plain dictionary."""
        return {
            "path": self._path,
            "drive": self.drive,
            "name": self.name,
            "dev": self.dev,
            "mountpoint": self.mountpoint,
            "filesystem": self.filesystem,
            "isRemovable": self.is_removable,
            "isOptical": self.is_optical,
            "hasMedia": self.has_media,
            "opticalDataTracks": self.optical_data_tracks,
            "opticalAudioTracks": self.optical_audio_tracks,
            "isBlankDisc": self.is_blank_disc,
            "hasPartition": self.has_partition,
        }

    # ---- dunder ------------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"Device(path={self._path!r}, name={self.name!r}, "
            f"mountpoint={self.mountpoint!r})"
        )
