"""DeviceManager: registry of every block device known to the service.

The :class:`DeviceManager` owns one :class:`~pyDiskManager.device.Device`
per identifier reported by the disk service and keeps that set in step
with the service:

* **Additions** are found by :meth:`~DeviceManager.reconcile`, which is
  strictly additive: it creates a device for every identifier not yet
  tracked and never removes anything.
* **Removals** are driven by the service's object-removed notification.
  Before a device is destroyed the manager asks the service again; a
  device that is still enumerated survives (the notification was
  stale).
* **Recovery** relies on polling.  :meth:`~DeviceManager.check_connection`
  runs every :data:`DEFAULT_CHECK_INTERVAL` seconds once
  :meth:`~DeviceManager.start` has been awaited.  A lost transport is
  set up again from scratch; an unreachable service triggers a
  reconcile.  Once either comes back, tracked devices are re-read and
  those the service dropped meanwhile are released.

Per-device ``media_changed``, ``mountpoint_changed`` and ``error``
signals are re-emitted unchanged by the manager's signals of the same
name.  ``devices_updated`` and ``device_found`` are manager-only.

Everything runs on one asyncio event loop; service calls block it.

Usage example::

    import asyncio
    from pyDiskManager import DeviceManager
    from pyDiskManager.udisks2 import UDisks2Service

    service = UDisks2Service()
    manager = DeviceManager(service)
    manager.mountpoint_changed.connect(print)

    async def main():
        service.attach()
        await manager.start()
        try:
            await asyncio.Event().wait()
        finally:
            await manager.stop()
            service.detach()

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from pyDiskManager.device import Device
from pyDiskManager.service import ConnectionState, DiskService
from pyDiskManager.signals import Signal

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Seconds between two connection health checks.
DEFAULT_CHECK_INTERVAL: float = 60.0


# ---------------------------------------------------------------------------
# DeviceManager
# ---------------------------------------------------------------------------

class DeviceManager:
    """Tracks the block devices of a :class:`DiskService`.

    Parameters
    ----------
    service:
        The disk service to enumerate and subscribe to.
    check_interval:
        Seconds between two :meth:`check_connection` runs once the
        manager has been started.  Must be positive.
    """

    def __init__(
        self,
        service: DiskService,
        *,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
    ) -> None:
        if check_interval <= 0:
            raise ValueError(
                f"check_interval must be positive, got {check_interval!r}"
            )
        self._service = service
        self._check_interval = check_interval
        self._state = ConnectionState()

        self._devices: Dict[str, Device] = {}

        # --- signals --------------------------------------------------
        self.devices_updated = Signal("devices_updated")
        self.device_found = Signal("device_found")
        self.media_changed = Signal("media_changed")
        self.mountpoint_changed = Signal("mountpoint_changed")
        self.error = Signal("error")

        self._check_handle: Optional[asyncio.TimerHandle] = None

    # ---- read-only accessors -----------------------------------------

    @property
    def service(self) -> DiskService:
        """The underlying :class:`DiskService`."""
        return self._service

    @property
    def state(self) -> ConnectionState:
        """The connection state shared with every device."""
        return self._state

    @property
    def check_interval(self) -> float:
        """Seconds between two connection health checks."""
        return self._check_interval

    @property
    def devices(self) -> Dict[str, Device]:
        """A copy of the identifier → :class:`Device` mapping."""
        return dict(self._devices)

    def get_device(self, path: str) -> Optional[Device]:
        """Return the device tracked under *path*, or ``None``."""
        return self._devices.get(path)

    # ---- setup -------------------------------------------------------

    def setup(self) -> None:
        """Connect to the service, subscribe and enumerate.

        Safe to call again after the transport was lost: existing
        devices re-subscribe to their property notifications and are
        brought back in line with the service (see :meth:`resync`).
        """
        self._state.connected = self._service.connect()
        if not self._state.connected:
            self._state.service_reachable = False
            logger.warning("Disk service transport is not connected")
            return

        self._service.subscribe_objects(
            self.on_device_added, self.on_device_removed
        )
        self._state.service_reachable = self._service.is_service_available()
        logger.info(
            "Connected to disk service (service reachable: %s)",
            self._state.service_reachable,
        )
        for device in self._devices.values():
            device.resubscribe()
        self.resync()

    # ---- reconciliation ----------------------------------------------

    def resync(self) -> None:
        """Rebuild the tracked state from the service.

        Tracked devices the service no longer enumerates are closed and
        dropped, the survivors are refreshed, then :meth:`reconcile`
        picks up new ones.  Without a valid connection only the
        reconcile runs, so nothing is dropped on an empty enumeration.
        """
        if self._state.valid and self._devices:
            present = set(self._service.get_devices())
            for path in [p for p in self._devices if p not in present]:
                self._devices.pop(path).close()
                logger.info("Stopped tracking device %s: gone", path)
            for device in self._devices.values():
                device.refresh()
        self.reconcile()

    def reconcile(self) -> None:
        """Start tracking every enumerated device not tracked yet.

        Never removes devices.  :attr:`devices_updated` is emitted at
        the end of every call, whether or not anything was added.
        """
        for path in self._service.get_devices():
            if path in self._devices:
                continue
            self._devices[path] = self._create_device(path)
            logger.info("Tracking device %s", path)
        self.devices_updated.emit()

    def _create_device(self, path: str) -> Device:
        device = Device(path, self._service, self._state)
        device.media_changed.connect(self.media_changed.emit)
        device.mountpoint_changed.connect(self.mountpoint_changed.emit)
        device.error.connect(self.error.emit)
        return device

    def _is_job(self, path: str) -> bool:
        namespace = self._service.job_namespace
        return bool(namespace) and path.startswith(namespace)

    # ---- service notifications ---------------------------------------

    def on_device_added(self, path: str) -> None:
        """Object-added notification from the service."""
        if not self._state.valid or self._is_job(path):
            return
        logger.debug("Object added: %s", path)
        self.reconcile()
        self.device_found.emit(path)

    def on_device_removed(self, path: str) -> None:
        """Object-removed notification from the service.

        A tracked device is only dropped once the service confirms it
        no longer enumerates it.
        """
        if not self._state.valid or self._is_job(path):
            return
        logger.debug("Object removed: %s", path)
        if path in self._devices:
            if path in self._service.get_devices():
                logger.info(
                    "Ignoring stale removal of %s: still enumerated", path
                )
            else:
                device = self._devices.pop(path)
                device.close()
                logger.info("Stopped tracking device %s", path)
        self.reconcile()

    # ---- health check ------------------------------------------------

    def check_connection(self) -> None:
        """Recompute the connection state and recover if needed.

        * Transport down → :meth:`setup` again.
        * Service unreachable → :meth:`reconcile`.
        * Service reachable again after being unreachable →
          :meth:`resync` to catch up on changes made in between.
        """
        self._state.connected = self._service.is_connected()
        if not self._state.connected:
            logger.warning("Disk service transport lost; reconnecting")
            self.setup()
            return

        was_reachable = self._state.service_reachable
        self._state.service_reachable = self._service.is_service_available()
        if not self._state.service_reachable:
            logger.warning("Disk service is not reachable")
            self.reconcile()
        elif not was_reachable:
            logger.info("Disk service is reachable again")
            self.resync()

    # ---- start / stop ------------------------------------------------

    async def start(self) -> None:
        """Set up the service and start the periodic health check."""
        if self._check_handle is not None:
            logger.debug("Device manager already started, skipping.")
            return
        self.setup()
        self._schedule_check()
        logger.info(
            "Device manager started (check every %.0f s)",
            self._check_interval,
        )

    async def stop(self) -> None:
        """Stop the health check and release every device."""
        self._cancel_check()
        self._service.unsubscribe_objects()
        for device in self._devices.values():
            device.close()
        self._devices.clear()
        logger.info("Device manager stopped")

    @property
    def is_running(self) -> bool:
        """``True`` while the health check is scheduled."""
        return self._check_handle is not None

    def _schedule_check(self) -> None:
        loop = asyncio.get_running_loop()
        self._check_handle = loop.call_later(
            self._check_interval, self._on_check_timer_fired
        )

    def _cancel_check(self) -> None:
        if self._check_handle is not None:
            self._check_handle.cancel()
            self._check_handle = None

    def _on_check_timer_fired(self) -> None:
        self._check_handle = None
        try:
            self.check_connection()
        finally:
            self._schedule_check()

    # ---- convenience dispatch ----------------------------------------

    def mount(self, path: str) -> None:
        """Mount the device tracked under *path*."""
        device = self._lookup(path)
        if device is not None:
            device.mount()

    def unmount(self, path: str) -> None:
        """Unmount the device tracked under *path*."""
        device = self._lookup(path)
        if device is not None:
            device.unmount()

    def eject(self, path: str) -> None:
        """Eject the drive of the device tracked under *path*."""
        device = self._lookup(path)
        if device is not None:
            device.eject()

    def _lookup(self, path: str) -> Optional[Device]:
        device = self._devices.get(path)
        if device is None:
            logger.warning("Unknown device %s", path)
        return device

    def mounted_devices(self) -> List[Device]:
        """Return the tracked devices that currently have a mount point."""
        return [d for d in self._devices.values() if d.is_mounted]

    # ---- dunder ------------------------------------------------------

    def __contains__(self, path: object) -> bool:
        return path in self._devices

    def __len__(self) -> int:
        return len(self._devices)

    def __repr__(self) -> str:
        return (
            f"DeviceManager(devices={len(self._devices)}, "
            f"connected={self._state.connected}, "
            f"service_reachable={self._state.service_reachable})"
        )
