"""UDisks2 implementation of :class:`~pyDiskManager.service.DiskService`.

Talks to ``org.freedesktop.UDisks2`` over D-Bus using Gio from
PyGObject.  All method calls are synchronous (``call_sync``) and block
the calling event loop until the daemon answers.

Interfaces used:

* ``org.freedesktop.UDisks2.Manager``: ``GetBlockDevices`` for
  enumeration.
* ``org.freedesktop.UDisks2.Block``: ``Drive`` and ``IdType``.
* ``org.freedesktop.UDisks2.Drive``: name, removable, optical and media
  properties, and ``Eject``.
* ``org.freedesktop.UDisks2.Filesystem``: ``MountPoints``, ``Mount``
  and ``Unmount``.
* ``org.freedesktop.UDisks2.Partition``: presence only.
* ``org.freedesktop.DBus.ObjectManager``: ``InterfacesAdded`` /
  ``InterfacesRemoved`` for device arrival and removal.
* ``org.freedesktop.DBus.Properties``: ``PropertiesChanged`` per
  device.

Signal delivery
~~~~~~~~~~~~~~~

Gio dispatches D-Bus signals on the GLib default main context.  When
the application runs an asyncio loop instead of a GLib main loop, call
:meth:`UDisks2Service.attach` from inside the loop: the pending GLib
sources are then dispatched from the asyncio loop every
:data:`GLIB_PUMP_INTERVAL` seconds, so signal callbacks run on the same
thread as everything else.

Errors
~~~~~~

``GLib.Error`` never leaves this module.  Attribute queries fall back
to ``""`` / ``False`` / ``0``, enumeration falls back to an empty list,
and mutating calls return the D-Bus error message.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Tuple

import gi

gi.require_version("Gio", "2.0")
from gi.repository import Gio, GLib  # noqa: E402

from pyDiskManager.service import (  # noqa: E402
    DiskService,
    ObjectCallback,
    PropertiesCallback,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

UDISKS2_SERVICE: str = "org.freedesktop.UDisks2"
UDISKS2_PATH: str = "/org/freedesktop/UDisks2"
UDISKS2_MANAGER_PATH: str = f"{UDISKS2_PATH}/Manager"
UDISKS2_JOBS_PATH: str = f"{UDISKS2_PATH}/jobs"

IFACE_MANAGER: str = f"{UDISKS2_SERVICE}.Manager"
IFACE_BLOCK: str = f"{UDISKS2_SERVICE}.Block"
IFACE_DRIVE: str = f"{UDISKS2_SERVICE}.Drive"
IFACE_FILESYSTEM: str = f"{UDISKS2_SERVICE}.Filesystem"
IFACE_PARTITION: str = f"{UDISKS2_SERVICE}.Partition"

DBUS_SERVICE: str = "org.freedesktop.DBus"
DBUS_PATH: str = "/org/freedesktop/DBus"
DBUS_PROPERTIES: str = "org.freedesktop.DBus.Properties"
DBUS_OBJECT_MANAGER: str = "org.freedesktop.DBus.ObjectManager"

#: Timeout for D-Bus method calls in milliseconds (``-1`` = Gio default).
CALL_TIMEOUT_MS: int = -1

#: Seconds between two iterations of the GLib main context when
#: attached to an asyncio loop.
GLIB_PUMP_INTERVAL: float = 0.05

_BUS_TYPES = {
    "system": Gio.BusType.SYSTEM,
    "session": Gio.BusType.SESSION,
}

#: Handle returned by :meth:`UDisks2Service.subscribe_properties`.
Subscription = Tuple[Gio.DBusConnection, int]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def decode_bytestring(value: Any) -> str:
    """Decode a D-Bus ``ay`` value (NUL-terminated) to ``str``."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, (list, tuple)):
        raw = bytes(value)
    else:
        return str(value).rstrip("\x00")
    return raw.decode("utf-8", errors="replace").rstrip("\x00")


def first_mount_point(mount_points: Any) -> str:
    """Return the first entry of a ``MountPoints`` (``aay``) value."""
    if not mount_points:
        return ""
    return decode_bytestring(mount_points[0])


def drive_display_name(vendor: str, model: str) -> str:
    """Join the drive vendor and model into one display name."""
    return " ".join(part.strip() for part in (vendor, model) if part.strip())


# ---------------------------------------------------------------------------
# UDisks2Service
# ---------------------------------------------------------------------------

class UDisks2Service(DiskService):
    """:class:`DiskService` backed by the UDisks2 daemon.

    Parameters
    ----------
    bus:
        ``"system"`` (default) or ``"session"``.
    """

    job_namespace = UDISKS2_JOBS_PATH

    def __init__(self, bus: str = "system") -> None:
        if bus not in _BUS_TYPES:
            raise ValueError(f"Unknown bus type {bus!r}")
        self._bus_type = _BUS_TYPES[bus]
        self._bus: Optional[Gio.DBusConnection] = None
        self._object_subscriptions: List[Subscription] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pump_handle: Optional[asyncio.TimerHandle] = None

    # ---- connection --------------------------------------------------

    def connect(self) -> bool:
        """Open a private connection to the bus unless one is open."""
        if self.is_connected():
            return True
        try:
            address = Gio.dbus_address_get_for_bus_sync(self._bus_type, None)
            self._bus = Gio.DBusConnection.new_for_address_sync(
                address,
                Gio.DBusConnectionFlags.AUTHENTICATION_CLIENT
                | Gio.DBusConnectionFlags.MESSAGE_BUS_CONNECTION,
                None,
                None,
            )
        except GLib.Error as exc:
            logger.warning("Could not connect to D-Bus: %s", exc.message)
            self._bus = None
            return False
        logger.info("Connected to D-Bus (%s)", self._bus.get_unique_name())
        return True

    def is_connected(self) -> bool:
        return self._bus is not None and not self._bus.is_closed()

    def is_service_available(self) -> bool:
        if not self.is_connected():
            return False
        try:
            reply = self._bus.call_sync(
                DBUS_SERVICE,
                DBUS_PATH,
                DBUS_SERVICE,
                "NameHasOwner",
                GLib.Variant("(s)", (UDISKS2_SERVICE,)),
                GLib.VariantType.new("(b)"),
                Gio.DBusCallFlags.NONE,
                CALL_TIMEOUT_MS,
                None,
            )
        except GLib.Error as exc:
            logger.debug("NameHasOwner failed: %s", exc.message)
            return False
        return bool(reply.unpack()[0])

    # ---- low-level calls ---------------------------------------------

    def _call(
        self,
        path: str,
        interface: str,
        method: str,
        parameters: Optional[GLib.Variant],
        reply_type: Optional[str],
    ) -> Tuple[Any, ...]:
        """Invoke a UDisks2 method; raises ``GLib.Error`` on failure."""
        if not self.is_connected():
            raise GLib.Error("Not connected to D-Bus")
        reply = self._bus.call_sync(
            UDISKS2_SERVICE,
            path,
            interface,
            method,
            parameters,
            GLib.VariantType.new(reply_type) if reply_type else None,
            Gio.DBusCallFlags.NONE,
            CALL_TIMEOUT_MS,
            None,
        )
        return reply.unpack() if reply is not None else ()

    def _get_property(
        self, path: str, interface: str, name: str, default: Any
    ) -> Any:
        if not path:
            return default
        try:
            (value,) = self._call(
                path,
                DBUS_PROPERTIES,
                "Get",
                GLib.Variant("(ss)", (interface, name)),
                "(v)",
            )
        except GLib.Error as exc:
            logger.debug(
                "Get %s.%s on %s failed: %s",
                interface, name, path, exc.message,
            )
            return default
        return value

    def _invoke(self, path: str, interface: str, method: str) -> str:
        """Call a mutating method taking only an options dict.

        Returns the D-Bus error message, or ``""`` on success.
        """
        if not path:
            return f"No object to call {method} on"
        try:
            self._call(
                path,
                interface,
                method,
                GLib.Variant("(a{sv})", ({},)),
                None,
            )
        except GLib.Error as exc:
            return exc.message or f"{method} failed"
        return ""

    # ---- enumeration -------------------------------------------------

    def get_devices(self) -> List[str]:
        try:
            (paths,) = self._call(
                UDISKS2_MANAGER_PATH,
                IFACE_MANAGER,
                "GetBlockDevices",
                GLib.Variant("(a{sv})", ({},)),
                "(ao)",
            )
        except GLib.Error as exc:
            logger.warning("Could not enumerate block devices: %s", exc.message)
            return []
        return list(paths)

    # ---- attribute queries -------------------------------------------

    def get_drive_path(self, device: str) -> str:
        drive = self._get_property(device, IFACE_BLOCK, "Drive", "")
        return "" if drive == "/" else str(drive)

    def get_device_name(self, drive: str) -> str:
        vendor = self._get_property(drive, IFACE_DRIVE, "Vendor", "")
        model = self._get_property(drive, IFACE_DRIVE, "Model", "")
        return drive_display_name(vendor, model)

    def is_removable(self, drive: str) -> bool:
        return bool(self._get_property(drive, IFACE_DRIVE, "Removable", False))

    def get_mount_point(self, device: str) -> str:
        mount_points = self._get_property(
            device, IFACE_FILESYSTEM, "MountPoints", []
        )
        return first_mount_point(mount_points)

    def get_filesystem(self, device: str) -> str:
        return str(self._get_property(device, IFACE_BLOCK, "IdType", ""))

    def is_optical(self, drive: str) -> bool:
        return bool(self._get_property(drive, IFACE_DRIVE, "Optical", False))

    def has_media(self, drive: str) -> bool:
        return bool(
            self._get_property(drive, IFACE_DRIVE, "MediaAvailable", False)
        )

    def optical_data_tracks(self, drive: str) -> int:
        return int(
            self._get_property(drive, IFACE_DRIVE, "OpticalNumDataTracks", 0)
        )

    def optical_audio_tracks(self, drive: str) -> int:
        return int(
            self._get_property(drive, IFACE_DRIVE, "OpticalNumAudioTracks", 0)
        )

    def is_blank_disc(self, drive: str) -> bool:
        return bool(
            self._get_property(drive, IFACE_DRIVE, "OpticalBlank", False)
        )

    def has_partition(self, device: str) -> bool:
        number = self._get_property(device, IFACE_PARTITION, "Number", None)
        return number is not None

    # ---- mutations ---------------------------------------------------

    def mount_device(self, device: str) -> str:
        return self._invoke(device, IFACE_FILESYSTEM, "Mount")

    def unmount_device(self, device: str) -> str:
        return self._invoke(device, IFACE_FILESYSTEM, "Unmount")

    def eject_device(self, drive: str) -> str:
        return self._invoke(drive, IFACE_DRIVE, "Eject")

    # ---- notifications -----------------------------------------------

    def subscribe_objects(
        self,
        on_added: ObjectCallback,
        on_removed: ObjectCallback,
    ) -> None:
        self.unsubscribe_objects()
        if not self.is_connected():
            return

        def _added(_conn, _sender, _path, _iface, _signal, params):
            on_added(params.unpack()[0])

        def _removed(_conn, _sender, _path, _iface, _signal, params):
            on_removed(params.unpack()[0])

        for member, handler in (
            ("InterfacesAdded", _added),
            ("InterfacesRemoved", _removed),
        ):
            sub_id = self._bus.signal_subscribe(
                UDISKS2_SERVICE,
                DBUS_OBJECT_MANAGER,
                member,
                UDISKS2_PATH,
                None,
                Gio.DBusSignalFlags.NONE,
                handler,
            )
            self._object_subscriptions.append((self._bus, sub_id))

    def unsubscribe_objects(self) -> None:
        for subscription in self._object_subscriptions:
            self.unsubscribe(subscription)
        self._object_subscriptions = []

    def subscribe_properties(
        self, path: str, callback: PropertiesCallback
    ) -> Optional[Subscription]:
        if not self.is_connected():
            return None

        def _changed(_conn, _sender, _path, _iface, _signal, params):
            interface, changed, invalidated = params.unpack()
            callback(interface, changed, invalidated)

        sub_id = self._bus.signal_subscribe(
            UDISKS2_SERVICE,
            DBUS_PROPERTIES,
            "PropertiesChanged",
            path,
            None,
            Gio.DBusSignalFlags.NONE,
            _changed,
        )
        return (self._bus, sub_id)

    def unsubscribe(self, handle: Optional[Subscription]) -> None:
        if handle is None:
            return
        bus, sub_id = handle
        if not bus.is_closed():
            bus.signal_unsubscribe(sub_id)

    # ---- asyncio integration -----------------------------------------

    def attach(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Dispatch GLib sources from *loop* (default: the running loop)."""
        if self._pump_handle is not None:
            return
        self._loop = loop or asyncio.get_running_loop()
        self._schedule_pump()

    def detach(self) -> None:
        """Stop dispatching GLib sources."""
        if self._pump_handle is not None:
            self._pump_handle.cancel()
            self._pump_handle = None

    def _schedule_pump(self) -> None:
        self._pump_handle = self._loop.call_later(
            GLIB_PUMP_INTERVAL, self._pump
        )

    def _pump(self) -> None:
        context = GLib.MainContext.default()
        try:
            while context.pending():
                context.iteration(False)
        finally:
            self._schedule_pump()

    # ---- dunder ------------------------------------------------------

    def __repr__(self) -> str:
        state = "connected" if self.is_connected() else "disconnected"
        return f"UDisks2Service({state})"
