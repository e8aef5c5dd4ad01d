#!/usr/bin/env python3
"""Watch the block devices known to UDisks2 and log every change.

The script:

  1. Loads an optional YAML configuration (``--config``).
  2. Connects to UDisks2 on the configured bus and enumerates devices.
  3. Logs device arrival, media and mount-point changes and errors.
  4. Re-checks the UDisks2 connection every ``checkInterval`` seconds.
  5. Runs until interrupted with Ctrl-C.

Optionally ``--mount PATH`` / ``--unmount PATH`` act on one device once
the initial enumeration is done.

Run from the project root::

    python examples/watch_devices.py --config examples/watch_devices.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Ensure the package is importable when running from the repo root.
# ---------------------------------------------------------------------------
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from pyDiskManager import DeviceManager, ManagerConfig  # noqa: E402
from pyDiskManager.udisks2 import UDisks2Service  # noqa: E402

logger = logging.getLogger("demo")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )


# ---------------------------------------------------------------------------
# Event listeners
# ---------------------------------------------------------------------------

def wire_listeners(manager: DeviceManager) -> None:
    manager.devices_updated.connect(
        lambda: logger.info("%d device(s) tracked", len(manager))
    )
    manager.device_found.connect(
        lambda path: logger.info("New device: %s", path)
    )
    manager.media_changed.connect(
        lambda path, present: logger.info(
            "%s: media %s", path, "inserted" if present else "removed"
        )
    )
    manager.mountpoint_changed.connect(
        lambda path, mountpoint: logger.info(
            "%s: %s", path, f"mounted at {mountpoint}" if mountpoint
            else "unmounted"
        )
    )
    manager.error.connect(
        lambda path, message: logger.error("%s: %s", path, message)
    )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

async def main(args: argparse.Namespace, config: ManagerConfig) -> None:
    service = UDisks2Service(bus=config.bus)
    manager = DeviceManager(service, check_interval=config.check_interval)
    wire_listeners(manager)

    service.attach()
    await manager.start()
    try:
        for device in manager.devices.values():
            logger.info("%s", device.get_properties())
        if args.mount:
            manager.mount(args.mount)
        if args.unmount:
            manager.unmount(args.unmount)
        await asyncio.Event().wait()
    finally:
        await manager.stop()
        service.detach()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument("--mount", metavar="PATH", help="device to mount")
    parser.add_argument("--unmount", metavar="PATH", help="device to unmount")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    config = ManagerConfig.load(args.config)
    setup_logging(config.log_level)
    try:
        asyncio.run(main(args, config))
    except KeyboardInterrupt:
        pass
