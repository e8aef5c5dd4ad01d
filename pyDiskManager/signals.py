"""Minimal multi-listener callback lists.

Every event raised by :class:`~pyDiskManager.device.Device` and
:class:`~pyDiskManager.manager.DeviceManager` is a :class:`Signal`.
Consumers subscribe plain callables; the payload passed to
:meth:`Signal.emit` is handed to each listener positionally.

Usage::

    device.media_changed.connect(lambda path, present: print(path, present))
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List

logger = logging.getLogger(__name__)

#: Signature of a signal listener.
Listener = Callable[..., Any]


class Signal:
    """An ordered list of listeners that can be invoked together.

    Parameters
    ----------
    name:
        Name used in log messages (e.g. ``"media_changed"``).
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._listeners: List[Listener] = []

    @property
    def name(self) -> str:
        """The signal name."""
        return self._name

    def connect(self, listener: Listener) -> None:
        """Append *listener*.  Connecting the same callable twice is a no-op."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def disconnect(self, listener: Listener) -> None:
        """Remove *listener* if connected."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def clear(self) -> None:
        """Drop every listener."""
        self._listeners.clear()

    def emit(self, *args: Any) -> None:
        """Invoke every listener with *args*.

        A listener raising an exception is logged and does not prevent
        the remaining listeners from running.
        """
        for listener in list(self._listeners):
            try:
                listener(*args)
            except Exception:
                logger.exception(
                    "Error while invoking listener for '%s'", self._name
                )

    def __len__(self) -> int:
        return len(self._listeners)

    def __repr__(self) -> str:
        return f"Signal({self._name!r}, listeners={len(self._listeners)})"
