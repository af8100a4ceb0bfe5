"""Viewer state shared between the UI loop and the scanner thread."""

import threading
from typing import List, Optional

from bleview.devices import DeviceInfo


class PauseFlag:
    """Boolean telling the scanner whether it should be scanning.

    Backed by a ``threading.Event`` so each read and each write is atomic.
    ``toggle()`` is a read followed by a write; the scanner only ever
    reads, so the pair does not need to be atomic.
    """

    def __init__(self, paused: bool = False):
        self._event = threading.Event()
        if paused:
            self._event.set()

    def is_paused(self) -> bool:
        return self._event.is_set()

    def set_paused(self, paused: bool):
        if paused:
            self._event.set()
        else:
            self._event.clear()

    def toggle(self) -> bool:
        """Flip the flag and return the new value."""
        paused = not self.is_paused()
        self.set_paused(paused)
        return paused


class ViewerState:
    """Current snapshot, selected row and the pause flag.

    ``selected`` stays ``None`` until the first snapshot arrives.  It is
    not clamped when a shorter snapshot replaces a longer one; rendering
    and navigation cope with a stale index instead.
    """

    def __init__(self, pause: PauseFlag,
                 devices: Optional[List[DeviceInfo]] = None,
                 selected: Optional[int] = None):
        self.pause = pause
        self.devices: List[DeviceInfo] = list(devices or [])
        self.selected = selected

    def selected_device(self) -> DeviceInfo:
        """Device shown in the detail panel, or an empty one if none is valid."""
        if self.selected is None or not 0 <= self.selected < len(self.devices):
            return DeviceInfo()
        return self.devices[self.selected]


def select_next(selected: Optional[int], count: int) -> int:
    """Row below *selected*, wrapping to the top."""
    if selected is None or count == 0:
        return 0
    if selected >= count - 1:
        return 0
    return selected + 1


def select_previous(selected: Optional[int], count: int) -> int:
    """Row above *selected*, wrapping to the bottom.

    A stale index past the end of a shrunken snapshot lands on the last row.
    """
    if selected is None or count == 0:
        return 0
    if selected == 0:
        return count - 1
    return min(selected - 1, count - 1)
