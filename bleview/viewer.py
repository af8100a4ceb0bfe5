"""Curses viewer: device table, detail panel and key handling.

Each pass of :func:`run_viewer` draws the whole screen from the current
state, waits up to ``poll_interval`` for a key, then takes whatever
snapshots the scanner has queued since the last pass.
"""

import curses
import logging
import queue
import unicodedata
from typing import List, Optional, Sequence, Tuple

from bleview.devices import DeviceInfo, display_address, extract_manufacturer_data
from bleview.state import PauseFlag, ViewerState, select_next, select_previous

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1               # seconds to wait for a key each pass

_MARGIN = 1
_LAYOUT = (70, 20, 10)            # percent of height: table / detail / hints
_COLUMNS = (("Address", 40), ("Name", 30), ("TX Power", 10), ("RSSI", 10))
_DETAIL_WIDTHS = (30, 70)
_HINT_WIDTHS = (10, 20, 20)
_TABLE_TITLE = "Detected Bluetooth Devices"
_DETAIL_TITLE = "More Detail"


# ------------------------------------------------------------------
# Layout helpers
# ------------------------------------------------------------------

def split_regions(height: int, margin: int = _MARGIN) -> List[Tuple[int, int]]:
    """Split the screen height into (top, rows) for the three regions."""
    inner = max(0, height - 2 * margin)
    table_rows = inner * _LAYOUT[0] // 100
    detail_rows = inner * _LAYOUT[1] // 100
    hint_rows = inner - table_rows - detail_rows
    top = margin
    return [
        (top, table_rows),
        (top + table_rows, detail_rows),
        (top + table_rows + detail_rows, hint_rows),
    ]


def scroll_offset(selected: Optional[int], count: int, visible: int) -> int:
    """First table row to draw so that the selected row is on screen."""
    if visible <= 0 or selected is None or not 0 <= selected < count:
        return 0
    return max(0, selected - visible + 1)


def _char_width(ch: str) -> int:
    if unicodedata.combining(ch):
        return 0
    return 2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1


def text_width(text: str) -> int:
    """Terminal columns taken by *text*."""
    return sum(_char_width(ch) for ch in text)


def clip_text(text: str, cols: int) -> str:
    """Cut *text* to at most *cols* terminal columns."""
    out = []
    used = 0
    for ch in text:
        width = _char_width(ch)
        if used + width > cols:
            break
        out.append(ch)
        used += width
    return "".join(out)


def fit_text(text: str, cols: int) -> str:
    """Cut or pad *text* to exactly *cols* terminal columns."""
    clipped = clip_text(text, cols)
    return clipped + " " * (cols - text_width(clipped))


def printable_text(text: str) -> str:
    """Drop NULs and show other control characters as '?'; curses rejects NULs."""
    return "".join(ch if ch.isprintable() else "?"
                   for ch in str(text).replace("\x00", ""))


def format_cells(values: Sequence[str], widths: Sequence[int]) -> str:
    return " ".join(fit_text(printable_text(v), w) for v, w in zip(values, widths))


def device_row(device: DeviceInfo) -> str:
    return format_cells(
        [display_address(device), device.name, device.tx_power, device.rssi],
        [w for _, w in _COLUMNS])


def detail_rows(device: DeviceInfo) -> List[Tuple[str, str]]:
    company, payload = extract_manufacturer_data(device.manufacturer_data)
    return [
        ("Detected At:", device.detected_at),
        ("Services:", str(len(device.services))),
        ("Company Code Identifier:", company),
        ("Manufacturer Data:", payload),
    ]


def hint_labels(paused: bool) -> List[str]:
    return [
        "[q → quit]",
        "[up/down → navigate]",
        "[s → start scanning]" if paused else "[s → stop scanning]",
    ]


# ------------------------------------------------------------------
# Drawing
# ------------------------------------------------------------------

def _put(screen, y: int, x: int, text: str, limit: int, attr: int = curses.A_NORMAL):
    """addnstr clipped to the screen; nothing is drawn off-screen."""
    h, w = screen.getmaxyx()
    if y < 0 or x < 0 or y >= h or x >= w:
        return
    text = clip_text(printable_text(text), min(limit, w - x))
    if not text:
        return
    screen.addnstr(y, x, text, len(text), attr)


def _draw_box(screen, top: int, left: int, rows: int, cols: int, title: str):
    if rows < 2 or cols < 2:
        return
    heading = f"─{title}" if title else ""
    _put(screen, top, left,
         "┌" + heading[:cols - 2].ljust(cols - 2, "─") + "┐", cols)
    for y in range(top + 1, top + rows - 1):
        _put(screen, y, left, "│", 1)
        _put(screen, y, left + cols - 1, "│", 1)
    _put(screen, top + rows - 1, left, "└" + "─" * (cols - 2) + "┘", cols)


def _draw_table(screen, state: ViewerState, top: int, rows: int, left: int, cols: int):
    _draw_box(screen, top, left, rows, cols, _TABLE_TITLE)
    inner_cols = cols - 2
    body_rows = rows - 2
    if body_rows <= 0 or inner_cols <= 0:
        return
    header = format_cells([name for name, _ in _COLUMNS], [w for _, w in _COLUMNS])
    _put(screen, top + 1, left + 1, header, inner_cols, curses.A_BOLD)

    visible = body_rows - 1
    offset = scroll_offset(state.selected, len(state.devices), visible)
    for line, index in enumerate(range(offset, min(len(state.devices), offset + visible))):
        attr = curses.A_REVERSE if index == state.selected else curses.A_NORMAL
        _put(screen, top + 2 + line, left + 1,
             fit_text(device_row(state.devices[index]), inner_cols), inner_cols, attr)


def _draw_detail(screen, state: ViewerState, top: int, rows: int, left: int, cols: int):
    _draw_box(screen, top, left, rows, cols, _DETAIL_TITLE)
    inner_cols = cols - 2
    for line, (label, value) in enumerate(detail_rows(state.selected_device())):
        if line >= rows - 2:
            break
        _put(screen, top + 1 + line, left + 1,
             format_cells([label, value], _DETAIL_WIDTHS), inner_cols)


def _draw_hints(screen, state: ViewerState, top: int, rows: int, left: int, cols: int):
    if rows <= 0:
        return
    text = format_cells(hint_labels(state.pause.is_paused()), _HINT_WIDTHS)
    _put(screen, top, left, text, cols, curses.A_DIM)


def render(screen, state: ViewerState):
    """Draw one full frame.  Reads *state* only."""
    screen.erase()
    h, w = screen.getmaxyx()
    left = _MARGIN
    cols = max(0, w - 2 * _MARGIN)
    table, detail, hints = split_regions(h)
    _draw_table(screen, state, *table, left, cols)
    _draw_detail(screen, state, *detail, left, cols)
    _draw_hints(screen, state, *hints, left, cols)
    screen.refresh()


# ------------------------------------------------------------------
# Input and snapshot intake
# ------------------------------------------------------------------

def handle_key(state: ViewerState, key: int) -> bool:
    """Apply one key press.  Returns False when the viewer should quit."""
    if key == ord("q"):
        return False
    if key == ord("s"):
        paused = state.pause.toggle()
        logger.info("Scanning %s", "paused" if paused else "resumed")
    elif key == curses.KEY_DOWN:
        state.selected = select_next(state.selected, len(state.devices))
    elif key == curses.KEY_UP:
        state.selected = select_previous(state.selected, len(state.devices))
    return True


def drain_updates(state: ViewerState, updates: "queue.Queue") -> bool:
    """Swap in the newest queued snapshot, if any.  Never blocks.

    The selection is only initialised here, never re-validated against
    the new snapshot length.
    """
    latest = None
    received = False
    while True:
        try:
            latest = updates.get_nowait()
        except queue.Empty:
            break
        received = True
    if not received:
        return False
    state.devices = list(latest)
    if state.selected is None:
        state.selected = 0
    logger.debug("Snapshot with %d device(s)", len(state.devices))
    return True


def run_viewer(screen, updates: "queue.Queue", pause: PauseFlag,
               poll_interval: float = POLL_INTERVAL):
    """Run the viewer until ``q`` is pressed.

    Errors from curses propagate; the caller restores the terminal.
    """
    state = ViewerState(pause)
    screen.timeout(int(poll_interval * 1000))
    while True:
        render(screen, state)
        key = screen.getch()
        if not handle_key(state, key):
            break
        drain_updates(state, updates)
