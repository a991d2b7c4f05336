"""
Application state for the stream dashboard.

Everything the renderer needs is computed here: which streams exist and which
are active, their value histories, the current selection and the scroll
position of the stream list. The module has no terminal dependencies; the
front end feeds it input events, timer ticks and resizes, and reads the
resulting state once per frame.
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Sequence, Tuple

from hegemon_tui.events import DOWN, ESC, UP, Event, MouseButton, MouseEvent, char
from hegemon_tui.stream import Stream, check_value

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

VALUE_HISTORY_SIZE = 512

# Rendered rows per stream entry
COLLAPSED_HEIGHT = 3
EXPANDED_HEIGHT = 6

# Rows taken by the status line and the menu bar
RESERVED_ROWS = 2

DEFAULT_INTERVAL_INDEX = 3

# =============================================================================
# Data Classes
# =============================================================================


class Screen(Enum):
    MAIN = "main"
    STREAMS = "streams"


class ScrollAnchor(Enum):
    """Whether ``scroll_index`` is the first or the last fully visible entry."""

    TOP = "top"
    BOTTOM = "bottom"


@dataclass(frozen=True)
class Interval:
    """A polling interval preset."""

    duration: timedelta
    tick_spacing: int

    @classmethod
    def from_ms(cls, milliseconds: int, tick_spacing: int) -> "Interval":
        return cls(timedelta(milliseconds=milliseconds), tick_spacing)

    @property
    def seconds(self) -> float:
        return self.duration.total_seconds()


DEFAULT_INTERVALS: Tuple[Interval, ...] = (
    Interval.from_ms(100, 10),
    Interval.from_ms(200, 10),
    Interval.from_ms(500, 10),
    Interval.from_ms(1_000, 10),
    Interval.from_ms(2_000, 15),
    Interval.from_ms(3_000, 10),
    Interval.from_ms(5_000, 12),
    Interval.from_ms(10_000, 12),
    Interval.from_ms(30_000, 10),
    Interval.from_ms(60_000, 10),
    Interval.from_ms(300_000, 12),
)


@dataclass(frozen=True)
class MenuItem:
    """A key hint shown in the menu bar."""

    keys: str
    label: str


# Left-aligned and right-aligned menu items for each screen
MENUS: Dict[Screen, Tuple[Tuple[MenuItem, ...], Tuple[MenuItem, ...]]] = {
    Screen.MAIN: (
        (
            MenuItem("↑↓", "Select"),
            MenuItem("Space", "Expand"),
            MenuItem("S", "Streams"),
            MenuItem("+-", "Interval"),
        ),
        (MenuItem("Q", "Quit"),),
    ),
    Screen.STREAMS: (
        (
            MenuItem("↑↓", "Select"),
            MenuItem("Space", "Toggle"),
            MenuItem("+-", "Reorder"),
        ),
        (MenuItem("Esc", "Done"),),
    ),
}

# Wheel up scrolls the list towards later entries
WHEEL_ALIASES = {
    MouseButton.WHEEL_UP: DOWN,
    MouseButton.WHEEL_DOWN: UP,
}

# =============================================================================
# Interval Selector
# =============================================================================


class IntervalSelector:
    """Bounded cursor into a fixed list of interval presets."""

    def __init__(
        self,
        intervals: Sequence[Interval] = DEFAULT_INTERVALS,
        index: int = DEFAULT_INTERVAL_INDEX,
    ):
        if not intervals:
            raise ValueError("at least one interval preset is required")
        self.intervals: Tuple[Interval, ...] = tuple(intervals)
        self.index = max(0, min(index, len(self.intervals) - 1))

    @property
    def current(self) -> Interval:
        return self.intervals[self.index]

    def increase(self) -> bool:
        if self.index < len(self.intervals) - 1:
            self.index += 1
            return True
        return False

    def decrease(self) -> bool:
        if self.index > 0:
            self.index -= 1
            return True
        return False


# =============================================================================
# Stream Entries
# =============================================================================


class StreamEntry:
    """A stream together with its recent values and display flags."""

    def __init__(self, stream: Stream):
        self.stream = stream
        self.values: Deque[Optional[float]] = deque(maxlen=VALUE_HISTORY_SIZE)
        self.active = True
        self.expanded = False

    @property
    def height(self) -> int:
        return EXPANDED_HEIGHT if self.expanded else COLLAPSED_HEIGHT

    def record(self) -> Optional[float]:
        """Sample the stream and append the value, evicting the oldest past capacity.

        Raises StreamContractError if the stream breaks its declared bounds.
        """
        value = self.stream.value()
        check_value(self.stream, value)
        self.values.append(value)
        return value

    def reset(self):
        self.values.clear()

    def __repr__(self) -> str:
        return (
            f"StreamEntry({self.stream.name()!r}, active={self.active}, "
            f"expanded={self.expanded}, values={len(self.values)})"
        )


# =============================================================================
# Viewport
# =============================================================================


class Viewport:
    """Scroll position of a list of variable-height entries.

    The position is a pair of ``scroll_index`` and ``anchor``. With a TOP
    anchor, ``scroll_index`` is the first fully visible entry and the list
    flows downwards from it; with a BOTTOM anchor it is the last fully
    visible entry and the list flows upwards from it. Scrolling only ever
    moves the anchor to the entry that must become visible, so the view stays
    put as long as the target is already on screen.
    """

    def __init__(self):
        self.scroll_index = 0
        self.anchor = ScrollAnchor.TOP

    def _fitting(self, heights: Sequence[int], available_height: int) -> int:
        """Count the entries, starting at the anchor, that fit completely."""
        if self.anchor == ScrollAnchor.TOP:
            walk = heights[self.scroll_index :]
        else:
            walk = list(reversed(heights[: self.scroll_index + 1]))

        remaining = max(0, available_height)
        count = 0
        for height in walk:
            if height > remaining:
                break
            count += 1
            remaining -= height
        return count

    def visible_range(
        self, heights: Sequence[int], available_height: int
    ) -> Optional[Tuple[int, int]]:
        """Return the indices of the first and last completely visible entries.

        Returns None for an empty list. When not even the anchor entry fits,
        both indices are the anchor.
        """
        if not heights or not 0 <= self.scroll_index < len(heights):
            return None

        # Only count entries beyond the anchor itself
        count = max(0, self._fitting(heights, available_height) - 1)

        if self.anchor == ScrollAnchor.TOP:
            return self.scroll_index, self.scroll_index + count
        return self.scroll_index - count, self.scroll_index

    def layout(self, heights: Sequence[int], available_height: int) -> List[int]:
        """Indices of the entries to draw, top to bottom."""
        if not heights or not 0 <= self.scroll_index < len(heights):
            return []
        count = self._fitting(heights, available_height)
        if self.anchor == ScrollAnchor.TOP:
            return list(range(self.scroll_index, self.scroll_index + count))
        return list(range(self.scroll_index - count + 1, self.scroll_index + 1))

    def scroll_to(
        self, target: int, heights: Sequence[int], available_height: int
    ) -> bool:
        """Scroll the least amount needed to show entry ``target`` completely.

        Returns whether the scroll position changed.
        """
        changed = False

        if not heights:
            logger.debug("Scroll requested with no entries, resetting viewport")
            if self.scroll_index != 0 or self.anchor != ScrollAnchor.TOP:
                self.scroll_index = 0
                self.anchor = ScrollAnchor.TOP
                changed = True
            return changed

        if self.scroll_index >= len(heights):
            self.scroll_index = len(heights) - 1
            changed = True

        if available_height < min(heights):
            logger.debug(
                f"Viewport height {available_height} is smaller than every entry"
            )

        top_index, bottom_index = self.visible_range(heights, available_height)

        if target < top_index:
            changed = changed or (self.scroll_index, self.anchor) != (
                target,
                ScrollAnchor.TOP,
            )
            self.scroll_index = target
            self.anchor = ScrollAnchor.TOP
        elif target > bottom_index:
            changed = changed or (self.scroll_index, self.anchor) != (
                target,
                ScrollAnchor.BOTTOM,
            )
            self.scroll_index = target
            self.anchor = ScrollAnchor.BOTTOM

        return changed


# =============================================================================
# Application
# =============================================================================


class Application:
    """Root of the dashboard state. One instance per run, owned by the UI loop."""

    def __init__(
        self,
        width: int,
        height: int,
        streams: Sequence[Stream],
        intervals: Optional[Sequence[Interval]] = None,
        interval_index: int = DEFAULT_INTERVAL_INDEX,
    ):
        self.running = True
        self.width = width
        self.height = height
        self.screen = Screen.MAIN
        self.streams: List[StreamEntry] = [StreamEntry(s) for s in streams]
        self.selection_index = 0
        self.stream_cursor = 0  # Cursor into all streams on the Streams screen
        self.viewport = Viewport()
        self.intervals = IntervalSelector(intervals or DEFAULT_INTERVALS, interval_index)

        self._handlers: Dict[Screen, Dict[Event, Callable[[], bool]]] = {
            Screen.MAIN: {
                UP: self._select_previous,
                DOWN: self._select_next,
                char(" "): self._toggle_expanded,
                char("s"): self._open_streams,
                char("S"): self._open_streams,
                char("+"): self.intervals.increase,
                char("-"): self.intervals.decrease,
                char("q"): self._quit,
                char("Q"): self._quit,
            },
            Screen.STREAMS: {
                UP: self._cursor_previous,
                DOWN: self._cursor_next,
                char(" "): self._toggle_active,
                char("+"): self._move_later,
                char("-"): self._move_earlier,
                ESC: self._close_streams,
            },
        }

    # -------------------------------------------------------------------------
    # Render snapshot
    # -------------------------------------------------------------------------

    @property
    def scroll_index(self) -> int:
        return self.viewport.scroll_index

    @property
    def scroll_anchor(self) -> ScrollAnchor:
        return self.viewport.anchor

    @property
    def interval_index(self) -> int:
        return self.intervals.index

    @property
    def interval(self) -> Interval:
        return self.intervals.current

    @property
    def viewport_height(self) -> int:
        return max(0, self.height - RESERVED_ROWS)

    def menu(self) -> Tuple[Tuple[MenuItem, ...], Tuple[MenuItem, ...]]:
        return MENUS[self.screen]

    def active_streams(self) -> List[StreamEntry]:
        return [s for s in self.streams if s.active]

    def selected_stream(self) -> Optional[StreamEntry]:
        active = self.active_streams()
        if 0 <= self.selection_index < len(active):
            return active[self.selection_index]
        return None

    def visible_range(self) -> Optional[Tuple[int, int]]:
        heights = [s.height for s in self.active_streams()]
        return self.viewport.visible_range(heights, self.viewport_height)

    def visible_streams(self) -> List[Tuple[int, StreamEntry]]:
        """Active streams that fit on screen, with their active-subset index."""
        active = self.active_streams()
        indices = self.viewport.layout([s.height for s in active], self.viewport_height)
        return [(i, active[i]) for i in indices]

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def handle(self, event: Event) -> bool:
        """Apply an input event. Returns True if the screen needs a redraw."""
        if isinstance(event, MouseEvent):
            alias = WHEEL_ALIASES.get(event.button)
            if alias is None:
                return False
            return self.handle(alias)

        handler = self._handlers[self.screen].get(event)
        if handler is None:
            return False
        return handler()

    def update_streams(self):
        """Sample every active stream once."""
        for entry in self.streams:
            if entry.active:
                entry.record()

    def reset_streams(self):
        """Drop the value history of every stream."""
        for entry in self.streams:
            entry.reset()

    def resize(self, width: int, height: int):
        self.width = width
        self.height = height
        self.scroll_to_stream(self.selection_index)

    def scroll_to_stream(self, index: int) -> bool:
        heights = [s.height for s in self.active_streams()]
        return self.viewport.scroll_to(index, heights, self.viewport_height)

    # -------------------------------------------------------------------------
    # Main screen
    # -------------------------------------------------------------------------

    def _select_previous(self) -> bool:
        if self.selection_index > 0:
            self.selection_index -= 1
            self.scroll_to_stream(self.selection_index)
            return True
        return False

    def _select_next(self) -> bool:
        if self.selection_index < len(self.active_streams()) - 1:
            self.selection_index += 1
            self.scroll_to_stream(self.selection_index)
            return True
        return False

    def _toggle_expanded(self) -> bool:
        entry = self.selected_stream()
        if entry is None:
            return False
        entry.expanded = not entry.expanded
        self.scroll_to_stream(self.selection_index)
        return True

    def _open_streams(self) -> bool:
        self.screen = Screen.STREAMS
        return True

    def _quit(self) -> bool:
        self.running = False
        return True

    # -------------------------------------------------------------------------
    # Streams screen
    # -------------------------------------------------------------------------

    def _cursor_previous(self) -> bool:
        if self.stream_cursor > 0:
            self.stream_cursor -= 1
            return True
        return False

    def _cursor_next(self) -> bool:
        if self.stream_cursor < len(self.streams) - 1:
            self.stream_cursor += 1
            return True
        return False

    def _toggle_active(self) -> bool:
        if not self.streams:
            return False
        selected = self.selected_stream()
        entry = self.streams[self.stream_cursor]
        entry.active = not entry.active
        self._restore_selection(selected)
        return True

    def _move_later(self) -> bool:
        return self._move(1)

    def _move_earlier(self) -> bool:
        return self._move(-1)

    def _move(self, offset: int) -> bool:
        destination = self.stream_cursor + offset
        if not 0 <= destination < len(self.streams):
            return False
        selected = self.selected_stream()
        streams = self.streams
        streams[self.stream_cursor], streams[destination] = (
            streams[destination],
            streams[self.stream_cursor],
        )
        self.stream_cursor = destination
        self._restore_selection(selected)
        return True

    def _close_streams(self) -> bool:
        self.screen = Screen.MAIN
        return True

    def _restore_selection(self, previous: Optional[StreamEntry]):
        """Keep the selection on ``previous`` if it is still active, else clamp it."""
        active = self.active_streams()
        if previous is not None and previous.active:
            self.selection_index = active.index(previous)
        else:
            self.selection_index = max(0, min(self.selection_index, len(active) - 1))
        self.scroll_to_stream(self.selection_index)
