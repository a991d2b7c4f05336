#!/usr/bin/env python3
"""
Hegemon TUI - a terminal dashboard for system metric streams.

Uses curses (standard library) for the terminal interface and psutil for the
metric streams. Requires PyYAML for configuration loading.
Falls back to simple text mode when no TTY is available.

Main screen:
  Up/Down : select stream (mouse wheel works too)
  Space   : expand / collapse the selected stream
  S       : open the streams screen
  + / -   : longer / shorter sampling interval
  Q       : quit

Streams screen:
  Up/Down : move cursor
  Space   : activate / deactivate stream
  + / -   : move stream down / up in the list
  Esc     : back to the main screen
"""

import argparse
import curses
import logging
import math
import os
import signal
import sys
import time
from typing import Any, Dict, List, Optional, Sequence

from hegemon_tui.config import (
    default_interval_index,
    discover_config_path,
    inactive_streams,
    load_config,
    min_terminal_size,
    network_interface,
    parse_intervals,
)
from hegemon_tui.events import DOWN, ESC, UP, Event, MouseButton, MouseEvent, char
from hegemon_tui.model import (
    VALUE_HISTORY_SIZE,
    Application,
    Screen,
    ScrollAnchor,
    StreamEntry,
)
from hegemon_tui.stream import Stream, StreamContractError, default_streams

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

# Upper bound on a single getch() wait so signals are noticed promptly
MAX_INPUT_WAIT_MS = 250

SPARK_BLOCKS = "▁▂▃▄▅▆▇█"

KEY_ESCAPE = 27

# =============================================================================
# Input Translation
# =============================================================================


def translate_key(key: int) -> Optional[Event]:
    """Map a curses key code to an application event."""
    if key == curses.KEY_UP:
        return UP
    if key == curses.KEY_DOWN:
        return DOWN
    if key == KEY_ESCAPE:
        return ESC
    if 32 <= key < 127:
        return char(chr(key))
    return None


def translate_mouse(bstate: int, x: int, y: int) -> Optional[MouseEvent]:
    """Map a curses mouse button state to a press event."""
    if bstate & curses.BUTTON4_PRESSED:
        return MouseEvent(MouseButton.WHEEL_UP, x, y)
    if bstate & curses.BUTTON5_PRESSED:
        return MouseEvent(MouseButton.WHEEL_DOWN, x, y)
    if bstate & curses.BUTTON1_PRESSED:
        return MouseEvent(MouseButton.LEFT, x, y)
    if bstate & curses.BUTTON2_PRESSED:
        return MouseEvent(MouseButton.MIDDLE, x, y)
    if bstate & curses.BUTTON3_PRESSED:
        return MouseEvent(MouseButton.RIGHT, x, y)
    return None


# =============================================================================
# Formatting
# =============================================================================


def format_latest(entry: StreamEntry) -> str:
    """Latest value of an entry, formatted by its stream."""
    if not entry.values or entry.values[-1] is None:
        return "--"
    return entry.stream.format(entry.values[-1])


def sparkline(
    values: Sequence[Optional[float]],
    width: int,
    lower: Optional[float] = None,
    upper: Optional[float] = None,
) -> str:
    """Render the most recent ``width`` values as block characters.

    Missing values render as blanks. Bounds not given are taken from the
    values themselves.
    """
    if width <= 0:
        return ""
    window = list(values)[-width:]
    numbers = [v for v in window if v is not None]
    if not numbers:
        return " " * len(window)

    lo = min(numbers) if lower is None else lower
    hi = max(numbers) if upper is None else upper
    span = hi - lo
    top = len(SPARK_BLOCKS) - 1

    out = []
    for v in window:
        if v is None:
            out.append(" ")
        elif span <= 0:
            out.append(SPARK_BLOCKS[0])
        else:
            idx = int((v - lo) / span * top)
            out.append(SPARK_BLOCKS[max(0, min(top, idx))])
    return "".join(out)


def tick_line(width: int, tick_spacing: int) -> str:
    """A time axis with a mark every ``tick_spacing`` samples, newest at the right."""
    if width <= 0:
        return ""
    chars = ["-"] * width
    if tick_spacing > 0:
        for col in range(width - 1, -1, -tick_spacing):
            chars[col] = "+"
    return "".join(chars)


def history_stats(values: Sequence[Optional[float]]) -> Optional[Dict[str, float]]:
    """Min, max and mean of the retained values, or None if there are none."""
    numbers = [v for v in values if v is not None]
    if not numbers:
        return None
    return {
        "min": min(numbers),
        "max": max(numbers),
        "avg": math.fsum(numbers) / len(numbers),
    }


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:g}s"
    return f"{seconds / 60:g}min"


# =============================================================================
# TUI
# =============================================================================


class HegemonTUI:
    """Curses-based front end for the stream dashboard."""

    COLOR_SELECTED = 1
    COLOR_VALUE = 2
    COLOR_INACTIVE = 3

    def __init__(self, app: Application, min_width: int = 40, min_height: int = 8):
        self.app = app
        self.min_width = min_width
        self.min_height = min_height
        self.stdscr = None

    def safe_addstr(self, y: int, x: int, text: str, attr=0):
        """Safely add string, handling screen boundaries."""
        if self.stdscr is None:
            return
        max_y, max_x = self.stdscr.getmaxyx()
        if y < 0 or y >= max_y or x < 0:
            return
        available = max_x - x - 1
        if available <= 0:
            return
        try:
            self.stdscr.addstr(y, x, text[:available], attr)
        except curses.error:
            pass

    # -------------------------------------------------------------------------
    # Drawing
    # -------------------------------------------------------------------------

    def draw_status_bar(self, max_x: int):
        app = self.app
        active = len(app.active_streams())
        screen = "Streams" if app.screen == Screen.STREAMS else "Main"
        status = (
            f" HEGEMON | {screen} | Interval: {format_duration(app.interval.seconds)}"
            f" | Streams: {active}/{len(app.streams)} active"
        )
        self.safe_addstr(0, 0, status.ljust(max_x), curses.A_REVERSE | curses.A_BOLD)

    def draw_menu(self, y: int, max_x: int):
        left, right = self.app.menu()
        self.safe_addstr(y, 0, " " * max_x, curses.A_REVERSE)

        x = 1
        for item in left:
            self.safe_addstr(y, x, item.keys, curses.A_REVERSE | curses.A_BOLD)
            x += len(item.keys) + 1
            self.safe_addstr(y, x, item.label, curses.A_REVERSE)
            x += len(item.label) + 2

        right_text = "  ".join(f"{item.keys} {item.label}" for item in right)
        x = max(x, max_x - len(right_text) - 2)
        for item in right:
            self.safe_addstr(y, x, item.keys, curses.A_REVERSE | curses.A_BOLD)
            x += len(item.keys) + 1
            self.safe_addstr(y, x, item.label, curses.A_REVERSE)
            x += len(item.label) + 2

    def draw_entry(self, y: int, max_x: int, entry: StreamEntry, selected: bool):
        stream = entry.stream
        width = max_x - 4
        marker = ">" if selected else " "
        name_attr = curses.A_BOLD
        if selected:
            name_attr |= curses.color_pair(self.COLOR_SELECTED)

        value = format_latest(entry)
        self.safe_addstr(y, 0, marker, name_attr)
        self.safe_addstr(y, 2, stream.name(), name_attr)
        self.safe_addstr(
            y,
            max(2, max_x - len(value) - 2),
            value,
            curses.color_pair(self.COLOR_VALUE) | curses.A_BOLD,
        )

        self.safe_addstr(
            y + 1, 2, sparkline(entry.values, width, stream.min(), stream.max())
        )
        self.safe_addstr(
            y + 2, 2, tick_line(width, self.app.interval.tick_spacing), curses.A_DIM
        )

        if not entry.expanded:
            return

        self.safe_addstr(y + 3, 2, stream.description() or stream.name(), curses.A_DIM)
        stats = history_stats(entry.values)
        if stats is None:
            summary = "No samples yet"
        else:
            summary = (
                f"Min: {stream.format(stats['min'])}  "
                f"Max: {stream.format(stats['max'])}  "
                f"Avg: {stream.format(stats['avg'])}"
            )
        self.safe_addstr(y + 4, 2, summary)
        self.safe_addstr(
            y + 5,
            2,
            f"Samples: {len(entry.values)}/{VALUE_HISTORY_SIZE}",
            curses.A_DIM,
        )

    def draw_main(self, max_x: int):
        app = self.app
        visible = app.visible_streams()
        if not app.active_streams():
            self.safe_addstr(2, 2, "No active streams. Press S to choose streams.")
            return

        y = 1
        if app.scroll_anchor == ScrollAnchor.BOTTOM:
            used = sum(entry.height for _, entry in visible)
            y += app.viewport_height - used

        for index, entry in visible:
            self.draw_entry(y, max_x, entry, index == app.selection_index)
            y += entry.height

    def draw_streams_screen(self, max_x: int):
        app = self.app
        rows = app.viewport_height
        scroll = max(0, app.stream_cursor - rows + 1)

        for row, entry in enumerate(app.streams[scroll : scroll + rows]):
            index = scroll + row
            check = "[x]" if entry.active else "[ ]"
            attr = 0 if entry.active else curses.color_pair(self.COLOR_INACTIVE)
            if index == app.stream_cursor:
                attr |= curses.A_REVERSE
            line = f" {check} {entry.stream.name()}"
            description = entry.stream.description()
            if description:
                line += f"  - {description}"
            self.safe_addstr(1 + row, 0, line.ljust(max_x), attr)

    def draw(self):
        stdscr = self.stdscr
        stdscr.erase()
        max_y, max_x = stdscr.getmaxyx()

        if max_x < self.min_width or max_y < self.min_height:
            self.safe_addstr(
                0, 0, f"Terminal too small ({max_x}x{max_y}), need "
                f"{self.min_width}x{self.min_height}"
            )
            stdscr.refresh()
            return

        self.draw_status_bar(max_x)
        if self.app.screen == Screen.STREAMS:
            self.draw_streams_screen(max_x)
        else:
            self.draw_main(max_x)
        self.draw_menu(max_y - 1, max_x)
        stdscr.refresh()

    # -------------------------------------------------------------------------
    # Loops
    # -------------------------------------------------------------------------

    def read_event(self) -> Optional[Event]:
        """Wait for one input event. Resizes are applied directly."""
        key = self.stdscr.getch()
        if key == -1:
            return None
        if key == curses.KEY_RESIZE:
            max_y, max_x = self.stdscr.getmaxyx()
            self.app.resize(max_x, max_y)
            return None
        if key == curses.KEY_MOUSE:
            try:
                _, x, y, _, bstate = curses.getmouse()
            except curses.error:
                return None
            return translate_mouse(bstate, x, y)
        return translate_key(key)

    def run_curses(self, stdscr):
        """Main curses loop."""
        self.stdscr = stdscr
        app = self.app
        curses.curs_set(0)  # Hide cursor
        stdscr.keypad(True)
        curses.mousemask(curses.ALL_MOUSE_EVENTS)

        curses.start_color()
        curses.use_default_colors()
        curses.init_pair(self.COLOR_SELECTED, curses.COLOR_CYAN, -1)
        curses.init_pair(self.COLOR_VALUE, curses.COLOR_GREEN, -1)
        curses.init_pair(self.COLOR_INACTIVE, curses.COLOR_RED, -1)

        max_y, max_x = stdscr.getmaxyx()
        app.resize(max_x, max_y)

        next_tick = time.monotonic()
        interval_index = app.interval_index
        redraw = True

        while app.running:
            try:
                now = time.monotonic()
                if now >= next_tick:
                    app.update_streams()
                    next_tick = now + app.interval.seconds
                    redraw = True

                if redraw:
                    self.draw()
                    redraw = False

                wait_ms = int((next_tick - time.monotonic()) * 1000)
                stdscr.timeout(max(0, min(wait_ms, MAX_INPUT_WAIT_MS)))

                size = (app.width, app.height)
                event = self.read_event()
                if (app.width, app.height) != size:
                    redraw = True
                if event is not None and app.handle(event):
                    redraw = True

                # Samples taken at different intervals don't belong on one axis
                if app.interval_index != interval_index:
                    interval_index = app.interval_index
                    logger.info(f"Sampling interval changed to {app.interval.seconds}s")
                    app.reset_streams()
                    next_tick = time.monotonic()

            except KeyboardInterrupt:
                app.running = False

    def run_simple(self):
        """Simple text output mode for non-TTY environments."""
        app = self.app
        print("HEGEMON - Simple Mode (no TTY detected)")
        print("=" * 70)
        print("Press Ctrl+C to exit\n")

        while app.running:
            try:
                app.update_streams()
                stamp = time.strftime("%H:%M:%S")
                for entry in app.active_streams():
                    print(f"{stamp}  {entry.stream.name():<24} {format_latest(entry)}")
                print()
                sys.stdout.flush()
                time.sleep(app.interval.seconds)
            except KeyboardInterrupt:
                app.running = False
                break

    def run(self):
        """Run the TUI - uses curses if TTY available, otherwise simple text."""
        if os.isatty(sys.stdout.fileno()):
            os.environ.setdefault("ESCDELAY", "25")
            try:
                curses.wrapper(self.run_curses)
            except curses.error as e:
                print(f"Curses error: {e}, falling back to simple mode")
                self.run_simple()
        else:
            self.run_simple()

    def stop(self):
        """Stop the TUI."""
        self.app.running = False


# =============================================================================
# Main
# =============================================================================


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Terminal system monitor")
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="Configuration file to load. "
        "Defaults to $XDG_CONFIG_HOME/hegemon/config.yaml if it exists.",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=int,
        default=None,
        metavar="INDEX",
        help="Index of the sampling interval preset to start with.",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        metavar="PATH",
        help="Write log messages to this file.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for --log-file (default: INFO).",
    )
    parser.add_argument(
        "--list-streams",
        action="store_true",
        default=False,
        help="Print the available streams and exit.",
    )
    return parser.parse_args(argv)


def configure_logging(log_file: Optional[str], level: str = "INFO"):
    """Log to a file if one was given. The terminal belongs to curses."""
    if log_file is None:
        return
    logging.basicConfig(
        filename=log_file,
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_application(
    config: Dict[str, Any],
    streams: Sequence[Stream],
    interval_index: Optional[int] = None,
    width: int = 80,
    height: int = 24,
) -> Application:
    """Create the application from the loaded configuration."""
    intervals = parse_intervals(config)
    if interval_index is None:
        interval_index = default_interval_index(config, len(intervals))

    app = Application(width, height, streams, intervals, interval_index)

    inactive = inactive_streams(config)
    for entry in app.streams:
        if entry.stream.name() in inactive:
            entry.active = False
    unknown = inactive - {entry.stream.name() for entry in app.streams}
    if unknown:
        logger.warning(f"Unknown streams in streams.inactive: {sorted(unknown)}")

    app.resize(width, height)
    return app


def main(args=None):
    """Main entry point."""
    cli_args = parse_args(args)
    configure_logging(cli_args.log_file, cli_args.log_level)

    config_path = cli_args.config or discover_config_path()
    config = load_config(config_path)
    streams = default_streams(network_interface(config))

    if cli_args.list_streams:
        for stream in streams:
            print(f"{stream.name():<24} {stream.description()}")
        return

    if cli_args.interval is not None:
        count = len(parse_intervals(config))
        if not 0 <= cli_args.interval < count:
            print(f"Error: interval must be 0-{count - 1}, got {cli_args.interval}")
            sys.exit(1)

    app = build_application(config, streams, cli_args.interval)
    min_width, min_height = min_terminal_size(config)
    tui = HegemonTUI(app, min_width=min_width, min_height=min_height)

    # Handle SIGINT and SIGTERM for clean shutdown
    def signal_handler(sig, frame):
        tui.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        tui.run()
    except StreamContractError as e:
        logger.exception("Stream contract violated")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        tui.stop()


if __name__ == "__main__":
    main()
