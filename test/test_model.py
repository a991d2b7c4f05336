import math

import pytest

from hegemon_tui.events import DOWN, ESC, UP, MouseButton, MouseEvent, char
from hegemon_tui.model import (
    DEFAULT_INTERVALS,
    MENUS,
    VALUE_HISTORY_SIZE,
    Application,
    Interval,
    IntervalSelector,
    Screen,
    StreamEntry,
)
from hegemon_tui.stream import StreamContractError


# =============================================================================
# Stream history
# =============================================================================


def test_history_keeps_most_recent_values_in_order(fake_stream):
    entry = StreamEntry(fake_stream(samples=range(600)))
    for _ in range(600):
        entry.record()
        assert len(entry.values) <= VALUE_HISTORY_SIZE

    assert list(entry.values) == list(range(600 - VALUE_HISTORY_SIZE, 600))


def test_history_records_missing_values(fake_stream):
    entry = StreamEntry(fake_stream(samples=[1.0, None, 2.0]))
    for _ in range(3):
        entry.record()
    assert list(entry.values) == [1.0, None, 2.0]


@pytest.mark.parametrize(
    "sample, lower, upper",
    [
        (math.nan, None, None),
        (math.inf, None, None),
        (-math.inf, 0.0, None),
        (-0.5, 0.0, 100.0),
        (100.5, 0.0, 100.0),
    ],
)
def test_contract_violation_raises_instead_of_clamping(fake_stream, sample, lower, upper):
    entry = StreamEntry(fake_stream(samples=[sample], lower=lower, upper=upper))
    with pytest.raises(StreamContractError):
        entry.record()
    assert list(entry.values) == []


def test_values_on_the_bounds_are_accepted(fake_stream):
    entry = StreamEntry(fake_stream(samples=[0.0, 100.0], lower=0.0, upper=100.0))
    entry.record()
    entry.record()
    assert list(entry.values) == [0.0, 100.0]


def test_update_streams_samples_active_entries_only(make_streams):
    app = Application(80, 24, make_streams(3))
    app.update_streams()
    app.streams[1].active = False
    app.update_streams()
    app.update_streams()

    assert list(app.streams[0].values) == [0, 1, 2]
    assert list(app.streams[1].values) == [0]
    assert list(app.streams[2].values) == [0, 1, 2]


def test_update_streams_propagates_contract_errors(fake_stream):
    app = Application(80, 24, [fake_stream(samples=[math.nan])])
    with pytest.raises(StreamContractError):
        app.update_streams()


def test_reset_streams_clears_every_history(make_streams):
    app = Application(80, 24, make_streams(2))
    app.update_streams()
    app.streams[0].active = False
    app.reset_streams()
    assert all(len(entry.values) == 0 for entry in app.streams)


def test_entry_height_depends_on_expansion(fake_stream):
    entry = StreamEntry(fake_stream())
    collapsed = entry.height
    entry.expanded = True
    assert entry.height > collapsed >= 1


# =============================================================================
# Intervals
# =============================================================================


def test_default_interval_is_one_second():
    selector = IntervalSelector()
    assert selector.index == 3
    assert selector.current.seconds == 1.0


def test_interval_cursor_clamps_at_both_ends():
    selector = IntervalSelector()
    for _ in range(len(DEFAULT_INTERVALS) + 5):
        selector.increase()
    assert selector.index == len(DEFAULT_INTERVALS) - 1
    assert selector.increase() is False

    for _ in range(len(DEFAULT_INTERVALS) + 5):
        selector.decrease()
    assert selector.index == 0
    assert selector.decrease() is False


def test_interval_selector_clamps_initial_index():
    intervals = [Interval.from_ms(100, 10), Interval.from_ms(200, 10)]
    assert IntervalSelector(intervals, 7).index == 1
    assert IntervalSelector(intervals, -3).index == 0


def test_interval_selector_requires_presets():
    with pytest.raises(ValueError):
        IntervalSelector([])


def test_plus_and_minus_change_interval(make_streams):
    app = Application(80, 24, make_streams(1))
    assert app.handle(char("+")) is True
    assert app.interval_index == 4
    assert app.interval.tick_spacing == 15
    assert app.handle(char("-")) is True
    assert app.handle(char("-")) is True
    assert app.interval_index == 2


def test_interval_keys_at_limits_need_no_redraw(make_streams):
    app = Application(80, 24, make_streams(1), interval_index=0)
    assert app.handle(char("-")) is False
    assert app.interval_index == 0


# =============================================================================
# Menus
# =============================================================================


def test_every_screen_has_a_menu():
    assert set(MENUS) == set(Screen)


def test_menu_follows_screen(make_streams):
    app = Application(80, 24, make_streams(1))
    left, right = app.menu()
    assert [item.label for item in left] == ["Select", "Expand", "Streams", "Interval"]
    assert [item.label for item in right] == ["Quit"]

    app.handle(char("s"))
    left, right = app.menu()
    assert [item.label for item in left] == ["Select", "Toggle", "Reorder"]
    assert [item.keys for item in right] == ["Esc"]


# =============================================================================
# Main screen
# =============================================================================


def test_up_and_down_move_selection_within_bounds(make_streams):
    app = Application(80, 24, make_streams(3))
    assert app.handle(UP) is False
    assert app.handle(DOWN) is True
    assert app.handle(DOWN) is True
    assert app.selection_index == 2
    assert app.handle(DOWN) is False
    assert app.selection_index == 2
    assert app.handle(UP) is True
    assert app.selection_index == 1


def test_space_toggles_expansion_of_selected_active_stream(make_streams):
    app = Application(80, 24, make_streams(3))
    app.streams[0].active = False
    assert app.handle(char(" ")) is True
    assert app.streams[1].expanded is True
    assert app.handle(char(" ")) is True
    assert app.streams[1].expanded is False


def test_space_without_active_streams_is_ignored(make_streams):
    app = Application(80, 24, make_streams(1))
    app.streams[0].active = False
    assert app.handle(char(" ")) is False
    assert app.handle(DOWN) is False


def test_q_stops_the_application(make_streams):
    app = Application(80, 24, make_streams(1))
    assert app.handle(char("q")) is True
    assert app.running is False


def test_s_and_escape_switch_screens(make_streams):
    app = Application(80, 24, make_streams(1))
    assert app.handle(ESC) is False
    assert app.handle(char("s")) is True
    assert app.screen == Screen.STREAMS
    assert app.handle(char("s")) is False
    assert app.handle(ESC) is True
    assert app.screen == Screen.MAIN


def test_unbound_events_need_no_redraw(make_streams):
    app = Application(80, 24, make_streams(2))
    assert app.handle(char("x")) is False
    assert app.handle(MouseEvent(MouseButton.LEFT, 3, 4)) is False
    assert app.selection_index == 0


def test_mouse_wheel_is_inverted(make_streams):
    app = Application(80, 24, make_streams(3))
    assert app.handle(MouseEvent(MouseButton.WHEEL_UP)) is True
    assert app.selection_index == 1
    assert app.handle(MouseEvent(MouseButton.WHEEL_DOWN)) is True
    assert app.selection_index == 0
    assert app.handle(MouseEvent(MouseButton.WHEEL_DOWN)) is False


# =============================================================================
# Streams screen
# =============================================================================


def names(entries):
    return [entry.stream.name() for entry in entries]


def test_streams_cursor_covers_inactive_streams(make_streams):
    app = Application(80, 24, make_streams(3))
    app.streams[2].active = False
    app.handle(char("s"))
    assert app.handle(DOWN) is True
    assert app.handle(DOWN) is True
    assert app.stream_cursor == 2
    assert app.handle(DOWN) is False
    assert app.handle(MouseEvent(MouseButton.WHEEL_DOWN)) is True
    assert app.stream_cursor == 1


def test_toggling_activation_keeps_selection_on_same_stream(make_streams):
    app = Application(80, 24, make_streams(4))
    app.handle(DOWN)
    app.handle(DOWN)
    selected = app.selected_stream()

    app.handle(char("s"))
    assert app.handle(char(" ")) is True
    assert app.streams[0].active is False
    assert app.selected_stream() is selected
    assert app.selection_index == 1

    assert app.handle(char(" ")) is True
    assert app.selected_stream() is selected
    assert app.selection_index == 2


def test_deactivating_selected_stream_clamps_selection(make_streams):
    app = Application(80, 24, make_streams(3))
    app.handle(DOWN)
    app.handle(DOWN)
    app.handle(char("s"))
    app.handle(DOWN)
    app.handle(DOWN)
    app.handle(char(" "))

    assert names(app.active_streams()) == ["stream 0", "stream 1"]
    assert app.selection_index == 1


def test_deactivating_every_stream(make_streams):
    app = Application(80, 24, make_streams(1))
    app.handle(char("s"))
    app.handle(char(" "))
    assert app.active_streams() == []
    assert app.selected_stream() is None
    assert app.selection_index == 0
    app.handle(ESC)
    assert app.handle(DOWN) is False


def test_plus_and_minus_reorder_streams(make_streams):
    app = Application(80, 24, make_streams(3))
    app.handle(char("s"))
    assert app.handle(char("-")) is False
    assert app.handle(char("+")) is True
    assert names(app.streams) == ["stream 1", "stream 0", "stream 2"]
    assert app.stream_cursor == 1

    assert app.handle(char("+")) is True
    assert names(app.streams) == ["stream 1", "stream 2", "stream 0"]
    assert app.handle(char("+")) is False

    assert app.handle(char("-")) is True
    assert names(app.streams) == ["stream 1", "stream 0", "stream 2"]
    assert app.stream_cursor == 1


def test_reordering_keeps_selection_on_same_stream(make_streams):
    app = Application(80, 24, make_streams(3))
    selected = app.selected_stream()
    app.handle(char("s"))
    app.handle(char("+"))
    app.handle(char("+"))
    assert app.selected_stream() is selected
    assert app.selection_index == 2


def test_interval_keys_do_not_apply_on_streams_screen(make_streams):
    app = Application(80, 24, make_streams(2))
    app.handle(char("s"))
    app.handle(char("+"))
    assert app.interval_index == 3
    assert app.handle(char("q")) is False
    assert app.running is True
