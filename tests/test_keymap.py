from dataclasses import replace

from lumberjack.focus import (
    ApplyTimePreset,
    Cancel,
    Confirm,
    DeleteBack,
    DeletePreset,
    FilterField,
    FocusNext,
    InsertText,
    Move,
    OpenOverlay,
    Overlay,
    Pane,
    Quit,
    Refresh,
    ToggleTail,
    UIState,
)
from lumberjack.keymap import key_to_event

IDLE = UIState()


def test_navigation_keys() -> None:
    assert key_to_event("tab", None, IDLE) == FocusNext()
    assert key_to_event("up", None, IDLE) == Move(-1)
    assert key_to_event("down", None, IDLE) == Move(1)
    assert key_to_event("enter", "\r", IDLE) == Confirm()
    assert key_to_event("escape", None, IDLE) == Cancel()


def test_command_letters() -> None:
    assert key_to_event("s", "s", IDLE) == OpenOverlay(Overlay.SAVE_NAME)
    assert key_to_event("F", "F", IDLE) == OpenOverlay(Overlay.LOAD_PICKER)
    assert key_to_event("t", "t", IDLE) == ToggleTail()
    assert key_to_event("r", "r", IDLE) == Refresh()
    assert key_to_event("q", "q", IDLE) == Quit()
    assert key_to_event("x", "x", IDLE) is None


def test_slash_opens_search_only_in_groups() -> None:
    assert key_to_event("slash", "/", IDLE) == OpenOverlay(Overlay.GROUP_SEARCH)
    filter_pane = replace(IDLE, focused_pane=Pane.FILTER)
    assert key_to_event("slash", "/", filter_pane) is None


def test_digits_pick_time_presets_in_filter_pane() -> None:
    filter_pane = replace(IDLE, focused_pane=Pane.FILTER)

    assert key_to_event("1", "1", filter_pane) == ApplyTimePreset("-5m")
    assert key_to_event("4", "4", filter_pane) == ApplyTimePreset("-24h")
    assert key_to_event("5", "5", filter_pane) is None
    assert key_to_event("1", "1", IDLE) is None


def test_letters_are_text_while_editing() -> None:
    editing = replace(IDLE, focused_pane=Pane.FILTER, editing=True, filter_field=FilterField.QUERY)

    assert key_to_event("q", "q", editing) == InsertText("q")
    assert key_to_event("equals_sign", "=", editing) == InsertText("=")
    assert key_to_event("backspace", None, editing) == DeleteBack()
    assert key_to_event("tab", "\t", editing) is None
    assert key_to_event("enter", "\r", editing) == Confirm()


def test_overlay_keys() -> None:
    search = replace(IDLE, overlay=Overlay.GROUP_SEARCH)
    picker = replace(IDLE, overlay=Overlay.LOAD_PICKER)
    save = replace(IDLE, overlay=Overlay.SAVE_NAME)

    assert key_to_event("s", "s", search) == InsertText("s")
    assert key_to_event("down", None, search) == Move(1)
    assert key_to_event("d", "d", picker) == DeletePreset()
    assert key_to_event("s", "s", picker) is None
    assert key_to_event("up", None, save) is None
    assert key_to_event("escape", None, save) == Cancel()
