"""Translate Textual key presses into state machine input events."""
from __future__ import annotations

from typing import Optional

from .focus import (
    TIME_PRESETS,
    ApplyTimePreset,
    BeginEdit,
    Cancel,
    Confirm,
    DeleteBack,
    DeletePreset,
    FocusNext,
    InputEvent,
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

PAGE_SIZE = 10

_NAVIGATION: dict[str, InputEvent] = {
    "up": Move(-1),
    "down": Move(1),
    "pageup": Move(-PAGE_SIZE),
    "pagedown": Move(PAGE_SIZE),
    "enter": Confirm(),
    "escape": Cancel(),
}


def key_to_event(key: str, character: Optional[str], ui: UIState) -> Optional[InputEvent]:
    """Return the input event for a key press, or ``None`` if it means nothing here.

    While an overlay is open or a filter field is being edited, printable
    characters are text; otherwise single letters are commands.
    """
    if key == "ctrl+c":
        return Quit()

    if ui.overlay != Overlay.NONE:
        return _overlay_key(key, character, ui.overlay)

    if ui.editing:
        if key in ("enter", "escape"):
            return _NAVIGATION[key]
        if key == "backspace":
            return DeleteBack()
        if _printable(character):
            return InsertText(character)
        return None

    if key == "tab":
        return FocusNext()
    if key in _NAVIGATION:
        return _NAVIGATION[key]

    if character == "/":
        return OpenOverlay(Overlay.GROUP_SEARCH) if ui.focused_pane == Pane.GROUPS else None
    if character == "s":
        return OpenOverlay(Overlay.SAVE_NAME)
    if character == "F":
        return OpenOverlay(Overlay.LOAD_PICKER)
    if character == "t":
        return ToggleTail()
    if character == "r":
        return Refresh()
    if character == "q":
        return Quit()
    if character == "k":
        return Move(-1)
    if character == "j":
        return Move(1)

    if ui.focused_pane == Pane.FILTER:
        if character == "e" and ui.filter_field.is_text:
            return BeginEdit()
        if character and character.isdigit() and 1 <= int(character) <= len(TIME_PRESETS):
            return ApplyTimePreset(TIME_PRESETS[int(character) - 1])
    return None


def _overlay_key(key: str, character: Optional[str], overlay: Overlay) -> Optional[InputEvent]:
    if key in ("enter", "escape"):
        return _NAVIGATION[key]
    if key in ("up", "down"):
        return _NAVIGATION[key] if overlay != Overlay.SAVE_NAME else None
    if overlay == Overlay.LOAD_PICKER:
        if character == "d":
            return DeletePreset()
        if character == "k":
            return Move(-1)
        if character == "j":
            return Move(1)
        return None
    if key == "backspace":
        return DeleteBack()
    if _printable(character):
        return InsertText(character)
    return None


def _printable(character: Optional[str]) -> bool:
    return bool(character) and character.isprintable()
