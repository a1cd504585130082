from __future__ import annotations

from rich.console import Group
from rich.text import Text
from textual.widgets import Static

from ..focus import FrameSnapshot, Overlay

HINTS = {
    Overlay.GROUP_SEARCH: "type to narrow, enter keep, esc cancel",
    Overlay.SAVE_NAME: "enter save, esc cancel",
    Overlay.LOAD_PICKER: "enter load, d delete, esc cancel",
}


class OverlayPanel(Static):
    """Inline prompt for group search, save name and the preset picker."""

    DEFAULT_CSS = """
    OverlayPanel {
        border-top: solid $accent 60%;
        padding: 0 2;
        background: $surface 6%;
        height: auto;
        max-height: 12;
    }

    OverlayPanel.-hidden {
        display: none;
    }
    """

    def __init__(self) -> None:
        super().__init__(id="overlay-panel")
        self.add_class("-hidden")

    @property
    def visible(self) -> bool:
        return not self.has_class("-hidden")

    def show_snapshot(self, frame: FrameSnapshot) -> None:
        overlay = frame.ui.overlay
        if overlay == Overlay.NONE:
            self.add_class("-hidden")
            return
        self.remove_class("-hidden")
        self.update(render_overlay(frame))


def render_overlay(frame: FrameSnapshot) -> Group:
    ui = frame.ui
    hint = Text(HINTS[ui.overlay], style="dim")
    if ui.overlay == Overlay.GROUP_SEARCH:
        prompt = Text.assemble(("Search groups: ", "bold"), ui.group_search_input, ("_", "blink"))
        return Group(prompt, hint)
    if ui.overlay == Overlay.SAVE_NAME:
        prompt = Text.assemble(("Save filter as: ", "bold"), ui.save_name_input, ("_", "blink"))
        return Group(prompt, hint)

    rows = [Text("Saved filters", style="bold")]
    for index, name in enumerate(frame.presets):
        selected = index == ui.load_selection
        rows.append(Text(f"{'> ' if selected else '  '}{name}", style="reverse" if selected else ""))
    rows.append(hint)
    return Group(*rows)
