from __future__ import annotations

from rich.text import Text
from textual.widgets import Static

from ..focus import NO_MATCHES, UIState
from ..models import LogGroup


class GroupList(Static):
    """Scrolling window over the visible log groups with the selection marked."""

    DEFAULT_CSS = """
    GroupList {
        height: 1fr;
        padding: 0 1;
    }
    """

    def __init__(self) -> None:
        super().__init__(id="group-list")

    def show_groups(self, ui: UIState, rows: int) -> None:
        self.update(render_groups(ui.visible_groups, ui, rows))


def render_groups(groups: tuple[LogGroup, ...], ui: UIState, rows: int) -> Text:
    if not groups:
        return Text(NO_MATCHES, style="dim italic")
    text = Text()
    window = groups[ui.group_scroll : ui.group_scroll + max(1, rows)]
    for offset, group in enumerate(window):
        index = ui.group_scroll + offset
        if offset:
            text.append("\n")
        marker = "> " if index == ui.group_selection else "  "
        style = "bold reverse" if index == ui.group_selection else ""
        if group.name == ui.active_group:
            style = f"{style} #22c55e".strip()
        text.append(f"{marker}{group.name}", style=style)
    return text
