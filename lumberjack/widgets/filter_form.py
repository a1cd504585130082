from __future__ import annotations

from rich.table import Table
from rich.text import Text
from textual.widgets import Static

from ..focus import FilterField, Pane, UIState

FIELD_LABELS = {
    FilterField.START: "Start",
    FilterField.END: "End",
    FilterField.QUERY: "Query",
}

FIELD_PLACEHOLDERS = {
    FilterField.START: "-15m",
    FilterField.END: "now",
    FilterField.QUERY: 'routing_id=123 task="batch"',
}


class FilterForm(Static):
    """Start, End and Query fields plus the Search action."""

    DEFAULT_CSS = """
    FilterForm {
        height: auto;
        padding: 0 1;
    }
    """

    def __init__(self) -> None:
        super().__init__(id="filter-form")

    def show_fields(self, ui: UIState) -> None:
        self.update(render_fields(ui))


def render_fields(ui: UIState) -> Table:
    focused = ui.focused_pane == Pane.FILTER
    values = {
        FilterField.START: ui.filter_start,
        FilterField.END: ui.filter_end,
        FilterField.QUERY: ui.filter_query,
    }
    table = Table.grid(padding=(0, 1))
    table.add_column(justify="right", style="bold")
    table.add_column(ratio=1)
    for field, label in FIELD_LABELS.items():
        current = focused and ui.filter_field == field
        value = values[field]
        if value:
            cell = Text(value)
        else:
            cell = Text(FIELD_PLACEHOLDERS[field], style="dim")
        if current and ui.editing:
            cell = Text(value, style="underline")
            cell.append("_", style="blink")
        elif current:
            cell.stylize("reverse")
        table.add_row(label, cell)

    search = Text(" Search ", style="bold")
    if focused and ui.filter_field == FilterField.SEARCH:
        search.stylize("reverse #22c55e")
    mode = Text("tail on", style="#facc15") if ui.tail_mode else Text("tail off", style="dim")
    footer = Text.assemble(search, "  ", mode)
    if ui.searching:
        footer.append("  searching...", style="italic")
    table.add_row("", footer)
    return table
