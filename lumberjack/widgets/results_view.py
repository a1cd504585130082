from __future__ import annotations

import json
from typing import Iterable

from rich.console import Group, RenderableType
from rich.syntax import Syntax
from rich.text import Text
from textual.widgets import RichLog

from ..models import LogEvent
from ..timeexpr import format_instant

PAYLOAD_MAX_CHARS = 8_192


def format_event(event: LogEvent) -> RenderableType:
    """Timestamp and message on one line; a trailing JSON object is pretty-printed below."""
    message = event.message.rstrip("\n")
    header = Text(format_instant(event.timestamp), style="#94a3b8")
    header.append(" ")

    start = message.find("{")
    payload = message[start:] if start != -1 else ""
    pretty = _pretty_json(payload)
    if pretty is None:
        header.append(message)
        return header
    prefix = message[:start].rstrip()
    if prefix:
        header.append(prefix)
    return Group(header, Syntax(pretty, "json", theme="ansi_dark"))


def _pretty_json(payload: str) -> str | None:
    if not payload or len(payload) > PAYLOAD_MAX_CHARS:
        return None
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return json.dumps(parsed, indent=2, ensure_ascii=False)


class ResultsView(RichLog):
    """Event buffer display, appended to while tailing and redrawn on replace."""

    def __init__(self) -> None:
        super().__init__(id="results", wrap=True, auto_scroll=True)
        self.placeholder = "Select a log group and run a search."

    def replace_events(self, events: Iterable[LogEvent]) -> None:
        self.clear()
        rendered = 0
        for event in events:
            self.write(format_event(event))
            rendered += 1
        if not rendered:
            self.write(Text("No events matched.", style="dim"))

    def append_events(self, events: Iterable[LogEvent]) -> None:
        for event in events:
            self.write(format_event(event))

    def show_placeholder(self) -> None:
        self.clear()
        self.write(Text(self.placeholder, style="dim"))
