from __future__ import annotations

from textual import events
from textual.containers import Horizontal
from textual.message import Message


class Dashboard(Horizontal, can_focus=True):
    """Holds the three panes and keeps keyboard focus for the whole session.

    Every key is forwarded to the app as a :class:`Dashboard.KeyPressed`
    message so the state machine, not Textual's focus chain, decides what it
    means.
    """

    DEFAULT_CSS = """
    Dashboard {
        height: 1fr;
        min-height: 1;
    }
    """

    class KeyPressed(Message):
        def __init__(self, key: str, character: str | None) -> None:
            super().__init__()
            self.key = key
            self.character = character

    async def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.post_message(self.KeyPressed(event.key, event.character))
