from __future__ import annotations

from pathlib import Path
from typing import Literal


class LumberjackError(Exception):
    """Base class for every error raised by the dashboard core."""


class ParseError(LumberjackError):
    """Malformed time or filter text typed by the user."""

    def __init__(
        self,
        text: str,
        kind: Literal["malformed-time", "inverted-range"] = "malformed-time",
        message: str | None = None,
    ) -> None:
        self.text = text
        self.kind = kind
        if message is None:
            message = f"Invalid time '{text}'. Use -15m, 2025-12-11T10:00:00Z or 2025-12-11 10:00:00."
        super().__init__(message)


class BackendError(LumberjackError):
    """A call to the log backend failed."""

    def __init__(self, message: str, *, operation: str = "", transient: bool = False) -> None:
        self.operation = operation
        self.transient = transient
        super().__init__(message)


class PersistenceError(LumberjackError):
    """Reading or writing the saved-filter store failed."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message)


class StateError(LumberjackError):
    """A transition was requested from a state that does not allow it."""

    def __init__(self, state: str, event: str) -> None:
        self.state = state
        self.event = event
        super().__init__(f"{event} is not valid in state {state}")
