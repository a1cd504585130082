from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Union

LiteralKind = Literal["number", "boolean", "string"]
TermValue = Union[int, bool, str]


@dataclass(frozen=True)
class LogGroup:
    """A named, independently queryable collection of log events."""

    name: str
    stored_bytes: Optional[int] = None
    retention_days: Optional[int] = None

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class FieldTerm:
    """Equality predicate on a JSON path, e.g. ``$.routing_id = 123``."""

    path: str
    value: TermValue
    kind: LiteralKind = "string"

    def predicate(self) -> str:
        return f"$.{self.path} = {self.literal()}"

    def literal(self) -> str:
        if self.kind == "boolean":
            return "true" if self.value else "false"
        if self.kind == "number":
            return str(self.value)
        return f'"{self.value}"'

    def shorthand(self) -> str:
        return f"{self.path}={self.literal()}"


@dataclass(frozen=True)
class FilterSpec:
    """Time window plus pattern selecting which events a query returns.

    ``start`` and ``end`` hold the time expressions exactly as typed so that
    relative presets such as ``-1h`` stay relative when saved. An empty ``end``
    means "now", evaluated again on every poll.
    """

    start: str = ""
    end: str = ""
    raw_pattern: str = ""
    field_terms: tuple[FieldTerm, ...] = ()

    @property
    def is_match_all(self) -> bool:
        return not self.raw_pattern and not self.field_terms


@dataclass(frozen=True)
class StructuredQuery:
    """Backend-ready filter pattern. An empty pattern matches everything."""

    pattern: str = ""

    def __bool__(self) -> bool:
        return bool(self.pattern)

    def __str__(self) -> str:
        return self.pattern


@dataclass(frozen=True)
class LogEvent:
    event_id: str
    timestamp: datetime
    ingestion_time: Optional[datetime]
    message: str

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return self.timestamp, self.event_id
