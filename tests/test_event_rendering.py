from datetime import datetime, timezone
from unittest.mock import MagicMock

from rich.console import Group
from rich.syntax import Syntax
from rich.text import Text

from lumberjack.models import LogEvent
from lumberjack.widgets.results_view import ResultsView, format_event

STAMP = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _event(message: str, event_id: str = "1") -> LogEvent:
    return LogEvent(event_id=event_id, timestamp=STAMP, ingestion_time=None, message=message)


def test_plain_message_is_one_line() -> None:
    rendered = format_event(_event("worker started\n"))

    assert isinstance(rendered, Text)
    assert rendered.plain == "2025-01-01T12:00:00Z worker started"


def test_json_after_prefix_is_pretty_printed() -> None:
    rendered = format_event(_event('INFO request done {"status": 200, "path": "/x"}'))

    assert isinstance(rendered, Group)
    header, body = rendered.renderables
    assert header.plain == "2025-01-01T12:00:00Z INFO request done"
    assert isinstance(body, Syntax)
    assert '"status": 200' in body.code
    assert body.code.count("\n") == 3


def test_bare_json_message_has_only_timestamp_header() -> None:
    rendered = format_event(_event('{"level": "ERROR"}'))

    header, _ = rendered.renderables
    assert header.plain == "2025-01-01T12:00:00Z "


def test_broken_json_stays_plain() -> None:
    rendered = format_event(_event("oops {not json"))

    assert isinstance(rendered, Text)
    assert rendered.plain.endswith("oops {not json")


def test_replace_events_writes_each_event() -> None:
    view = ResultsView()
    view.write = MagicMock()
    view.clear = MagicMock()

    view.replace_events([_event("a", "1"), _event("b", "2")])

    view.clear.assert_called_once_with()
    recorded = [entry.args[0].plain for entry in view.write.call_args_list]
    assert recorded == ["2025-01-01T12:00:00Z a", "2025-01-01T12:00:00Z b"]


def test_replace_with_nothing_says_so() -> None:
    view = ResultsView()
    view.write = MagicMock()
    view.clear = MagicMock()

    view.replace_events([])

    (entry,) = view.write.call_args_list
    assert entry.args[0].plain == "No events matched."
