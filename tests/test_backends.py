from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from lumberjack.errors import BackendError
from lumberjack.models import LogGroup, StructuredQuery
from lumberjack.services.backends import CloudWatchBackend, from_millis, to_millis

START = datetime(2025, 1, 1, 11, 0, 0, tzinfo=timezone.utc)
END = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _client(pages_by_operation: dict) -> MagicMock:
    client = MagicMock()

    def _paginator(operation: str) -> MagicMock:
        paginator = MagicMock()
        paginator.paginate.return_value = pages_by_operation[operation]
        return paginator

    client.get_paginator.side_effect = _paginator
    return client


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "FilterLogEvents")


def test_list_groups_walks_every_page() -> None:
    client = _client(
        {
            "describe_log_groups": [
                {"logGroups": [{"logGroupName": "/b", "storedBytes": 10}]},
                {"logGroups": [{"logGroupName": "/a", "retentionInDays": 7}, {}]},
            ]
        }
    )

    groups = CloudWatchBackend("eu-west-1", client=client).list_groups()

    assert groups == [LogGroup("/a", retention_days=7), LogGroup("/b", stored_bytes=10)]


def test_query_range_sends_window_and_pattern() -> None:
    client = MagicMock()
    paginator = client.get_paginator.return_value
    paginator.paginate.return_value = [
        {"events": [{"eventId": "1", "timestamp": to_millis(START) + 5, "message": "a"}]},
        {"events": [{"eventId": "2", "timestamp": to_millis(START) + 9, "message": "b"}]},
    ]
    backend = CloudWatchBackend("eu-west-1", client=client)

    events, cursor = backend.query_range("/app", StructuredQuery("{ $.a = 1 }"), START, END)

    client.get_paginator.assert_called_once_with("filter_log_events")
    paginator.paginate.assert_called_once_with(
        logGroupName="/app",
        endTime=to_millis(END),
        startTime=to_millis(START),
        filterPattern="{ $.a = 1 }",
    )
    assert [event.event_id for event in events] == ["1", "2"]
    assert events[0].timestamp == from_millis(to_millis(START) + 5)
    assert cursor == to_millis(START) + 9


def test_query_range_omits_empty_pattern_and_open_start() -> None:
    pages = {"filter_log_events": [{"events": []}]}
    client = MagicMock()
    paginator = MagicMock()
    paginator.paginate.return_value = pages["filter_log_events"]
    client.get_paginator.return_value = paginator

    events, cursor = CloudWatchBackend("eu-west-1", client=client).query_range(
        "/app", StructuredQuery(""), None, END
    )

    paginator.paginate.assert_called_once_with(logGroupName="/app", endTime=to_millis(END))
    assert events == []
    assert cursor is None


def test_incremental_query_keeps_cursor_when_nothing_new() -> None:
    client = MagicMock()
    paginator = MagicMock()
    paginator.paginate.return_value = [{"events": []}]
    client.get_paginator.return_value = paginator

    _, cursor = CloudWatchBackend("eu-west-1", client=client).query_incremental(
        "/app", StructuredQuery("ERROR"), 1234
    )

    kwargs = paginator.paginate.call_args.kwargs
    assert kwargs["startTime"] == 1234
    assert kwargs["filterPattern"] == "ERROR"
    assert cursor == 1234


@pytest.mark.parametrize(
    "exc, transient",
    [
        (_client_error("ThrottlingException"), True),
        (_client_error("AccessDeniedException"), False),
        (EndpointConnectionError(endpoint_url="https://logs.eu-west-1.amazonaws.com"), True),
    ],
)
def test_errors_are_translated(exc: Exception, transient: bool) -> None:
    client = MagicMock()
    client.get_paginator.return_value.paginate.side_effect = exc

    with pytest.raises(BackendError) as excinfo:
        CloudWatchBackend("eu-west-1", client=client).query_range("/app", StructuredQuery(), START, END)

    assert excinfo.value.transient is transient
    assert excinfo.value.operation == "filter_log_events"
