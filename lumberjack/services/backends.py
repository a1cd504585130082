from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from ..errors import BackendError
from ..models import LogEvent, LogGroup, StructuredQuery

logger = logging.getLogger(__name__)

Cursor = Any

TRANSIENT_ERROR_CODES = frozenset(
    {
        "ThrottlingException",
        "Throttling",
        "TooManyRequestsException",
        "ServiceUnavailableException",
        "RequestTimeout",
        "RequestTimeoutException",
        "InternalFailure",
    }
)


class LogBackend(Protocol):
    """What the tail controller needs from a log store.

    Pagination happens inside the backend; every call returns complete
    results plus an opaque cursor for the next incremental query.
    """

    def list_groups(self) -> Sequence[LogGroup]:
        ...

    def query_range(
        self,
        group: str,
        query: StructuredQuery,
        start: Optional[datetime],
        end: datetime,
    ) -> tuple[list[LogEvent], Cursor]:
        ...

    def query_incremental(
        self,
        group: str,
        query: StructuredQuery,
        cursor: Cursor,
    ) -> tuple[list[LogEvent], Cursor]:
        ...


def to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def from_millis(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class CloudWatchBackend:
    """AWS CloudWatch Logs adapter.

    The cursor is the newest event timestamp seen, in epoch milliseconds.
    Incremental queries restart at that millisecond, so boundary events come
    back again and rely on the controller's dedup.
    """

    def __init__(self, region: str, profile: str = "", client: Any = None) -> None:
        self.region = region
        self.profile = profile
        if client is None:
            try:
                session = boto3.Session(profile_name=profile or None, region_name=region)
                client = session.client(
                    "logs",
                    config=Config(retries={"max_attempts": 2, "mode": "standard"}),
                )
            except BotoCoreError as exc:
                raise _translate_error(exc, "connect") from exc
        self._client = client

    def list_groups(self) -> list[LogGroup]:
        groups: list[LogGroup] = []
        try:
            paginator = self._client.get_paginator("describe_log_groups")
            for page in paginator.paginate():
                for raw in page.get("logGroups", []):
                    name = raw.get("logGroupName")
                    if not name:
                        continue
                    groups.append(
                        LogGroup(
                            name=name,
                            stored_bytes=raw.get("storedBytes"),
                            retention_days=raw.get("retentionInDays"),
                        )
                    )
        except (BotoCoreError, ClientError) as exc:
            raise _translate_error(exc, "list_groups") from exc
        groups.sort(key=lambda group: group.name)
        return groups

    def query_range(
        self,
        group: str,
        query: StructuredQuery,
        start: Optional[datetime],
        end: datetime,
    ) -> tuple[list[LogEvent], Cursor]:
        start_ms = to_millis(start) if start is not None else None
        events = self._filter_events(group, query, start_ms, to_millis(end))
        return events, _newest(events, start_ms)

    def query_incremental(
        self,
        group: str,
        query: StructuredQuery,
        cursor: Cursor,
    ) -> tuple[list[LogEvent], Cursor]:
        now_ms = to_millis(datetime.now(timezone.utc))
        events = self._filter_events(group, query, cursor, now_ms)
        return events, _newest(events, cursor)

    def _filter_events(
        self,
        group: str,
        query: StructuredQuery,
        start_ms: Optional[int],
        end_ms: int,
    ) -> list[LogEvent]:
        params: dict[str, Any] = {"logGroupName": group, "endTime": end_ms}
        if start_ms is not None:
            params["startTime"] = start_ms
        if query:
            params["filterPattern"] = query.pattern

        events: list[LogEvent] = []
        try:
            paginator = self._client.get_paginator("filter_log_events")
            for page in paginator.paginate(**params):
                for raw in page.get("events", []):
                    events.append(
                        LogEvent(
                            event_id=raw.get("eventId", ""),
                            timestamp=from_millis(raw.get("timestamp", 0)),
                            ingestion_time=from_millis(raw.get("ingestionTime")),
                            message=raw.get("message", ""),
                        )
                    )
        except (BotoCoreError, ClientError) as exc:
            raise _translate_error(exc, "filter_log_events") from exc
        logger.debug("filter_log_events %s returned %d events", group, len(events))
        return events


def _newest(events: list[LogEvent], fallback: Optional[int]) -> Optional[int]:
    if not events:
        return fallback
    newest = max(to_millis(event.timestamp) for event in events)
    if fallback is None:
        return newest
    return max(newest, fallback)


def _translate_error(exc: Exception, operation: str) -> BackendError:
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        transient = code in TRANSIENT_ERROR_CODES
        return BackendError(f"{operation} failed: {code or exc}", operation=operation, transient=transient)
    if isinstance(exc, NoCredentialsError):
        return BackendError("AWS credentials not found.", operation=operation)
    transient = isinstance(exc, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError))
    return BackendError(f"{operation} failed: {exc}", operation=operation, transient=transient)
