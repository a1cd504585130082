"""
Query and tail engine for one (log group, filter) pair at a time.

The controller owns the active :class:`TailSession`: its cursor, the bounded
set of event ids already shown, and the event buffer the results pane reads.
Polling runs on a background thread per session and reports progress through
a :class:`queue.Queue` of notifications that the UI drains on its own timer.

Design notes:
    - Each polling thread only ever writes to the session it was started for,
      and a new thread joins the previous one before its first poll. Events
      from a retired session can never land in the current buffer.
    - Every request bumps a generation counter. A one-shot query that
      finishes after a newer submit or tail was issued is discarded, and the
      session it would replace is only retired once its results are in.
    - Cancellation is cooperative: the stop flag is checked at the top of each
      cycle, never in the middle of a backend request.
    - The buffer is capped; once full, the oldest events are evicted first
      (lossy at the head) while tailing continues.
"""
from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from queue import Queue
from typing import Callable, Iterable, Optional, Union

from ..errors import BackendError, ParseError
from ..filters import compose_query, time_window
from ..models import FilterSpec, LogEvent, StructuredQuery
from .backends import Cursor, LogBackend

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_BUFFER_CAP = 20_000
DEFAULT_SEEN_WINDOW = 50_000
DEFAULT_MAX_FAILURES = 5
DEFAULT_LOOKBACK = timedelta(minutes=15)
JOIN_TIMEOUT = 30.0


class TailMode(Enum):
    IDLE = "idle"
    ONE_SHOT = "one-shot"
    TAILING = "tailing"
    STOPPED = "stopped"


@dataclass(frozen=True)
class BufferReplaced:
    session_id: int
    count: int


@dataclass(frozen=True)
class EventsAppended:
    session_id: int
    events: tuple[LogEvent, ...]
    evicted: int = 0


@dataclass(frozen=True)
class QueryFailed:
    session_id: int
    error: Union[BackendError, ParseError]
    consecutive_failures: int = 1
    stopped: bool = False


@dataclass(frozen=True)
class TailStopped:
    session_id: int
    reason: Optional[str] = None


Notification = Union[BufferReplaced, EventsAppended, QueryFailed, TailStopped]


class SeenIds:
    """Set of event ids that forgets the oldest entries beyond *limit*."""

    def __init__(self, limit: int, ids: Iterable[str] = ()) -> None:
        self.limit = max(1, limit)
        self._order: deque[str] = deque()
        self._members: set[str] = set()
        for event_id in ids:
            self.add(event_id)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._members

    def __len__(self) -> int:
        return len(self._members)

    def add(self, event_id: str) -> bool:
        if event_id in self._members:
            return False
        self._order.append(event_id)
        self._members.add(event_id)
        while len(self._order) > self.limit:
            self._members.discard(self._order.popleft())
        return True


@dataclass(eq=False)
class TailSession:
    session_id: int
    group: str
    active_filter: FilterSpec
    query: StructuredQuery
    seen_ids: SeenIds
    buffer: deque[LogEvent]
    cursor: Cursor = None
    mode: TailMode = TailMode.ONE_SHOT
    primed: bool = False
    consecutive_failures: int = 0
    evicted: int = 0
    last_error: Optional[str] = None
    stop_event: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None

    def matches(self, group: str, spec: FilterSpec) -> bool:
        return self.group == group and self.active_filter == spec

    def append(self, events: Iterable[LogEvent]) -> tuple[list[LogEvent], int]:
        """Append unseen *events*; return them and how many old ones were evicted."""
        fresh = [event for event in events if self.seen_ids.add(event.event_id)]
        cap = self.buffer.maxlen or 0
        overflow = max(0, len(self.buffer) + len(fresh) - cap) if cap else 0
        self.buffer.extend(fresh)
        self.evicted += overflow
        return fresh, overflow


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sort_events(events: Iterable[LogEvent]) -> list[LogEvent]:
    return sorted(events, key=lambda event: event.sort_key)


class TailController:
    """Runs one-shot queries and live tails against a :class:`LogBackend`."""

    def __init__(
        self,
        backend: LogBackend,
        notifications: Optional[Queue] = None,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        buffer_cap: int = DEFAULT_BUFFER_CAP,
        seen_window: int = DEFAULT_SEEN_WINDOW,
        max_failures: int = DEFAULT_MAX_FAILURES,
        default_lookback: Optional[timedelta] = DEFAULT_LOOKBACK,
        clock: Callable[[], datetime] = _utcnow,
        background: bool = True,
    ) -> None:
        self.backend = backend
        self.notifications: Queue = notifications if notifications is not None else Queue()
        self.poll_interval = poll_interval
        self.buffer_cap = buffer_cap
        self.seen_window = max(seen_window, buffer_cap)
        self.max_failures = max(1, max_failures)
        self.default_lookback = default_lookback
        self.clock = clock
        self.background = background
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        self._session: Optional[TailSession] = None
        self._workers: list[threading.Thread] = []
        # bumped by every submit, start_tail and close; a query that finishes
        # under an older generation is discarded
        self._generation = 0
        self._latest_request: Optional[int] = None

    # ------------------------------------------------------------------ state

    @property
    def session(self) -> Optional[TailSession]:
        return self._session

    @property
    def mode(self) -> TailMode:
        session = self._session
        if session is None or session.mode == TailMode.ONE_SHOT:
            return TailMode.IDLE
        return session.mode

    def is_current(self, session_id: int) -> bool:
        """True for the installed session and for the newest request's id.

        A one-shot query reserves its id up front, so a failure reported
        before anything is installed still reaches the UI.
        """
        with self._lock:
            if session_id == self._latest_request:
                return True
            session = self._session
            return session is not None and session.session_id == session_id

    def snapshot(self) -> list[LogEvent]:
        with self._lock:
            if self._session is None:
                return []
            return list(self._session.buffer)

    # -------------------------------------------------------------- one-shot

    def submit(self, group: str, spec: FilterSpec) -> Optional[TailSession]:
        """Run a single range query and replace the buffer with its results.

        Returns ``None`` when a newer request superseded this one while the
        query was running; its results are dropped.

        Raises:
            ParseError: the filter's time window is invalid.
            BackendError: the query failed; the previous buffer is untouched.
        """
        session_id, generation = self._reserve()
        return self._submit(group, spec, session_id, generation)

    def submit_async(self, group: str, spec: FilterSpec) -> threading.Thread:
        """Run :meth:`submit` on a worker thread and report through the queue."""
        session_id, generation = self._reserve()
        with self._lock:
            earlier = [worker for worker in self._workers if worker.is_alive()]

        def _work() -> None:
            for worker in earlier:
                worker.join(JOIN_TIMEOUT)
            try:
                self._submit(group, spec, session_id, generation)
            except (BackendError, ParseError) as exc:
                logger.warning("Query on %s failed: %s", group, exc)
                self.notifications.put(QueryFailed(session_id, exc, stopped=True))

        worker = threading.Thread(target=_work, name=f"lumberjack-query-{group}", daemon=True)
        with self._lock:
            self._workers = earlier + [worker]
        worker.start()
        return worker

    # ------------------------------------------------------------------ tail

    def start_tail(self, group: str, spec: FilterSpec) -> TailSession:
        """Enter tailing for (*group*, *spec*).

        Resumes from the last cursor when the current session already targets
        the same pair; any other pair retires the session and starts fresh.
        Either way a one-shot query still in flight is superseded.
        """
        with self._lock:
            session = self._session
            if session is not None and session.matches(group, spec):
                self._supersede(session.session_id)
                if session.mode == TailMode.TAILING:
                    return session
                previous = session.thread
                session.stop_event = threading.Event()
                session.mode = TailMode.TAILING
                session.consecutive_failures = 0
                session.last_error = None
                self._spawn(session, previous)
                return session

        # Validate before retiring so a typo keeps the current session alive
        time_window(spec, self.clock(), self.default_lookback)
        query = compose_query(spec)
        with self._lock:
            previous_session = self._retire_current()
            previous = previous_session.thread if previous_session else None
            session = self._new_session(group, spec, query, next(self._ids))
            session.mode = TailMode.TAILING
            self._supersede(session.session_id)
            self._session = session
            self._spawn(session, previous)
        return session

    def stop_tail(self) -> None:
        with self._lock:
            session = self._session
            if session is None or session.mode != TailMode.TAILING:
                return
            session.mode = TailMode.STOPPED
            session.stop_event.set()
        self.notifications.put(TailStopped(session.session_id))

    def poll_once(self) -> int:
        """Run one poll cycle for the current tailing session."""
        session = self._session
        if session is None or session.mode != TailMode.TAILING:
            return 0
        return self._poll(session)

    def close(self) -> None:
        """Stop polling and wait for every background thread to finish."""
        with self._lock:
            self._supersede(None)
            session = self._retire_current()
        if session is not None:
            self._join_session(session)
        self._join_workers()

    # -------------------------------------------------------------- internals

    def _reserve(self) -> tuple[int, int]:
        with self._lock:
            session_id = next(self._ids)
            self._supersede(session_id)
            return session_id, self._generation

    def _supersede(self, latest: Optional[int]) -> None:
        self._generation += 1
        self._latest_request = latest

    def _submit(
        self, group: str, spec: FilterSpec, session_id: int, generation: int
    ) -> Optional[TailSession]:
        start, end = time_window(spec, self.clock(), self.default_lookback)
        query = compose_query(spec)
        events, cursor = self.backend.query_range(group, query, start, end)

        session = self._new_session(group, spec, query, session_id)
        session.append(sort_events(events))
        session.cursor = cursor
        session.primed = True
        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding superseded query %d on %s", session_id, group)
                return None
            previous = self._retire_current()
            self._session = session
        if previous is not None:
            self._join_session(previous)
        logger.info("Query on %s returned %d events", group, len(session.buffer))
        self.notifications.put(BufferReplaced(session.session_id, len(session.buffer)))
        return session

    def _new_session(
        self, group: str, spec: FilterSpec, query: StructuredQuery, session_id: int
    ) -> TailSession:
        return TailSession(
            session_id=session_id,
            group=group,
            active_filter=spec,
            query=query,
            seen_ids=SeenIds(self.seen_window),
            buffer=deque(maxlen=self.buffer_cap),
        )

    def _retire_current(self) -> Optional[TailSession]:
        with self._lock:
            session = self._session
            if session is None:
                return None
            session.stop_event.set()
            if session.mode == TailMode.TAILING:
                session.mode = TailMode.STOPPED
            return session

    def _join_session(self, session: TailSession) -> None:
        thread = session.thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(JOIN_TIMEOUT)

    def _join_workers(self) -> None:
        with self._lock:
            workers, self._workers = self._workers, []
        for worker in workers:
            if worker is not threading.current_thread():
                worker.join(JOIN_TIMEOUT)

    def _spawn(self, session: TailSession, previous: Optional[threading.Thread]) -> None:
        if not self.background:
            return
        stop_event = session.stop_event
        thread = threading.Thread(
            target=self._run,
            args=(session, stop_event, previous),
            name=f"lumberjack-tail-{session.session_id}",
            daemon=True,
        )
        session.thread = thread
        thread.start()

    def _run(
        self,
        session: TailSession,
        stop_event: threading.Event,
        previous: Optional[threading.Thread],
    ) -> None:
        if previous is not None and previous is not threading.current_thread():
            previous.join(JOIN_TIMEOUT)
        while not stop_event.is_set():
            if session.mode != TailMode.TAILING:
                break
            self._poll(session)
            stop_event.wait(self.poll_interval)

    def _poll(self, session: TailSession) -> int:
        try:
            if not session.primed:
                start, end = time_window(session.active_filter, self.clock(), self.default_lookback)
                events, cursor = self.backend.query_range(session.group, session.query, start, end)
            else:
                events, cursor = self.backend.query_incremental(
                    session.group, session.query, session.cursor
                )
        except (BackendError, ParseError) as exc:
            return self._record_failure(session, exc)

        with self._lock:
            session.consecutive_failures = 0
            session.primed = True
            session.cursor = cursor
            fresh, evicted = session.append(sort_events(events))
        if fresh:
            self.notifications.put(EventsAppended(session.session_id, tuple(fresh), evicted))
        return len(fresh)

    def _record_failure(self, session: TailSession, exc: Union[BackendError, ParseError]) -> int:
        with self._lock:
            session.consecutive_failures += 1
            failures = session.consecutive_failures
            transient = isinstance(exc, BackendError) and exc.transient
            stop = not transient or failures >= self.max_failures
            session.last_error = str(exc)
            if stop:
                session.mode = TailMode.STOPPED
                session.stop_event.set()
        if stop:
            logger.error("Tail on %s stopped after %d failure(s): %s", session.group, failures, exc)
        else:
            logger.warning("Tail poll on %s failed (%d in a row): %s", session.group, failures, exc)
        self.notifications.put(QueryFailed(session.session_id, exc, failures, stopped=stop))
        if stop:
            self.notifications.put(TailStopped(session.session_id, str(exc)))
        return 0
