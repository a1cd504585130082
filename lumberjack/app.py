from __future__ import annotations

import argparse
import logging
import sys
from queue import Empty, Queue
from typing import Literal, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.text import Text
from textual import messages
from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.logging import TextualHandler
from textual.timer import Timer
from textual.widgets import Label, Static

from .config import LumberjackConfig, load_config
from .errors import BackendError, PersistenceError
from .focus import FocusStateMachine, FrameSnapshot, Pane
from .keymap import key_to_event
from .models import LogGroup
from .services import CloudWatchBackend, LogBackend, QueryFailed, TailController
from .storage import SavedFilterStore
from .widgets.dashboard import Dashboard
from .widgets.filter_form import FilterForm
from .widgets.group_list import GroupList
from .widgets.overlay import OverlayPanel
from .widgets.results_view import ResultsView

logger = logging.getLogger(__name__)

DRAIN_INTERVAL = 0.1
NOTIFICATIONS_PER_TICK = 500

EXIT_OK = 0
EXIT_BACKEND_UNREACHABLE = 1
EXIT_CORRUPT_STORE = 2
EXIT_USAGE = 3

KEY_HINTS = (
    "tab pane  enter select/edit  / search  s save  F load  t tail  1-4 presets  r refresh  q quit"
)


class LumberjackApp(App[int]):
    CSS = """
    Screen { layout: vertical; }

    #groups-pane {
        width: 42;
        min-width: 24;
        border-right: solid $surface 15%;
        padding: 0 1;
        background: $surface 2%;
    }

    #right-column {
        width: 1fr;
    }

    #filter-pane {
        height: auto;
        border-bottom: solid $surface 15%;
    }

    #results-pane {
        height: 1fr;
    }

    .pane.-focused {
        background: $surface 6%;
    }

    .pane.-focused > .panel-title {
        color: $accent;
        text-style: bold underline;
    }

    #status-bar {
        height: 1;
        padding: 0 1;
        background: $surface 10%;
    }

    Toast {
        border: none;
        background: $surface 12%;
        color: $text;
    }

    Toast.-warning {
        background: #713f12;
        color: #fefce8;
    }

    Toast.-error {
        background: #7f1d1d;
        color: #fee2e2;
    }
    """

    def __init__(
        self,
        backend: LogBackend,
        store: SavedFilterStore,
        tail: TailController,
        groups: Sequence[LogGroup] = (),
        config: Optional[LumberjackConfig] = None,
    ) -> None:
        super().__init__()
        self._backend = backend
        self._store = store
        self._tail = tail
        self._config = config or LumberjackConfig()
        self.fsm = FocusStateMachine(
            tail,
            store,
            groups,
            status_timeout=self._config.status_timeout,
            refresh_groups=self._refresh_groups,
        )
        self.dashboard = Dashboard(id="dashboard")
        self.group_list = GroupList()
        self.filter_form = FilterForm()
        self.results_view = ResultsView()
        self.overlay_panel = OverlayPanel()
        self.status_bar = Static(id="status-bar")
        self._drain_timer: Timer | None = None
        self._shown_session: Optional[int] = None
        self._shown_total = 0
        self._shown_evicted = 0
        self._is_shutting_down = False

    def compose(self) -> ComposeResult:
        with self.dashboard:
            with Vertical(id="groups-pane", classes="pane"):
                yield Label("Log Groups", classes="panel-title")
                yield self.group_list
            with Vertical(id="right-column"):
                with Vertical(id="filter-pane", classes="pane"):
                    yield Label("Filter", classes="panel-title")
                    yield self.filter_form
                with Vertical(id="results-pane", classes="pane"):
                    yield Label("Results", classes="panel-title")
                    yield self.results_view
        yield self.overlay_panel
        yield self.status_bar

    async def on_mount(self) -> None:
        self.dashboard.focus()
        self.results_view.show_placeholder()
        self._drain_timer = self.set_interval(DRAIN_INTERVAL, self._drain_notifications)
        self._render_frame()

    def on_resize(self) -> None:
        rows = self.group_list.size.height
        if rows > 0:
            self.fsm.group_rows = rows

    async def on_dashboard_key_pressed(self, message: Dashboard.KeyPressed) -> None:
        self.handle_key(message.key, message.character)

    async def on_exit_app(self, message: messages.ExitApp) -> None:
        self._is_shutting_down = True
        if self._drain_timer is not None:
            self._drain_timer.stop()
            self._drain_timer = None

    def handle_key(self, key: str, character: Optional[str]) -> None:
        event = key_to_event(key, character, self.fsm.state)
        if event is None:
            return
        self.fsm.dispatch(event)
        if self.fsm.state.quit_requested:
            self.exit(EXIT_OK)
            return
        self._render_frame()

    # ----------------------------------------------------------- background

    def _drain_notifications(self) -> None:
        queue: Queue = self._tail.notifications
        for _ in range(NOTIFICATIONS_PER_TICK):
            try:
                note = queue.get_nowait()
            except Empty:
                break
            current = self._tail.is_current(note.session_id)
            self.fsm.apply_notification(note)
            if current and isinstance(note, QueryFailed):
                self._show_message(str(note.error), "error" if note.stopped else "warning")
        self.fsm.expire_status()
        self._render_frame()

    def _refresh_groups(self) -> None:
        self.run_worker(
            self._load_groups,
            name="refresh-groups",
            group="catalog",
            exclusive=True,
            thread=True,
            exit_on_error=False,
        )

    def _load_groups(self) -> None:
        try:
            groups = self._backend.list_groups()
        except BackendError as exc:
            logger.warning("Refreshing log groups failed: %s", exc)
            self.call_from_thread(self._show_message, f"Refresh failed: {exc}", "error")
            return
        self.call_from_thread(self._apply_groups, groups)

    def _apply_groups(self, groups: Sequence[LogGroup]) -> None:
        self.fsm.set_groups(groups)
        self._render_frame()

    # -------------------------------------------------------------- render

    def _render_frame(self) -> None:
        if self._is_shutting_down or not self.is_mounted:
            return
        frame = self.fsm.snapshot()
        ui = frame.ui
        for pane, selector in (
            (Pane.GROUPS, "#groups-pane"),
            (Pane.FILTER, "#filter-pane"),
            (Pane.RESULTS, "#results-pane"),
        ):
            self.query_one(selector).set_class(ui.focused_pane == pane, "-focused")
        self.group_list.show_groups(ui, self.fsm.group_rows)
        self.filter_form.show_fields(ui)
        self.overlay_panel.show_snapshot(frame)
        self._render_results(frame)
        self.status_bar.update(self._status_line(frame))

    def _render_results(self, frame: FrameSnapshot) -> None:
        if frame.session_id is None:
            return
        total = frame.evicted + len(frame.results)
        if frame.session_id != self._shown_session or frame.evicted != self._shown_evicted:
            self.results_view.replace_events(frame.results)
        elif total > self._shown_total:
            self.results_view.append_events(frame.results[self._shown_total - total :])
        self._shown_session = frame.session_id
        self._shown_total = total
        self._shown_evicted = frame.evicted
        self._scroll_results(frame)

    def _scroll_results(self, frame: FrameSnapshot) -> None:
        if frame.ui.focused_pane != Pane.RESULTS or not frame.results:
            self.results_view.auto_scroll = True
            return
        last = len(frame.results) - 1
        position = min(frame.ui.results_scroll, last)
        self.results_view.auto_scroll = position >= last
        if last:
            self.results_view.scroll_to(
                y=round(self.results_view.max_scroll_y * position / last),
                animate=False,
            )

    def _status_line(self, frame: FrameSnapshot) -> Text:
        text = Text()
        if frame.ui.tail_mode:
            text.append(f"[{frame.tail_mode.value}] ", style="#facc15")
        if frame.error:
            text.append(frame.error, style="bold #f87171")
        elif frame.status:
            text.append(frame.status)
        else:
            text.append(KEY_HINTS, style="dim")
        if frame.evicted:
            text.append(f"  ({frame.evicted} oldest dropped)", style="dim")
        return text

    def _show_message(self, text: str, severity: Literal["info", "warning", "error"] = "info") -> None:
        toast_severity = {
            "info": "information",
            "warning": "warning",
            "error": "error",
        }.get(severity, "information")
        if not self.is_mounted or self._is_shutting_down:
            logger.info("%s", text)
            return
        self.notify(text, severity=toast_severity, title="", markup=False)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="lumberjack",
        description="Terminal dashboard for searching and tailing CloudWatch log groups.",
    )
    parser.add_argument("--region", default=None, help="AWS region (default from settings.conf)")
    parser.add_argument("--profile", default=None, help="AWS credentials profile")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Level for records sent to the Textual devtools console",
    )
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, handlers=[TextualHandler()], force=True)


def run(argv: Optional[Sequence[str]] = None) -> int:  # pragma: no cover - script entry point
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    errors = Console(stderr=True)

    config = load_config()
    if args.region:
        config.region = args.region
    if args.profile is not None:
        config.profile = args.profile

    store = SavedFilterStore()
    try:
        store.load()
    except PersistenceError as exc:
        errors.print(f"[bold red]Saved filters are unreadable:[/] {escape(str(exc))}")
        return EXIT_CORRUPT_STORE

    try:
        backend = CloudWatchBackend(config.region, config.profile)
        groups = backend.list_groups()
    except BackendError as exc:
        errors.print(f"[bold red]Cannot reach CloudWatch Logs:[/] {escape(str(exc))}")
        return EXIT_BACKEND_UNREACHABLE

    tail = TailController(
        backend,
        poll_interval=config.poll_interval,
        buffer_cap=config.buffer_cap,
        seen_window=config.seen_window,
        max_failures=config.max_consecutive_failures,
        default_lookback=config.default_lookback,
    )
    app = LumberjackApp(backend, store, tail, groups, config)
    try:
        result = app.run()
    finally:
        tail.close()
    return result or EXIT_OK
