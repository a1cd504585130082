"""
Pane and overlay state machine.

:class:`FocusStateMachine` is the only owner of :class:`UIState`. Input arrives
as one of the event classes below; :meth:`FocusStateMachine.dispatch` looks the
event up in the transition table for the current overlay (or the base table
when no overlay is open) and routes it to the tail controller, the fuzzy
matcher or the saved-filter store. Rendering only ever sees a copy through
:meth:`FocusStateMachine.snapshot`.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence, Union

from .errors import ParseError, PersistenceError, StateError
from .filters import build_filter_spec, render_shorthand
from .fuzzy import FuzzyMatcher
from .models import FilterSpec, LogEvent, LogGroup
from .services.tail import (
    BufferReplaced,
    EventsAppended,
    Notification,
    QueryFailed,
    TailController,
    TailMode,
    TailStopped,
)
from .storage import SavedFilter, SavedFilterStore

logger = logging.getLogger(__name__)

NO_MATCHES = "(no matches)"
TIME_PRESETS: tuple[str, ...] = ("-5m", "-15m", "-1h", "-24h")


class Pane(Enum):
    GROUPS = "groups"
    FILTER = "filter"
    RESULTS = "results"


class Overlay(Enum):
    NONE = "none"
    GROUP_SEARCH = "group-search"
    SAVE_NAME = "save-name"
    LOAD_PICKER = "load-picker"


class FilterField(Enum):
    START = "start"
    END = "end"
    QUERY = "query"
    SEARCH = "search"

    @property
    def is_text(self) -> bool:
        return self is not FilterField.SEARCH


FIELD_ORDER: tuple[FilterField, ...] = (
    FilterField.START,
    FilterField.END,
    FilterField.QUERY,
    FilterField.SEARCH,
)

# Input events ---------------------------------------------------------------


@dataclass(frozen=True)
class FocusNext:
    pass


@dataclass(frozen=True)
class FocusPane:
    pane: Pane


@dataclass(frozen=True)
class Move:
    delta: int


@dataclass(frozen=True)
class BeginEdit:
    pass


@dataclass(frozen=True)
class Confirm:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class OpenOverlay:
    overlay: Overlay


@dataclass(frozen=True)
class InsertText:
    text: str


@dataclass(frozen=True)
class DeleteBack:
    pass


@dataclass(frozen=True)
class RunQuery:
    pass


@dataclass(frozen=True)
class ToggleTail:
    pass


@dataclass(frozen=True)
class ApplyTimePreset:
    start: str


@dataclass(frozen=True)
class DeletePreset:
    pass


@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class Quit:
    pass


InputEvent = Union[
    FocusNext,
    FocusPane,
    Move,
    BeginEdit,
    Confirm,
    Cancel,
    OpenOverlay,
    InsertText,
    DeleteBack,
    RunQuery,
    ToggleTail,
    ApplyTimePreset,
    DeletePreset,
    Refresh,
    Quit,
]


@dataclass
class UIState:
    focused_pane: Pane = Pane.GROUPS
    overlay: Overlay = Overlay.NONE
    previous_pane: Pane = Pane.GROUPS
    editing: bool = False
    filter_field: FilterField = FilterField.QUERY
    filter_start: str = ""
    filter_end: str = ""
    filter_query: str = ""
    group_search_input: str = ""
    save_name_input: str = ""
    visible_groups: tuple[LogGroup, ...] = ()
    group_selection: int = 0
    group_scroll: int = 0
    results_scroll: int = 0
    load_selection: int = 0
    tail_mode: bool = False
    searching: bool = False
    active_group: Optional[str] = None
    active_filter: FilterSpec = field(default_factory=FilterSpec)
    status_message: Optional[str] = None
    status_set_at: Optional[float] = None
    error_message: Optional[str] = None
    quit_requested: bool = False

    @property
    def selected_group(self) -> Optional[LogGroup]:
        if 0 <= self.group_selection < len(self.visible_groups):
            return self.visible_groups[self.group_selection]
        return None


@dataclass(frozen=True)
class FrameSnapshot:
    """Everything the renderer needs for one frame."""

    ui: UIState
    groups: tuple[LogGroup, ...]
    results: tuple[LogEvent, ...]
    presets: tuple[str, ...]
    tail_mode: TailMode
    session_id: Optional[int] = None
    evicted: int = 0

    @property
    def status(self) -> Optional[str]:
        return self.ui.status_message

    @property
    def error(self) -> Optional[str]:
        return self.ui.error_message

    @property
    def items(self) -> Sequence[object]:
        """Rows for whatever currently owns the keyboard."""
        if self.ui.overlay == Overlay.LOAD_PICKER:
            return self.presets
        if self.ui.overlay == Overlay.GROUP_SEARCH or self.ui.focused_pane == Pane.GROUPS:
            return self.groups or (NO_MATCHES,)
        if self.ui.focused_pane == Pane.RESULTS:
            return self.results
        return ()


def clamp_scroll(selection: int, scroll: int, rows: int, total: int) -> int:
    if total <= 0 or rows <= 0:
        return 0
    if selection < scroll:
        scroll = selection
    elif selection >= scroll + rows:
        scroll = selection + 1 - rows
    return max(0, min(scroll, max(0, total - rows)))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FocusStateMachine:
    """Routes input to the core components and tracks who owns the keyboard."""

    def __init__(
        self,
        tail: TailController,
        store: SavedFilterStore,
        groups: Iterable[LogGroup] = (),
        *,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        status_timeout: float = 2.0,
        group_rows: int = 10,
        refresh_groups: Optional[Callable[[], None]] = None,
    ) -> None:
        self._tail = tail
        self._store = store
        self._matcher: FuzzyMatcher[LogGroup] = FuzzyMatcher(groups, key=lambda group: group.name)
        self._clock = clock
        self._monotonic = monotonic
        self._refresh_groups = refresh_groups
        self.status_timeout = status_timeout
        self.group_rows = group_rows
        self._ui = UIState(visible_groups=tuple(self._matcher.candidates))

    # ----------------------------------------------------------- public API

    @property
    def state(self) -> UIState:
        return replace(self._ui)

    def dispatch(self, event: InputEvent) -> bool:
        """Apply *event*; return ``False`` when it was rejected as invalid."""
        if isinstance(event, Quit):
            self._quit()
            return True
        table = self.transitions(self._ui.overlay)
        handler_name = table.get(type(event))
        try:
            if handler_name is None:
                raise StateError(self._describe(), type(event).__name__)
            getattr(self, handler_name)(event)
        except StateError as exc:
            logger.warning("Ignored input: %s", exc)
            return False
        return True

    @classmethod
    def transitions(cls, overlay: Overlay) -> dict[type, str]:
        if overlay == Overlay.NONE:
            return cls._BASE_TABLE
        return cls._OVERLAY_TABLES[overlay]

    def set_groups(self, groups: Iterable[LogGroup]) -> None:
        """Replace the catalog wholesale, keeping the selection by name when possible."""
        selected = self._ui.selected_group
        self._matcher.set_candidates(groups)
        self._apply_group_search(keep=selected.name if selected else None)
        self._set_status(f"Loaded {len(self._matcher.candidates)} log groups")

    def apply_notification(self, note: Notification) -> None:
        if not self._tail.is_current(note.session_id):
            logger.debug("Dropping notification from retired session %s", note.session_id)
            return
        ui = self._ui
        if isinstance(note, BufferReplaced):
            ui.searching = False
            ui.error_message = None
            ui.results_scroll = 0
            self._set_status(f"{note.count} results")
        elif isinstance(note, EventsAppended):
            ui.searching = False
            ui.error_message = None
            if note.evicted:
                self._set_status(
                    f"Buffer full: dropped {note.evicted} oldest event(s)"
                )
        elif isinstance(note, QueryFailed):
            ui.searching = False
            if note.stopped:
                ui.error_message = str(note.error)
            else:
                ui.error_message = (
                    f"{note.error} (retrying, {note.consecutive_failures} failure(s) in a row)"
                )
        elif isinstance(note, TailStopped):
            ui.searching = False
            if note.reason:
                ui.tail_mode = False
                self._set_status(f"Tail stopped: {note.reason}")
            else:
                self._set_status("Tail stopped")

    def expire_status(self) -> None:
        ui = self._ui
        if ui.status_set_at is None:
            return
        if self._monotonic() - ui.status_set_at >= self.status_timeout:
            ui.status_message = None
            ui.status_set_at = None

    def snapshot(self) -> FrameSnapshot:
        session = self._tail.session
        return FrameSnapshot(
            ui=replace(self._ui),
            groups=self._ui.visible_groups,
            results=tuple(self._tail.snapshot()),
            presets=tuple(self._store.list()),
            tail_mode=self._tail.mode,
            session_id=session.session_id if session else None,
            evicted=session.evicted if session else 0,
        )

    # -------------------------------------------------------- base handlers

    def _focus_next(self, event: FocusNext) -> None:
        self._require_not_editing(event)
        order = {
            Pane.GROUPS: Pane.FILTER,
            Pane.FILTER: Pane.GROUPS,
            Pane.RESULTS: Pane.GROUPS,
        }
        self._ui.focused_pane = order[self._ui.focused_pane]

    def _focus_pane(self, event: FocusPane) -> None:
        self._require_not_editing(event)
        self._ui.focused_pane = event.pane

    def _move(self, event: Move) -> None:
        self._require_not_editing(event)
        ui = self._ui
        if ui.focused_pane == Pane.GROUPS:
            self._move_groups(event)
        elif ui.focused_pane == Pane.FILTER:
            index = FIELD_ORDER.index(ui.filter_field)
            ui.filter_field = FIELD_ORDER[(index + event.delta) % len(FIELD_ORDER)]
        else:
            total = len(self._tail.snapshot())
            ui.results_scroll = max(0, min(ui.results_scroll + event.delta, max(0, total - 1)))

    def _confirm(self, event: Confirm) -> None:
        ui = self._ui
        if ui.focused_pane == Pane.GROUPS:
            selected = ui.selected_group
            if selected is None:
                raise StateError(self._describe(), "Confirm")
            ui.active_group = selected.name
            ui.focused_pane = Pane.FILTER
        elif ui.focused_pane == Pane.FILTER:
            if ui.editing:
                ui.editing = False
            elif ui.filter_field == FilterField.SEARCH:
                self._run_query(RunQuery())
            else:
                ui.editing = True
        else:
            raise StateError(self._describe(), "Confirm")

    def _begin_edit(self, event: BeginEdit) -> None:
        ui = self._ui
        if ui.focused_pane != Pane.FILTER or not ui.filter_field.is_text or ui.editing:
            raise StateError(self._describe(), "BeginEdit")
        ui.editing = True

    def _cancel(self, event: Cancel) -> None:
        self._ui.editing = False

    def _open_overlay(self, event: OpenOverlay) -> None:
        ui = self._ui
        self._require_not_editing(event)
        if event.overlay == Overlay.GROUP_SEARCH:
            if ui.focused_pane != Pane.GROUPS:
                raise StateError(self._describe(), "OpenOverlay(group-search)")
            ui.group_search_input = ""
        elif event.overlay == Overlay.SAVE_NAME:
            ui.save_name_input = ""
        elif event.overlay == Overlay.LOAD_PICKER:
            if not self._store.list():
                self._set_status("No saved filters")
                return
            ui.load_selection = 0
        else:
            raise StateError(self._describe(), "OpenOverlay(none)")
        ui.previous_pane = ui.focused_pane
        ui.overlay = event.overlay

    def _insert_text(self, event: InsertText) -> None:
        ui = self._ui
        if ui.focused_pane != Pane.FILTER or not ui.editing:
            raise StateError(self._describe(), "InsertText")
        self._set_field(self._field_value() + event.text)

    def _delete_back(self, event: DeleteBack) -> None:
        ui = self._ui
        if ui.focused_pane != Pane.FILTER or not ui.editing:
            raise StateError(self._describe(), "DeleteBack")
        self._set_field(self._field_value()[:-1])

    def _run_query(self, event: RunQuery) -> None:
        ui = self._ui
        group = ui.active_group or (ui.selected_group.name if ui.selected_group else None)
        if group is None:
            self._set_status("Select a log group first")
            return
        try:
            spec = build_filter_spec(ui.filter_start, ui.filter_end, ui.filter_query, self._clock())
        except ParseError as exc:
            ui.error_message = str(exc)
            return

        ui.active_group = group
        ui.active_filter = spec
        ui.error_message = None
        ui.editing = False
        ui.results_scroll = 0
        ui.focused_pane = Pane.RESULTS
        if ui.tail_mode:
            try:
                self._tail.start_tail(group, spec)
            except ParseError as exc:
                ui.error_message = str(exc)
                return
            self._set_status(f"Tailing {group}")
        else:
            ui.searching = True
            self._tail.submit_async(group, spec)
            self._set_status(f"Searching {group} ...")

    def _toggle_tail(self, event: ToggleTail) -> None:
        self._require_not_editing(event)
        ui = self._ui
        ui.tail_mode = not ui.tail_mode
        if not ui.tail_mode:
            self._tail.stop_tail()
        self._set_status("Tail mode on" if ui.tail_mode else "Tail mode off")

    def _apply_time_preset(self, event: ApplyTimePreset) -> None:
        ui = self._ui
        if ui.focused_pane != Pane.FILTER or ui.editing:
            raise StateError(self._describe(), "ApplyTimePreset")
        ui.filter_start = event.start
        ui.filter_end = ""
        ui.filter_field = FilterField.QUERY

    def _refresh(self, event: Refresh) -> None:
        self._require_not_editing(event)
        if self._refresh_groups is None:
            raise StateError(self._describe(), "Refresh")
        self._set_status("Refreshing log groups ...")
        self._refresh_groups()

    def _quit(self) -> None:
        self._ui.quit_requested = True
        self._tail.stop_tail()

    # ------------------------------------------------------ overlay handlers

    def _close_overlay(self, event: Cancel) -> None:
        ui = self._ui
        if ui.overlay == Overlay.GROUP_SEARCH:
            ui.group_search_input = ""
            self._apply_group_search()
        ui.overlay = Overlay.NONE
        ui.focused_pane = ui.previous_pane

    def _move_groups(self, event: Move) -> None:
        ui = self._ui
        total = len(ui.visible_groups)
        if not total:
            return
        ui.group_selection = max(0, min(ui.group_selection + event.delta, total - 1))
        ui.group_scroll = clamp_scroll(ui.group_selection, ui.group_scroll, self.group_rows, total)

    def _search_insert(self, event: InsertText) -> None:
        self._ui.group_search_input += event.text
        self._apply_group_search()

    def _search_delete(self, event: DeleteBack) -> None:
        self._ui.group_search_input = self._ui.group_search_input[:-1]
        self._apply_group_search()

    def _search_confirm(self, event: Confirm) -> None:
        self._ui.overlay = Overlay.NONE
        self._ui.focused_pane = Pane.GROUPS

    def _save_insert(self, event: InsertText) -> None:
        self._ui.save_name_input += event.text

    def _save_delete(self, event: DeleteBack) -> None:
        self._ui.save_name_input = self._ui.save_name_input[:-1]

    def _save_confirm(self, event: Confirm) -> None:
        ui = self._ui
        name = ui.save_name_input.strip()
        ui.overlay = Overlay.NONE
        ui.focused_pane = Pane.FILTER
        if not name:
            return
        try:
            spec = build_filter_spec(ui.filter_start, ui.filter_end, ui.filter_query, self._clock())
        except ParseError as exc:
            ui.error_message = f"Not saved: {exc}"
            return
        group = ui.selected_group.name if ui.selected_group else (ui.active_group or "")
        try:
            self._store.save(name, spec, group=group)
        except PersistenceError as exc:
            ui.error_message = f'Error saving filter "{name}": {exc} (kept for this session)'
            return
        self._set_status(f'Saved filter "{name}"')

    def _load_move(self, event: Move) -> None:
        total = len(self._store.list())
        ui = self._ui
        ui.load_selection = max(0, min(ui.load_selection + event.delta, max(0, total - 1)))

    def _load_confirm(self, event: Confirm) -> None:
        ui = self._ui
        presets = self._store.presets()
        if not 0 <= ui.load_selection < len(presets):
            raise StateError(self._describe(), "Confirm")
        preset = presets[ui.load_selection]
        self._apply_preset(preset)
        ui.overlay = Overlay.NONE
        ui.focused_pane = Pane.FILTER
        self._set_status(f'Loaded filter "{preset.name}"')

    def _delete_preset(self, event: DeletePreset) -> None:
        ui = self._ui
        names = self._store.list()
        if not 0 <= ui.load_selection < len(names):
            raise StateError(self._describe(), "DeletePreset")
        name = names[ui.load_selection]
        try:
            self._store.delete(name)
        except PersistenceError as exc:
            ui.error_message = f'Error deleting filter "{name}": {exc}'
            return
        remaining = len(self._store.list())
        if not remaining:
            self._close_overlay(Cancel())
        else:
            ui.load_selection = min(ui.load_selection, remaining - 1)
        self._set_status(f'Deleted filter "{name}"')

    _BASE_TABLE: dict[type, str] = {
        FocusNext: "_focus_next",
        FocusPane: "_focus_pane",
        Move: "_move",
        Confirm: "_confirm",
        BeginEdit: "_begin_edit",
        Cancel: "_cancel",
        OpenOverlay: "_open_overlay",
        InsertText: "_insert_text",
        DeleteBack: "_delete_back",
        RunQuery: "_run_query",
        ToggleTail: "_toggle_tail",
        ApplyTimePreset: "_apply_time_preset",
        Refresh: "_refresh",
    }

    _OVERLAY_TABLES: dict[Overlay, dict[type, str]] = {
        Overlay.GROUP_SEARCH: {
            InsertText: "_search_insert",
            DeleteBack: "_search_delete",
            Move: "_move_groups",
            Confirm: "_search_confirm",
            Cancel: "_close_overlay",
        },
        Overlay.SAVE_NAME: {
            InsertText: "_save_insert",
            DeleteBack: "_save_delete",
            Confirm: "_save_confirm",
            Cancel: "_close_overlay",
        },
        Overlay.LOAD_PICKER: {
            Move: "_load_move",
            Confirm: "_load_confirm",
            DeletePreset: "_delete_preset",
            Cancel: "_close_overlay",
        },
    }

    # ------------------------------------------------------------- helpers

    def _apply_preset(self, preset: SavedFilter) -> None:
        ui = self._ui
        ui.filter_start = preset.spec.start
        ui.filter_end = preset.spec.end
        ui.filter_query = render_shorthand(preset.spec)
        ui.filter_field = FilterField.QUERY
        ui.editing = False
        ui.active_filter = preset.spec
        if preset.group:
            ui.group_search_input = ""
            self._apply_group_search(keep=preset.group)
            selected = ui.selected_group
            if selected is not None and selected.name == preset.group:
                ui.active_group = preset.group

    def _apply_group_search(self, keep: Optional[str] = None) -> None:
        ui = self._ui
        matches = self._matcher.rank(ui.group_search_input)
        ui.visible_groups = tuple(match.candidate for match in matches)
        ui.group_selection = 0
        if keep is not None:
            for index, group in enumerate(ui.visible_groups):
                if group.name == keep:
                    ui.group_selection = index
                    break
        ui.group_scroll = clamp_scroll(
            ui.group_selection, 0, self.group_rows, len(ui.visible_groups)
        )

    def _field_value(self) -> str:
        ui = self._ui
        return {
            FilterField.START: ui.filter_start,
            FilterField.END: ui.filter_end,
            FilterField.QUERY: ui.filter_query,
        }[ui.filter_field]

    def _set_field(self, value: str) -> None:
        ui = self._ui
        if ui.filter_field == FilterField.START:
            ui.filter_start = value
        elif ui.filter_field == FilterField.END:
            ui.filter_end = value
        elif ui.filter_field == FilterField.QUERY:
            ui.filter_query = value

    def _set_status(self, message: str) -> None:
        self._ui.status_message = message
        self._ui.status_set_at = self._monotonic()

    def _require_not_editing(self, event: object) -> None:
        if self._ui.editing:
            raise StateError(self._describe(), type(event).__name__)

    def _describe(self) -> str:
        ui = self._ui
        suffix = ", editing" if ui.editing else ""
        return f"({ui.focused_pane.value}, {ui.overlay.value}{suffix})"
