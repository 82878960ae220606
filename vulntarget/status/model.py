"""
Status monitor state machine.

``MonitorModel.update(message)`` is a pure reducer: it mutates only the view
state and returns the commands the app must execute next. Commands run
outside the reducer and report back exclusively through new messages.

Phases: LOADING -> READY <-> ACTING -> LOADING -> READY
"""
from dataclasses import dataclass, field
from typing import List, Optional, Set

from vulntarget.status.collector import Snapshot, TargetStatus

PHASE_LOADING = "loading"
PHASE_READY = "ready"
PHASE_ACTING = "acting"

ACTION_START = "start"
ACTION_STOP = "stop"
ACTION_RESTART = "restart"

LEVEL_INFO = "info"
LEVEL_ERROR = "error"

KEYS_UP = {"up", "k"}
KEYS_DOWN = {"down", "j"}
KEYS_TOGGLE = {"enter", "space"}
KEYS_QUIT = {"q", "escape", "ctrl+c"}
KEYS_HELP = {"?", "question_mark"}
KEYS_REFRESH = {"ctrl+r"}
KEYS_INFO = {"i"}
KEY_ACTIONS = {"a": ACTION_START, "s": ACTION_STOP, "r": ACTION_RESTART}

ACTION_VERBS = {ACTION_START: "Started", ACTION_STOP: "Stopped", ACTION_RESTART: "Restarted"}


# -------------------- messages --------------------

@dataclass
class KeyPressed:
    key: str


@dataclass
class SnapshotLoaded:
    snapshot: Snapshot


@dataclass
class SnapshotFailed:
    error: str


@dataclass
class ActionDone:
    action: str
    template_id: str
    provider_name: str
    endpoints: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class WatchTick:
    pass


@dataclass
class ToastExpired:
    toast_id: int


@dataclass
class DeadlineReached:
    pass


# -------------------- commands --------------------

@dataclass
class FetchSnapshot:
    pass


@dataclass
class RunAction:
    action: str
    template_id: str
    provider_name: str


@dataclass
class ScheduleTick:
    delay: float


@dataclass
class ExpireToast:
    toast_id: int
    delay: float


@dataclass
class Quit:
    pass


@dataclass
class Toast:
    id: int
    text: str
    level: str = LEVEL_INFO


class MonitorModel:
    """View state of the status monitor."""

    def __init__(self, watch: bool = False, watch_interval: float = 2.0, toast_duration: float = 3.0):
        self.watch = watch
        self.watch_interval = watch_interval
        self.toast_duration = toast_duration

        self.phase = PHASE_LOADING
        self.targets: List[TargetStatus] = []
        self.runtime_available = True
        self.cursor = 0
        self.expanded: Set[str] = set()
        self.show_info = False
        self.show_help = False
        self.toast: Optional[Toast] = None
        self.last_error: Optional[str] = None
        self.pending_action: Optional[RunAction] = None
        self.fetching = False
        self.refetch_pending = False
        self.tick_pending = False
        self.quitting = False
        self._toast_seq = 0

    def init(self) -> List[object]:
        """Commands to run when the monitor starts."""
        self.phase = PHASE_LOADING
        self.fetching = True
        return [FetchSnapshot()]

    @property
    def selected(self) -> Optional[TargetStatus]:
        if not self.targets:
            return None
        return self.targets[self.cursor]

    def update(self, message: object) -> List[object]:
        """Apply a message and return follow-up commands."""
        if isinstance(message, KeyPressed):
            return self._on_key(message.key)
        if isinstance(message, SnapshotLoaded):
            return self._on_snapshot(message.snapshot)
        if isinstance(message, SnapshotFailed):
            return self._on_snapshot_failed(message.error)
        if isinstance(message, ActionDone):
            return self._on_action_done(message)
        if isinstance(message, WatchTick):
            return self._on_tick()
        if isinstance(message, ToastExpired):
            if self.toast is not None and self.toast.id == message.toast_id:
                self.toast = None
            return []
        if isinstance(message, DeadlineReached):
            return self._quit()
        return []

    # -------------------- handlers --------------------

    def _on_key(self, key: str) -> List[object]:
        if key in KEYS_QUIT:
            return self._quit()
        if key in KEYS_HELP:
            self.show_help = not self.show_help
            return []
        if self.phase == PHASE_LOADING:
            return []

        if key in KEYS_UP:
            self._move(-1)
        elif key in KEYS_DOWN:
            self._move(1)
        elif key in KEYS_TOGGLE:
            row = self.selected
            if row is not None:
                self.expanded ^= {row.key}
        elif key in KEYS_INFO:
            self.show_info = not self.show_info
        elif key in KEYS_REFRESH:
            return self._fetch(show_spinner=True)
        elif key in KEY_ACTIONS:
            return self._start_action(KEY_ACTIONS[key])
        return []

    def _move(self, delta: int):
        if self.targets:
            self.cursor = max(0, min(len(self.targets) - 1, self.cursor + delta))

    def _start_action(self, action: str) -> List[object]:
        row = self.selected
        if row is None or self.phase == PHASE_ACTING:
            return []
        self.phase = PHASE_ACTING
        self.pending_action = RunAction(action=action, template_id=row.template_id,
                                        provider_name=row.provider_name)
        return [self.pending_action]

    def _fetch(self, show_spinner: bool, after_action: bool = False) -> List[object]:
        if show_spinner and self.pending_action is None:
            self.phase = PHASE_LOADING
        if self.fetching:
            # the in-flight snapshot may predate the action
            self.refetch_pending = self.refetch_pending or after_action
            return []
        self.fetching = True
        return [FetchSnapshot()]

    def _after_fetch(self) -> List[object]:
        self.fetching = False
        if self.refetch_pending and not self.quitting:
            self.refetch_pending = False
            self.fetching = True
            return [FetchSnapshot()]
        if self.phase == PHASE_LOADING:
            self.phase = PHASE_READY
        if self.watch and not self.tick_pending and not self.quitting:
            self.tick_pending = True
            return [ScheduleTick(self.watch_interval)]
        return []

    def _on_snapshot(self, snapshot: Snapshot) -> List[object]:
        selected_key = self.selected.key if self.selected else None
        self.targets = list(snapshot.targets)
        self.runtime_available = snapshot.runtime_available
        keys = [row.key for row in self.targets]
        self.cursor = keys.index(selected_key) if selected_key in keys else \
            min(self.cursor, max(len(self.targets) - 1, 0))
        self.expanded &= set(keys)
        return self._after_fetch()

    def _on_snapshot_failed(self, error: str) -> List[object]:
        self.last_error = error
        commands = [self._show_toast(f"Refresh failed: {error}", LEVEL_ERROR)]
        return commands + self._after_fetch()

    def _on_action_done(self, done: ActionDone) -> List[object]:
        self.pending_action = None
        self.phase = PHASE_READY
        if done.error:
            self.last_error = done.error
            text = f"{done.action.capitalize()} {done.template_id} failed: {done.error}"
            toast = self._show_toast(text, LEVEL_ERROR)
        else:
            text = f"{ACTION_VERBS.get(done.action, done.action)} {done.template_id}"
            if done.endpoints:
                text += f" at {', '.join(done.endpoints)}"
            toast = self._show_toast(text, LEVEL_INFO)
        return [toast] + self._fetch(show_spinner=True, after_action=True)

    def _on_tick(self) -> List[object]:
        self.tick_pending = False
        if not self.watch or self.quitting:
            return []
        return self._fetch(show_spinner=False)

    def _show_toast(self, text: str, level: str) -> ExpireToast:
        self._toast_seq += 1
        self.toast = Toast(id=self._toast_seq, text=text, level=level)
        return ExpireToast(toast_id=self._toast_seq, delay=self.toast_duration)

    def _quit(self) -> List[object]:
        self.quitting = True
        return [Quit()]
