"""Interactive status monitor built with Textual."""
import threading
from typing import List, Optional

from rich.console import Group, RenderableType
from rich.table import Table
from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.message import Message
from textual.widgets import Footer, Header, Static

from vulntarget.core.errors import NotRunningError, VTError
from vulntarget.core.logger import get_logger
from vulntarget.core.template_loader import TemplateCatalog
from vulntarget.models.status import HEALTH_HEALTHY, HEALTH_PARTIAL, HEALTH_UNHEALTHY, endpoints_from_ports
from vulntarget.services.providers.registry import ProviderRegistry
from vulntarget.status.collector import StatusCollector, short_provider_name
from vulntarget.status.model import (
    ACTION_RESTART,
    ACTION_START,
    ACTION_STOP,
    LEVEL_ERROR,
    PHASE_ACTING,
    PHASE_LOADING,
    ActionDone,
    DeadlineReached,
    ExpireToast,
    FetchSnapshot,
    KeyPressed,
    MonitorModel,
    Quit,
    RunAction,
    ScheduleTick,
    SnapshotFailed,
    SnapshotLoaded,
    ToastExpired,
    WatchTick,
)

logger = get_logger(__name__)

HEALTH_STYLES = {
    HEALTH_HEALTHY: "green",
    HEALTH_PARTIAL: "yellow",
    HEALTH_UNHEALTHY: "red",
}

HELP_TEXT = """\
↑/k  ↓/j      move
enter/space   expand row
a / s / r     start / stop / restart
i             info panel
ctrl+r        refresh
?             toggle help
q/esc/ctrl+c  quit"""


def render_table(model: MonitorModel) -> RenderableType:
    """Render the target list."""
    if model.phase == PHASE_LOADING and not model.targets:
        return Text("⠋ Loading templates...", style="cyan")
    if not model.runtime_available:
        return Text("Container runtime unavailable, no status to show", style="yellow")
    if not model.targets:
        return Text("No templates found", style="dim")

    table = Table(expand=True, caption=f"{len(model.targets)} targets")
    table.add_column("", width=1)
    table.add_column("Template", style="cyan")
    table.add_column("Provider")
    table.add_column("Status")
    table.add_column("Health")
    table.add_column("Ports")

    for index, row in enumerate(model.targets):
        marker = "›" if index == model.cursor else ""
        health = Text(row.health, style=HEALTH_STYLES.get(row.health, "dim"))
        table.add_row(
            marker,
            row.template_id,
            short_provider_name(row.provider_name),
            row.state,
            health,
            ", ".join(row.ports) or "-",
            style="reverse" if index == model.cursor else None,
        )
        if row.key in model.expanded:
            details = row.error or (row.status.message if row.status else "") or row.template.info.description
            table.add_row("", Text(details or "-", style="dim"), "", "", "", "")
    return table


def render_info(model: MonitorModel) -> RenderableType:
    """Render the info panel of the selected target."""
    row = model.selected
    if row is None:
        return Text("")
    info = row.template.info
    lines = [
        Text(f"{info.name or row.template_id}", style="bold"),
        Text(f"Author: {info.author or '-'}"),
        Text(f"Technologies: {', '.join(info.technologies) or '-'}"),
        Text(f"Tags: {', '.join(info.tags) or '-'}"),
        Text(f"Endpoints: {', '.join(row.endpoints) or '-'}"),
        Text(f"Containers: {row.container_count}"),
    ]
    if row.checked_at is not None:
        lines.append(Text(f"Checked: {row.checked_at.astimezone():%H:%M:%S}", style="dim"))
    return Group(*lines)


def render_status_line(model: MonitorModel) -> RenderableType:
    if model.toast is not None:
        style = "bold red" if model.toast.level == LEVEL_ERROR else "bold green"
        return Text(model.toast.text, style=style)
    if model.phase == PHASE_ACTING and model.pending_action is not None:
        action = model.pending_action
        return Text(f"⠋ {action.action} {action.template_id}...", style="cyan")
    if model.phase == PHASE_LOADING and model.targets:
        return Text("⠋ Refreshing...", style="cyan")
    return Text("")


class StatusMonitorApp(App):
    """Terminal monitor for template deployments."""

    TITLE = "vulntarget"
    SUB_TITLE = "status"

    _inherit_bindings = False

    BINDINGS = [
        Binding("up", "press('up')", "Up", show=False),
        Binding("k", "press('k')", "Up", show=False),
        Binding("down", "press('down')", "Down", show=False),
        Binding("j", "press('j')", "Down", show=False),
        Binding("enter", "press('enter')", "Expand", show=False),
        Binding("space", "press('space')", "Expand", show=False),
        ("a", "press('a')", "Start"),
        ("s", "press('s')", "Stop"),
        ("r", "press('r')", "Restart"),
        ("i", "press('i')", "Info"),
        Binding("ctrl+r", "press('ctrl+r')", "Refresh", priority=True),
        ("question_mark", "press('?')", "Help"),
        ("q", "press('q')", "Quit"),
        Binding("escape", "press('escape')", "Quit", show=False),
        Binding("ctrl+c", "press('ctrl+c')", "Quit", show=False, priority=True),
    ]

    class ModelMessage(Message):
        """Carries a monitor message from a worker thread to the event loop."""

        def __init__(self, payload: object) -> None:
            super().__init__()
            self.payload = payload

    def __init__(self, catalog: TemplateCatalog, registry: ProviderRegistry,
                 collector: StatusCollector, model: MonitorModel,
                 timeout: Optional[float] = None):
        """
        Args:
            catalog: Template catalog
            registry: Providers actions are dispatched to
            collector: Snapshot source
            model: Reducer holding the view state
            timeout: Seconds after which the monitor exits on its own
        """
        super().__init__()
        self.catalog = catalog
        self.registry = registry
        self.collector = collector
        self.model = model
        self.exit_after = timeout
        self._cancel = threading.Event()

    def compose(self) -> ComposeResult:
        yield Header()
        yield Vertical(
            Static(id="targets"),
            Static(id="info"),
            Static(HELP_TEXT, id="help"),
            Static(id="status-line"),
        )
        yield Footer()

    def on_mount(self) -> None:
        if self.exit_after:
            self.set_timer(self.exit_after, lambda: self.apply_message(DeadlineReached()))
        self.run_commands(self.model.init())
        self.refresh_view()

    def on_unmount(self) -> None:
        self._cancel.set()

    def action_press(self, key: str) -> None:
        self.apply_message(KeyPressed(key))

    def on_status_monitor_app_model_message(self, event: "StatusMonitorApp.ModelMessage") -> None:
        self.apply_message(event.payload)

    # -------------------- reducer loop --------------------

    def apply_message(self, message: object) -> None:
        """Feed a message to the model, run its commands, redraw."""
        commands = self.model.update(message)
        self.run_commands(commands)
        if not self.model.quitting:
            self.refresh_view()

    def run_commands(self, commands: List[object]) -> None:
        for command in commands:
            if isinstance(command, FetchSnapshot):
                self.run_worker(self._fetch, thread=True, group="fetch")
            elif isinstance(command, RunAction):
                self.run_worker(lambda c=command: self._run_action(c), thread=True, group="action")
            elif isinstance(command, ScheduleTick):
                self.set_timer(command.delay, lambda: self.apply_message(WatchTick()))
            elif isinstance(command, ExpireToast):
                self.set_timer(command.delay, lambda t=command.toast_id: self.apply_message(ToastExpired(t)))
            elif isinstance(command, Quit):
                self._cancel.set()
                self.exit()

    def refresh_view(self) -> None:
        self.query_one("#targets", Static).update(render_table(self.model))
        info = self.query_one("#info", Static)
        info.display = self.model.show_info
        info.update(render_info(self.model))
        self.query_one("#help", Static).display = self.model.show_help
        self.query_one("#status-line", Static).update(render_status_line(self.model))

    # -------------------- workers (thread) --------------------

    def _post(self, payload: object) -> None:
        self.post_message(self.ModelMessage(payload))

    def _fetch(self) -> None:
        try:
            snapshot = self.collector.collect(cancel=self._cancel)
        except Exception as e:
            logger.debug(f"Status collection failed: {e}")
            self._post(SnapshotFailed(str(e)))
            return
        self._post(SnapshotLoaded(snapshot))

    def _run_action(self, command: RunAction) -> None:
        endpoints: List[str] = []
        try:
            provider = self.registry.require(command.provider_name)
            template = self.catalog.get(command.template_id)
            if command.action in (ACTION_STOP, ACTION_RESTART):
                try:
                    provider.stop(template)
                except NotRunningError:
                    if command.action == ACTION_STOP:
                        raise
            if command.action in (ACTION_START, ACTION_RESTART):
                provider.start(template)
                endpoints = endpoints_from_ports(provider.status(template).ports)
        except VTError as e:
            self._post(ActionDone(command.action, command.template_id, command.provider_name, error=str(e)))
            return
        except Exception as e:
            logger.error(f"{command.action} {command.template_id} failed: {e}")
            self._post(ActionDone(command.action, command.template_id, command.provider_name, error=str(e)))
            return
        self._post(ActionDone(command.action, command.template_id, command.provider_name, endpoints=endpoints))


def run_monitor(catalog: TemplateCatalog, registry: ProviderRegistry, watch: bool = False,
                timeout: Optional[float] = None, status_timeout: float = 2.0,
                watch_interval: float = 2.0, toast_duration: float = 3.0) -> MonitorModel:
    """Run the monitor until the user quits or the timeout expires.

    Returns:
        Final model state
    """
    collector = StatusCollector(catalog, registry, timeout=status_timeout)
    model = MonitorModel(watch=watch, watch_interval=watch_interval, toast_duration=toast_duration)
    app = StatusMonitorApp(catalog, registry, collector, model, timeout=timeout)
    app.run()
    return model
