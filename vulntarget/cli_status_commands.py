"""Status monitor CLI commands - status, status watch."""
from typing import Optional

import typer
from rich.console import Console

from vulntarget.cli_support import get_app_context, load_catalog

StatusApp = typer.Typer(
    help="Interactive status of every template",
    add_completion=False,
)

_console: Console = Console()

DEFAULT_STATUS_TIMEOUT = 30


def register_status_commands(app: typer.Typer, console: Console) -> None:
    """Attach the status command group to the root CLI."""
    global _console
    _console = console
    app.add_typer(StatusApp, name="status")


def _run(ctx: typer.Context, watch: bool, timeout: Optional[float]) -> None:
    from vulntarget.status.app import run_monitor

    app_ctx = get_app_context(ctx)
    catalog = load_catalog(app_ctx, _console)
    config = app_ctx.config
    run_monitor(
        catalog,
        app_ctx.registry,
        watch=watch,
        timeout=timeout,
        status_timeout=config.status_timeout,
        watch_interval=config.watch_interval,
        toast_duration=config.toast_duration,
    )


@StatusApp.callback(invoke_without_command=True)
def status_callback(
    ctx: typer.Context,
    timeout: float = typer.Option(
        DEFAULT_STATUS_TIMEOUT, "--timeout", "-t", help="Exit after this many seconds (0 = never)"
    ),
) -> None:
    """Show a one-shot status view of every template."""
    if ctx.invoked_subcommand:
        return
    _run(ctx, watch=False, timeout=timeout or None)


@StatusApp.command("watch")
def watch(ctx: typer.Context) -> None:
    """Continuously refresh the status view until you quit."""
    _run(ctx, watch=True, timeout=None)
