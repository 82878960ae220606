#!/usr/bin/env python3
"""vulntarget CLI - Vulnerable lab environments from declarative templates."""
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from vulntarget.cli_deploy_commands import register_deploy_commands
from vulntarget.cli_status_commands import register_status_commands
from vulntarget.cli_support import AppContext, setup_file_logging
from vulntarget.cli_template_commands import register_template_commands
from vulntarget.core.config import VTConfig
from vulntarget.core.logger import get_logger, set_verbosity

app = typer.Typer(
    name="vt",
    help="""vulntarget - Vulnerable lab environments on demand

Quick start:
  vt list                                   # Browse templates
  vt start --provider docker-compose --id X # Bring a lab up
  vt ps                                     # See what is running
  vt status watch                           # Live dashboard
  vt stop --provider docker-compose --id X  # Tear it down
""",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Write logs to this file"),
    templates_dir: Optional[Path] = typer.Option(
        None, "--templates-dir", help="Template catalog directory (default: ./templates)"
    ),
):
    """Global options shared by every command."""
    set_verbosity(verbose)
    setup_file_logging(log_file=log_file, verbose=verbose)

    if ctx.obj is None:
        config = VTConfig.from_env()
        if templates_dir:
            config.templates_dir = templates_dir
        ctx.obj = AppContext(config=config, verbose=verbose)
        ctx.call_on_close(ctx.obj.close)
    elif templates_dir:
        ctx.obj.config.templates_dir = templates_dir


# Attach modular subcommands
register_template_commands(app, console)
register_deploy_commands(app, console)
register_status_commands(app, console)


def main():
    app()


if __name__ == "__main__":
    main()
