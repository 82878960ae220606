"""Shared utilities for vulntarget CLI modules."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from vulntarget.core.config import VTConfig, get_config
from vulntarget.core.errors import VTError
from vulntarget.core.state_store import DeploymentLedger
from vulntarget.core.template_loader import TemplateCatalog
from vulntarget.services.providers.registry import ProviderRegistry, build_default_registry


class AppContext:
    """Long-lived components shared by every command.

    Built once per invocation by the root callback. Components are created
    on first use so commands only pay for what they touch.
    """

    def __init__(
        self,
        config: Optional[VTConfig] = None,
        catalog: Optional[TemplateCatalog] = None,
        ledger: Optional[DeploymentLedger] = None,
        registry: Optional[ProviderRegistry] = None,
        verbose: bool = False,
    ):
        self.config = config or get_config()
        self.verbose = verbose
        self._catalog = catalog
        self._ledger = ledger
        self._registry = registry

    @property
    def catalog(self) -> TemplateCatalog:
        if self._catalog is None:
            self._catalog = TemplateCatalog.load(self.config.templates_dir)
        return self._catalog

    @property
    def ledger(self) -> DeploymentLedger:
        if self._ledger is None:
            self._ledger = DeploymentLedger.open(self.config.db_path, self.config.bucket_name)
        return self._ledger

    @property
    def registry(self) -> ProviderRegistry:
        if self._registry is None:
            self._registry = build_default_registry(self.config, self.ledger)
        return self._registry

    def close(self) -> None:
        if self._ledger is not None:
            self._ledger.close()


def get_app_context(ctx: typer.Context) -> AppContext:
    """Return the AppContext of the invocation, creating a default one if needed."""
    root = ctx.find_root()
    if root.obj is None:
        root.obj = AppContext()
    return root.obj


def load_catalog(app_ctx: AppContext, console: Console) -> TemplateCatalog:
    """Load the template catalog or exit; a broken catalog is fatal."""
    try:
        return app_ctx.catalog
    except (VTError, FileNotFoundError) as e:
        handle_cli_error(e, console, verbose=app_ctx.verbose)


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Set up file logging for CLI commands.

    Args:
        log_file: Path to log file (optional)
        verbose: Enable verbose logging
    """
    from vulntarget.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)


def resolve_templates_dir(templates_dir: Optional[Path], config: VTConfig) -> Path:
    return Path(templates_dir) if templates_dir else config.templates_dir


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Handle CLI errors with consistent formatting.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    console.print(f"[red]Error:[/red] {e}")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    """Print success message with consistent formatting.

    Args:
        console: Rich console for output
        message: Success message
        prefix: Prefix symbol (default: ✓)
    """
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    """Print error message with consistent formatting."""
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    """Print warning message with consistent formatting."""
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    """Print info message with consistent formatting."""
    console.print(f"[cyan]{prefix}[/cyan] {message}")
