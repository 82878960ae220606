"""Template catalog CLI commands - list, validate."""
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from vulntarget.cli_support import (
    get_app_context,
    handle_cli_error,
    load_catalog,
    print_error,
    print_warning,
    resolve_templates_dir,
)
from vulntarget.core.template_loader import validate_templates_dir

# Module-level console instance (will be set by register function)
console: Console = Console()


def register_template_commands(app: typer.Typer, shared_console: Console) -> None:
    """Register template catalog commands with the main Typer app."""
    global console
    console = shared_console

    @app.command("list")
    def list_templates(
        ctx: typer.Context,
        filter_tag: Optional[str] = typer.Option(
            None, "--filter", "-f", help="Only show templates whose tags or technologies contain TAG"
        ),
    ):
        """List available templates."""
        catalog = load_catalog(get_app_context(ctx), console)
        templates = sorted(catalog.filter(filter_tag), key=lambda t: t.id)

        table = Table(
            title="Available Templates",
            show_header=True,
            header_style="bold cyan",
            caption=f"Total: {len(templates)} templates",
        )
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Author", style="dim")
        table.add_column("Technologies", style="green")
        table.add_column("Tags", style="yellow")

        for template in templates:
            info = template.info
            table.add_row(
                template.id,
                info.name,
                info.author,
                ", ".join(info.technologies),
                ", ".join(info.tags),
            )

        console.print(table)

    @app.command("validate")
    def validate(
        ctx: typer.Context,
        templates_dir: Optional[Path] = typer.Option(
            None, "--templates-dir", "-d", help="Templates directory to validate"
        ),
    ):
        """Validate every template descriptor (offline, no runtime needed)."""
        app_ctx = get_app_context(ctx)
        target = resolve_templates_dir(templates_dir, app_ctx.config)
        if not target.is_dir():
            handle_cli_error(FileNotFoundError(f"templates directory not found: {target}"), console)

        console.print(f"[bold]Validating templates in {target}[/bold]\n")
        report = validate_templates_dir(target)

        for check in report.checks:
            if check.ok:
                console.print(f"✅ {check.name}")
            else:
                console.print(f"❌ {check.name}")
            for warning in check.warnings:
                print_warning(console, f"{check.name}: {warning}", prefix="  ⚠")

        if report.errors:
            console.print("\n[bold red]Errors:[/bold red]")
            for error in report.errors:
                print_error(console, error, prefix="  •")

        console.print(
            f"\nValidated {len(report.checks)} templates: "
            f"[green]{report.passed} passed[/green], [red]{report.failed} failed[/red]"
        )

        if not report.ok:
            raise typer.Exit(1)
