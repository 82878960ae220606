"""Deployment CLI commands - start, stop, ps."""
import typer
from rich.console import Console
from rich.table import Table

from vulntarget.cli_support import (
    get_app_context,
    handle_cli_error,
    load_catalog,
    print_info,
    print_success,
    print_warning,
)
from vulntarget.core.errors import VTError
from vulntarget.core.logger import get_logger
from vulntarget.models.status import endpoints_from_ports

# Module-level console instance (will be set by register function)
console: Console = Console()
logger = get_logger(__name__)


def register_deploy_commands(app: typer.Typer, shared_console: Console) -> None:
    """Register start/stop/ps with the main Typer app."""
    global console
    console = shared_console

    @app.command("start")
    def start(
        ctx: typer.Context,
        provider_name: str = typer.Option(..., "--provider", "-p", help="Provider to run the template on"),
        template_id: str = typer.Option(..., "--id", "-i", help="Template ID"),
    ):
        """Start a template environment."""
        app_ctx = get_app_context(ctx)
        catalog = load_catalog(app_ctx, console)

        try:
            template = catalog.get(template_id)
            provider = app_ctx.registry.require(provider_name)

            console.print(f"[dim]Starting {template_id} on {provider_name}...[/dim]")
            provider.start(template)
            print_success(console, f"{template_id} started on {provider_name}")

            try:
                endpoints = endpoints_from_ports(provider.status(template).ports)
            except VTError as e:
                logger.debug(f"Could not read endpoints of {template_id}: {e}")
                endpoints = []
            for endpoint in endpoints:
                print_info(console, f"Endpoint: {endpoint}", prefix="  →")
        except VTError as e:
            handle_cli_error(e, console, verbose=app_ctx.verbose)

    @app.command("stop")
    def stop(
        ctx: typer.Context,
        provider_name: str = typer.Option(..., "--provider", "-p", help="Provider the template runs on"),
        template_id: str = typer.Option(..., "--id", "-i", help="Template ID"),
    ):
        """Stop a template environment."""
        app_ctx = get_app_context(ctx)
        catalog = load_catalog(app_ctx, console)

        try:
            template = catalog.get(template_id)
            provider = app_ctx.registry.require(provider_name)

            console.print(f"[dim]Stopping {template_id} on {provider_name}...[/dim]")
            report = provider.stop(template)
            if report is not None and not report.ok:
                for error in report.errors:
                    print_warning(console, error)
            print_success(console, f"{template_id} stopped on {provider_name}")
        except VTError as e:
            handle_cli_error(e, console, verbose=app_ctx.verbose)

    @app.command("ps")
    def ps(ctx: typer.Context):
        """List deployments with their live status."""
        app_ctx = get_app_context(ctx)
        catalog = load_catalog(app_ctx, console)

        try:
            deployments = app_ctx.ledger.list_deployments()
        except VTError as e:
            handle_cli_error(e, console, verbose=app_ctx.verbose)

        if not deployments:
            print_info(console, "No running deployments")
            return

        table = Table(title="Deployments", show_header=True, header_style="bold cyan")
        table.add_column("Provider")
        table.add_column("Template", style="cyan")
        table.add_column("Status")
        table.add_column("Health")
        table.add_column("Endpoints")
        table.add_column("Created", style="dim")

        for deployment in deployments:
            state, health, endpoints = "unknown", "unknown", "-"
            provider = app_ctx.registry.get_provider(deployment.provider_name)
            if provider is None:
                state = "provider not found"
            elif deployment.template_id not in catalog:
                state = "template not found"
            else:
                try:
                    status = provider.status(catalog.get(deployment.template_id))
                    state, health = status.state, status.health
                    endpoints = ", ".join(endpoints_from_ports(status.ports)) or "-"
                except VTError as e:
                    logger.debug(f"Status of {deployment.key} unavailable: {e}")

            table.add_row(
                deployment.provider_name,
                deployment.template_id,
                state,
                health,
                endpoints,
                deployment.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            )

        console.print(table)
