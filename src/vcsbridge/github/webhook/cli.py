"""CLI commands for GitHub webhook bindings.

Example:
    $ vcsbridge github check my-binding
    $ vcsbridge github rotate-secret my-binding
    $ vcsbridge github serve --port 8765
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from vcsbridge.configuration.settings import DEFAULT_CONFIG_PATH, bootstrap_settings
from vcsbridge.container import Services, build_services
from vcsbridge.errors import VCSBridgeError
from vcsbridge.errors.user_messages import format_error_for_cli

from .security import generate_secret
from .server import WebhookServer

github_app = typer.Typer(help="Manage GitHub webhook bindings")
console = Console()


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------


def _services(config_path: Path) -> Services:
    try:
        return build_services(bootstrap_settings(path=config_path))
    except VCSBridgeError as exc:
        console.print(f"[red]{format_error_for_cli(exc)}[/red]")
        raise typer.Exit(1)


def _render_result(title: str, binding_id: str, result: Dict[str, Any]) -> None:
    errors = result.get("errors") or []
    if errors:
        console.print(f"[red]Error:[/red] {title} failed for binding '{binding_id}'", style="bold")
        for error in errors:
            console.print(error)
        raise typer.Exit(1)

    table = Table(title=f"{title}: {binding_id}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    for key, value in result.items():
        if key == "errors" or value is None:
            continue
        if isinstance(value, (dict, list)):
            value = json.dumps(value, indent=2, default=str)
        table.add_row(key, str(value))
    console.print(table)


ConfigOption = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Path to config file")


# ---------------------------------------------------------------------------
# CLI Commands
# ---------------------------------------------------------------------------


@github_app.command("check")
def check_binding(
    binding_id: str = typer.Argument(..., help="Binding ID"),
    config_path: Path = ConfigOption,
) -> None:
    """Compare a binding with its remote webhook and store the status."""
    services = _services(config_path)
    _render_result("Check", binding_id, services.admin.check_synchro(binding_id))


@github_app.command("sync")
def synchronize_binding(
    binding_id: str = typer.Argument(..., help="Binding ID"),
    config_path: Path = ConfigOption,
) -> None:
    """Create or update the remote webhook of a binding."""
    services = _services(config_path)
    _render_result("Synchronize", binding_id, services.admin.synchronize(binding_id))


@github_app.command("stop")
def stop_synchronization(
    binding_id: str = typer.Argument(..., help="Binding ID"),
    config_path: Path = ConfigOption,
) -> None:
    """Delete the remote webhook and forget it locally."""
    services = _services(config_path)
    _render_result("Stop synchronization", binding_id, services.admin.stop_synchronization(binding_id))


@github_app.command("info")
def binding_info(
    binding_id: str = typer.Argument(..., help="Binding ID"),
    config_path: Path = ConfigOption,
) -> None:
    """Refresh and show repository or organization metadata."""
    services = _services(config_path)
    _render_result("Info", binding_id, services.admin.get_info(binding_id))


@github_app.command("revoke-token")
def revoke_token(
    binding_id: str = typer.Argument(..., help="Binding ID"),
    config_path: Path = ConfigOption,
) -> None:
    """Drop the cached installation token of the binding's connector."""
    services = _services(config_path)
    _render_result("Revoke token", binding_id, services.admin.revoke_token(binding_id))


@github_app.command("rotate-secret")
def rotate_secret(
    binding_id: str = typer.Argument(..., help="Binding ID"),
    secret: Optional[str] = typer.Option(None, "--secret", help="New secret; generated when omitted"),
    config_path: Path = ConfigOption,
) -> None:
    """Replace the webhook secret of a binding."""
    services = _services(config_path)
    _render_result("Rotate secret", binding_id, services.admin.rotate_secret(binding_id, secret))


@github_app.command("automation")
def set_automation(
    binding_id: str = typer.Argument(..., help="Binding ID"),
    automation_id: str = typer.Argument(..., help="Automation ID"),
    active: bool = typer.Option(True, "--enable/--disable", help="Enable or disable the automation"),
    config_path: Path = ConfigOption,
) -> None:
    """Enable or disable an automation bound to a binding."""
    services = _services(config_path)
    _render_result(
        "Automation", binding_id, services.admin.set_automation_status(binding_id, automation_id, active)
    )


@github_app.command("remove")
def remove_binding(
    binding_id: str = typer.Argument(..., help="Binding ID"),
    config_path: Path = ConfigOption,
) -> None:
    """Delete the remote webhook and the binding itself."""
    services = _services(config_path)
    _render_result("Remove", binding_id, services.admin.remove_binding(binding_id))


@github_app.command("run-synchro")
def run_synchronization(
    budget: float = typer.Option(60.0, "--budget", help="Time budget in seconds"),
    config_path: Path = ConfigOption,
) -> None:
    """Check every binding and auto-synchronize those that drifted."""
    services = _services(config_path)
    report = services.synchronization.run(budget)
    console.print(
        f"[green]✓[/green] Visited {report.visited} binding(s), "
        f"{report.failed} failed, {report.remaining} left for the next run"
    )
    if report.failed:
        raise typer.Exit(1)


@github_app.command("process-queue")
def process_queue(
    budget: Optional[float] = typer.Option(None, "--budget", help="Time budget in seconds"),
    config_path: Path = ConfigOption,
) -> None:
    """Dispatch queued deliveries in arrival order."""
    services = _services(config_path)
    report = services.processor.run(budget)
    console.print(
        f"[green]✓[/green] Processed {report.visited} delivery(ies), "
        f"{report.failed} failed, {report.skipped} dropped"
    )
    if report.failed:
        raise typer.Exit(1)


@github_app.command("generate-secret")
def generate_secret_command() -> None:
    """Print a fresh webhook secret."""
    typer.echo(generate_secret())


@github_app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Listen address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listen port"),
    config_path: Path = ConfigOption,
) -> None:
    """Run the webhook receiver until interrupted."""
    services = _services(config_path)
    webhook = services.settings.webhook
    server = WebhookServer(
        services.delivery,
        listen_host=host or webhook.listen_host,
        listen_port=port or webhook.listen_port,
        path=webhook.callback_path,
        processor=services.processor if webhook.process_asynchronously else None,
        process_interval=webhook.async_handler_interval,
    )

    async def run() -> None:
        await server.start()
        try:
            await asyncio.Event().wait()
        finally:
            await server.stop()

    console.print(
        f"[bold]Listening on[/bold] {server.listen_host}:{server.listen_port}{server.path}"
    )
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")


__all__ = ["github_app"]
