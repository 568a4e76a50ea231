"""``team-hub config`` commands."""

from __future__ import annotations

import typer
from rich.table import Table

from team_hub.cli.helpers import console
from team_hub.sync.config import HubConfig

app = typer.Typer(help="Show or change the hub connection settings")


def config_factory() -> HubConfig:
    return HubConfig()


@app.command()
def show() -> None:
    """Display the resolved configuration."""
    config = config_factory()
    table = Table(title="Team Hub Configuration", show_header=True, header_style="bold")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Config file", str(config.config_file))
    table.add_row("App ID", config.get_app_id())
    table.add_row("Server URL", config.get_server_url())
    table.add_row("Identity timeout", f"{config.get_identity_timeout():g}s")
    table.add_row("Bootstrap token", "set" if config.get_bootstrap_token() else "not set")
    console.print(table)


@app.command(name="set-server")
def set_server(url: str = typer.Argument(..., help="Hub server URL (https://...)")) -> None:
    """Point this client at another hub server."""
    if not url.startswith("https://"):
        console.print("❌ Server URL must use https://")
        raise typer.Exit(1)
    config_factory().set_server_url(url.rstrip("/"))
    console.print(f"✅ Server URL set to {url.rstrip('/')}")


@app.command(name="set-app")
def set_app(app_id: str = typer.Argument(..., help="Deployment identifier")) -> None:
    """Switch to another deployment on the same server."""
    app_id = app_id.strip()
    if not app_id or "/" in app_id:
        console.print("❌ App ID must be non-empty and must not contain '/'")
        raise typer.Exit(1)
    config_factory().set_app_id(app_id)
    console.print(f"✅ App ID set to {app_id}")
