"""Top-level dashboard commands."""

from __future__ import annotations

import asyncio

from rich.panel import Panel
from rich.table import Table

from team_hub.cli.helpers import console, run_with_session, session_factory
from team_hub.sync.auth import HttpIdentityProvider
from team_hub.sync.client import WebSocketDocumentStore
from team_hub.sync.session import HubSession
from team_hub.sync.state import ABSENT


def render_status(session: HubSession) -> None:
    view = session.snapshot()
    dashboard = view.dashboard
    identity = session.identity or "unknown"
    if session.degraded:
        identity += " [yellow](placeholder: identity provider unavailable)[/yellow]"

    lines = [
        f"[bold]You:[/bold]          {identity}",
        f"[bold]Administrator:[/bold] {'yes' if view.is_admin(session.identity) else 'no'}",
        f"[bold]Opponent:[/bold]     {dashboard.opponent}",
        f"[bold]Date & Time:[/bold]  {dashboard.match_date_time}",
        f"[bold]Jersey Color:[/bold] {dashboard.jersey_color}",
        f"[bold]Players:[/bold]      {len(view.profiles)}",
        f"[bold]Admins:[/bold]       {len(view.admin_ids)}",
    ]
    if isinstance(session.store, WebSocketDocumentStore):
        lines.append(f"[bold]Connection:[/bold]   {session.store.get_status()}")
    if view.settings is ABSENT:
        lines.append("[yellow]Team settings not seeded yet; showing defaults.[/yellow]")
    console.print(Panel("\n".join(lines), title="Team Hub", border_style="cyan", expand=False))

    message = dashboard.coach_message or "[dim]No message[/dim]"
    footer = f"Last edited by {dashboard.last_editor}" if dashboard.last_editor else None
    console.print(Panel(message, title="Coach's Corner", subtitle=footer, border_style="yellow", expand=False))


def render_roster(session: HubSession) -> None:
    view = session.snapshot()
    if not view.profiles:
        console.print("No players yet.")
        return

    table = Table(title="Active Player Roster", show_header=True, header_style="bold", expand=False)
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Role", style="dim")
    table.add_column("Player ID", style="dim")

    own = session.own_profile
    for profile in sorted(view.profiles, key=lambda p: (p.jersey_number, p.name)):
        name = profile.name
        if own is not None and profile.id == own.id:
            name += " [green](You)[/green]"
        table.add_row(str(profile.jersey_number), name, profile.role, profile.id)
    console.print(table)


def status() -> None:
    """Show identity, admin status and the dashboard."""

    async def _status(session: HubSession) -> None:
        render_status(session)

    run_with_session(_status)


def roster() -> None:
    """List every player on the roster."""

    async def _roster(session: HubSession) -> None:
        render_roster(session)

    run_with_session(_roster)


def logout() -> None:
    """End the current identity session."""
    provider = session_factory().provider

    async def _logout() -> None:
        await provider.sign_out()
        if isinstance(provider, HttpIdentityProvider):
            await provider.aclose()

    asyncio.run(_logout())
    console.print("✅ Signed out.")
