"""Admin set commands."""

from __future__ import annotations

import typer
from rich.table import Table

from team_hub.cli.helpers import console, run_with_session
from team_hub.sync.session import HubSession

app = typer.Typer(help="Manage which user IDs have admin access")


@app.command(name="list")
def list_admins() -> None:
    """Show the current administrators."""

    async def _list(session: HubSession) -> None:
        admin_ids = session.snapshot().admin_ids
        if not admin_ids:
            console.print("No administrators known yet.")
            return
        table = Table(title="Current Administrators", show_header=True, header_style="bold")
        table.add_column("User ID")
        for admin_id in admin_ids:
            label = f"{admin_id} [green](You)[/green]" if admin_id == session.identity else admin_id
            table.add_row(label)
        console.print(table)

    run_with_session(_list)


@app.command()
def add(user_id: str = typer.Argument(..., help="User ID to promote")) -> None:
    """Grant admin access to a user ID."""

    async def _add(session: HubSession) -> None:
        if user_id.strip() in session.snapshot().admin_ids:
            console.print(f"{user_id.strip()} is already an administrator.")
            return
        await session.add_admin(user_id)
        console.print(f"✅ {user_id.strip()} is now an administrator.")

    run_with_session(_add)


@app.command()
def remove(user_id: str = typer.Argument(..., help="User ID to demote")) -> None:
    """Revoke admin access from a user ID."""

    async def _remove(session: HubSession) -> None:
        await session.remove_admin(user_id)
        console.print(f"✅ {user_id.strip()} is no longer an administrator.")

    run_with_session(_remove)
