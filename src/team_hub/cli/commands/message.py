"""Coach's message commands."""

from __future__ import annotations

import typer

from team_hub.cli.helpers import console, run_with_session
from team_hub.sync.session import HubSession

app = typer.Typer(help="Coach's message on the dashboard")


@app.command(name="set")
def set_message(text: str = typer.Argument(..., help="New coach's message")) -> None:
    """Replace the coach's message (administrators only)."""

    async def _set(session: HubSession) -> None:
        await session.update_coach_message(text)
        console.print("✅ Coach's message updated.")

    run_with_session(_set)


@app.command()
def show() -> None:
    """Print the current coach's message."""

    async def _show(session: HubSession) -> None:
        dashboard = session.snapshot().dashboard
        console.print(dashboard.coach_message or "No message")
        if dashboard.last_editor:
            console.print(f"[dim]Last edited by {dashboard.last_editor} at {dashboard.last_edited_at}[/dim]")

    run_with_session(_show)
