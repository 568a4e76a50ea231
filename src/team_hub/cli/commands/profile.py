"""Self-service profile commands."""

from __future__ import annotations

from typing import Optional

import typer

from team_hub.cli.helpers import console, run_with_session
from team_hub.sync.models import ProfileFields
from team_hub.sync.profile import UpdateOutcome, new_avatar_ref
from team_hub.sync.session import HubSession

app = typer.Typer(help="Edit your own player profile")


@app.command(name="set")
def set_profile(
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name"),
    jersey: Optional[str] = typer.Option(None, "--jersey", "-j", help="Jersey number (0-99)"),
    new_avatar: bool = typer.Option(False, "--new-avatar", help="Generate a new placeholder headshot"),
) -> None:
    """Update your display name, jersey number or headshot."""

    async def _set(session: HubSession) -> None:
        avatar = None
        if new_avatar:
            own = session.own_profile
            avatar = new_avatar_ref(name or (own.name if own else ""))
        result = await session.update_profile(
            ProfileFields(name=name, jersey_number=jersey, avatar_ref=avatar)
        )
        if result.outcome == UpdateOutcome.APPLIED:
            console.print("✅ Profile updated.")
            return
        if result.outcome == UpdateOutcome.NOT_FOUND:
            console.print("❌ Your profile is not on the roster yet. Try again in a moment.")
        else:
            console.print(f"❌ {result.error}")
        raise typer.Exit(1)

    run_with_session(_set)
