"""team-hub command-line entry point."""

from __future__ import annotations

import logging
import os

import typer

from team_hub.cli.commands import admin, config_cmd, hub, message, profile

app = typer.Typer(
    name="team-hub",
    help="Shared team roster and dashboard, synced across clients",
    add_completion=False,
    no_args_is_help=True,
)

app.command()(hub.status)
app.command()(hub.roster)
app.command()(hub.logout)
app.add_typer(admin.app, name="admin")
app.add_typer(profile.app, name="profile")
app.add_typer(message.app, name="message")
app.add_typer(config_cmd.app, name="config")


@app.callback()
def callback(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")) -> None:
    """Configure logging before any command runs."""
    level = logging.getLevelName(os.environ.get("TEAM_HUB_LOG_LEVEL", "WARNING").upper())
    if not isinstance(level, int):
        level = logging.WARNING
    if verbose:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main():
    app()


if __name__ == "__main__":
    main()
