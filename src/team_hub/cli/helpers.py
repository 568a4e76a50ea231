"""Shared plumbing for team-hub commands."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import typer
from rich.console import Console

from team_hub.sync.errors import (
    HubError,
    NotAuthorized,
    StoreError,
    ValidationRejected,
    WriteFailed,
)
from team_hub.sync.session import HubSession, build_session, open_session

console = Console()

T = TypeVar("T")

SYNC_TIMEOUT_SECONDS = 10.0


def session_factory() -> HubSession:
    """Build the session commands run against (replaced in tests)."""
    return build_session()


def run_with_session(action: Callable[[HubSession], Awaitable[T]]) -> T:
    """Open a session, wait for the first roster and settings delivery, run ``action``.

    Hub errors render as a single line and exit with status 1.
    """

    async def _run() -> T:
        async with open_session(session_factory()) as session:
            if not await session.wait_until_synced(timeout=SYNC_TIMEOUT_SECONDS):
                console.print("⚠️  Timed out waiting for the hub; showing what arrived so far.")
            return await action(session)

    try:
        return asyncio.run(_run())
    except NotAuthorized as exc:
        console.print(f"❌ Only administrators can do this: {exc}")
        raise typer.Exit(1)
    except ValidationRejected as exc:
        console.print(f"❌ {exc}")
        raise typer.Exit(1)
    except WriteFailed as exc:
        console.print(f"❌ Write rejected by the document store: {exc}")
        raise typer.Exit(1)
    except StoreError as exc:
        console.print(f"❌ Cannot reach the document store: {exc}")
        raise typer.Exit(1)
    except HubError as exc:
        console.print(f"❌ {exc}")
        raise typer.Exit(1)
