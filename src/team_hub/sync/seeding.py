"""Seeding coordinator: first client on an empty deployment writes the baseline.

This is a best-effort leader race, not consensus. The emptiness probe is
taken before the caller's own profile is written, so whichever client
probes first always sees an empty collection. The settings document is then
claimed with ``create_if_absent``; only the winner writes the example
roster, and the example profiles use fixed ids so a repeat is harmless.

Against a store without conditional creates two racing clients can both
write settings (last write wins, so one of them ends up sole admin) and both
write the example roster onto the same fixed ids.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import HubError
from .models import EXAMPLE_PLAYERS, example_profile, initial_settings_for
from .roster import RosterSync
from .store import DocumentStore, HubPaths

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedOutcome:
    """What ``ensure_seeded`` did for this client."""

    profile_created: bool = False
    settings_created: bool = False
    examples_created: int = 0
    error: Optional[str] = None


class SeedingCoordinator:
    """Runs once per session after identity bootstrap."""

    def __init__(self, store: DocumentStore, paths: HubPaths, roster: RosterSync) -> None:
        self.store = store
        self.paths = paths
        self.roster = roster

    async def ensure_seeded(self, identity: str) -> SeedOutcome:
        """Create the identity's profile and, on an empty deployment, the baseline.

        Never raises; failures are logged and reported in the outcome.
        """
        try:
            return await self._seed(identity)
        except HubError as exc:
            logger.error(f"Error ensuring user or seeding data: {exc}")
            return SeedOutcome(error=str(exc))

    async def _seed(self, identity: str) -> SeedOutcome:
        if await self.roster.find_profile(identity) is not None:
            logger.debug("Profile for %s exists; seeding already performed", identity)
            return SeedOutcome()

        existing = await self.store.list_documents(self.paths.players_collection)
        collection_was_empty = not any(
            doc.data.get("userId") != identity for doc in existing
        )

        await self.roster.create_profile(identity)

        if not collection_was_empty:
            return SeedOutcome(profile_created=True)

        settings = initial_settings_for(identity)
        settings_created = await self.store.create_if_absent(
            self.paths.settings_document, settings.to_dict()
        )
        if not settings_created:
            logger.info("Team settings already seeded by another client")
            return SeedOutcome(profile_created=True)

        logger.info("Seeded team settings with %s as first administrator", identity)
        examples = 0
        for index, player in enumerate(EXAMPLE_PLAYERS):
            profile = example_profile(index, player)
            created = await self.store.create_if_absent(
                self.paths.player_document(profile.id), profile.to_dict()
            )
            examples += int(created)
        logger.info("Seeded %d example profiles", examples)
        return SeedOutcome(profile_created=True, settings_created=True, examples_created=examples)
