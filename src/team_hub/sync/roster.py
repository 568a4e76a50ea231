"""Roster repository sync: first-contact profiles and the players subscription."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .errors import StoreError, SubscriptionError, WriteFailed
from .models import PlayerProfile, new_recruit_profile
from .state import ViewState, select_profile
from .store import DocumentSnapshot, DocumentStore, HubPaths, Subscription, generate_document_id

logger = logging.getLogger(__name__)

RosterCallback = Callable[[list[PlayerProfile]], None]


def owned_profile_id(identity: str) -> str:
    """Deterministic profile document id for ``identity``.

    Used with ``create_if_absent`` so two first contacts from the same
    identity converge on one document.
    """
    return "user-" + identity.replace("/", "_")


def profiles_from_snapshots(snapshots: list[DocumentSnapshot]) -> list[PlayerProfile]:
    return [PlayerProfile.from_dict(doc.data, doc_id=doc.id) for doc in snapshots]


class RosterSync:
    """Keeps the roster slice of the view in step with the players collection."""

    def __init__(self, store: DocumentStore, paths: HubPaths, view: ViewState) -> None:
        self.store = store
        self.paths = paths
        self.view = view
        self.last_error: Optional[SubscriptionError] = None

    async def find_profile(self, identity: str) -> Optional[PlayerProfile]:
        """Profile owned by ``identity`` according to the store, if any."""
        docs = await self.store.query(self.paths.players_collection, "userId", identity)
        return select_profile(profiles_from_snapshots(docs))

    async def ensure_profile(self, identity: str) -> PlayerProfile:
        """Return the identity's profile, creating it on first contact."""
        existing = await self.find_profile(identity)
        if existing is not None:
            return existing
        return await self.create_profile(identity)

    async def create_profile(self, identity: str) -> PlayerProfile:
        """Write a first-contact profile for ``identity``.

        With conditional creates the document id is derived from the
        identity and a concurrent duplicate collapses into one document.
        Without them, a store-assigned id is used and two racing first
        contacts can leave two profiles; readers resolve that with
        ``select_profile``.
        """
        try:
            if self.store.supports_conditional_create:
                profile = new_recruit_profile(owned_profile_id(identity), identity)
                path = self.paths.player_document(profile.id)
                created = await self.store.create_if_absent(path, profile.to_dict())
                if not created:
                    data = await self.store.get(path)
                    if data is not None:
                        logger.debug("Profile for %s already created concurrently", identity)
                        return PlayerProfile.from_dict(data, doc_id=profile.id)
                    # Deleted between the two calls; fall through to a plain write.
                    await self.store.create(
                        self.paths.players_collection, profile.to_dict(), doc_id=profile.id
                    )
            else:
                profile = new_recruit_profile(generate_document_id(), identity)
                await self.store.create(
                    self.paths.players_collection, profile.to_dict(), doc_id=profile.id
                )
        except StoreError as exc:
            raise WriteFailed(f"Could not create profile for {identity}: {exc}") from exc

        logger.info("Created first-contact profile %s for %s", profile.id, identity)
        return profile

    def subscribe_roster(self, on_change: Optional[RosterCallback] = None) -> Subscription:
        """Subscribe to the players collection.

        Every delivery replaces the roster slice of the view and then calls
        ``on_change`` with the full, unordered profile list (optimistic
        overlays applied). Stream errors are logged and the last good roster
        is kept; the subscription stays open.
        """

        def _on_next(snapshots: list[DocumentSnapshot]) -> None:
            self.last_error = None
            self.view.replace_roster(profiles_from_snapshots(snapshots))
            if on_change is not None:
                on_change(self.view.profiles)

        def _on_error(exc: Exception) -> None:
            self.last_error = SubscriptionError(str(exc))
            logger.error(f"Error fetching players: {exc}")

        return self.store.subscribe_collection(self.paths.players_collection, _on_next, _on_error)
