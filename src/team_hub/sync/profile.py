"""Profile mutation gateway: a user's edits to their own player profile.

Only owner fields (name, jersey number, avatar) are ever written, and only
to the profile the local view attributes to the calling identity. Input is
validated before any write. Accepted edits are reflected in the view
immediately as an optimistic overlay, then written; the overlay is dropped
by the next roster delivery after the write settles.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from .errors import HubError, NotFound, StoreError, ValidationRejected, WriteFailed
from .models import MAX_JERSEY_NUMBER, MIN_JERSEY_NUMBER, ProfileFields, placeholder_avatar
from .state import ViewState
from .store import DocumentStore, HubPaths

logger = logging.getLogger(__name__)

_OWNER_FIELDS = ("name", "jersey_number", "avatar_ref")


class UpdateOutcome:
    """Profile update outcome constants"""
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    VALIDATION_REJECTED = "validation_rejected"
    WRITE_FAILED = "write_failed"


@dataclass(frozen=True)
class ProfileUpdateResult:
    outcome: str
    profile_id: Optional[str] = None
    fields: dict[str, Any] = field(default_factory=dict)
    error: Optional[HubError] = None

    @property
    def ok(self) -> bool:
        return self.outcome == UpdateOutcome.APPLIED


def parse_jersey_number(value: Union[int, str]) -> int:
    """Parse user input into a jersey number in [0, 99]."""
    if isinstance(value, bool):
        raise ValidationRejected("jersey_number", "Jersey number must be a whole number.")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        try:
            number = int(value.strip(), 10)
        except ValueError as exc:
            raise ValidationRejected("jersey_number", "Jersey number must be a whole number.") from exc
    else:
        raise ValidationRejected("jersey_number", "Jersey number must be a whole number.")
    if not MIN_JERSEY_NUMBER <= number <= MAX_JERSEY_NUMBER:
        raise ValidationRejected(
            "jersey_number",
            f"Invalid jersey number. Must be between {MIN_JERSEY_NUMBER} and {MAX_JERSEY_NUMBER}.",
        )
    return number


def validate_profile_fields(fields: ProfileFields) -> dict[str, Any]:
    """Validate owner edits and return them in stored document shape."""
    if fields.is_empty():
        raise ValidationRejected("fields", "No profile fields to update.")
    updates: dict[str, Any] = {}
    if fields.name is not None:
        name = fields.name.strip()
        if not name:
            raise ValidationRejected("name", "Name cannot be empty.")
        updates["name"] = name
    if fields.jersey_number is not None:
        updates["jerseyNumber"] = parse_jersey_number(fields.jersey_number)
    if fields.avatar_ref is not None:
        avatar = fields.avatar_ref.strip()
        if not avatar:
            raise ValidationRejected("avatar_ref", "Avatar reference cannot be empty.")
        updates["headshotUrl"] = avatar
    return updates


def coerce_profile_fields(fields: Union[ProfileFields, Mapping[str, Any]]) -> ProfileFields:
    """Accept a ``ProfileFields`` or a mapping of owner field names."""
    if isinstance(fields, ProfileFields):
        return fields
    unknown = sorted(set(fields) - set(_OWNER_FIELDS))
    if unknown:
        raise ValidationRejected(unknown[0], f"Field {unknown[0]!r} cannot be edited by its owner.")
    return ProfileFields(**{key: fields[key] for key in _OWNER_FIELDS if key in fields})


def new_avatar_ref(name: str) -> str:
    """Generate a fresh placeholder avatar for ``name`` (stands in for an upload)."""
    colour = f"{random.randint(0, 0xFFFFFF):06x}"
    return placeholder_avatar(name[:2] or "??", colour)


class ProfileGateway:
    """Applies self-edits to the caller's own profile document."""

    def __init__(self, store: DocumentStore, paths: HubPaths, view: ViewState) -> None:
        self.store = store
        self.paths = paths
        self.view = view

    async def update_own_profile(
        self, identity: str, fields: Union[ProfileFields, Mapping[str, Any]]
    ) -> ProfileUpdateResult:
        """Validate, reflect optimistically, then write the caller's edits.

        Validation and not-found outcomes are decided before any write.
        Write failures are reported and not retried.
        """
        profile = self.view.profile_for(identity)
        if profile is None or profile.user_id != identity:
            logger.warning("Current user document not found.")
            return ProfileUpdateResult(
                outcome=UpdateOutcome.NOT_FOUND,
                error=NotFound(f"No profile for {identity} in the current roster"),
            )

        try:
            updates = validate_profile_fields(coerce_profile_fields(fields))
        except ValidationRejected as exc:
            logger.warning(str(exc))
            return ProfileUpdateResult(outcome=UpdateOutcome.VALIDATION_REJECTED, error=exc)

        self.view.apply_optimistic(profile.id, updates)
        failed = False
        try:
            await self.store.update(self.paths.player_document(profile.id), updates)
        except StoreError as exc:
            failed = True
            logger.error(f"Error updating profile: {exc}")
            return ProfileUpdateResult(
                outcome=UpdateOutcome.WRITE_FAILED,
                profile_id=profile.id,
                fields=updates,
                error=WriteFailed(str(exc)),
            )
        finally:
            self.view.settle(profile.id, failed=failed)

        return ProfileUpdateResult(outcome=UpdateOutcome.APPLIED, profile_id=profile.id, fields=updates)
