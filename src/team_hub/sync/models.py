"""Roster and team settings documents.

Python attributes are snake_case; the stored documents keep the field names
the hub has always written (``userId``, ``jerseyNumber``, ``admin_user_ids``
and so on) so existing deployments read back unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional, Union

DEFAULT_ROLE = "New Recruit"
DEFAULT_JERSEY_NUMBER = 99
MIN_JERSEY_NUMBER = 0
MAX_JERSEY_NUMBER = 99

ADMIN_IDS_FIELD = "admin_user_ids"

PLACEHOLDER_AVATAR_BASE = "https://placehold.co/100x100"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def placeholder_avatar(label: str, background: str = "60a5fa") -> str:
    """Build a placeholder avatar URL showing ``label`` on a coloured square."""
    return f"{PLACEHOLDER_AVATAR_BASE}/{background}/ffffff?text={label}"


def _coerce_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class PlayerProfile:
    """One player document in the players collection."""

    id: str
    user_id: str
    name: str
    jersey_number: int = DEFAULT_JERSEY_NUMBER
    avatar_ref: str = ""
    role: str = DEFAULT_ROLE
    created_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the stored document shape."""
        data: dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "jerseyNumber": self.jersey_number,
            "headshotUrl": self.avatar_ref,
            "role": self.role,
        }
        if self.created_at is not None:
            data["createdAt"] = self.created_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], doc_id: Optional[str] = None) -> "PlayerProfile":
        """Deserialize a stored document.

        The document id wins over an ``id`` field in the body, matching how
        snapshots are projected (``{id: doc.id, ...doc.data()}`` semantics
        with the store id applied last).
        """
        profile_id = doc_id or str(data.get("id") or "")
        return cls(
            id=profile_id,
            user_id=str(data.get("userId") or ""),
            name=str(data.get("name") or ""),
            jersey_number=_coerce_int(data.get("jerseyNumber"), DEFAULT_JERSEY_NUMBER),
            avatar_ref=str(data.get("headshotUrl") or ""),
            role=str(data.get("role") or DEFAULT_ROLE),
            created_at=data.get("createdAt"),
        )

    def with_fields(self, fields: dict[str, Any]) -> "PlayerProfile":
        """Return a copy with stored-shape ``fields`` applied over this profile."""
        merged = {**self.to_dict(), **fields}
        return PlayerProfile.from_dict(merged, doc_id=self.id)


@dataclass(frozen=True)
class ProfileFields:
    """Owner-editable profile fields; ``None`` means "leave unchanged".

    ``jersey_number`` accepts raw user input (``"23"``) and is parsed during
    validation.
    """

    name: Optional[str] = None
    jersey_number: Optional[Union[int, str]] = None
    avatar_ref: Optional[str] = None

    def is_empty(self) -> bool:
        return self.name is None and self.jersey_number is None and self.avatar_ref is None


@dataclass(frozen=True)
class TeamSettings:
    """The singleton dashboard settings document, including the admin set."""

    admin_ids: tuple[str, ...] = ()
    opponent: str = ""
    match_date_time: str = ""
    jersey_color: str = ""
    coach_message: str = ""
    last_editor: Optional[str] = None
    last_edited_at: Optional[str] = None
    total_players: int = 0
    captains: int = 0

    def is_admin(self, identity: Optional[str]) -> bool:
        return identity is not None and identity in self.admin_ids

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            ADMIN_IDS_FIELD: list(self.admin_ids),
            "opponent": self.opponent,
            "dateTime": self.match_date_time,
            "jerseyColor": self.jersey_color,
            "coachsMessage": self.coach_message,
            "totalPlayers": self.total_players,
            "captains": self.captains,
        }
        if self.last_editor is not None:
            data["lastEditor"] = self.last_editor
        if self.last_edited_at is not None:
            data["timestamp"] = self.last_edited_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TeamSettings":
        raw_admins = data.get(ADMIN_IDS_FIELD) or []
        if not isinstance(raw_admins, (list, tuple)):
            raw_admins = []
        # Set semantics, first-seen order kept for display.
        admins = tuple(dict.fromkeys(str(a) for a in raw_admins if a))
        return cls(
            admin_ids=admins,
            opponent=str(data.get("opponent") or ""),
            match_date_time=str(data.get("dateTime") or ""),
            jersey_color=str(data.get("jerseyColor") or ""),
            coach_message=str(data.get("coachsMessage") or ""),
            last_editor=data.get("lastEditor"),
            last_edited_at=data.get("timestamp"),
            total_players=_coerce_int(data.get("totalPlayers"), 0),
            captains=_coerce_int(data.get("captains"), 0),
        )


# Seed content written by the first client to reach an empty deployment.
INITIAL_SETTINGS = TeamSettings(
    opponent="The Go-Getters (Initial Seed)",
    match_date_time="Friday, October 4th at 7:00 PM",
    jersey_color="Emerald Green",
    coach_message=(
        "Welcome to the unified Team Hub! This message is synced via the cloud. "
        "Go to the Roster tab to set your name and number."
    ),
    total_players=3,
    captains=1,
)


def initial_settings_for(identity: str) -> TeamSettings:
    """Seed settings with ``identity`` as the sole administrator."""
    return replace(INITIAL_SETTINGS, admin_ids=(identity,), last_edited_at=utc_now_iso())


@dataclass(frozen=True)
class ExamplePlayer:
    name: str
    jersey_number: int
    avatar_ref: str
    role: str


EXAMPLE_PLAYERS: tuple[ExamplePlayer, ...] = (
    ExamplePlayer("Alex Johnson", 23, placeholder_avatar("AJ", "1e40af"), "Captain"),
    ExamplePlayer("Maria Garcia", 11, placeholder_avatar("MG", "1d4ed8"), "Forward"),
    ExamplePlayer("Sam Chen", 88, placeholder_avatar("SC", "3b82f6"), "Defense"),
)


def example_profile(index: int, player: ExamplePlayer) -> PlayerProfile:
    """Example profile with a synthetic identity equal to its document id."""
    synthetic_id = f"mock-{index}"
    return PlayerProfile(
        id=synthetic_id,
        user_id=synthetic_id,
        name=player.name,
        jersey_number=player.jersey_number,
        avatar_ref=player.avatar_ref,
        role=player.role,
        created_at=utc_now_iso(),
    )


def new_recruit_profile(profile_id: str, identity: str) -> PlayerProfile:
    """First-contact profile for ``identity``."""
    return PlayerProfile(
        id=profile_id,
        user_id=identity,
        name=f"{DEFAULT_ROLE} {identity[:4]}",
        jersey_number=DEFAULT_JERSEY_NUMBER,
        avatar_ref=placeholder_avatar(identity[:2]),
        role=DEFAULT_ROLE,
        created_at=utc_now_iso(),
    )
