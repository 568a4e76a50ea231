"""Local view state fed by the roster and settings subscriptions.

The view is a disposable projection: the document store is authoritative.
Each subscription owns one slice and replaces it wholesale through its own
entry point (``replace_roster`` / ``replace_settings``). No ordering holds
between the two slices.

Optimistic profile edits live in an overlay keyed by profile id, on top of
the last confirmed roster. An overlay entry is dropped by the first roster
delivery that supersedes it: the delivered document already carries the
edited values, the document is gone, or the write has settled (succeeded
or failed) so the delivery reflects the store's truth.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Optional, Union

from .models import INITIAL_SETTINGS, PlayerProfile, TeamSettings

logger = logging.getLogger(__name__)


class _Absent:
    """Marker for "settings document does not exist"."""

    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()

SettingsSlice = Union[TeamSettings, _Absent]

# Dashboard shown while the settings document is absent: display fields
# only, no administrators known.
DEFAULT_DASHBOARD = replace(INITIAL_SETTINGS, admin_ids=())


@dataclass
class PendingEdit:
    """Optimistic stored-shape fields awaiting confirmation."""

    fields: dict[str, Any] = field(default_factory=dict)
    in_flight: int = 0

    @property
    def settled(self) -> bool:
        return self.in_flight == 0


@dataclass(frozen=True)
class HubView:
    """Immutable snapshot handed to view listeners."""

    profiles: tuple[PlayerProfile, ...]
    settings: SettingsSlice
    dashboard: TeamSettings
    roster_loaded: bool
    settings_loaded: bool

    @property
    def admin_ids(self) -> tuple[str, ...]:
        return self.dashboard.admin_ids

    def is_admin(self, identity: Optional[str]) -> bool:
        if self.settings is ABSENT:
            return False
        return self.dashboard.is_admin(identity)


def select_profile(candidates: Iterable[PlayerProfile]) -> Optional[PlayerProfile]:
    """Pick one profile when an identity owns several.

    Most recently created wins; ties (or missing timestamps) fall back to the
    greatest document id so every client picks the same one.
    """
    ranked = sorted(candidates, key=lambda p: (p.created_at or "", p.id))
    return ranked[-1] if ranked else None


class ViewState:
    """Per-client projection of the roster and the team settings."""

    def __init__(self) -> None:
        self._confirmed: dict[str, PlayerProfile] = {}
        self._pending: dict[str, PendingEdit] = {}
        self._settings: SettingsSlice = ABSENT
        self._roster_loaded = False
        self._settings_loaded = False
        self._listeners: list[Callable[[HubView], None]] = []

    # ── Subscription entry points ─────────────────────────────────

    def replace_roster(self, profiles: Iterable[PlayerProfile]) -> None:
        """Replace the roster slice with a full delivery."""
        self._confirmed = {profile.id: profile for profile in profiles}
        self._roster_loaded = True
        for profile_id in list(self._pending):
            if self._superseded(profile_id):
                del self._pending[profile_id]
        self._emit()

    def replace_settings(self, settings: SettingsSlice) -> None:
        """Replace the settings slice with a full delivery (or ``ABSENT``)."""
        self._settings = settings
        self._settings_loaded = True
        self._emit()

    def reset(self) -> None:
        """Forget everything; used when a session reconnects or changes identity."""
        self._confirmed.clear()
        self._pending.clear()
        self._settings = ABSENT
        self._roster_loaded = False
        self._settings_loaded = False
        self._emit()

    # ── Optimistic overlay ────────────────────────────────────────

    def apply_optimistic(self, profile_id: str, fields: dict[str, Any]) -> None:
        """Overlay ``fields`` on ``profile_id`` and mark one write in flight."""
        edit = self._pending.setdefault(profile_id, PendingEdit())
        edit.fields.update(fields)
        edit.in_flight += 1
        self._emit()

    def settle(self, profile_id: str, failed: bool = False) -> None:
        """Record that one in-flight write for ``profile_id`` has completed.

        A failed write with nothing else in flight drops the overlay at once
        so the view falls back to the confirmed profile.
        """
        edit = self._pending.get(profile_id)
        if edit is None:
            return
        if edit.in_flight > 0:
            edit.in_flight -= 1
        if failed and edit.settled:
            del self._pending[profile_id]
            self._emit()

    def has_pending(self, profile_id: str) -> bool:
        return profile_id in self._pending

    def pending_fields(self, profile_id: str) -> dict[str, Any]:
        edit = self._pending.get(profile_id)
        return dict(edit.fields) if edit else {}

    # ── Reads ─────────────────────────────────────────────────────

    @property
    def profiles(self) -> list[PlayerProfile]:
        return [self._effective(profile) for profile in self._confirmed.values()]

    def confirmed_profile(self, profile_id: str) -> Optional[PlayerProfile]:
        return self._confirmed.get(profile_id)

    def profile(self, profile_id: str) -> Optional[PlayerProfile]:
        confirmed = self._confirmed.get(profile_id)
        return self._effective(confirmed) if confirmed else None

    def profiles_for(self, identity: str) -> list[PlayerProfile]:
        return [p for p in self.profiles if p.user_id == identity]

    def profile_for(self, identity: str) -> Optional[PlayerProfile]:
        return select_profile(self.profiles_for(identity))

    @property
    def settings(self) -> SettingsSlice:
        return self._settings

    @property
    def dashboard(self) -> TeamSettings:
        if isinstance(self._settings, TeamSettings):
            return self._settings
        return DEFAULT_DASHBOARD

    @property
    def roster_loaded(self) -> bool:
        return self._roster_loaded

    @property
    def settings_loaded(self) -> bool:
        return self._settings_loaded

    def is_admin(self, identity: Optional[str]) -> bool:
        """Advisory admin check. An absent settings document means no admins."""
        if not isinstance(self._settings, TeamSettings):
            return False
        return self._settings.is_admin(identity)

    def snapshot(self) -> HubView:
        return HubView(
            profiles=tuple(self.profiles),
            settings=self._settings,
            dashboard=self.dashboard,
            roster_loaded=self._roster_loaded,
            settings_loaded=self._settings_loaded,
        )

    # ── Listeners ─────────────────────────────────────────────────

    def add_listener(self, listener: Callable[[HubView], None]) -> Callable[[], None]:
        """Register ``listener`` for every view change; returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # ── Internal ──────────────────────────────────────────────────

    def _effective(self, profile: PlayerProfile) -> PlayerProfile:
        edit = self._pending.get(profile.id)
        if edit is None or not edit.fields:
            return profile
        return profile.with_fields(edit.fields)

    def _superseded(self, profile_id: str) -> bool:
        edit = self._pending[profile_id]
        confirmed = self._confirmed.get(profile_id)
        if confirmed is None or edit.settled:
            return True
        stored = confirmed.to_dict()
        return all(stored.get(key) == value for key, value in edit.fields.items())

    def _emit(self) -> None:
        if not self._listeners:
            return
        view = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("View listener failed")
