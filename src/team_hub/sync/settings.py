"""Settings/admin sync: the singleton team settings document.

Admin checks here are advisory. They keep an honest client from issuing
writes it is not entitled to; the store's access rules are the real
enforcement point and must reject the same writes from any client.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .errors import NotAuthorized, StoreError, SubscriptionError, ValidationRejected, WriteFailed
from .models import ADMIN_IDS_FIELD, TeamSettings, utc_now_iso
from .state import ABSENT, SettingsSlice, ViewState
from .store import DocumentStore, HubPaths, Subscription, array_remove, array_union

logger = logging.getLogger(__name__)

SettingsCallback = Callable[[SettingsSlice], None]


class SettingsSync:
    """Keeps the settings slice of the view current and writes admin changes."""

    def __init__(
        self,
        store: DocumentStore,
        paths: HubPaths,
        view: ViewState,
        identity: Optional[str] = None,
    ) -> None:
        self.store = store
        self.paths = paths
        self.view = view
        self.identity = identity
        self.last_error: Optional[SubscriptionError] = None

    def subscribe_settings(self, on_change: Optional[SettingsCallback] = None) -> Subscription:
        """Subscribe to the settings document.

        Delivers ``TeamSettings`` or ``ABSENT``. While absent the view shows
        the default dashboard and reports no administrators.
        """

        def _on_next(data: Optional[dict[str, Any]]) -> None:
            self.last_error = None
            settings: SettingsSlice
            if data is None:
                logger.warning("Team settings document not found.")
                settings = ABSENT
            else:
                settings = TeamSettings.from_dict(data)
            self.view.replace_settings(settings)
            if on_change is not None:
                on_change(settings)

        def _on_error(exc: Exception) -> None:
            self.last_error = SubscriptionError(str(exc))
            logger.error(f"Error fetching admin list/hub data: {exc}")

        return self.store.subscribe_document(self.paths.settings_document, _on_next, _on_error)

    def is_admin(self, identity: Optional[str] = None) -> bool:
        return self.view.is_admin(identity if identity is not None else self.identity)

    def require_admin(self) -> str:
        """Capability check performed before every admin mutation."""
        if self.identity is None or not self.view.is_admin(self.identity):
            raise NotAuthorized(f"{self.identity or 'unknown identity'} is not an administrator")
        return self.identity

    async def add_admin(self, admin_id: str) -> None:
        """Grant admin rights with a set-union write; re-adding is a no-op."""
        admin_id = _clean_id(admin_id)
        self.require_admin()
        await self._update({ADMIN_IDS_FIELD: array_union(admin_id)}, "adding admin")
        logger.info("Added admin %s", admin_id)

    async def remove_admin(self, admin_id: str) -> None:
        """Revoke admin rights with a set-difference write; non-members are a no-op.

        The session's own identity cannot remove itself while it is the
        only administrator.
        """
        admin_id = _clean_id(admin_id)
        actor = self.require_admin()
        remaining = set(self.view.dashboard.admin_ids) - {admin_id}
        if admin_id == actor and not remaining:
            raise ValidationRejected("admin_id", "Cannot remove the last administrator")
        await self._update({ADMIN_IDS_FIELD: array_remove(admin_id)}, "removing admin")
        logger.info("Removed admin %s", admin_id)

    async def update_coach_message(self, message: str) -> None:
        """Replace the coach's message and stamp the audit fields."""
        text = (message or "").strip()
        if not text:
            raise ValidationRejected("coach_message", "Message cannot be empty.")
        actor = self.require_admin()
        fields = {"coachsMessage": text, "timestamp": utc_now_iso(), "lastEditor": actor}
        try:
            await self.store.set(self.paths.settings_document, fields, merge=True)
        except StoreError as exc:
            logger.error(f"Error updating coach's message: {exc}")
            raise WriteFailed(str(exc)) from exc
        logger.info("Coach's message updated by %s", actor)

    async def _update(self, fields: dict[str, Any], action: str) -> None:
        try:
            await self.store.update(self.paths.settings_document, fields)
        except StoreError as exc:
            logger.error(f"Error {action}: {exc}")
            raise WriteFailed(str(exc)) from exc


def _clean_id(admin_id: str) -> str:
    cleaned = (admin_id or "").strip()
    if not cleaned:
        raise ValidationRejected("admin_id", "User ID cannot be empty.")
    return cleaned
