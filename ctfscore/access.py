"""
Admin-controlled settings and the gates that read them.
"""

import logging
from typing import Any, Optional

from .errors import NotStarted, ResultsHidden
from .models import ROLE_ADMIN, Identity, Settings

logger = logging.getLogger(__name__)


class SettingsStore:
    """Explicit read/write access to the process-wide competition toggles."""

    def __init__(
        self,
        db_manager: Any,
    ) -> None:
        self.db = db_manager

    async def get(self) -> Settings:
        """
        Read the current settings.

        Missing rows read as False so a fresh database is closed by default.

        @return: Current Settings
        """
        rows = await self.db.read_settings_rows()
        return Settings(
            allow_ps_access=bool(rows.get("allow_ps_access", False)),
            show_results_to_users=bool(rows.get("show_results_to_users", False)),
        )

    async def update(
        self,
        allow_ps_access: Optional[bool] = None,
        show_results_to_users: Optional[bool] = None,
    ) -> Settings:
        """
        Partially update settings; None leaves a value unchanged.

        @param allow_ps_access: Open or close challenge content
        @param show_results_to_users: Show or hide leaderboard and timeline
        @return: Settings after the update
        """
        values = {}
        if allow_ps_access is not None:
            values["allow_ps_access"] = bool(allow_ps_access)
        if show_results_to_users is not None:
            values["show_results_to_users"] = bool(show_results_to_users)

        if values:
            await self.db.write_settings_rows(values)
            logger.info("Settings updated: %s", values)
        return await self.get()


class AccessGate:
    """Global checks run before content or results are served."""

    def __init__(
        self,
        settings_store: SettingsStore,
    ) -> None:
        self.settings = settings_store

    async def ensure_open(self) -> None:
        """Raise NotStarted unless challenge content is open."""
        settings = await self.settings.get()
        if not settings.allow_ps_access:
            raise NotStarted(
                "Challenge has not started yet. Please wait for admin to begin the event."
            )

    async def ensure_results_visible(
        self,
        identity: Identity,
    ) -> None:
        """
        Raise ResultsHidden for non-admin callers while results are hidden.

        @param identity: Authenticated caller
        """
        if identity.role == ROLE_ADMIN:
            return
        settings = await self.settings.get()
        if not settings.show_results_to_users:
            raise ResultsHidden(
                "Results are not available yet. Please wait for admin to enable them."
            )
