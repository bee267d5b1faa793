"""
Database facade - provides unified access to all repositories.
"""

from pathlib import Path

from .connection import DatabaseConnection
from .credential_repository import CredentialRepository
from .settings_repository import SettingsRepository


class Database:
    """Unified database access facade."""

    SYNC_INTERVAL_KEY = "sync_interval_minutes"

    def __init__(self, db_path: Path):
        self._connection = DatabaseConnection(db_path)

        # Initialize repositories
        self.settings = SettingsRepository(self._connection)
        self.credentials = CredentialRepository(self._connection)

    # ─────────────────────────────────────────────────────────────
    # Provider preferences
    # ─────────────────────────────────────────────────────────────

    def is_provider_enabled(self, provider: str, default: bool = False) -> bool:
        return self.settings.get_bool(f"{provider}_enabled", default)

    def set_provider_enabled(self, provider: str, enabled: bool):
        self.settings.set_bool(f"{provider}_enabled", enabled)

    def get_sync_interval(self, default: int) -> int:
        return self.settings.get_int(self.SYNC_INTERVAL_KEY, default)

    def set_sync_interval(self, minutes: int):
        self.settings.set(self.SYNC_INTERVAL_KEY, str(minutes))
