"""
Settings repository - runtime preferences (provider toggles, sync cadence).
"""

from datetime import datetime

from .connection import DatabaseConnection


class SettingsRepository:
    """String key/value preferences with bool and int accessors."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def get(self, key: str, default: str | None = None) -> str | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT value FROM settings WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else default

    def set(self, key: str, value: str):
        """Insert or overwrite a preference."""
        with self._db.conn() as conn:
            conn.execute(
                """INSERT INTO settings (key, value, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                   value = excluded.value, updated_at = excluded.updated_at""",
                (key, value, datetime.now().isoformat())
            )

    def get_bool(self, key: str, default: bool) -> bool:
        """Stored as "1"/"0"; missing keys fall back to ``default``."""
        value = self.get(key)
        return default if value is None else value == "1"

    def set_bool(self, key: str, value: bool):
        self.set(key, "1" if value else "0")

    def get_int(self, key: str, default: int) -> int:
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default
