"""
Credential repository - per-provider OAuth token blobs.
"""

from datetime import datetime

from .connection import DatabaseConnection


class CredentialRepository:
    """Repository for serialized provider credentials."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def get(self, provider: str) -> str | None:
        """Get the stored token blob for a provider."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT token_blob FROM credentials WHERE provider = ?", (provider,)
            ).fetchone()
            return row["token_blob"] if row else None

    def save(self, provider: str, token_blob: str):
        """Insert or replace the token blob for a provider."""
        with self._db.conn() as conn:
            conn.execute(
                """INSERT INTO credentials (provider, token_blob, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(provider) DO UPDATE SET
                   token_blob = excluded.token_blob, updated_at = excluded.updated_at""",
                (provider, token_blob, datetime.now().isoformat())
            )

    def delete(self, provider: str):
        """Remove a provider's credentials (disconnect)."""
        with self._db.conn() as conn:
            conn.execute("DELETE FROM credentials WHERE provider = ?", (provider,))
