"""
Per-provider OAuth credential storage.

Tokens are serialized as ``{"accessToken", "refreshToken", "expiresAt"}``
(expiry in epoch milliseconds) and kept in the dedicated credentials table.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..database import CredentialRepository


logger = logging.getLogger(__name__)


@dataclass
class Credential:
    """OAuth tokens for one provider."""
    access_token: str
    refresh_token: str
    expires_at: datetime

    def expires_within(self, buffer: timedelta, now: datetime | None = None) -> bool:
        """True when the access token expires less than ``buffer`` from now."""
        now = now or datetime.now(timezone.utc)
        return self.expires_at <= now + buffer

    def to_blob(self) -> str:
        return json.dumps({
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": int(self.expires_at.timestamp() * 1000),
        })

    @classmethod
    def from_blob(cls, blob: str) -> "Credential":
        """
        Parse a serialized credential.

        Raises:
            ValueError: If the blob is not a valid credential object
        """
        try:
            data = json.loads(blob)
            return cls(
                access_token=data.get("accessToken") or "",
                refresh_token=data.get("refreshToken") or "",
                expires_at=datetime.fromtimestamp(
                    int(data.get("expiresAt") or 0) / 1000, tz=timezone.utc
                ),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ValueError(f"Invalid credential blob: {e}") from e


class CredentialStore:
    """Loads, stores and clears the credential of a single provider."""

    def __init__(self, repository: "CredentialRepository", provider: str):
        self._repository = repository
        self.provider = provider

    def load(self) -> Credential | None:
        blob = self._repository.get(self.provider)
        if not blob:
            return None
        try:
            return Credential.from_blob(blob)
        except ValueError as e:
            logger.error(f"Failed to parse {self.provider} token blob: {e}")
            return None

    def store(self, credential: Credential):
        self._repository.save(self.provider, credential.to_blob())

    def clear(self):
        self._repository.delete(self.provider)
