"""
Base mail provider interface.

Defines the normalized message model and the abstract interface every
provider implementation follows. Providers are a closed set (see
``ProviderType``); a new provider is added by extending the enum and the
factory.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import getaddresses
from enum import Enum

import httpx

from ..exceptions import NotAuthenticatedError, ProviderFetchError
from ..oauth import OAuthAuthenticator


logger = logging.getLogger(__name__)


class ProviderType(Enum):
    """Supported mail providers."""
    GMAIL = "gmail"
    OUTLOOK = "outlook"


@dataclass(frozen=True)
class EmailAddress:
    name: str
    email: str


@dataclass(frozen=True)
class Attachment:
    name: str
    content_type: str
    size: int = 0


@dataclass(frozen=True)
class NormalizedMessage:
    """Provider-agnostic starred/flagged message."""
    id: str
    source: ProviderType
    subject: str
    sender: EmailAddress
    to: tuple[EmailAddress, ...]
    cc: tuple[EmailAddress, ...]
    received_at: datetime
    snippet: str
    body_html: str
    web_link: str
    has_attachments: bool
    body_text: str | None = None
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)
    labels: tuple[str, ...] = field(default_factory=tuple)


def parse_address(raw: str) -> EmailAddress:
    """
    Parse a single address header value.

    Examples:
        '"John Doe" <john@example.com>' -> ("John Doe", "john@example.com")
        "john@example.com" -> ("john@example.com", "john@example.com")
    """
    raw = (raw or "").strip()
    parsed = getaddresses([raw])
    name, address = parsed[0] if parsed else ("", "")
    if not address:
        return EmailAddress(name=raw, email=raw)
    return EmailAddress(name=name.strip() or address, email=address)


def parse_address_list(raw: str) -> tuple[EmailAddress, ...]:
    """Parse a comma separated address header (To, Cc)."""
    if not raw:
        return ()
    return tuple(
        EmailAddress(name=name.strip() or address, email=address)
        for name, address in getaddresses([raw])
        if address
    )


class MailProvider(ABC):
    """
    Abstract base class for mail providers.

    Subclasses implement listing starred message ids, fetching one message
    and normalizing its payload. The fetch loop, authentication checks and
    failure policy live here.
    """

    provider_type: ProviderType

    def __init__(self, authenticator: OAuthAuthenticator):
        self.authenticator = authenticator
        # Set when the last list request failed
        self.last_error: str | None = None

    @property
    def name(self) -> str:
        return self.provider_type.value

    def is_authenticated(self) -> bool:
        return self.authenticator.is_authenticated()

    async def authenticate(self):
        await self.authenticator.authenticate()

    async def get_starred_messages(
        self,
        since: datetime | None = None,
    ) -> list[NormalizedMessage]:
        """
        Fetch starred/flagged messages, optionally received after ``since``.

        A failed list request yields an empty list and sets ``last_error``;
        a failed detail request skips that message.

        Raises:
            NotAuthenticatedError: Provider has no credential
            TokenRefreshError: Access token could not be refreshed
        """
        if not self.is_authenticated():
            raise NotAuthenticatedError(f"{self.name} is not authenticated.")

        headers = await self.authenticator.authorization_headers()
        self.last_error = None

        async with self.authenticator.http_client() as http:
            try:
                message_ids = await self._list_starred_ids(http, headers, since)
            except (httpx.HTTPError, ProviderFetchError, ValueError) as e:
                self.last_error = str(e)
                logger.error(f"Error listing {self.name} messages: {e}")
                return []

            if not message_ids:
                return []

            logger.info(f"Fetching {len(message_ids)} starred {self.name} messages")

            messages = []
            for message_id in message_ids:
                try:
                    payload = await self._fetch_message(http, headers, message_id)
                    messages.append(self._normalize(payload))
                except (httpx.HTTPError, ProviderFetchError, ValueError, KeyError) as e:
                    logger.warning(f"Error fetching {self.name} message {message_id}: {e}")
                    continue

            return messages

    @abstractmethod
    async def get_user_email(self) -> str | None:
        """Get the address of the connected account, or None if unknown."""
        pass

    @abstractmethod
    async def _list_starred_ids(
        self,
        http: httpx.AsyncClient,
        headers: dict[str, str],
        since: datetime | None,
    ) -> list[str]:
        pass

    @abstractmethod
    async def _fetch_message(
        self,
        http: httpx.AsyncClient,
        headers: dict[str, str],
        message_id: str,
    ) -> dict:
        pass

    @abstractmethod
    def _normalize(self, data: dict) -> NormalizedMessage:
        pass

    def _check_response(self, response: httpx.Response, action: str) -> dict:
        """Return the JSON body or raise ProviderFetchError on non-2xx."""
        if not response.is_success:
            raise ProviderFetchError(
                f"{self.name} {action} failed: {response.status_code} - {response.text}"
            )
        return response.json()
