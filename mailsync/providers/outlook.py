"""
Outlook provider using Microsoft Graph.

Flagged messages are selected with ``flag/flagStatus eq 'flagged'``; the list
request only returns ids and each message is fetched individually.
"""

import logging
from datetime import datetime, timezone
from urllib.parse import quote

import httpx

from ..oauth import OAuthClientConfig
from .base import (
    EmailAddress,
    MailProvider,
    NormalizedMessage,
    ProviderType,
)


logger = logging.getLogger(__name__)

MICROSOFT_AUTH_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
GRAPH_API_URL = "https://graph.microsoft.com/v1.0"

# offline_access is what makes Microsoft issue a refresh token
OUTLOOK_SCOPES = ["openid", "profile", "offline_access", "User.Read", "Mail.Read"]
OUTLOOK_PAGE_SIZE = 50
MESSAGE_FIELDS = (
    "id,subject,receivedDateTime,from,toRecipients,ccRecipients,body,"
    "bodyPreview,webLink,hasAttachments,categories,flag"
)


def outlook_client_config(client_id: str, client_secret: str = "") -> OAuthClientConfig:
    """OAuth registration for Outlook / Microsoft Graph."""
    scope = " ".join(OUTLOOK_SCOPES)
    return OAuthClientConfig(
        provider=ProviderType.OUTLOOK.value,
        auth_url=MICROSOFT_AUTH_URL,
        token_url=MICROSOFT_TOKEN_URL,
        scopes=OUTLOOK_SCOPES,
        client_id=client_id,
        client_secret=client_secret,
        auth_params={"response_mode": "query", "prompt": "consent"},
        token_params={"scope": scope},
    )


def build_filter(since: datetime | None) -> str:
    """OData filter for flagged mail, bounded by ``since`` as ISO-8601 UTC."""
    odata_filter = "flag/flagStatus eq 'flagged'"
    if since:
        iso = since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        odata_filter += f" and receivedDateTime ge {iso}"
    return odata_filter


def _parse_graph_datetime(value: str | None) -> datetime:
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _recipient(entry: dict | None) -> EmailAddress:
    address = (entry or {}).get("emailAddress") or {}
    email = address.get("address") or ""
    return EmailAddress(name=address.get("name") or email, email=email)


class OutlookProvider(MailProvider):
    """Outlook flagged-message fetcher."""

    provider_type = ProviderType.OUTLOOK

    async def get_user_email(self) -> str | None:
        if not self.is_authenticated():
            return None

        try:
            headers = await self.authenticator.authorization_headers()
            async with self.authenticator.http_client() as http:
                response = await http.get(f"{GRAPH_API_URL}/me", headers=headers)
            if response.is_success:
                data = response.json()
                return data.get("userPrincipalName") or data.get("mail")
        except Exception as e:
            logger.error(f"Error fetching Outlook user email: {e}")
        return None

    async def _list_starred_ids(
        self,
        http: httpx.AsyncClient,
        headers: dict[str, str],
        since: datetime | None,
    ) -> list[str]:
        response = await http.get(
            f"{GRAPH_API_URL}/me/messages",
            params={
                "$filter": build_filter(since),
                "$select": "id",
                "$top": OUTLOOK_PAGE_SIZE,
            },
            headers=headers,
        )
        data = self._check_response(response, "list")
        return [msg["id"] for msg in data.get("value") or []]

    async def _fetch_message(
        self,
        http: httpx.AsyncClient,
        headers: dict[str, str],
        message_id: str,
    ) -> dict:
        response = await http.get(
            f"{GRAPH_API_URL}/me/messages/{quote(message_id, safe='')}",
            params={"$select": MESSAGE_FIELDS},
            headers=headers,
        )
        return self._check_response(response, f"fetch {message_id}")

    def _normalize(self, data: dict) -> NormalizedMessage:
        sender = _recipient(data.get("from"))
        if not sender.name:
            sender = EmailAddress(name="Unknown", email=sender.email)

        # Graph returns body.contentType as 'html' or 'text'
        body = data.get("body") or {}
        content_type = (body.get("contentType") or "").lower()
        body_html = body.get("content", "") if content_type == "html" else ""
        body_text = body.get("content", "") if content_type == "text" else None

        return NormalizedMessage(
            id=data["id"],
            source=ProviderType.OUTLOOK,
            subject=data.get("subject") or "(No Subject)",
            sender=sender,
            to=tuple(_recipient(r) for r in data.get("toRecipients") or []),
            cc=tuple(_recipient(r) for r in data.get("ccRecipients") or []),
            received_at=_parse_graph_datetime(data.get("receivedDateTime")),
            snippet=data.get("bodyPreview") or "",
            body_html=body_html,
            body_text=body_text,
            web_link=data.get("webLink") or "",
            has_attachments=bool(data.get("hasAttachments")),
            labels=tuple(data.get("categories") or ()),
        )
