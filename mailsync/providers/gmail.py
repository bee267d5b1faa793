"""
Gmail provider using the Gmail REST API.

Starred messages are found with the ``is:starred`` search query; each
message is then fetched in ``format=full`` to get headers and body parts.
"""

import base64
import logging
from datetime import datetime, timezone
from urllib.parse import quote

import httpx

from ..oauth import OAuthClientConfig
from .base import (
    Attachment,
    MailProvider,
    NormalizedMessage,
    ProviderType,
    parse_address,
    parse_address_list,
)


logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]
GMAIL_PAGE_SIZE = 100


def gmail_client_config(client_id: str, client_secret: str = "") -> OAuthClientConfig:
    """OAuth registration for Gmail."""
    return OAuthClientConfig(
        provider=ProviderType.GMAIL.value,
        auth_url=GOOGLE_AUTH_URL,
        token_url=GOOGLE_TOKEN_URL,
        scopes=GMAIL_SCOPES,
        client_id=client_id,
        client_secret=client_secret,
        auth_params={
            "access_type": "offline",  # Request refresh token
            "prompt": "consent",  # Always show consent to get refresh token
        },
    )


def build_search_query(since: datetime | None) -> str:
    """Gmail search query for starred mail, bounded by ``since`` in epoch seconds."""
    query = "is:starred"
    if since:
        query += f" after:{int(since.timestamp())}"
    return query


def decode_body(data: str) -> str:
    """Decode a base64url encoded message part."""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _find_part(part: dict, mime_type: str) -> dict | None:
    """Depth-first search for a part of the given MIME type with inline data."""
    if part.get("mimeType") == mime_type and (part.get("body") or {}).get("data"):
        return part
    for child in part.get("parts") or []:
        found = _find_part(child, mime_type)
        if found:
            return found
    return None


def extract_bodies(payload: dict) -> tuple[str, str | None]:
    """
    Extract (html, text) bodies from a Gmail payload.

    HTML is preferred. A plain-text body comes back as ``("", text)`` so it
    is never run through the HTML converter. Missing bodies yield
    ``("", None)``.
    """
    body_data = (payload.get("body") or {}).get("data")
    if body_data:
        decoded = decode_body(body_data)
        if payload.get("mimeType") == "text/html":
            return decoded, None
        return "", decoded

    html_part = _find_part(payload, "text/html")
    text_part = _find_part(payload, "text/plain")
    body_text = decode_body(text_part["body"]["data"]) if text_part else None

    if html_part:
        return decode_body(html_part["body"]["data"]), body_text
    return "", body_text


def extract_attachments(payload: dict) -> list[Attachment]:
    attachments = []

    def walk(part: dict):
        body = part.get("body") or {}
        if part.get("filename") and body.get("attachmentId"):
            attachments.append(Attachment(
                name=part["filename"],
                content_type=part.get("mimeType", "application/octet-stream"),
                size=body.get("size", 0),
            ))
        for child in part.get("parts") or []:
            walk(child)

    walk(payload)
    return attachments


class GmailProvider(MailProvider):
    """Gmail starred-message fetcher."""

    provider_type = ProviderType.GMAIL

    async def get_user_email(self) -> str | None:
        if not self.is_authenticated():
            return None

        try:
            headers = await self.authenticator.authorization_headers()
            async with self.authenticator.http_client() as http:
                response = await http.get(f"{GMAIL_API_URL}/profile", headers=headers)
            if response.is_success:
                return response.json().get("emailAddress")
        except Exception as e:
            logger.error(f"Error fetching Gmail profile: {e}")
        return None

    async def _list_starred_ids(
        self,
        http: httpx.AsyncClient,
        headers: dict[str, str],
        since: datetime | None,
    ) -> list[str]:
        response = await http.get(
            f"{GMAIL_API_URL}/messages",
            params={"q": build_search_query(since), "maxResults": GMAIL_PAGE_SIZE},
            headers=headers,
        )
        data = self._check_response(response, "list")
        return [msg["id"] for msg in data.get("messages") or []]

    async def _fetch_message(
        self,
        http: httpx.AsyncClient,
        headers: dict[str, str],
        message_id: str,
    ) -> dict:
        response = await http.get(
            f"{GMAIL_API_URL}/messages/{quote(message_id, safe='')}",
            params={"format": "full"},
            headers=headers,
        )
        return self._check_response(response, f"fetch {message_id}")

    def _normalize(self, data: dict) -> NormalizedMessage:
        payload = data.get("payload") or {}
        headers = {
            h.get("name", "").lower(): h.get("value", "")
            for h in payload.get("headers") or []
        }

        body_html, body_text = extract_bodies(payload)
        attachments = extract_attachments(payload)
        internal_date = int(data.get("internalDate") or 0)

        return NormalizedMessage(
            id=data["id"],
            source=ProviderType.GMAIL,
            subject=headers.get("subject") or "(No Subject)",
            sender=parse_address(headers.get("from", "")),
            to=parse_address_list(headers.get("to", "")),
            cc=parse_address_list(headers.get("cc", "")),
            received_at=datetime.fromtimestamp(internal_date / 1000, tz=timezone.utc),
            snippet=data.get("snippet") or "",
            body_html=body_html,
            body_text=body_text,
            web_link=f"https://mail.google.com/mail/u/0/#inbox/{data['id']}",
            has_attachments=bool(attachments),
            attachments=tuple(attachments),
            labels=tuple(data.get("labelIds") or ()),
        )
