"""
OAuth 2.0 authorization-code flow for desktop mail access.

Handles the browser round trip through the local callback server, the
code-for-token exchange and transparent access-token refresh.
"""

import logging
import secrets
import webbrowser
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable
from urllib.parse import urlencode

import httpx

from ..exceptions import (
    ConfigurationError,
    MailSyncError,
    NotAuthenticatedError,
    TokenExchangeError,
    TokenRefreshError,
)
from .callback_server import (
    DEFAULT_CALLBACK_PORT,
    DEFAULT_CALLBACK_TIMEOUT,
    OAuthCallbackServer,
)
from .credentials import Credential, CredentialStore


logger = logging.getLogger(__name__)

# Refresh access tokens that expire within this window
REFRESH_BUFFER = timedelta(minutes=5)
DEFAULT_EXPIRES_IN = 3600


class AuthState(Enum):
    """Authenticator lifecycle."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


@dataclass
class OAuthClientConfig:
    """Provider endpoints and OAuth app registration."""
    provider: str
    auth_url: str
    token_url: str
    scopes: list[str]
    client_id: str
    client_secret: str = ""
    # Extra query parameters for the authorization URL
    auth_params: dict[str, str] = field(default_factory=dict)
    # Extra form fields sent to the token endpoint
    token_params: dict[str, str] = field(default_factory=dict)


def generate_state() -> str:
    """Generate a 256-bit random state parameter for CSRF protection."""
    return secrets.token_hex(32)


class OAuthAuthenticator:
    """
    Owns one provider's credential and keeps its access token fresh.

    ``is_authenticated`` only looks at the stored refresh token, so it never
    does I/O. ``ensure_access_token`` is called before every API request.
    """

    def __init__(
        self,
        client: OAuthClientConfig,
        store: CredentialStore,
        callback_port: int = DEFAULT_CALLBACK_PORT,
        callback_timeout: float = DEFAULT_CALLBACK_TIMEOUT,
        open_browser: Callable[[str], object] = webbrowser.open,
        transport: httpx.AsyncBaseTransport | None = None,
        server_factory: Callable[..., OAuthCallbackServer] = OAuthCallbackServer,
    ):
        self.client = client
        self._store = store
        self._callback_port = callback_port
        self._callback_timeout = callback_timeout
        self._open_browser = open_browser
        self._transport = transport
        self._server_factory = server_factory

        self.credential: Credential | None = store.load()
        self._state = (
            AuthState.AUTHENTICATED if self.is_authenticated() else AuthState.UNAUTHENTICATED
        )

    @property
    def provider(self) -> str:
        return self.client.provider

    @property
    def state(self) -> AuthState:
        return self._state

    def is_authenticated(self) -> bool:
        return bool(self.credential and self.credential.refresh_token)

    def http_client(self) -> httpx.AsyncClient:
        """Create an HTTP client sharing this authenticator's transport."""
        return httpx.AsyncClient(transport=self._transport)

    def get_auth_url(self, state: str, redirect_uri: str) -> str:
        """
        Build the provider authorization URL.

        Args:
            state: Random state parameter for CSRF protection
            redirect_uri: Local callback URL

        Returns:
            Authorization URL to open in the browser
        """
        if not self.client.client_id:
            raise ConfigurationError(
                f"{self.provider} client ID not configured. Please enter it in settings."
            )

        params = {
            "client_id": self.client.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.client.scopes),
            "state": state,
            **self.client.auth_params,
        }
        return f"{self.client.auth_url}?{urlencode(params)}"

    async def authenticate(self) -> Credential:
        """
        Run the interactive authorization-code flow.

        Opens the browser, waits for the redirect on the local callback
        server and exchanges the code for tokens. The callback server is
        always stopped before returning.

        Raises:
            ConfigurationError: Client ID missing
            OAuthError: Timeout, denial, malformed callback or state mismatch
            TokenExchangeError: Token endpoint rejected the code
        """
        if not self.client.client_id:
            raise ConfigurationError(
                f"{self.provider} client ID not configured. Please enter it in settings."
            )

        logger.info(f"Starting {self.provider} OAuth flow")
        self._state = AuthState.AUTHENTICATING
        server = self._server_factory(port=self._callback_port)

        try:
            await server.start()
            redirect_uri = server.get_callback_url()
            state = generate_state()

            self._open_browser(self.get_auth_url(state, redirect_uri))

            result = await server.wait_for_callback(state, self._callback_timeout)
            credential = await self.exchange_code(result.code, redirect_uri)

            logger.info(f"{self.provider} authentication successful")
            return credential

        except MailSyncError as e:
            logger.error(f"{self.provider} authentication failed: {e}")
            raise
        finally:
            await server.stop()
            self._state = (
                AuthState.AUTHENTICATED if self.is_authenticated() else AuthState.UNAUTHENTICATED
            )

    async def exchange_code(self, code: str, redirect_uri: str) -> Credential:
        """
        Exchange an authorization code for access and refresh tokens.

        Args:
            code: Authorization code from the OAuth callback
            redirect_uri: The redirect URI used in the authorization request

        Returns:
            The stored credential
        """
        data = {
            "code": code,
            "client_id": self.client.client_id,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
            **self.client.token_params,
        }
        if self.client.client_secret:
            data["client_secret"] = self.client.client_secret

        try:
            async with self.http_client() as http:
                response = await http.post(self.client.token_url, data=data)
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token exchange failed: {e}") from e

        if not response.is_success:
            raise TokenExchangeError(
                f"Token exchange failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            token_data = _read_token_response(response)
        except ValueError as e:
            raise TokenExchangeError(
                f"Token exchange failed: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        refresh_token = token_data.get("refresh_token")
        if not refresh_token:
            raise TokenExchangeError(
                "No refresh token received. Please revoke app access and try again."
            )

        credential = Credential(
            access_token=token_data["access_token"],
            refresh_token=refresh_token,
            expires_at=_expiry(token_data),
        )
        self._save(credential)
        return credential

    async def ensure_access_token(self) -> str:
        """
        Get a valid access token, refreshing if necessary.

        Raises:
            NotAuthenticatedError: No credential stored
            TokenRefreshError: Refresh was rejected by the provider
        """
        if not self.is_authenticated():
            raise NotAuthenticatedError(f"{self.provider} is not authenticated")

        if not self.credential.expires_within(REFRESH_BUFFER):
            return self.credential.access_token

        logger.info(f"{self.provider} access token expired, refreshing...")
        credential = await self.refresh()
        return credential.access_token

    async def refresh(self) -> Credential:
        """Exchange the refresh token for a new access token."""
        if not self.is_authenticated():
            raise NotAuthenticatedError(f"{self.provider} is not authenticated")

        current = self.credential
        data = {
            "refresh_token": current.refresh_token,
            "client_id": self.client.client_id,
            "grant_type": "refresh_token",
            **self.client.token_params,
        }
        if self.client.client_secret:
            data["client_secret"] = self.client.client_secret

        self._state = AuthState.REFRESHING
        # A rejected or unusable grant leaves the provider needing re-auth;
        # transport failures keep the stored credential usable
        next_state = AuthState.AUTHENTICATED
        try:
            try:
                async with self.http_client() as http:
                    response = await http.post(self.client.token_url, data=data)
            except httpx.HTTPError as e:
                raise TokenRefreshError(None, str(e)) from e

            if not response.is_success:
                next_state = AuthState.UNAUTHENTICATED
                raise TokenRefreshError(response.status_code, response.text)

            try:
                token_data = _read_token_response(response)
            except ValueError as e:
                next_state = AuthState.UNAUTHENTICATED
                raise TokenRefreshError(response.status_code, f"{e}: {response.text}") from e

            credential = Credential(
                access_token=token_data["access_token"],
                # Some providers don't rotate the refresh token
                refresh_token=token_data.get("refresh_token") or current.refresh_token,
                expires_at=_expiry(token_data),
            )
            self._save(credential)
            logger.info(f"{self.provider} access token refreshed successfully")
            return credential
        finally:
            self._state = next_state

    async def authorization_headers(self) -> dict[str, str]:
        token = await self.ensure_access_token()
        return {"Authorization": f"Bearer {token}"}

    def disconnect(self):
        """Forget stored tokens (explicit user action)."""
        self._store.clear()
        self.credential = None
        self._state = AuthState.UNAUTHENTICATED
        logger.info(f"{self.provider} disconnected")

    def _save(self, credential: Credential):
        self.credential = credential
        self._store.store(credential)


def _read_token_response(response: httpx.Response) -> dict:
    """Parse a token endpoint body; ValueError unless it carries an access token."""
    try:
        token_data = response.json()
    except ValueError as e:
        raise ValueError("response is not JSON") from e
    if not isinstance(token_data, dict) or not token_data.get("access_token"):
        raise ValueError("response has no access_token")
    return token_data


def _expiry(token_data: dict) -> datetime:
    expires_in = token_data.get("expires_in") or DEFAULT_EXPIRES_IN
    return datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
