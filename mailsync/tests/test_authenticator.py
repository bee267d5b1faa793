"""
Tests for the OAuth authenticator: token exchange, refresh and the
interactive flow.
"""

import asyncio
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from mailsync.exceptions import (
    ConfigurationError,
    NotAuthenticatedError,
    OAuthDeniedError,
    OAuthStateMismatchError,
    TokenExchangeError,
    TokenRefreshError,
)
from mailsync.oauth import (
    AuthState,
    CredentialStore,
    OAuthAuthenticator,
    OAuthCallbackServer,
    generate_state,
)
from mailsync.providers.gmail import GOOGLE_TOKEN_URL, gmail_client_config
from mailsync.providers.outlook import outlook_client_config


class TokenEndpoint:
    """MockTransport handler recording token requests."""

    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.payload = payload if payload is not None else {
            "access_token": "access-2",
            "expires_in": 3600,
        }
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.requests.append((request, form))
        if self.status_code >= 400:
            return httpx.Response(self.status_code, text='{"error": "invalid_grant"}')
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def _authenticator(test_db, endpoint=None, client_id="client-123", client_secret="",
                   **kwargs) -> OAuthAuthenticator:
    endpoint = endpoint or TokenEndpoint()
    return OAuthAuthenticator(
        gmail_client_config(client_id, client_secret),
        CredentialStore(test_db.credentials, "gmail"),
        transport=endpoint.transport,
        **kwargs,
    )


class TestGenerateState:
    """Tests for CSRF state generation."""

    def test_state_is_random_256_bit_hex(self):
        state = generate_state()
        assert len(state) == 64
        int(state, 16)
        assert generate_state() != state


class TestAuthorizationUrl:
    """Tests for building the provider authorization URL."""

    def test_gmail_url_requests_offline_access(self, test_db):
        """Gmail URL should ask for a refresh token."""
        auth = _authenticator(test_db)
        url = auth.get_auth_url("state-1", "http://127.0.0.1:42813/callback")
        params = parse_qs(urlparse(url).query)

        assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        assert params["client_id"] == ["client-123"]
        assert params["redirect_uri"] == ["http://127.0.0.1:42813/callback"]
        assert params["response_type"] == ["code"]
        assert params["state"] == ["state-1"]
        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]

    def test_outlook_url_includes_offline_access_scope(self, test_db):
        auth = OAuthAuthenticator(
            outlook_client_config("outlook-client"),
            CredentialStore(test_db.credentials, "outlook"),
        )
        url = auth.get_auth_url("state-1", "http://127.0.0.1:42813/callback")
        params = parse_qs(urlparse(url).query)

        assert "offline_access" in params["scope"][0].split()
        assert params["response_mode"] == ["query"]

    def test_missing_client_id_raises(self, test_db):
        auth = _authenticator(test_db, client_id="")
        with pytest.raises(ConfigurationError, match="client ID not configured"):
            auth.get_auth_url("state-1", "http://127.0.0.1/callback")


class TestEnsureAccessToken:
    """Tests for transparent token refresh."""

    @pytest.mark.asyncio
    async def test_not_authenticated(self, test_db):
        auth = _authenticator(test_db)
        assert not auth.is_authenticated()
        assert auth.state == AuthState.UNAUTHENTICATED

        with pytest.raises(NotAuthenticatedError):
            await auth.ensure_access_token()

    @pytest.mark.asyncio
    async def test_fresh_token_is_returned_without_request(self, test_db, save_credential):
        """A token valid for 10 more minutes should be used as-is."""
        save_credential(expires_in=timedelta(minutes=10))
        endpoint = TokenEndpoint()
        auth = _authenticator(test_db, endpoint)

        assert await auth.ensure_access_token() == "access-1"
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_token_inside_buffer_is_refreshed(self, test_db, save_credential):
        """A token expiring in 4 minutes should be refreshed first."""
        save_credential(expires_in=timedelta(minutes=4))
        endpoint = TokenEndpoint()
        auth = _authenticator(test_db, endpoint, client_secret="shh")

        token = await auth.ensure_access_token()

        assert token == "access-2"
        assert len(endpoint.requests) == 1
        request, form = endpoint.requests[0]
        assert str(request.url) == GOOGLE_TOKEN_URL
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "refresh-1"
        assert form["client_id"] == "client-123"
        assert form["client_secret"] == "shh"
        assert auth.state == AuthState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token_when_not_rotated(self, test_db, save_credential):
        """Old refresh token is kept when the response omits one."""
        save_credential(expires_in=timedelta(minutes=-1))
        auth = _authenticator(test_db)

        await auth.ensure_access_token()

        stored = CredentialStore(test_db.credentials, "gmail").load()
        assert stored.access_token == "access-2"
        assert stored.refresh_token == "refresh-1"
        assert not stored.expires_within(timedelta(minutes=50))

    @pytest.mark.asyncio
    async def test_refresh_stores_rotated_refresh_token(self, test_db, save_credential):
        save_credential(expires_in=timedelta(minutes=-1))
        endpoint = TokenEndpoint(payload={
            "access_token": "access-2",
            "refresh_token": "refresh-2",
            "expires_in": 3600,
        })
        auth = _authenticator(test_db, endpoint)

        await auth.ensure_access_token()

        stored = CredentialStore(test_db.credentials, "gmail").load()
        assert stored.refresh_token == "refresh-2"

    @pytest.mark.asyncio
    async def test_refresh_rejected(self, test_db, save_credential):
        """A rejected refresh surfaces the provider's status and body."""
        save_credential(expires_in=timedelta(minutes=1))
        auth = _authenticator(test_db, TokenEndpoint(status_code=400))

        with pytest.raises(TokenRefreshError) as exc_info:
            await auth.ensure_access_token()

        assert exc_info.value.status_code == 400
        assert "invalid_grant" in exc_info.value.body
        assert "Token refresh failed: 400" in str(exc_info.value)
        assert auth.state == AuthState.UNAUTHENTICATED
        # The refresh token is kept so a later refresh can still succeed
        assert auth.is_authenticated()

    @pytest.mark.asyncio
    async def test_refresh_transport_error(self, test_db, save_credential):
        save_credential(expires_in=timedelta(minutes=1))

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        auth = OAuthAuthenticator(
            gmail_client_config("client-123"),
            CredentialStore(test_db.credentials, "gmail"),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(TokenRefreshError) as exc_info:
            await auth.ensure_access_token()
        assert exc_info.value.status_code is None
        assert auth.state == AuthState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_refresh_with_non_json_body(self, test_db, save_credential):
        save_credential(expires_in=timedelta(minutes=1))
        auth = OAuthAuthenticator(
            gmail_client_config("client-123"),
            CredentialStore(test_db.credentials, "gmail"),
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>oops</html>")
            ),
        )

        with pytest.raises(TokenRefreshError) as exc_info:
            await auth.ensure_access_token()

        assert exc_info.value.status_code == 200
        assert "not JSON" in str(exc_info.value)
        assert auth.state == AuthState.UNAUTHENTICATED
        assert auth.credential.access_token == "access-1"

    @pytest.mark.asyncio
    async def test_refresh_without_access_token(self, test_db, save_credential):
        save_credential(expires_in=timedelta(minutes=1))
        auth = _authenticator(test_db, TokenEndpoint(payload={"expires_in": 3600}))

        with pytest.raises(TokenRefreshError, match="no access_token"):
            await auth.ensure_access_token()

        assert auth.state == AuthState.UNAUTHENTICATED
        assert CredentialStore(test_db.credentials, "gmail").load().access_token == "access-1"

    @pytest.mark.asyncio
    async def test_authorization_headers(self, test_db, save_credential):
        save_credential()
        auth = _authenticator(test_db)
        assert await auth.authorization_headers() == {"Authorization": "Bearer access-1"}


class TestExchangeCode:
    """Tests for the authorization-code exchange."""

    @pytest.mark.asyncio
    async def test_exchange_stores_credential(self, test_db):
        endpoint = TokenEndpoint(payload={
            "access_token": "access-new",
            "refresh_token": "refresh-new",
            "expires_in": 3599,
        })
        auth = _authenticator(test_db, endpoint)

        credential = await auth.exchange_code("code-1", "http://127.0.0.1:1/callback")

        _, form = endpoint.requests[0]
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "code-1"
        assert form["redirect_uri"] == "http://127.0.0.1:1/callback"
        assert "client_secret" not in form
        assert credential.refresh_token == "refresh-new"
        stored = CredentialStore(test_db.credentials, "gmail").load()
        assert stored.access_token == "access-new"
        assert stored.refresh_token == "refresh-new"

    @pytest.mark.asyncio
    async def test_exchange_without_refresh_token_fails(self, test_db):
        auth = _authenticator(test_db, TokenEndpoint(payload={"access_token": "a"}))

        with pytest.raises(TokenExchangeError, match="No refresh token"):
            await auth.exchange_code("code-1", "http://127.0.0.1:1/callback")
        assert not auth.is_authenticated()

    @pytest.mark.asyncio
    async def test_exchange_rejected(self, test_db):
        auth = _authenticator(test_db, TokenEndpoint(status_code=400))

        with pytest.raises(TokenExchangeError) as exc_info:
            await auth.exchange_code("bad-code", "http://127.0.0.1:1/callback")
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_exchange_without_access_token_fails(self, test_db):
        auth = _authenticator(test_db, TokenEndpoint(payload={"refresh_token": "r"}))

        with pytest.raises(TokenExchangeError, match="no access_token") as exc_info:
            await auth.exchange_code("code-1", "http://127.0.0.1:1/callback")

        assert exc_info.value.status_code == 200
        assert not auth.is_authenticated()

    @pytest.mark.asyncio
    async def test_outlook_sends_scope_to_token_endpoint(self, test_db):
        endpoint = TokenEndpoint(payload={
            "access_token": "a",
            "refresh_token": "r",
            "expires_in": 3600,
        })
        auth = OAuthAuthenticator(
            outlook_client_config("outlook-client"),
            CredentialStore(test_db.credentials, "outlook"),
            transport=endpoint.transport,
        )

        await auth.exchange_code("code-1", "http://127.0.0.1:1/callback")

        _, form = endpoint.requests[0]
        assert "offline_access" in form["scope"].split()


class TestAuthenticate:
    """Tests for the interactive authorization flow."""

    @pytest.mark.asyncio
    async def test_missing_client_id_does_not_start_server(self, test_db, fake_callback_server):
        servers = []

        def factory(port):
            servers.append(fake_callback_server())
            return servers[-1]

        auth = _authenticator(test_db, client_id="", server_factory=factory)

        with pytest.raises(ConfigurationError):
            await auth.authenticate()
        assert servers == []

    @pytest.mark.asyncio
    async def test_successful_flow(self, test_db, fake_callback_server, callback_success):
        """Browser is opened, the code is exchanged and tokens are stored."""
        server = fake_callback_server(outcome=callback_success)
        opened = []
        endpoint = TokenEndpoint(payload={
            "access_token": "access-new",
            "refresh_token": "refresh-new",
            "expires_in": 3600,
        })
        auth = _authenticator(
            test_db, endpoint,
            open_browser=opened.append,
            server_factory=lambda port: server,
        )

        await auth.authenticate()

        assert len(opened) == 1
        params = parse_qs(urlparse(opened[0]).query)
        assert params["state"] == [server.expected_state]
        assert params["redirect_uri"] == [server.get_callback_url()]
        assert endpoint.requests[0][1]["redirect_uri"] == server.get_callback_url()
        assert server.stopped
        assert auth.is_authenticated()
        assert auth.state == AuthState.AUTHENTICATED
        assert CredentialStore(test_db.credentials, "gmail").load().refresh_token == "refresh-new"

    @pytest.mark.asyncio
    async def test_denied_flow_leaves_credentials_unchanged(
        self, test_db, fake_callback_server
    ):
        def deny(expected_state):
            raise OAuthDeniedError("access_denied", "User denied access")

        server = fake_callback_server(outcome=deny)
        endpoint = TokenEndpoint()
        auth = _authenticator(
            test_db, endpoint,
            open_browser=lambda url: None,
            server_factory=lambda port: server,
        )

        with pytest.raises(OAuthDeniedError):
            await auth.authenticate()

        assert endpoint.requests == []
        assert server.stopped
        assert auth.state == AuthState.UNAUTHENTICATED
        assert CredentialStore(test_db.credentials, "gmail").load() is None

    @pytest.mark.asyncio
    async def test_state_mismatch_never_exchanges(self, test_db, fake_callback_server):
        def mismatch(expected_state):
            raise OAuthStateMismatchError("State mismatch - possible CSRF attack")

        endpoint = TokenEndpoint()
        auth = _authenticator(
            test_db, endpoint,
            open_browser=lambda url: None,
            server_factory=lambda port: fake_callback_server(outcome=mismatch),
        )

        with pytest.raises(OAuthStateMismatchError):
            await auth.authenticate()
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_denied_through_real_callback_server(self, test_db):
        """User denies consent in the browser: the loopback server reports it."""
        redirects = []

        async def deny_in_browser(auth_url):
            params = parse_qs(urlparse(auth_url).query)
            redirect_uri = params["redirect_uri"][0]
            async with httpx.AsyncClient(trust_env=False) as client:
                response = await client.get(
                    redirect_uri,
                    params={"error": "access_denied", "state": params["state"][0]},
                )
            redirects.append(response)

        tasks = []

        def open_browser(url):
            tasks.append(asyncio.get_running_loop().create_task(deny_in_browser(url)))

        endpoint = TokenEndpoint()
        auth = _authenticator(
            test_db, endpoint,
            open_browser=open_browser,
            server_factory=lambda port: OAuthCallbackServer(port=0),
        )

        with pytest.raises(OAuthDeniedError, match="access_denied"):
            await auth.authenticate()
        await asyncio.gather(*tasks)

        assert redirects[0].status_code == 400
        assert endpoint.requests == []
        assert not auth.is_authenticated()


class TestDisconnect:

    def test_disconnect_clears_credential(self, test_db, save_credential):
        save_credential()
        auth = _authenticator(test_db)
        assert auth.is_authenticated()

        auth.disconnect()

        assert not auth.is_authenticated()
        assert auth.state == AuthState.UNAUTHENTICATED
        assert CredentialStore(test_db.credentials, "gmail").load() is None
