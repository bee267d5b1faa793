"""
Temporary loopback HTTP server for the OAuth redirect.

Binds to 127.0.0.1 on a fixed port (so it can be registered as the
provider's redirect URI) and falls back to an ephemeral port when the fixed
one is taken. Exactly one callback is serviced; the server then unbinds.
"""

import asyncio
import html
import logging
import secrets
from dataclasses import dataclass

from aiohttp import web

from ..exceptions import (
    OAuthCallbackError,
    OAuthDeniedError,
    OAuthError,
    OAuthStateMismatchError,
    OAuthTimeoutError,
)


logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
DEFAULT_CALLBACK_PORT = 42813
DEFAULT_CALLBACK_TIMEOUT = 5 * 60  # seconds


@dataclass
class CallbackResult:
    """Authorization code and state received on the redirect."""
    code: str
    state: str


class OAuthCallbackServer:
    """Single-use OAuth redirect listener."""

    def __init__(self, port: int = DEFAULT_CALLBACK_PORT, host: str = "127.0.0.1"):
        self.host = host
        self.port: int | None = None
        self._preferred_port = port
        self._runner: web.AppRunner | None = None
        self._expected_state: str | None = None
        self._waiter: asyncio.Future | None = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self) -> int:
        """
        Start listening for the OAuth redirect.

        Returns:
            The bound port
        """
        if self._runner is not None:
            return self.port

        try:
            self._runner = await self._bind(self._preferred_port)
        except OSError as e:
            logger.warning(
                f"OAuth callback port {self._preferred_port} unavailable ({e}), "
                "using an ephemeral port"
            )
            self._runner = await self._bind(0)

        self.port = self._runner.addresses[0][1]
        logger.info(f"OAuth callback server listening on http://{self.host}:{self.port}")
        return self.port

    async def _bind(self, port: int) -> web.AppRunner:
        app = web.Application()
        app.router.add_get(CALLBACK_PATH, self._handle_callback)
        app.router.add_route("*", "/{tail:.*}", self._handle_not_found)

        runner = web.AppRunner(app, access_log=None, shutdown_timeout=1.0)
        await runner.setup()
        try:
            site = web.TCPSite(runner, self.host, port)
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        return runner

    def get_callback_url(self) -> str:
        """Get the redirect URI to register with the provider."""
        if not self.port:
            raise RuntimeError("Server not started - call start() first")
        return f"http://{self.host}:{self.port}{CALLBACK_PATH}"

    @property
    def callback_url(self) -> str:
        return self.get_callback_url()

    async def wait_for_callback(
        self,
        expected_state: str,
        timeout: float = DEFAULT_CALLBACK_TIMEOUT,
    ) -> CallbackResult:
        """
        Wait for the provider to redirect back with an authorization code.

        The server is stopped when this returns or raises.

        Args:
            expected_state: The state parameter sent in the authorization URL
            timeout: Seconds to wait before giving up

        Raises:
            OAuthTimeoutError: No callback within ``timeout``
            OAuthDeniedError: Provider returned an ``error`` parameter
            OAuthCallbackError: Missing ``code`` or ``state``
            OAuthStateMismatchError: Returned state differs from ``expected_state``
        """
        if self._runner is None:
            raise RuntimeError("Server not started")

        self._expected_state = expected_state
        self._waiter = asyncio.get_running_loop().create_future()

        try:
            return await asyncio.wait_for(self._waiter, timeout)
        except asyncio.TimeoutError:
            raise OAuthTimeoutError(
                f"OAuth flow timed out after {timeout:g} seconds"
            ) from None
        finally:
            await self.stop()

    async def stop(self):
        """Stop the server. Safe to call more than once."""
        runner, self._runner = self._runner, None
        if runner is None:
            return
        await runner.cleanup()
        logger.info("OAuth callback server stopped")

    async def _handle_not_found(self, request: web.Request) -> web.Response:
        return web.Response(status=404, text="Not Found")

    async def _handle_callback(self, request: web.Request) -> web.StreamResponse:
        waiter = self._waiter
        if waiter is None or waiter.done():
            return web.Response(status=404, text="Not Found")

        query = request.query
        code = query.get("code")
        state = query.get("state")
        error = query.get("error")
        error_description = query.get("error_description")

        outcome: CallbackResult | OAuthError
        if error:
            outcome = OAuthDeniedError(error, error_description)
            response = _render_page(
                400,
                "Authentication Failed",
                f"{error}: {error_description or 'Unknown error'}",
            )
        elif not code or not state:
            outcome = OAuthCallbackError("Missing code or state in OAuth callback")
            response = _render_page(
                400,
                "Invalid Callback",
                "Missing authorization code or state parameter.",
            )
        elif not secrets.compare_digest(state.encode(), (self._expected_state or "").encode()):
            outcome = OAuthStateMismatchError("State mismatch - possible CSRF attack")
            response = _render_page(
                403,
                "Security Error",
                "State parameter mismatch. Possible CSRF attack detected.",
            )
        else:
            outcome = CallbackResult(code=code, state=state)
            response = _render_page(
                200,
                "Authentication Successful",
                "Your mail account is now connected.",
            )

        # Flush the page before the waiter tears the server down
        await response.prepare(request)
        await response.write_eof()

        if waiter.done():
            # Timed out while the page was being written
            return response
        if isinstance(outcome, CallbackResult):
            waiter.set_result(outcome)
        else:
            logger.warning(f"OAuth callback rejected: {outcome}")
            waiter.set_exception(outcome)
        return response


def _render_page(status: int, title: str, message: str) -> web.Response:
    """Render the terminal page shown in the browser after the redirect."""
    ok = status == 200
    color = "#22c55e" if ok else "#dc2626"
    icon = "✓" if ok else "✗"
    note = (
        "You can close this window and return to the app."
        if ok else "You can close this window and try again."
    )
    body = f"""<!DOCTYPE html>
<html>
<head>
    <title>{html.escape(title)}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
            padding: 40px;
            text-align: center;
        }}
        h1 {{ color: {color}; }}
        .note {{ font-size: 14px; color: #999; }}
    </style>
</head>
<body>
    <h1>{icon} {html.escape(title)}</h1>
    <p>{html.escape(message)}</p>
    <p class="note">{note}</p>
</body>
</html>
"""
    return web.Response(status=status, text=body, content_type="text/html")
