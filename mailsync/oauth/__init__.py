"""
OAuth Integration Module.

Provides desktop OAuth 2.0 for mail providers:
- Loopback callback server with CSRF state validation
- Authorization-code and refresh-token exchange
- Per-provider credential storage
"""

from .callback_server import (
    CALLBACK_PATH,
    DEFAULT_CALLBACK_PORT,
    DEFAULT_CALLBACK_TIMEOUT,
    CallbackResult,
    OAuthCallbackServer,
)

from .credentials import (
    Credential,
    CredentialStore,
)

from .authenticator import (
    REFRESH_BUFFER,
    AuthState,
    OAuthAuthenticator,
    OAuthClientConfig,
    generate_state,
)

__all__ = [
    # Callback server
    "CALLBACK_PATH",
    "DEFAULT_CALLBACK_PORT",
    "DEFAULT_CALLBACK_TIMEOUT",
    "CallbackResult",
    "OAuthCallbackServer",
    # Credentials
    "Credential",
    "CredentialStore",
    # Authenticator
    "REFRESH_BUFFER",
    "AuthState",
    "OAuthAuthenticator",
    "OAuthClientConfig",
    "generate_state",
]
