"""
Error taxonomy for authentication, fetching and note materialization.
"""


class MailSyncError(Exception):
    """Base class for all mailsync errors."""
    pass


class ConfigurationError(MailSyncError):
    """Required provider setting (e.g. client ID) is missing."""
    pass


class NotAuthenticatedError(MailSyncError):
    """Provider has no stored credential."""
    pass


class TokenExchangeError(MailSyncError):
    """Authorization code could not be exchanged for tokens."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TokenRefreshError(MailSyncError):
    """Refresh-token exchange was rejected; the user must re-authenticate."""

    def __init__(self, status_code: int | None, body: str):
        detail = f"{status_code} - {body}" if status_code is not None else body
        super().__init__(f"Token refresh failed: {detail}")
        self.status_code = status_code
        self.body = body


class OAuthError(MailSyncError):
    """Authorization attempt failed before tokens were issued."""
    pass


class OAuthTimeoutError(OAuthError):
    """No callback arrived within the allowed time."""
    pass


class OAuthDeniedError(OAuthError):
    """Provider redirected back with an ``error`` parameter."""

    def __init__(self, error: str, description: str | None = None):
        super().__init__(f"OAuth error: {error} - {description or 'Unknown error'}")
        self.error = error
        self.description = description


class OAuthCallbackError(OAuthError):
    """Callback was missing the code or state parameter."""
    pass


class OAuthStateMismatchError(OAuthError):
    """Returned state did not match the one we generated (possible CSRF)."""
    pass


class ProviderFetchError(MailSyncError):
    """Listing messages from a provider failed."""
    pass


class MaterializationError(MailSyncError):
    """A note could not be written for a message."""
    pass
