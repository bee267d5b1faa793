"""
Provider factory for creating mail provider instances.
"""

import httpx

from ..database import CredentialRepository
from ..oauth import CredentialStore, OAuthAuthenticator
from .base import MailProvider, ProviderType
from .gmail import GmailProvider, gmail_client_config
from .outlook import OutlookProvider, outlook_client_config


def create_provider(
    provider_type: ProviderType | str,
    credentials: CredentialRepository,
    client_id: str,
    client_secret: str = "",
    transport: httpx.AsyncBaseTransport | None = None,
    **auth_kwargs,
) -> MailProvider:
    """
    Create a mail provider with its authenticator and credential store.

    Args:
        provider_type: The provider to create (gmail, outlook)
        credentials: Repository holding the serialized tokens
        client_id: OAuth client ID registered with the provider
        client_secret: OAuth client secret, if the app registration has one
        transport: Optional httpx transport (used by tests)
        **auth_kwargs: Passed to OAuthAuthenticator (callback port, timeout, ...)

    Raises:
        ValueError: If provider_type is unknown
    """
    if isinstance(provider_type, str):
        try:
            provider_type = ProviderType(provider_type.lower())
        except ValueError:
            raise ValueError(
                f"Unknown provider: {provider_type}. "
                f"Available: {[p.value for p in ProviderType]}"
            )

    if provider_type == ProviderType.GMAIL:
        client = gmail_client_config(client_id, client_secret)
        provider_class = GmailProvider
    elif provider_type == ProviderType.OUTLOOK:
        client = outlook_client_config(client_id, client_secret)
        provider_class = OutlookProvider
    else:
        raise ValueError(f"Unknown provider type: {provider_type}")

    store = CredentialStore(credentials, provider_type.value)
    authenticator = OAuthAuthenticator(client, store, transport=transport, **auth_kwargs)
    return provider_class(authenticator)
