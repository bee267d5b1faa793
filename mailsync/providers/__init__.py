"""
Mail providers.

Closed set of providers behind one interface:
is_authenticated, authenticate, get_starred_messages, get_user_email.
"""

from .base import (
    Attachment,
    EmailAddress,
    MailProvider,
    NormalizedMessage,
    ProviderType,
    parse_address,
    parse_address_list,
)
from .gmail import GmailProvider
from .outlook import OutlookProvider
from .factory import create_provider

__all__ = [
    "Attachment",
    "EmailAddress",
    "MailProvider",
    "NormalizedMessage",
    "ProviderType",
    "parse_address",
    "parse_address_list",
    "GmailProvider",
    "OutlookProvider",
    "create_provider",
]
