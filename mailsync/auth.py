"""
API key guard for the local HTTP API.

When AUTH_API_KEY is set every request must carry a matching X-API-Key
header; otherwise all requests are allowed (local use).
"""

import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from .config import config

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"},
    )


def verify_api_key(api_key: str | None = Security(API_KEY_HEADER)) -> str:
    """
    Router dependency checking the X-API-Key header.

    Returns:
        The presented key, or an empty string when no key is configured

    Raises:
        HTTPException: 401 if a key is configured and the header is missing or wrong
    """
    expected = config.AUTH_API_KEY
    if not expected:
        return ""

    if not api_key:
        raise _unauthorized("Missing API key. Provide X-API-Key header.")

    # Constant-time comparison
    if not secrets.compare_digest(api_key.encode(), expected.encode()):
        raise _unauthorized("Invalid API key")

    return api_key
