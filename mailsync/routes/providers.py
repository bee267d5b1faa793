"""
Provider routes.

Connect (OAuth), disconnect, enable/disable and status per mail provider.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..auth import verify_api_key
from ..config import get_db, state
from ..database import Database
from ..providers import MailProvider, ProviderType
from ..schemas import (
    ProviderAccountResponse,
    ProviderConnectResponse,
    ProviderStatusResponse,
    ProviderUpdateRequest,
)
from ..services import is_provider_enabled, start_connect


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/providers",
    tags=["providers"],
    dependencies=[Depends(verify_api_key)]
)


def _get_provider(name: str) -> MailProvider:
    try:
        provider_type = ProviderType(name.lower())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {name}")

    provider = state.providers.get(provider_type)
    if not provider:
        raise HTTPException(status_code=500, detail="Providers not initialized")
    return provider


def _provider_status(db: Database, provider: MailProvider) -> ProviderStatusResponse:
    return ProviderStatusResponse(
        name=provider.name,
        enabled=is_provider_enabled(db, provider.provider_type),
        configured=bool(provider.authenticator.client.client_id),
        authenticated=provider.is_authenticated(),
        auth_state=provider.authenticator.state.value,
        last_error=provider.last_error,
        auth_error=state.auth_errors.get(provider.name),
    )


@router.get("")
async def list_providers(
    db: Database = Depends(get_db)
) -> list[ProviderStatusResponse]:
    """Get connection status for every provider."""
    return [_provider_status(db, provider) for provider in state.providers.values()]


@router.put("/{name}")
async def update_provider(
    name: str,
    request: ProviderUpdateRequest,
    db: Database = Depends(get_db)
) -> ProviderStatusResponse:
    """Enable or disable syncing for a provider."""
    provider = _get_provider(name)
    db.set_provider_enabled(provider.name, request.enabled)
    return _provider_status(db, provider)


@router.post("/{name}/connect", status_code=202)
async def connect(name: str) -> ProviderConnectResponse:
    """
    Start the OAuth flow for a provider.

    Opens the browser on the machine running the service and waits in the
    background for the redirect. Poll GET /providers for the outcome.
    """
    provider = _get_provider(name)

    if not provider.authenticator.client.client_id:
        raise HTTPException(
            status_code=400,
            detail=f"{provider.name} client ID not configured. "
                   f"Set {provider.name.upper()}_CLIENT_ID."
        )

    if not start_connect(state, provider):
        raise HTTPException(
            status_code=409,
            detail=f"{provider.name} authentication already in progress"
        )

    return ProviderConnectResponse(
        success=True,
        message=f"Opening browser for {provider.name} authentication",
    )


@router.get("/{name}/account")
async def get_account(name: str) -> ProviderAccountResponse:
    """
    Get the connected account address.

    Refreshes the access token if needed, so an expired or revoked grant
    surfaces here as 401.
    """
    provider = _get_provider(name)
    await provider.authenticator.ensure_access_token()
    return ProviderAccountResponse(name=provider.name, email=await provider.get_user_email())


@router.delete("/{name}/credentials")
async def disconnect(
    name: str,
    db: Database = Depends(get_db)
) -> ProviderStatusResponse:
    """Remove stored tokens for a provider."""
    provider = _get_provider(name)
    provider.authenticator.disconnect()
    state.auth_errors.pop(provider.name, None)
    return _provider_status(db, provider)
