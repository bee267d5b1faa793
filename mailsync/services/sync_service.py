"""
Wiring for the sync engine and provider connection flows.

Builds providers, ledger, note creator, orchestrator and scheduler from
configuration, and runs interactive OAuth flows in the background.
"""

import asyncio
import logging

from ..config import AppState, config
from ..database import Database
from ..exceptions import MailSyncError
from ..notes import NoteCreator
from ..providers import MailProvider, ProviderType, create_provider
from ..sync import SyncLedger, SyncOrchestrator, SyncScheduler


logger = logging.getLogger(__name__)


def provider_client(provider_type: ProviderType) -> tuple[str, str]:
    """Client ID and secret configured for a provider."""
    if provider_type == ProviderType.GMAIL:
        return config.GMAIL_CLIENT_ID, config.GMAIL_CLIENT_SECRET
    return config.OUTLOOK_CLIENT_ID, config.OUTLOOK_CLIENT_SECRET


def default_enabled(provider_type: ProviderType) -> bool:
    if provider_type == ProviderType.GMAIL:
        return config.GMAIL_ENABLED
    return config.OUTLOOK_ENABLED


def is_provider_enabled(db: Database, provider_type: ProviderType) -> bool:
    return db.is_provider_enabled(provider_type.value, default_enabled(provider_type))


def build_providers(db: Database, **auth_kwargs) -> dict[ProviderType, MailProvider]:
    providers = {}
    for provider_type in ProviderType:
        client_id, client_secret = provider_client(provider_type)
        providers[provider_type] = create_provider(
            provider_type,
            db.credentials,
            client_id=client_id,
            client_secret=client_secret,
            callback_port=config.OAUTH_CALLBACK_PORT,
            callback_timeout=config.OAUTH_TIMEOUT_SECONDS,
            **auth_kwargs,
        )
    return providers


def init_sync_engine(state: AppState, db: Database, **auth_kwargs):
    """Populate ``state`` with the sync engine components."""
    state.db = db

    state.ledger = SyncLedger(config.ledger_path)
    state.ledger.load()

    state.note_creator = NoteCreator(config.NOTES_DIR)
    state.providers = build_providers(db, **auth_kwargs)

    state.orchestrator = SyncOrchestrator(
        providers=list(state.providers.values()),
        ledger=state.ledger,
        note_creator=state.note_creator,
        is_enabled=lambda provider_type: is_provider_enabled(db, provider_type),
    )
    state.scheduler = SyncScheduler(
        state.orchestrator,
        interval_minutes=db.get_sync_interval(config.SYNC_INTERVAL_MINUTES),
    )


async def connect_provider(state: AppState, provider: MailProvider):
    """
    Run the interactive OAuth flow for a provider.

    Failures are recorded in ``state.auth_errors`` with the raw provider text.
    """
    state.auth_errors.pop(provider.name, None)
    try:
        await provider.authenticate()
        email = await provider.get_user_email()
        logger.info(f"{provider.name} connected" + (f" for {email}" if email else ""))
    except MailSyncError as e:
        state.auth_errors[provider.name] = str(e)
    except Exception as e:
        logger.exception(f"{provider.name} authentication error")
        state.auth_errors[provider.name] = f"Unexpected error: {e}"


def start_connect(state: AppState, provider: MailProvider) -> bool:
    """
    Start the OAuth flow in the background.

    Returns:
        False if a flow for this provider is already running
    """
    running = state.auth_tasks.get(provider.name)
    if running and not running.done():
        return False

    state.auth_tasks[provider.name] = asyncio.create_task(connect_provider(state, provider))
    return True
