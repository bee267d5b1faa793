"""
Configuration and application state management.
"""

import asyncio
import os
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from fastapi import HTTPException

if TYPE_CHECKING:
    from .database import Database
    from .notes import NoteCreator
    from .providers import MailProvider, ProviderType
    from .sync import SyncLedger, SyncOrchestrator, SyncScheduler

# Load environment variables
load_dotenv()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


class Config:
    """Application configuration from environment."""
    # Provider OAuth apps
    GMAIL_CLIENT_ID: str = os.getenv("GMAIL_CLIENT_ID", "")
    GMAIL_CLIENT_SECRET: str = os.getenv("GMAIL_CLIENT_SECRET", "")
    OUTLOOK_CLIENT_ID: str = os.getenv("OUTLOOK_CLIENT_ID", "")
    OUTLOOK_CLIENT_SECRET: str = os.getenv("OUTLOOK_CLIENT_SECRET", "")

    # Defaults for runtime preferences (overridable through /providers and /settings)
    GMAIL_ENABLED: bool = _parse_bool(os.getenv("GMAIL_ENABLED"))
    OUTLOOK_ENABLED: bool = _parse_bool(os.getenv("OUTLOOK_ENABLED"))
    SYNC_INTERVAL_MINUTES: int = int(os.getenv("SYNC_INTERVAL_MINUTES", "30"))

    DATA_DIR: Path = Path(os.getenv("DATA_DIR", "./data"))
    NOTES_DIR: Path = Path(os.getenv("NOTES_DIR", "./data/notes"))
    DB_PATH: Path = Path(os.getenv("DB_PATH", "./data/mailsync.db"))

    # Local OAuth redirect listener
    OAUTH_CALLBACK_PORT: int = int(os.getenv("OAUTH_CALLBACK_PORT", "42813"))
    OAUTH_TIMEOUT_SECONDS: int = int(os.getenv("OAUTH_TIMEOUT_SECONDS", "300"))

    AUTH_API_KEY: str = os.getenv("AUTH_API_KEY", "")
    PORT: int = int(os.getenv("PORT", "5005"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def ledger_path(self) -> Path:
        return self.DATA_DIR / ".sync-state.json"


config = Config()


class AppState:
    """Shared application state."""
    db: "Database | None" = None
    ledger: "SyncLedger | None" = None
    note_creator: "NoteCreator | None" = None
    providers: "dict[ProviderType, MailProvider]" = {}
    orchestrator: "SyncOrchestrator | None" = None
    scheduler: "SyncScheduler | None" = None
    # Background OAuth flows and their last failure, keyed by provider name
    auth_tasks: "dict[str, asyncio.Task]" = {}
    auth_errors: dict[str, str] = {}


state = AppState()


def get_db() -> "Database":
    """Dependency to get database instance."""
    if not state.db:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return state.db


def get_orchestrator() -> "SyncOrchestrator":
    """Dependency to get the sync orchestrator."""
    if not state.orchestrator:
        raise HTTPException(status_code=500, detail="Sync engine not initialized")
    return state.orchestrator
