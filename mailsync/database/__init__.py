"""
Database module - SQLite storage for preferences and provider credentials.

Uses repository pattern for better separation of concerns.
"""

from .connection import DatabaseConnection
from .settings_repository import SettingsRepository
from .credential_repository import CredentialRepository
from .database import Database

__all__ = [
    "Database",
    "DatabaseConnection",
    "SettingsRepository",
    "CredentialRepository",
]
