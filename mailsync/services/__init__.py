"""
Application services.
"""

from .sync_service import (
    build_providers,
    connect_provider,
    init_sync_engine,
    is_provider_enabled,
    provider_client,
    start_connect,
)

__all__ = [
    "build_providers",
    "connect_provider",
    "init_sync_engine",
    "is_provider_enabled",
    "provider_client",
    "start_connect",
]
