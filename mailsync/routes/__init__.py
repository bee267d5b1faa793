"""
API route modules.
"""

from .sync import router as sync_router
from .providers import router as providers_router

__all__ = [
    "sync_router",
    "providers_router",
]
