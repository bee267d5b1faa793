"""
Sync engine: dedup ledger, single-flight orchestrator and auto-sync timer.
"""

from .ledger import SyncLedger
from .orchestrator import SingleFlight, SyncOrchestrator, SyncResult, SyncStatus
from .scheduler import SyncScheduler

__all__ = [
    "SyncLedger",
    "SingleFlight",
    "SyncOrchestrator",
    "SyncResult",
    "SyncStatus",
    "SyncScheduler",
]
