"""
Sync routes.

Manual "sync now", status indicator and auto-sync cadence.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..auth import verify_api_key
from ..config import get_db, get_orchestrator, state
from ..database import Database
from ..schemas import (
    NotificationResponse,
    SyncResultResponse,
    SyncSettingsRequest,
    SyncStatusResponse,
)
from ..sync import SyncOrchestrator


logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["sync"],
    dependencies=[Depends(verify_api_key)]
)


@router.get("/status")
async def get_status(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
) -> SyncStatusResponse:
    """Get the sync status indicator and last outcome."""
    last_result = orchestrator.last_result
    scheduler = state.scheduler

    return SyncStatusResponse(
        status=orchestrator.status.value,
        status_text=orchestrator.status_text,
        in_progress=orchestrator.in_progress,
        last_sync_time=state.ledger.get_last_sync_time() if state.ledger else 0,
        last_finished_at=(
            orchestrator.last_finished_at.isoformat()
            if orchestrator.last_finished_at else None
        ),
        synced_count=state.ledger.synced_count if state.ledger else 0,
        auto_sync_interval_minutes=scheduler.interval_minutes if scheduler else 0,
        auto_sync_running=scheduler.is_running if scheduler else False,
        last_result=SyncResultResponse.from_result(last_result) if last_result else None,
        notifications=[
            NotificationResponse(timestamp=ts.isoformat(), message=message)
            for ts, message in orchestrator.notifications
        ],
    )


@router.post("/sync")
async def trigger_sync(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
) -> SyncResultResponse:
    """
    Run a sync cycle now.

    Returns immediately with ``ran=false`` if a cycle is already running.
    """
    result = await orchestrator.sync()
    return SyncResultResponse.from_result(result)


@router.put("/settings/sync")
async def update_sync_settings(
    request: SyncSettingsRequest,
    db: Database = Depends(get_db)
) -> SyncStatusResponse:
    """Change the auto-sync interval and reschedule the timer."""
    if not state.scheduler:
        raise HTTPException(status_code=500, detail="Scheduler not initialized")

    db.set_sync_interval(request.interval_minutes)
    await state.scheduler.set_interval(request.interval_minutes)
    logger.info(f"Auto-sync interval set to {request.interval_minutes} minutes")

    return await get_status(get_orchestrator())
