"""
Pydantic models for API request/response validation.
"""

from pydantic import BaseModel, Field

from .sync import SyncResult


# ─────────────────────────────────────────────────────────────
# Sync Schemas
# ─────────────────────────────────────────────────────────────

class SyncResultResponse(BaseModel):
    """Outcome of a sync cycle."""
    ran: bool
    new_notes: int
    errors: int
    skipped_providers: list[str]
    error_messages: list[str]
    started_at: str | None = None
    finished_at: str | None = None
    message: str | None = None

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResultResponse":
        return cls(
            ran=result.ran,
            new_notes=result.new_notes,
            errors=result.errors,
            skipped_providers=result.skipped_providers,
            error_messages=result.error_messages,
            started_at=result.started_at.isoformat() if result.started_at else None,
            finished_at=result.finished_at.isoformat() if result.finished_at else None,
            message=result.message,
        )


class NotificationResponse(BaseModel):
    timestamp: str
    message: str


class SyncStatusResponse(BaseModel):
    """Status indicator: idle | checking | done."""
    status: str
    status_text: str
    in_progress: bool
    last_sync_time: int
    last_finished_at: str | None = None
    synced_count: int
    auto_sync_interval_minutes: float
    auto_sync_running: bool
    last_result: SyncResultResponse | None = None
    notifications: list[NotificationResponse] = []


class SyncSettingsRequest(BaseModel):
    """Update auto-sync cadence (0 disables auto-sync)."""
    interval_minutes: int = Field(ge=0, le=24 * 60)


# ─────────────────────────────────────────────────────────────
# Provider Schemas
# ─────────────────────────────────────────────────────────────

class ProviderStatusResponse(BaseModel):
    name: str
    enabled: bool
    configured: bool
    authenticated: bool
    auth_state: str
    last_error: str | None = None
    auth_error: str | None = None


class ProviderUpdateRequest(BaseModel):
    enabled: bool


class ProviderConnectResponse(BaseModel):
    success: bool
    message: str


class ProviderAccountResponse(BaseModel):
    name: str
    email: str | None = None
