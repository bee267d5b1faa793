"""
Sync orchestrator.

Runs one sync cycle at a time over the enabled providers: fetch starred
messages since the watermark, skip ids already in the ledger, create a note
for each new message and record it as synced.
"""

import asyncio
import logging
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterator, Protocol, Sequence

from ..exceptions import MaterializationError

if TYPE_CHECKING:
    from pathlib import Path

    from ..providers import MailProvider, NormalizedMessage, ProviderType
    from .ledger import SyncLedger


logger = logging.getLogger(__name__)


class NoteWriter(Protocol):
    async def create_note(self, message: "NormalizedMessage") -> "Path | None":
        ...


class SyncStatus(Enum):
    IDLE = "idle"
    CHECKING = "checking"
    DONE = "done"


@dataclass
class SyncResult:
    """Outcome of a sync cycle."""
    ran: bool = True
    new_notes: int = 0
    errors: int = 0
    skipped_providers: list[str] = field(default_factory=list)
    error_messages: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    message: str | None = None


class SingleFlight:
    """
    Single-slot guard holding the task that runs the current cycle.

    A holder task that has finished never counts as busy, so the slot
    cannot stay stuck.
    """

    def __init__(self):
        self._holder: asyncio.Task | None = None

    @property
    def busy(self) -> bool:
        return self._holder is not None and not self._holder.done()

    @contextmanager
    def hold(self) -> Iterator[None]:
        if self.busy:
            raise RuntimeError("Sync cycle already held")
        self._holder = asyncio.current_task()
        try:
            yield
        finally:
            self._holder = None


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class SyncOrchestrator:
    """Top-level sync loop over all providers."""

    def __init__(
        self,
        providers: Sequence["MailProvider"],
        ledger: "SyncLedger",
        note_creator: NoteWriter,
        is_enabled: Callable[["ProviderType"], bool] = lambda provider_type: True,
        notify: Callable[[str], None] | None = None,
    ):
        self._providers = list(providers)
        self._ledger = ledger
        self._note_creator = note_creator
        self._is_enabled = is_enabled
        self._notify_callback = notify
        self._guard = SingleFlight()

        self._status = SyncStatus.IDLE
        self.last_result: SyncResult | None = None
        self.last_finished_at: datetime | None = None
        self.notifications: deque[tuple[datetime, str]] = deque(maxlen=20)

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def in_progress(self) -> bool:
        return self._guard.busy

    @property
    def status_text(self) -> str:
        if self._status == SyncStatus.CHECKING:
            return "Email Sync: Checking..."
        if self._status == SyncStatus.DONE and self.last_finished_at:
            local = self.last_finished_at.astimezone()
            return f"Email Sync: Done {local.strftime('%H:%M:%S')}"
        return "Email Sync: Ready"

    async def sync(self) -> SyncResult:
        """
        Run one sync cycle.

        If a cycle is already running this returns immediately with
        ``ran=False`` instead of queueing. Never raises for provider or
        note failures; those are counted in the result.
        """
        if self._guard.busy:
            logger.info("Email sync already in progress. Skipping.")
            return SyncResult(ran=False, message="Sync already in progress")

        with self._guard.hold():
            return await self._run_cycle()

    async def _run_cycle(self) -> SyncResult:
        self._status = SyncStatus.CHECKING
        result = SyncResult(started_at=datetime.now(timezone.utc))

        try:
            enabled = [p for p in self._providers if self._is_enabled(p.provider_type)]
            if not enabled:
                logger.info("Email sync: no providers enabled.")
                result.message = "No providers enabled"
                return result

            for provider in enabled:
                await self._sync_provider(provider, result)

            self._ledger.set_last_sync_time(_now_ms())

            if result.new_notes > 0:
                self._notify(f"Email Sync: Created {result.new_notes} new notes.")
            elif result.errors > 0:
                self._notify(f"Email Sync: Finished with {result.errors} errors.")
            else:
                logger.info("Email sync: no new emails.")

            result.message = f"Created {result.new_notes} notes" + (
                f", {result.errors} errors" if result.errors else ""
            )

        except Exception as e:
            logger.exception("Email sync: critical error")
            result.errors += 1
            result.error_messages.append(str(e))
            result.message = "Email Sync Failed"
            self._notify("Email Sync Failed")

        finally:
            result.finished_at = datetime.now(timezone.utc)
            self.last_result = result
            self.last_finished_at = result.finished_at
            self._status = SyncStatus.DONE

        return result

    async def _sync_provider(self, provider: "MailProvider", result: SyncResult):
        if not provider.is_authenticated():
            logger.info(f"Email sync: {provider.name} enabled but not authenticated.")
            result.skipped_providers.append(provider.name)
            return

        try:
            last_sync = self._ledger.get_last_sync_time()
            since = (
                datetime.fromtimestamp(last_sync / 1000, tz=timezone.utc)
                if last_sync > 0 else None
            )
            messages = await provider.get_starred_messages(since)

            if provider.last_error:
                result.errors += 1
                result.error_messages.append(f"{provider.name}: {provider.last_error}")

            for message in messages:
                if self._ledger.is_synced(message.id):
                    continue

                try:
                    await self._materialize(message)
                except MaterializationError as e:
                    # Left un-synced so the next cycle retries it
                    logger.warning(f"Could not create note for {message.id}: {e}")
                    result.errors += 1
                    result.error_messages.append(f"{provider.name}: {e}")
                    continue

                self._ledger.add_synced(message.id)
                result.new_notes += 1

        except Exception as e:
            logger.exception(f"Email sync: error syncing {provider.name}")
            result.errors += 1
            result.error_messages.append(f"{provider.name}: {e}")
            self._notify(f"Email Sync Error ({provider.name}): {e}")

    async def _materialize(self, message: "NormalizedMessage") -> "Path":
        note = await self._note_creator.create_note(message)
        if note is None:
            raise MaterializationError(f"note for {message.id} was not written")
        return note

    def _notify(self, message: str):
        self.notifications.append((datetime.now(timezone.utc), message))
        logger.info(message)
        if self._notify_callback:
            self._notify_callback(message)
