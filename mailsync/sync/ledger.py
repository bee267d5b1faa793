"""
Sync state ledger.

Durable record of which message ids have been turned into notes, plus the
global last-sync watermark. Persisted as JSON:

    {"lastSyncTime": <epoch ms>, "syncedIds": {"<id>": <epoch ms>, ...}}

Every mutation is written through to disk before returning.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path


logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SyncLedger:
    """Append-only set of synced message ids and the last-sync watermark."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._last_sync_time = 0
        self._synced_ids: dict[str, int] = {}

    def load(self):
        """
        Load state from disk.

        A missing or unreadable file resets to an empty ledger.
        """
        self._last_sync_time = 0
        self._synced_ids = {}

        if not self.path.exists():
            return

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            synced_ids = data.get("syncedIds") or {}
            if not isinstance(synced_ids, dict):
                raise ValueError("syncedIds is not an object")

            self._synced_ids = {str(k): int(v) for k, v in synced_ids.items()}
            self._last_sync_time = int(data.get("lastSyncTime") or 0)
            logger.info(f"Loaded sync state with {len(self._synced_ids)} synced messages")
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to load sync state from {self.path}: {e}")
            self._last_sync_time = 0
            self._synced_ids = {}

    def save(self):
        """Atomically write the ledger to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            {"lastSyncTime": self._last_sync_time, "syncedIds": self._synced_ids},
            indent=2,
        )

        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=".sync-state.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def is_synced(self, message_id: str) -> bool:
        return message_id in self._synced_ids

    def add_synced(self, message_id: str):
        """Mark a message as synced and persist immediately."""
        self._synced_ids[message_id] = _now_ms()
        self.save()

    def get_last_sync_time(self) -> int:
        """Watermark in epoch milliseconds (0 before the first sync)."""
        return self._last_sync_time

    def set_last_sync_time(self, timestamp_ms: int):
        """Advance the watermark. Earlier values are ignored."""
        if timestamp_ms < self._last_sync_time:
            logger.warning(
                f"Ignoring watermark {timestamp_ms} older than {self._last_sync_time}"
            )
            return
        self._last_sync_time = int(timestamp_ms)
        self.save()

    @property
    def synced_count(self) -> int:
        return len(self._synced_ids)

    def get_state(self) -> dict:
        """Snapshot of the persisted representation."""
        return {
            "lastSyncTime": self._last_sync_time,
            "syncedIds": dict(self._synced_ids),
        }
