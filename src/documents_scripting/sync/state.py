"""Persistence of last-sync hashes between runs.

Conflict detection needs the hash captured at the last successful up- or
download.  ``SyncState`` keeps it in ``sync_state.json`` inside the state
directory, one entry per script name, together with the encryption flag
and category observed at that time.

Writes are atomic: the file is written to a temporary sibling and moved
into place with ``os.replace()``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from .models import EncryptionState, ScriptRecord

logger = logging.getLogger(__name__)

STATE_FILE = "sync_state.json"
STATE_VERSION = 1


class SyncState:
    """Load, save, and apply persisted sync metadata.

    Args:
        state_dir: Directory holding ``sync_state.json``.
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = Path(state_dir)
        self._data: dict | None = None

    @property
    def path(self) -> Path:
        return self._state_dir / STATE_FILE

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> dict:
        """Load the state file, or an empty state if there is none."""
        if self._data is not None:
            return self._data
        if not self.path.exists():
            self._data = {
                "version": STATE_VERSION,
                "last_sync": None,
                "scripts": {},
            }
        else:
            with open(self.path, encoding="utf-8") as fh:
                self._data = json.load(fh)
        return self._data

    def save(self) -> None:
        """Write the state atomically, creating the state directory."""
        data = self.load()
        self._state_dir.mkdir(parents=True, exist_ok=True)
        data["last_sync"] = datetime.now(timezone.utc).isoformat()

        fd, tmp = tempfile.mkstemp(
            dir=self._state_dir, prefix=".sync_state.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("Saved sync state to %s", self.path)

    # ------------------------------------------------------------------
    # Record mapping
    # ------------------------------------------------------------------

    def get_entry(self, name: str) -> dict | None:
        return self.load()["scripts"].get(name)

    def apply(self, records: Iterable[ScriptRecord]) -> None:
        """Fill in stored hash, encryption flag and category.

        Values already present on a record are kept.
        """
        for record in records:
            entry = self.get_entry(record.name)
            if not entry:
                continue
            if record.conflict_mode and record.last_sync_hash is None:
                record.last_sync_hash = entry.get("hash")
            if entry.get("encrypted"):
                record.encryption_state = EncryptionState(entry["encrypted"])
            if record.category is None and entry.get("category"):
                record.category = entry["category"]

    def record(self, records: Iterable[ScriptRecord]) -> int:
        """Store the sync point of each settled record.

        Records still in conflict keep their previous entry.

        Returns:
            Number of entries written.
        """
        scripts = self.load()["scripts"]
        count = 0
        for record in records:
            if (
                record.conflict
                or not record.conflict_mode
                or record.last_sync_hash is None
            ):
                continue
            scripts[record.name] = {
                "hash": record.last_sync_hash,
                "encrypted": record.encryption_state.value,
                "category": record.category,
            }
            count += 1
        return count
