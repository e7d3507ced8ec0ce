"""
Email History Log
JSON-file log of email send attempts, capped to the newest entries.

Every read-modify-write runs under a per-file lock and the file is replaced
atomically, so concurrent appends and deletes in one process never lose
updates and readers never see a partial file.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from . import po_config as cfg
from .exceptions import StorageError
from .models import EmailHistoryEntry
from .po_logger import get_logger

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _locks_guard:
        return _locks.setdefault(key, threading.Lock())


def newest_first(entries: Iterable[EmailHistoryEntry]) -> List[EmailHistoryEntry]:
    return sorted(entries, key=lambda e: e.sent_at_dt, reverse=True)


class EmailHistoryLog:
    """Append / list / delete / clear for the send history."""

    def __init__(self, path: Optional[str] = None, limit: Optional[int] = None) -> None:
        self.path = Path(path or cfg.HISTORY_PATH)
        self.limit = limit or cfg.HISTORY_LIMIT
        self._lock = _lock_for(self.path)
        self.logger = get_logger()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, entry: EmailHistoryEntry) -> None:
        """Add an entry; only the newest ``limit`` appended entries are kept."""
        with self._lock:
            entries = self._read()
            entries.append(entry)
            if len(entries) > self.limit:
                entries = entries[-self.limit:]
            self._write(entries)

    def list(self) -> List[EmailHistoryEntry]:
        """All entries, newest first."""
        with self._lock:
            return newest_first(self._read())

    def delete_by_indices(self, indices: Iterable[int]) -> int:
        """Delete entries by their position in the newest-first view.

        Positions are resolved to entries first and the entries are then
        removed from the stored list by value, so storage order never matters.

        Raises:
            ValueError: No indices given, or an index outside the view.
        """
        wanted = sorted(set(int(i) for i in indices))
        if not wanted:
            raise ValueError("No history indices given")

        with self._lock:
            stored = self._read()
            view = newest_first(stored)
            for index in wanted:
                if index < 0 or index >= len(view):
                    raise ValueError(f"Invalid history index: {index}")

            for index in wanted:
                stored.remove(view[index])
            self._write(stored)

        self.logger.info(f"Deleted {len(wanted)} history entries", component="History")
        return len(wanted)

    def clear(self) -> None:
        with self._lock:
            self._write([])
        self.logger.info("Cleared email history", component="History")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _read(self) -> List[EmailHistoryEntry]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Cannot read email history {self.path}: {exc}") from exc
        if not isinstance(raw, list):
            raise StorageError(f"Email history {self.path} is not a list")
        return [EmailHistoryEntry.from_dict(item) for item in raw]

    def _write(self, entries: List[EmailHistoryEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump([e.to_dict() for e in entries], fh, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(f"Cannot write email history {self.path}: {exc}") from exc
