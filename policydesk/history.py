"""Undo/redo-capable log of past dispatches.

The log is a list plus a cursor. The cursor ranges over
``[-1, len - 1]``; -1 means "before the first entry". Recording while
the cursor sits behind the tail throws away everything after it first
(editor-style branch truncation), then appends and moves the cursor to
the new tail. The log is capped; overflow drops the oldest entries.
"""

import threading
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from .exceptions import HistoryError
from .models import (
    DispatchResult,
    HistoryEntry,
    HistorySnapshot,
    Intent,
    IntentType,
)

logger = structlog.get_logger("policydesk.history")

DEFAULT_MAX_HISTORY_SIZE = 100


def _generate_id() -> str:
    """Return ``<epoch-ms>-<9 hex chars>``."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class HistoryLog:
    """Append-only dispatch history with an undo/redo cursor.

    Entries are immutable once recorded. Every public method holds an
    internal lock.

    Args:
        max_size: Maximum number of entries kept. Must be at least 1.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_HISTORY_SIZE):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self._entries: List[HistoryEntry] = []
        self._cursor = -1
        self._lock = threading.RLock()

    @property
    def cursor(self) -> int:
        return self._cursor

    def record(
        self,
        intent: Intent,
        result: DispatchResult,
        duration_ms: float = 0.0,
        timestamp: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> HistoryEntry:
        """Append a new entry and move the cursor onto it.

        Any redo-able suffix after the cursor is discarded first. If the
        log then exceeds ``max_size``, the oldest entries are dropped.

        Returns:
            The recorded entry, with its assigned id.
        """
        entry = HistoryEntry(
            id=_generate_id(),
            intent=intent,
            result=result,
            timestamp=timestamp or datetime.now(),
            duration_ms=duration_ms,
            metadata=metadata or {},
        )
        with self._lock:
            if self._cursor < len(self._entries) - 1:
                dropped = len(self._entries) - 1 - self._cursor
                del self._entries[self._cursor + 1:]
                logger.debug("history_branch_truncated", dropped=dropped)

            self._entries.append(entry)

            if len(self._entries) > self.max_size:
                del self._entries[: len(self._entries) - self.max_size]

            self._cursor = len(self._entries) - 1
        return entry

    def undo(self) -> Optional[HistoryEntry]:
        """Step the cursor back one entry.

        Returns:
            The entry now under the cursor, or None when the cursor
            moved to (or already was at) the -1 floor.
        """
        with self._lock:
            if self._cursor < 0:
                return None
            self._cursor -= 1
            return self._current_locked()

    def redo(self) -> Optional[HistoryEntry]:
        """Step the cursor forward one entry. No-op (None) at the tail."""
        with self._lock:
            if self._cursor >= len(self._entries) - 1:
                return None
            self._cursor += 1
            return self._current_locked()

    def can_undo(self) -> bool:
        with self._lock:
            return self._cursor >= 0

    def can_redo(self) -> bool:
        with self._lock:
            return self._cursor < len(self._entries) - 1

    def current(self) -> Optional[HistoryEntry]:
        """Entry under the cursor, or None at -1."""
        with self._lock:
            return self._current_locked()

    def recent(self, n: int) -> List[HistoryEntry]:
        """Last ``n`` entries in recording order, ignoring the cursor."""
        if n <= 0:
            return []
        with self._lock:
            return list(self._entries[-n:])

    def search_by_intent_type(
        self, intent_type: Union[IntentType, str]
    ) -> List[HistoryEntry]:
        """All entries whose intent has the given type, oldest first."""
        wanted = IntentType(intent_type)
        with self._lock:
            return [e for e in self._entries if e.intent.type == wanted]

    def snapshot(self) -> HistorySnapshot:
        """Copy of the entries and cursor for hand-off to persistence."""
        with self._lock:
            return HistorySnapshot(entries=list(self._entries), cursor=self._cursor)

    def restore_snapshot(
        self, snapshot: Union[HistorySnapshot, Dict[str, Any]]
    ) -> None:
        """Replace the log with a snapshot's contents.

        Accepts a ``HistorySnapshot`` or its ``model_dump()`` form. A
        snapshot longer than ``max_size`` is trimmed from the oldest end
        and the cursor shifted with it (floored at -1).

        Raises:
            HistoryError: The snapshot is malformed or its cursor is
                out of range.
        """
        if not isinstance(snapshot, HistorySnapshot):
            try:
                snapshot = HistorySnapshot.model_validate(snapshot)
            except PydanticValidationError as e:
                raise HistoryError(f"Invalid history snapshot: {e}") from e

        entries = list(snapshot.entries)
        cursor = snapshot.cursor
        overflow = len(entries) - self.max_size
        if overflow > 0:
            entries = entries[overflow:]
            cursor = max(-1, cursor - overflow)

        with self._lock:
            self._entries = entries
            self._cursor = cursor
        logger.info("history_restored", entries=len(entries), cursor=cursor)

    def clear(self) -> None:
        with self._lock:
            self._entries = []
            self._cursor = -1

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def _current_locked(self) -> Optional[HistoryEntry]:
        if 0 <= self._cursor < len(self._entries):
            return self._entries[self._cursor]
        return None
