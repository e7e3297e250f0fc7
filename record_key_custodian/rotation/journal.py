"""Durable rotation journal and bounded rotation history."""

import logging
from datetime import datetime, timezone
from typing import Optional

from record_key_custodian.constants import Constants
from record_key_custodian.file_manager import FileManager
from record_key_custodian.models import RotationHistory, RotationJournal

logger = logging.getLogger(__name__)


class RotationJournalStore:
    """Persists the journal of the in-flight rotation and past outcomes."""

    def __init__(
        self,
        file_manager: FileManager,
        *,
        history_limit: Optional[int] = None
    ):
        """Initialize the journal store.

        Args:
            file_manager: File manager rooted at the key store directory
            history_limit: Maximum history entries kept (default 10)
        """
        self._file_manager = file_manager
        self._history_limit = history_limit or Constants.MAX_ROTATION_HISTORY()

    def load(self) -> Optional[RotationJournal]:
        """Return the journal of an unfinished rotation, if any."""
        return self._file_manager.read_rotation_journal()

    def save(self, journal: RotationJournal) -> None:
        """Durably write the journal."""
        journal.updated_at = datetime.now(timezone.utc)
        self._file_manager.save_rotation_journal(journal)

    def clear(self) -> None:
        """Remove the journal once a rotation reaches a terminal state."""
        self._file_manager.delete_rotation_journal()

    def record_outcome(
        self,
        journal: RotationJournal,
        outcome: str,
        *,
        record_count: int = 0,
        error: Optional[str] = None
    ) -> RotationHistory:
        """Append a history entry for a finished rotation."""
        entry = RotationHistory(
            rotation_id=journal.rotation_id,
            old_key_id=journal.old_key_id,
            new_key_id=journal.new_key_id,
            outcome=outcome,
            record_count=record_count,
            started_at=journal.started_at,
            finished_at=datetime.now(timezone.utc),
            error=error,
        )

        history = self._file_manager.read_rotation_history()
        history.append(entry)

        # Keep only the most recent entries
        if len(history) > self._history_limit:
            history = history[-self._history_limit:]

        self._file_manager.save_rotation_history(history)
        return entry

    def history(self, *, limit: Optional[int] = None) -> list[RotationHistory]:
        """Return rotation history, oldest first."""
        history = self._file_manager.read_rotation_history()
        if limit is not None:
            history = history[-limit:]
        return history
