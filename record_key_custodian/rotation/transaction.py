"""Rotation transaction management for all-or-nothing re-encryption."""

import logging

from record_key_custodian.exceptions import KeyRotationError
from record_key_custodian.key_store import KeyStore
from record_key_custodian.record_store import RecordStore
from record_key_custodian.rotation.journal import RotationJournalStore

logger = logging.getLogger(__name__)


class RotationTransaction:
    """Tracks the staged side of a rotation and undoes it on failure.

    Until ``commit`` is called every live record is untouched, so rolling
    back only has to drop the staging area, the pending key and the journal.
    After ``commit`` the rotation can only be driven forward.
    """

    def __init__(
        self,
        record_store: RecordStore,
        key_store: KeyStore,
        journal_store: RotationJournalStore
    ):
        """Initialize rotation transaction.

        Args:
            record_store: Record store holding live and staged records
            key_store: Key store holding the pending key
            journal_store: Journal of the rotation
        """
        self._record_store = record_store
        self._key_store = key_store
        self._journal_store = journal_store
        self._is_committed = False
        self._is_rolled_back = False

    @property
    def is_committed(self) -> bool:
        return self._is_committed

    @property
    def is_rolled_back(self) -> bool:
        return self._is_rolled_back

    def commit(self) -> None:
        """Commit the transaction - no rollback possible after this."""
        self._is_committed = True

    def rollback(self) -> None:
        """Discard staged records, the pending key and the journal."""
        if self._is_committed:
            raise KeyRotationError("Cannot rollback committed transaction")

        if self._is_rolled_back:
            return

        self._is_rolled_back = True

        try:
            # Anything left in staging belongs to this rotation, including
            # copies staged before a crash and resume
            discarded = self._record_store.clear_staging()
            discarded_keys = self._key_store.discard_pending()
            self._journal_store.clear()

            logger.info("Rotation transaction rolled back successfully", extra={
                "staged_discarded": discarded,
                "keys_discarded": len(discarded_keys),
                "event": "rotation_rolled_back"
            })

        except Exception as e:
            logger.error(f"Failed to rollback rotation transaction: {e}")
            raise KeyRotationError(f"Rollback failed: {e}") from e

    def __enter__(self):
        """Enter transaction context."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit transaction context - rollback on error.

        Interrupts that are not ``Exception`` subclasses (KeyboardInterrupt,
        SystemExit) leave the journal in place so the rotation can resume.
        """
        if exc_type is not None and issubclass(exc_type, Exception) and not self._is_committed:
            logger.warning("Exception occurred during rotation, rolling back transaction")
            self.rollback()
