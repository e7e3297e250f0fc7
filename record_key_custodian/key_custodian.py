"""Record Key Custodian facade wiring key storage, record storage and rotation."""

import logging
import threading
from typing import Any, Optional

from record_key_custodian.config import CustodianConfig
from record_key_custodian.exceptions import ValidationError
from record_key_custodian.file_manager import FileManager
from record_key_custodian.key_store import KeyStore
from record_key_custodian.models import Key, RotationHistory, RotationResult
from record_key_custodian.record_codec import RecordCodec
from record_key_custodian.record_service import RecordService
from record_key_custodian.record_store import FileRecordStore, RecordStore
from record_key_custodian.rotation import (
    RotationCoordinator,
    RotationJournalStore,
    RotationLock,
)
from record_key_custodian.write_gate import RecordWriteGate

logger = logging.getLogger(__name__)


class RecordKeyCustodian:
    """Owns the data-encryption key of a record store and rotates it on demand."""

    @classmethod
    def from_environment(
        cls,
        *,
        key_store_path: Optional[str] = None,
        record_store_path: Optional[str] = None
    ) -> "RecordKeyCustodian":
        """Create a custodian from environment configuration.

        Raises:
            ValidationError: If the configuration is incomplete or invalid
        """
        return cls(CustodianConfig.from_env(
            key_store_path=key_store_path,
            record_store_path=record_store_path,
        ))

    def __init__(
        self,
        config: CustodianConfig,
        *,
        record_store: Optional[RecordStore] = None
    ) -> None:
        """Initialize the Record Key Custodian.

        Args:
            config: Locations and rotation settings
            record_store: Record storage to use instead of the file store
                at config.record_store_path

        Raises:
            ValidationError: If config is missing
            FileOperationError: If the storage directories cannot be created
        """
        if config is None:
            raise ValidationError("Configuration cannot be None")

        self._config = config
        self._file_manager = FileManager(config.key_store_path)
        self._file_manager.cleanup_temp_files()
        self._key_store = KeyStore(self._file_manager)
        self._record_store = record_store or FileRecordStore(config.record_store_path)
        self._codec = RecordCodec()
        write_gate = RecordWriteGate()
        self._record_service = RecordService(
            self._key_store,
            self._record_store,
            self._codec,
            write_gate,
        )
        self._journal_store = RotationJournalStore(
            self._file_manager,
            history_limit=config.history_limit,
        )
        self._coordinator = RotationCoordinator(
            self._key_store,
            self._record_store,
            self._codec,
            self._journal_store,
            RotationLock(self._file_manager.lock_file_path),
            max_workers=config.max_workers,
            batch_size=config.batch_size,
            io_retries=config.io_retries,
            retry_delay=config.retry_delay,
            max_sweeps=config.max_sweeps,
            write_gate=write_gate,
        )

    def generate_key(self, *, force: bool = False) -> Key:
        """Bootstrap the data-encryption key.

        A no-op returning the active key when one exists. With force a new
        key is generated and promoted immediately; the previous key is
        retired and stays resolvable for records still encrypted under it
        until the next rotation migrates them.

        Raises:
            EntropyError: If the random source is unavailable
            RotationInProgressError: If force is used while a rotation holds the lock
        """
        if not self._key_store.is_initialized():
            return self._key_store.generate()

        if not force:
            key = self._key_store.get_active()
            logger.info("Data-encryption key already exists; generate skipped", extra={
                "key_id": key.key_id,
                "event": "key_generate_skipped"
            })
            return key

        # Holding the rotation lock keeps a forced key from landing mid-rotation
        with RotationLock(self._file_manager.lock_file_path):
            if self._coordinator.status() is not None:
                raise ValidationError("An unfinished rotation exists; run rotate to complete it first")
            key = self._key_store.generate()
            self._key_store.promote(key)
            return self._key_store.get(key.key_id)

    def rotate_key(
        self,
        *,
        cancel_event: Optional[threading.Event] = None
    ) -> RotationResult:
        """Rotate the data-encryption key and re-encrypt every record.

        Re-invoking after a crash resumes the interrupted rotation.
        """
        return self._coordinator.rotate(cancel_event=cancel_event)

    def put_record(self, record_id: str, plaintext: bytes) -> str:
        """Encrypt and store a record; returns the key id used."""
        return self._record_service.put(record_id, plaintext)

    def get_record(self, record_id: str) -> bytes:
        """Read and decrypt a record."""
        return self._record_service.get(record_id)

    def delete_record(self, record_id: str) -> None:
        """Delete a record."""
        self._record_service.delete(record_id)

    def list_records(self) -> list[str]:
        """Return the ids of all records, sorted."""
        return sorted(self._record_service.list_ids())

    def status(self) -> dict[str, Any]:
        """Describe the key store and any unfinished rotation."""
        keys = self._key_store.list_keys()
        journal = self._coordinator.status()
        active = next((key for key in keys if key.is_active), None)
        return {
            "initialized": active is not None,
            "active_key": active.describe() if active else None,
            "keys": [key.describe() for key in keys],
            "rotation": journal.summary() if journal else None,
        }

    def get_rotation_history(self, *, limit: Optional[int] = None) -> list[RotationHistory]:
        """Get rotation history, oldest first."""
        return self._journal_store.history(limit=limit)

    @property
    def key_store(self) -> KeyStore:
        return self._key_store

    @property
    def record_store(self) -> RecordStore:
        return self._record_store

    @property
    def config(self) -> CustodianConfig:
        return self._config
