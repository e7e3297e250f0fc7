"""Service for normal record reads and writes under the active key."""

import logging
from typing import Iterator, Optional

from record_key_custodian.exceptions import KeyNotFoundError
from record_key_custodian.key_store import KeyStore
from record_key_custodian.record_codec import RecordCodec
from record_key_custodian.record_store import RecordStore, validate_record_id
from record_key_custodian.write_gate import RecordWriteGate

logger = logging.getLogger(__name__)


class RecordService:
    """Encrypts records with the active key and decrypts them with whichever key they name."""

    def __init__(
        self,
        key_store: KeyStore,
        record_store: RecordStore,
        codec: RecordCodec,
        write_gate: Optional[RecordWriteGate] = None
    ):
        """Initialize the record service.

        Args:
            key_store: Key store resolving active and retired keys
            record_store: Storage for encrypted records
            codec: Record codec
            write_gate: Gate shared with the rotation coordinator
        """
        self._key_store = key_store
        self._record_store = record_store
        self._codec = codec
        self._write_gate = write_gate or RecordWriteGate()

    def put(self, record_id: str, plaintext: bytes) -> str:
        """Encrypt and store a record under the key active right now.

        Returns:
            Id of the key the record was encrypted under

        Raises:
            NotInitializedError: If no key has been generated
            ValidationError: If record_id or plaintext is invalid
        """
        validate_record_id(record_id)
        with self._write_gate.writing(record_id):
            key = self._key_store.get_active()
            record = self._codec.encrypt(plaintext, key, record_id=record_id)
            self._record_store.write(record_id, record)

        logger.debug("Record written", extra={
            "record_id": record_id,
            "key_id": key.key_id,
            "event": "record_written"
        })
        return key.key_id

    def get(self, record_id: str) -> bytes:
        """Read and decrypt a record.

        Raises:
            RecordNotFoundError: If the record does not exist
            KeyNotFoundError: If the record's key was purged
            AuthenticationFailure: If the record fails verification
        """
        record = self._record_store.read(record_id)
        try:
            key = self._key_store.get(record.key_id)
        except KeyNotFoundError as e:
            raise KeyNotFoundError(
                f"Record {record_id} is encrypted under unknown key {record.key_id}"
            ) from e
        return self._codec.decrypt(record, key)

    def delete(self, record_id: str) -> None:
        """Delete a record; no-op if absent."""
        with self._write_gate.writing(record_id):
            self._record_store.delete(record_id)

    def list_ids(self) -> Iterator[str]:
        """Lazily enumerate record ids."""
        return self._record_store.list_ids()
