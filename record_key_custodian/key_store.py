"""Durable store of data-encryption keys."""

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from record_key_custodian.crypto_utils import CryptoUtils
from record_key_custodian.exceptions import (
    FileOperationError,
    KeyNotFoundError,
    NotInitializedError,
    ValidationError,
)
from record_key_custodian.file_manager import FileManager
from record_key_custodian.models import Key, KeyStatus, new_key_id

logger = logging.getLogger(__name__)


class KeyStore:
    """Sole owner of key material and of the answer to "which key is active".

    Every mutation rewrites the whole key document with an atomic rename, so
    a crash leaves either the previous or the next document on disk. Keys are
    loaded from disk on each call and never cached between operations.
    """

    def __init__(self, file_manager: FileManager):
        """Initialize the key store.

        Args:
            file_manager: File manager rooted at the key store directory
        """
        self._file_manager = file_manager
        self._lock = threading.RLock()

    def _load(self) -> list[Key]:
        try:
            return [Key.from_dict(data) for data in self._file_manager.read_keys()]
        except FileOperationError:
            raise
        except (KeyError, ValueError, TypeError) as e:
            raise FileOperationError(f"Failed to parse key store: {e}") from e

    def _save(self, keys: list[Key]) -> None:
        active = [key for key in keys if key.status == KeyStatus.ACTIVE]
        if len(active) > 1:
            raise ValidationError("Key store cannot hold more than one active key")
        self._file_manager.save_keys([key.to_dict() for key in keys])

    @staticmethod
    def _find(keys: list[Key], key_id: str) -> Optional[Key]:
        for key in keys:
            if key.key_id == key_id:
                return key
        return None

    def is_initialized(self) -> bool:
        """Return True once an active key exists."""
        return any(key.is_active for key in self._load())

    def generate(self) -> Key:
        """Generate and persist a new key.

        The first key ever generated becomes active. Later keys are persisted
        as pending until promoted.

        Returns:
            The newly generated key

        Raises:
            EntropyError: If the random source is unavailable (nothing is persisted)
        """
        material = CryptoUtils.generate_random_key()
        with self._lock:
            keys = self._load()
            bootstrap = not any(key.is_active for key in keys)
            key = Key(
                key_id=new_key_id(),
                material=material,
                status=KeyStatus.ACTIVE if bootstrap else KeyStatus.PENDING,
            )
            keys.append(key)
            self._save(keys)

        logger.info("Generated data-encryption key", extra={
            "key_id": key.key_id,
            "status": key.status,
            "event": "key_generated"
        })
        return key

    def get_active(self) -> Key:
        """Return the active key.

        Raises:
            NotInitializedError: If no key has been generated yet
        """
        for key in self._load():
            if key.is_active:
                return key
        raise NotInitializedError("No active data-encryption key; run generate first")

    def get(self, key_id: str) -> Key:
        """Resolve a key by id.

        Raises:
            KeyNotFoundError: If the key is absent or already purged
        """
        key = self._find(self._load(), key_id)
        if key is None:
            raise KeyNotFoundError(f"Key {key_id} not found")
        return key

    def list_keys(self) -> list[Key]:
        """Return all keys ordered by creation time."""
        return sorted(self._load(), key=lambda key: key.key_id)

    def promote(self, new_key: Key) -> None:
        """Make new_key active and retire the previously active key.

        Both status changes land in a single atomic document replace.
        Promoting the key that is already active is a no-op.

        Raises:
            KeyNotFoundError: If new_key was never persisted or was purged
        """
        with self._lock:
            keys = self._load()
            target = self._find(keys, new_key.key_id)
            if target is None:
                raise KeyNotFoundError(f"Key {new_key.key_id} not found")
            if target.is_active:
                return

            previous_id = None
            now = datetime.now(timezone.utc)
            for key in keys:
                if key.is_active:
                    key.status = KeyStatus.RETIRED
                    key.retired_at = now
                    previous_id = key.key_id
            target.status = KeyStatus.ACTIVE
            target.retired_at = None
            self._save(keys)

        logger.info("Promoted data-encryption key", extra={
            "key_id": new_key.key_id,
            "retired_key_id": previous_id,
            "event": "key_promoted"
        })

    def purge(self, key_id: str) -> None:
        """Remove a retired or pending key from the key document.

        The in-memory copy is zeroed. Earlier versions of the key document
        replaced on disk are not overwritten. Purging a key that is already
        gone is a no-op.

        Raises:
            ValidationError: If the key is the active key
        """
        with self._lock:
            keys = self._load()
            target = self._find(keys, key_id)
            if target is None:
                return
            if target.is_active:
                raise ValidationError(f"Cannot purge active key {key_id}")

            self._save([key for key in keys if key.key_id != key_id])
            target.zeroize()

        logger.info("Removed data-encryption key from key store", extra={
            "key_id": key_id,
            "event": "key_purged"
        })

    def discard_pending(self) -> list[str]:
        """Purge every pending key left behind by an abandoned rotation.

        Returns:
            Ids of the discarded keys
        """
        with self._lock:
            pending = [key.key_id for key in self._load() if key.status == KeyStatus.PENDING]
            for key_id in pending:
                self.purge(key_id)
        return pending
