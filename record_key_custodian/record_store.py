"""Record storage contract and its file-system implementation."""

import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator

from record_key_custodian.constants import Constants
from record_key_custodian.exceptions import (
    FileOperationError,
    RecordNotFoundError,
    ValidationError,
)
from record_key_custodian.file_manager import FileManager
from record_key_custodian.models import EncryptedRecord

_RECORD_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]*$")


def validate_record_id(record_id: str) -> None:
    """Validate record identifier requirements.

    Args:
        record_id: Record identifier to validate

    Raises:
        ValidationError: If the identifier is unusable as a storage address
    """
    if record_id is None:
        raise ValidationError("Record id cannot be None")

    if record_id == "":
        raise ValidationError("Record id cannot be empty")

    if len(record_id) > Constants.MAX_RECORD_ID_LENGTH():
        raise ValidationError(
            f"Record id is too long (maximum {Constants.MAX_RECORD_ID_LENGTH()} characters)"
        )

    if not _RECORD_ID_PATTERN.match(record_id):
        raise ValidationError(
            "Record id may only contain letters, digits, '.', '_' and '-' and cannot start with '.'"
        )


class RecordStore(ABC):
    """Enumerable, addressable, atomically replaceable record storage.

    Besides the live records, a store offers a staging area: a record can be
    written there first and later swapped over the live copy in one atomic
    step.
    """

    @abstractmethod
    def list_ids(self) -> Iterator[str]:
        """Lazily enumerate the ids of live records."""

    @abstractmethod
    def exists(self, record_id: str) -> bool:
        """Return True if a live record exists."""

    @abstractmethod
    def read(self, record_id: str) -> EncryptedRecord:
        """Read a live record; RecordNotFoundError if absent."""

    @abstractmethod
    def write(self, record_id: str, record: EncryptedRecord) -> None:
        """Atomically create or replace a live record."""

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """Delete a live record; no-op if absent."""

    @abstractmethod
    def stage(self, record_id: str, record: EncryptedRecord) -> None:
        """Write a record to the staging area, replacing any staged copy."""

    @abstractmethod
    def read_staged(self, record_id: str) -> EncryptedRecord:
        """Read a staged record; RecordNotFoundError if absent."""

    @abstractmethod
    def has_staged(self, record_id: str) -> bool:
        """Return True if a staged copy exists."""

    @abstractmethod
    def list_staged(self) -> list[str]:
        """Return the ids of staged records."""

    @abstractmethod
    def commit_staged(self, record_id: str) -> None:
        """Atomically replace the live record with its staged copy."""

    @abstractmethod
    def discard_staged(self, record_id: str) -> None:
        """Delete a staged copy; no-op if absent."""

    def clear_staging(self) -> int:
        """Discard every staged copy.

        Returns:
            Number of staged copies discarded
        """
        staged = self.list_staged()
        for record_id in staged:
            self.discard_staged(record_id)
        return len(staged)


class FileRecordStore(RecordStore):
    """Stores each record as ``<id>.record.json`` in one directory."""

    def __init__(self, root: str):
        """Initialize the record store.

        Args:
            root: Directory holding the live records
        """
        self._file_manager = FileManager(root)
        self._root = self._file_manager.data_directory
        self._staging_dir = self._root / Constants.STAGING_DIR_NAME()
        try:
            self._staging_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(f"Failed to create staging directory {self._staging_dir}: {e}") from e

    def _live_path(self, record_id: str) -> Path:
        validate_record_id(record_id)
        return self._root / f"{record_id}{Constants.RECORD_SUFFIX()}"

    def _staged_path(self, record_id: str) -> Path:
        validate_record_id(record_id)
        return self._staging_dir / f"{record_id}{Constants.RECORD_SUFFIX()}"

    @staticmethod
    def _ids_in(directory: Path) -> Iterator[str]:
        suffix = Constants.RECORD_SUFFIX()
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    if entry.name.startswith(".") or not entry.name.endswith(suffix):
                        continue
                    if entry.is_file():
                        yield entry.name[:-len(suffix)]
        except FileNotFoundError:
            return
        except OSError as e:
            raise FileOperationError(f"Failed to list records in {directory}: {e}") from e

    def _read_path(self, record_id: str, path: Path) -> EncryptedRecord:
        data = self._file_manager.read_json(path)
        if data is None:
            raise RecordNotFoundError(f"Record {record_id} not found")
        try:
            record = EncryptedRecord.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            raise FileOperationError(f"Failed to parse record {record_id}: {e}") from e
        if not record.record_id:
            record.record_id = record_id
        return record

    def list_ids(self) -> Iterator[str]:
        return self._ids_in(self._root)

    def exists(self, record_id: str) -> bool:
        return self._live_path(record_id).is_file()

    def read(self, record_id: str) -> EncryptedRecord:
        return self._read_path(record_id, self._live_path(record_id))

    def write(self, record_id: str, record: EncryptedRecord) -> None:
        record.record_id = record_id
        self._file_manager.write_json_atomic(self._live_path(record_id), record.to_dict())

    def delete(self, record_id: str) -> None:
        self._file_manager.delete_file(self._live_path(record_id))

    def stage(self, record_id: str, record: EncryptedRecord) -> None:
        record.record_id = record_id
        self._file_manager.write_json_atomic(self._staged_path(record_id), record.to_dict())

    def read_staged(self, record_id: str) -> EncryptedRecord:
        return self._read_path(record_id, self._staged_path(record_id))

    def has_staged(self, record_id: str) -> bool:
        return self._staged_path(record_id).is_file()

    def list_staged(self) -> list[str]:
        return list(self._ids_in(self._staging_dir))

    def commit_staged(self, record_id: str) -> None:
        staged = self._staged_path(record_id)
        if not staged.is_file():
            raise RecordNotFoundError(f"No staged copy of record {record_id}")
        self._file_manager.replace_file(staged, self._live_path(record_id))

    def discard_staged(self, record_id: str) -> None:
        self._file_manager.delete_file(self._staged_path(record_id))

    @property
    def root(self) -> Path:
        """Get the record store directory."""
        return self._root

    @property
    def staging_directory(self) -> Path:
        """Get the staging directory."""
        return self._staging_dir
