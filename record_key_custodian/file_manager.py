"""File management utilities with atomic replace-on-write."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from record_key_custodian.constants import Constants
from record_key_custodian.exceptions import FileOperationError
from record_key_custodian.models import RotationHistory, RotationJournal

logger = logging.getLogger(__name__)


class FileManager:
    """Manages file operations for the key custodian system with atomic operations."""

    def __init__(
        self,
        data_dir: str
    ):
        """Initialize the file manager.

        Args:
            data_dir: Directory to store key files
        """
        self._data_dir = Path(data_dir)
        self._keys_file = self._data_dir / Constants.KEY_STORE_FILE_NAME()
        self._journal_file = self._data_dir / Constants.JOURNAL_FILE_NAME()
        self._rotation_history_file = self._data_dir / Constants.HISTORY_FILE_NAME()
        self._lock_file = self._data_dir / Constants.LOCK_FILE_NAME()
        self._ensure_data_directory()

    def _ensure_data_directory(self) -> None:
        """Ensure the data directory exists."""
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(f"Failed to create directory {self._data_dir}: {e}") from e

    def write_json_atomic(
        self,
        file_path: Path,
        data: dict[str, Any]
    ) -> None:
        """Write JSON data atomically using a temporary file and rename.

        The temporary file is created in the target directory, flushed to disk
        and renamed over the target with ``os.replace``, so readers observe
        either the complete old document or the complete new one.

        Args:
            file_path: Path to the target file
            data: Data to write

        Raises:
            FileOperationError: If write operation fails
        """
        temp_name = None
        try:
            # Ensure parent directory exists for atomic operation
            file_path.parent.mkdir(parents=True, exist_ok=True)

            fd, temp_name = tempfile.mkstemp(
                dir=str(file_path.parent),
                prefix=f".{file_path.name}.",
                suffix=".temp",
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(
                    data,
                    f,
                    indent=2,
                    ensure_ascii=False
                )
                f.flush()
                os.fsync(f.fileno())

            self._set_secure_permissions(Path(temp_name))
            os.replace(temp_name, file_path)
            temp_name = None
            self._fsync_directory(file_path.parent)

        except Exception as e:
            raise FileOperationError(f"Failed to write file {file_path}: {e}") from e
        finally:
            # Clean up temporary file if it exists
            if temp_name is not None and os.path.exists(temp_name):
                os.unlink(temp_name)

    def read_json(self, file_path: Path) -> Optional[dict[str, Any]]:
        """Read JSON data from file.

        Args:
            file_path: Path to the file to read

        Returns:
            JSON data as dictionary, or None if file doesn't exist

        Raises:
            FileOperationError: If read operation fails
        """
        try:
            with file_path.open(encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except Exception as e:
            raise FileOperationError(f"Failed to read file {file_path}: {e}") from e

    def replace_file(self, source: Path, target: Path) -> None:
        """Atomically rename source over target.

        Raises:
            FileOperationError: If the rename fails
        """
        try:
            os.replace(source, target)
            self._fsync_directory(target.parent)
        except OSError as e:
            raise FileOperationError(f"Failed to replace {target} with {source}: {e}") from e

    def delete_file(self, file_path: Path) -> None:
        """Delete a file if it exists.

        Raises:
            FileOperationError: If delete operation fails
        """
        try:
            file_path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise FileOperationError(f"Failed to delete file {file_path}: {e}") from e

    def save_keys(self, keys: list[dict[str, Any]]) -> None:
        """Save the key store document atomically.

        Args:
            keys: List of serialized keys

        Raises:
            FileOperationError: If save operation fails
        """
        data = {
            "keys": keys,
            "version": "1.0",
        }
        self.write_json_atomic(self._keys_file, data)

    def read_keys(self) -> list[dict[str, Any]]:
        """Read the serialized keys, or an empty list if none were saved.

        Raises:
            FileOperationError: If read operation fails
        """
        data = self.read_json(self._keys_file)
        if data is None:
            return []
        keys = data.get("keys")
        if not isinstance(keys, list):
            raise FileOperationError(f"Malformed key store file {self._keys_file}")
        return keys

    def save_rotation_journal(self, journal: RotationJournal) -> None:
        """Save the rotation journal atomically."""
        self.write_json_atomic(self._journal_file, journal.to_dict())

    def read_rotation_journal(self) -> Optional[RotationJournal]:
        """Read the rotation journal, or None if no rotation is in flight.

        Raises:
            FileOperationError: If read operation fails
        """
        data = self.read_json(self._journal_file)
        if data is None:
            return None

        try:
            return RotationJournal.from_dict(data)
        except Exception as e:
            raise FileOperationError(f"Failed to parse rotation journal: {e}") from e

    def delete_rotation_journal(self) -> None:
        """Delete the rotation journal."""
        self.delete_file(self._journal_file)

    def save_rotation_history(self, history: list[RotationHistory]) -> None:
        """Save rotation history to file atomically.

        Args:
            history: List of RotationHistory objects to save

        Raises:
            FileOperationError: If save operation fails
        """
        data = {
            "rotation_history": [h.to_dict() for h in history],
            "version": "1.0",
        }
        self.write_json_atomic(self._rotation_history_file, data)

    def read_rotation_history(self) -> list[RotationHistory]:
        """Read rotation history from file.

        Returns:
            List of RotationHistory objects

        Raises:
            FileOperationError: If read operation fails
        """
        data = self.read_json(self._rotation_history_file)
        if data is None:
            return []

        try:
            return [
                RotationHistory.from_dict(history_data)
                for history_data in data.get("rotation_history", [])
            ]
        except Exception as e:
            raise FileOperationError(f"Failed to parse rotation history: {e}") from e

    def cleanup_temp_files(self) -> None:
        """Clean up any temporary files that may have been left behind."""
        for temp_file in self._data_dir.glob(".*.temp"):
            try:
                temp_file.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove temporary file {temp_file}: {e}")

    def _set_secure_permissions(self, file_path: Path) -> None:
        """Set secure file permissions (owner read/write only).

        Args:
            file_path: Path to the file to secure
        """
        try:
            # Set file permissions to owner read/write only (600)
            os.chmod(file_path, 0o600)
        except OSError:
            # Ignore permission errors - they may not be critical
            pass

    @staticmethod
    def _fsync_directory(directory: Path) -> None:
        """Flush a directory entry so a completed rename survives a crash."""
        if os.name == "nt":
            return
        fd = os.open(str(directory), os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)

    @property
    def data_directory(self) -> Path:
        """Get the data directory path."""
        return self._data_dir

    @property
    def keys_file_path(self) -> Path:
        """Get the key store file path."""
        return self._keys_file

    @property
    def journal_file_path(self) -> Path:
        """Get the rotation journal file path."""
        return self._journal_file

    @property
    def rotation_history_file_path(self) -> Path:
        """Get the rotation history file path."""
        return self._rotation_history_file

    @property
    def lock_file_path(self) -> Path:
        """Get the rotation lock file path."""
        return self._lock_file
