"""Shared test utilities for the record-key-custodian project."""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict

from record_key_custodian.config import CustodianConfig
from record_key_custodian.key_custodian import RecordKeyCustodian


class SimulatedCrash(BaseException):
    """Stands in for the process dying; rotation cleanup must not run."""


class TestDataHelper:
    """Helper class for creating test record data."""

    @classmethod
    def create_test_records(cls, count: int = 3, prefix: str = "patient") -> Dict[str, bytes]:
        """Create plaintext health records keyed by record id."""
        return {
            f"{prefix}-{i}": (
                f'{{"patient": "{prefix}-{i}", "bp": "12{i}/8{i}", "notes": "follow up in {i + 1} weeks"}}'
            ).encode("utf-8")
            for i in range(count)
        }

    @classmethod
    def create_binary_record(cls) -> bytes:
        """Create a record that is not valid UTF-8."""
        return bytes(range(256))


class TestUtilities:
    """Test utilities for integration tests."""

    @staticmethod
    def create_temp_data_dir() -> str:
        """Create a temporary directory for test data."""
        return tempfile.mkdtemp(prefix="test_record_key_custodian_")

    @staticmethod
    def create_test_config(temp_dir: str, **overrides) -> CustodianConfig:
        """Create a configuration with key and record stores under temp_dir."""
        settings = {"max_workers": 2, "batch_size": 2, "retry_delay": 0}
        settings.update(overrides)
        return CustodianConfig(
            key_store_path=os.path.join(temp_dir, "keys"),
            record_store_path=os.path.join(temp_dir, "records"),
            **settings,
        )

    @staticmethod
    def create_test_custodian(temp_dir: str, **overrides) -> RecordKeyCustodian:
        """Create a RecordKeyCustodian instance with a generated key."""
        custodian = RecordKeyCustodian(TestUtilities.create_test_config(temp_dir, **overrides))
        custodian.generate_key()
        return custodian

    @staticmethod
    def populate(custodian: RecordKeyCustodian, records: Dict[str, bytes]) -> None:
        """Store every record through the custodian."""
        for record_id, plaintext in records.items():
            custodian.put_record(record_id, plaintext)

    @staticmethod
    def snapshot(directory: str) -> Dict[str, bytes]:
        """Return the raw bytes of every live record file in directory."""
        return {
            path.name: path.read_bytes()
            for path in sorted(Path(directory).glob("*.record.json"))
        }

    @staticmethod
    def crash_after_save(original: Callable, state: str, after: int = 0) -> Callable:
        """Wrap a journal save so the process 'dies' right after state is persisted.

        The first `after` saves in state go through; the next one crashes.
        """
        saves = []

        def save(journal):
            original(journal)
            if journal.state != state:
                return
            saves.append(state)
            if len(saves) == after + 1:
                raise SimulatedCrash(state)
        return save

    @staticmethod
    def cleanup_temp_dir(temp_dir: str) -> None:
        """Clean up temporary directory."""
        if os.path.exists(temp_dir):
            shutil.rmtree(temp_dir)
