"""Unit tests for the RecordService module."""

import shutil
import tempfile
import unittest

from record_key_custodian.exceptions import (
    AuthenticationFailure,
    KeyNotFoundError,
    NotInitializedError,
    RecordNotFoundError,
    ValidationError,
)
from record_key_custodian.file_manager import FileManager
from record_key_custodian.key_store import KeyStore
from record_key_custodian.record_codec import RecordCodec
from record_key_custodian.record_service import RecordService
from record_key_custodian.record_store import FileRecordStore


class TestRecordService(unittest.TestCase):
    """Test cases for RecordService class."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.key_store = KeyStore(FileManager(f"{self.temp_dir}/keys"))
        self.record_store = FileRecordStore(f"{self.temp_dir}/records")
        self.service = RecordService(self.key_store, self.record_store, RecordCodec())

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_put_requires_key(self):
        """Test writing before any key exists."""
        with self.assertRaises(NotInitializedError):
            self.service.put("p-1", b"data")
        self.assertEqual(list(self.service.list_ids()), [])

    def test_put_and_get(self):
        """Test a record round trip under the active key."""
        key = self.key_store.generate()

        key_id = self.service.put("p-1", b"blood pressure 120/80")

        self.assertEqual(key_id, key.key_id)
        self.assertEqual(self.record_store.read("p-1").key_id, key.key_id)
        self.assertEqual(self.service.get("p-1"), b"blood pressure 120/80")

    def test_get_resolves_retired_key(self):
        """Test that records under a retired key stay readable."""
        old = self.key_store.generate()
        self.service.put("p-1", b"old data")
        new = self.key_store.generate()
        self.key_store.promote(new)

        self.assertEqual(self.record_store.read("p-1").key_id, old.key_id)
        self.assertEqual(self.service.get("p-1"), b"old data")
        self.assertEqual(self.service.put("p-2", b"new data"), new.key_id)

    def test_get_with_purged_key(self):
        """Test reading a record whose key was purged."""
        old = self.key_store.generate()
        self.service.put("p-1", b"old data")
        self.key_store.promote(self.key_store.generate())
        self.key_store.purge(old.key_id)

        with self.assertRaises(KeyNotFoundError):
            self.service.get("p-1")

    def test_get_tampered_record(self):
        """Test that a modified record is rejected."""
        self.key_store.generate()
        self.service.put("p-1", b"data")
        record = self.record_store.read("p-1")
        record.ciphertext = bytes([record.ciphertext[0] ^ 1]) + record.ciphertext[1:]
        self.record_store.write("p-1", record)

        with self.assertRaises(AuthenticationFailure):
            self.service.get("p-1")

    def test_get_missing(self):
        """Test reading a record that does not exist."""
        self.key_store.generate()
        with self.assertRaises(RecordNotFoundError):
            self.service.get("p-1")

    def test_invalid_record_id(self):
        """Test that invalid ids are rejected before encryption."""
        self.key_store.generate()
        with self.assertRaises(ValidationError):
            self.service.put("bad/id", b"data")

    def test_delete(self):
        """Test deleting a record."""
        self.key_store.generate()
        self.service.put("p-1", b"data")

        self.service.delete("p-1")

        self.assertEqual(list(self.service.list_ids()), [])


if __name__ == "__main__":
    unittest.main()
