"""Integration tests for resuming a rotation after the process dies."""

import unittest
from unittest.mock import patch

from record_key_custodian.exceptions import KeyNotFoundError, ValidationError
from record_key_custodian.key_custodian import RecordKeyCustodian
from record_key_custodian.models import KeyStatus, RotationState
from record_key_custodian.record_codec import RecordCodec
from tests.test_utility import SimulatedCrash, TestDataHelper, TestUtilities


class TestRotationCrashRecovery(unittest.TestCase):
    """Crash the rotation right after each journaled step and resume it."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = TestUtilities.create_temp_data_dir()
        self.custodian = TestUtilities.create_test_custodian(self.temp_dir)
        self.records = TestDataHelper.create_test_records(3)
        self.records["scan-0"] = TestDataHelper.create_binary_record()
        TestUtilities.populate(self.custodian, self.records)
        self.old_key_id = self.custodian.key_store.get_active().key_id

    def tearDown(self):
        """Clean up test fixtures."""
        TestUtilities.cleanup_temp_dir(self.temp_dir)

    def crash_rotation(self, state, after=0):
        """Run a rotation that dies right after the journal reaches state."""
        journal_store = self.custodian._journal_store
        crashing_save = TestUtilities.crash_after_save(journal_store.save, state, after)
        with patch.object(journal_store, "save", side_effect=crashing_save):
            with self.assertRaises(SimulatedCrash):
                self.custodian.rotate_key()

    def restart(self):
        """Simulate a process restart with a fresh custodian on the same stores."""
        return RecordKeyCustodian(self.custodian.config)

    def assert_all_readable(self, custodian):
        for record_id, plaintext in self.records.items():
            self.assertEqual(custodian.get_record(record_id), plaintext)

    def assert_single_key(self, custodian, key_id):
        """Every live record is encrypted under key_id."""
        for record_id in self.records:
            self.assertEqual(custodian.record_store.read(record_id).key_id, key_id)

    def assert_fully_rotated(self, custodian, result):
        """Every record decrypts under the new key only and the old key is gone."""
        new_key = custodian.key_store.get_active()
        self.assertEqual(new_key.key_id, result.new_key_id)
        self.assertEqual(result.old_key_id, self.old_key_id)
        with self.assertRaises(KeyNotFoundError):
            custodian.key_store.get(self.old_key_id)

        codec = RecordCodec()
        for record_id, plaintext in self.records.items():
            record = custodian.record_store.read(record_id)
            self.assertEqual(record.key_id, new_key.key_id)
            # A second encryption layer would decrypt to ciphertext, not plaintext
            self.assertEqual(codec.decrypt(record, new_key), plaintext)

        self.assertEqual([key.key_id for key in custodian.key_store.list_keys()], [new_key.key_id])
        self.assertEqual(custodian.record_store.list_staged(), [])
        self.assertIsNone(custodian.status()["rotation"])

    def test_crash_after_idle(self):
        """Test resuming a rotation that died before the new key was journaled."""
        self.crash_rotation(RotationState.IDLE)

        custodian = self.restart()
        self.assertEqual(custodian.status()["rotation"]["state"], RotationState.IDLE)
        self.assert_all_readable(custodian)
        self.assert_single_key(custodian, self.old_key_id)

        result = custodian.rotate_key()

        self.assertTrue(result.resumed)
        self.assert_fully_rotated(custodian, result)

    def test_crash_after_key_generated(self):
        """Test resuming after the pending key was generated."""
        self.crash_rotation(RotationState.KEY_GENERATED)

        custodian = self.restart()
        rotation = custodian.status()["rotation"]
        self.assertEqual(rotation["state"], RotationState.KEY_GENERATED)
        self.assertEqual(custodian.key_store.get(rotation["new_key_id"]).status, KeyStatus.PENDING)
        self.assertEqual(custodian.key_store.get_active().key_id, self.old_key_id)
        self.assert_all_readable(custodian)
        self.assert_single_key(custodian, self.old_key_id)

        result = custodian.rotate_key()

        self.assertEqual(result.new_key_id, rotation["new_key_id"])
        self.assert_fully_rotated(custodian, result)

    def test_crash_mid_reencryption(self):
        """Test resuming after part of the records were staged."""
        self.crash_rotation(RotationState.REENCRYPTING, after=1)

        custodian = self.restart()
        rotation = custodian.status()["rotation"]
        self.assertEqual(rotation["state"], RotationState.REENCRYPTING)
        self.assertEqual(rotation["records"]["staged"], 2)
        self.assert_all_readable(custodian)
        self.assert_single_key(custodian, self.old_key_id)

        result = custodian.rotate_key()

        self.assertEqual(result.records_migrated, 4)
        self.assert_fully_rotated(custodian, result)

    def test_crash_with_staged_file_lost(self):
        """Test resuming when a journaled staged copy no longer exists."""
        self.crash_rotation(RotationState.REENCRYPTING, after=1)
        custodian = self.restart()
        lost = custodian.record_store.list_staged()[0]
        custodian.record_store.discard_staged(lost)

        result = custodian.rotate_key()

        self.assert_fully_rotated(custodian, result)

    def test_crash_on_entering_commit(self):
        """Test resuming once every record is staged but none is swapped."""
        self.crash_rotation(RotationState.COMMITTING)

        custodian = self.restart()
        self.assertEqual(custodian.status()["rotation"]["state"], RotationState.COMMITTING)
        self.assert_all_readable(custodian)
        self.assert_single_key(custodian, self.old_key_id)

        result = custodian.rotate_key()

        self.assertEqual(result.records_migrated, 4)
        self.assert_fully_rotated(custodian, result)

    def test_crash_mid_commit(self):
        """Test resuming with records split across the old and new key."""
        self.crash_rotation(RotationState.COMMITTING, after=1)

        custodian = self.restart()
        rotation = custodian.status()["rotation"]
        self.assertEqual(rotation["records"]["committed"], 2)
        key_ids = {custodian.record_store.read(record_id).key_id for record_id in self.records}
        self.assertEqual(key_ids, {self.old_key_id, rotation["new_key_id"]})
        self.assert_all_readable(custodian)

        result = custodian.rotate_key()

        self.assertEqual(result.records_migrated, 2)
        self.assert_fully_rotated(custodian, result)

    def test_crash_after_done(self):
        """Test resuming after promotion but before the old key was purged."""
        self.crash_rotation(RotationState.DONE)

        custodian = self.restart()
        rotation = custodian.status()["rotation"]
        self.assertEqual(rotation["state"], RotationState.DONE)
        self.assertEqual(custodian.key_store.get_active().key_id, rotation["new_key_id"])
        self.assertEqual(custodian.key_store.get(self.old_key_id).status, KeyStatus.RETIRED)
        self.assert_all_readable(custodian)
        self.assert_single_key(custodian, rotation["new_key_id"])

        result = custodian.rotate_key()

        self.assertEqual(result.records_migrated, 0)
        self.assert_fully_rotated(custodian, result)

    def test_write_between_crash_and_resume(self):
        """Test that a record written under the old key before resuming is migrated."""
        self.crash_rotation(RotationState.COMMITTING)
        custodian = self.restart()
        self.assertEqual(custodian.put_record("patient-late", b"late chart"), self.old_key_id)
        self.records["patient-late"] = b"late chart"

        result = custodian.rotate_key()

        self.assert_fully_rotated(custodian, result)

    def test_crash_with_orphan_pending_key(self):
        """Test that a key generated but never journaled is discarded on resume."""
        self.crash_rotation(RotationState.IDLE)
        custodian = self.restart()
        orphan = custodian.key_store.generate()

        result = custodian.rotate_key()

        self.assertNotEqual(result.new_key_id, orphan.key_id)
        with self.assertRaises(KeyNotFoundError):
            custodian.key_store.get(orphan.key_id)
        self.assert_fully_rotated(custodian, result)

    def test_forced_generate_refused_while_unfinished(self):
        """Test that a forced key cannot replace the key of an unfinished rotation."""
        self.crash_rotation(RotationState.REENCRYPTING)
        custodian = self.restart()

        with self.assertRaises(ValidationError):
            custodian.generate_key(force=True)

        result = custodian.rotate_key()
        self.assert_fully_rotated(custodian, result)

    def test_history_after_resume(self):
        """Test that a resumed rotation is recorded once."""
        self.crash_rotation(RotationState.KEY_GENERATED)
        custodian = self.restart()
        self.assertEqual(custodian.get_rotation_history(), [])

        result = custodian.rotate_key()

        history = custodian.get_rotation_history()
        self.assertEqual([entry.rotation_id for entry in history], [result.rotation_id])
        self.assertEqual(history[0].outcome, "done")


if __name__ == "__main__":
    unittest.main()
