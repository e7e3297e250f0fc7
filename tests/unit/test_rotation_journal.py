"""Unit tests for the rotation journal store."""

import shutil
import tempfile
import unittest

from record_key_custodian.file_manager import FileManager
from record_key_custodian.models import RotationJournal, RotationState
from record_key_custodian.rotation import RotationJournalStore


class TestRotationJournalStore(unittest.TestCase):
    """Test cases for RotationJournalStore class."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.journal_store = RotationJournalStore(FileManager(self.temp_dir), history_limit=3)

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_save_load_clear(self):
        """Test the journal lifecycle."""
        self.assertIsNone(self.journal_store.load())

        journal = RotationJournal(rotation_id="r-1", old_key_id="k-1", state=RotationState.KEY_GENERATED)
        self.journal_store.save(journal)

        loaded = self.journal_store.load()
        self.assertEqual(loaded.state, RotationState.KEY_GENERATED)

        self.journal_store.clear()
        self.assertIsNone(self.journal_store.load())

    def test_history_is_bounded(self):
        """Test that only the most recent outcomes are kept."""
        for i in range(5):
            journal = RotationJournal(rotation_id=f"r-{i}", old_key_id="k-1", new_key_id="k-2")
            self.journal_store.record_outcome(journal, "done", record_count=i)

        history = self.journal_store.history()

        self.assertEqual([entry.rotation_id for entry in history], ["r-2", "r-3", "r-4"])
        self.assertEqual([entry.rotation_id for entry in self.journal_store.history(limit=1)], ["r-4"])

    def test_outcome_carries_error(self):
        """Test recording a failed rotation."""
        journal = RotationJournal(rotation_id="r-1", old_key_id="k-1")

        entry = self.journal_store.record_outcome(journal, "failed", error="boom")

        self.assertEqual(entry.error, "boom")
        self.assertEqual(self.journal_store.history()[0].outcome, "failed")


if __name__ == "__main__":
    unittest.main()
