"""Unit tests for the rotation transaction."""

import unittest
from unittest.mock import Mock

from record_key_custodian.exceptions import KeyRotationError
from record_key_custodian.rotation import RotationTransaction


class TestRotationTransaction(unittest.TestCase):
    """Test cases for RotationTransaction class."""

    def setUp(self):
        """Set up test fixtures."""
        self.record_store = Mock()
        self.record_store.clear_staging.return_value = 2
        self.key_store = Mock()
        self.key_store.discard_pending.return_value = ["k-2"]
        self.journal_store = Mock()
        self.transaction = RotationTransaction(
            self.record_store,
            self.key_store,
            self.journal_store,
        )

    def test_rollback(self):
        """Test rollback discards staging, pending keys and the journal."""
        self.transaction.rollback()

        self.record_store.clear_staging.assert_called_once()
        self.key_store.discard_pending.assert_called_once()
        self.journal_store.clear.assert_called_once()
        self.assertTrue(self.transaction.is_rolled_back)

    def test_rollback_is_idempotent(self):
        """Test that a second rollback does nothing."""
        self.transaction.rollback()
        self.transaction.rollback()

        self.record_store.clear_staging.assert_called_once()

    def test_rollback_after_commit(self):
        """Test that a committed transaction cannot roll back."""
        self.transaction.commit()

        with self.assertRaises(KeyRotationError):
            self.transaction.rollback()
        self.record_store.clear_staging.assert_not_called()

    def test_rollback_failure_wrapped(self):
        """Test that failures during rollback are reported as rotation errors."""
        self.key_store.discard_pending.side_effect = OSError("disk gone")

        with self.assertRaises(KeyRotationError):
            self.transaction.rollback()

    def test_context_manager_rolls_back_on_error(self):
        """Test automatic rollback when the body raises."""
        with self.assertRaises(ValueError):
            with self.transaction:
                raise ValueError("record failed")

        self.journal_store.clear.assert_called_once()

    def test_context_manager_success(self):
        """Test that a committed transaction is left alone."""
        with self.transaction as transaction:
            transaction.commit()

        self.assertTrue(self.transaction.is_committed)
        self.record_store.clear_staging.assert_not_called()

    def test_interrupt_leaves_journal(self):
        """Test that KeyboardInterrupt does not roll back."""
        with self.assertRaises(KeyboardInterrupt):
            with self.transaction:
                raise KeyboardInterrupt()

        self.journal_store.clear.assert_not_called()
        self.assertFalse(self.transaction.is_rolled_back)


if __name__ == "__main__":
    unittest.main()
