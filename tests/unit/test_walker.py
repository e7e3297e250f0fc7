"""Unit tests for the RecordStoreWalker module."""

import unittest
from unittest.mock import Mock

from record_key_custodian.walker import RecordStoreWalker


class TestRecordStoreWalker(unittest.TestCase):
    """Test cases for RecordStoreWalker class."""

    def setUp(self):
        """Set up test fixtures."""
        self.record_store = Mock()
        self.ids = ["a", "b", "c", "d", "e"]
        self.record_store.list_ids.side_effect = lambda: iter(self.ids)
        self.walker = RecordStoreWalker(self.record_store)

    def test_walk(self):
        """Test a full walk."""
        self.assertEqual(list(self.walker.walk()), self.ids)

    def test_walk_is_lazy(self):
        """Test that ids are pulled from the store as they are consumed."""
        consumed = []

        def ids():
            for record_id in self.ids:
                consumed.append(record_id)
                yield record_id

        self.record_store.list_ids.side_effect = ids
        walk = self.walker.walk()

        self.assertEqual(next(walk), "a")
        self.assertEqual(consumed, ["a"])

    def test_walk_skip(self):
        """Test resuming a walk by skipping handled ids."""
        self.assertEqual(list(self.walker.walk(skip={"a", "c"})), ["b", "d", "e"])

    def test_batches(self):
        """Test batching of a walk."""
        self.assertEqual(
            list(self.walker.batches(2)),
            [["a", "b"], ["c", "d"], ["e"]],
        )

    def test_batches_with_skip(self):
        """Test batching with skipped ids."""
        self.assertEqual(list(self.walker.batches(10, skip={"e"})), [["a", "b", "c", "d"]])

    def test_invalid_batch_size(self):
        """Test that batch size must be positive."""
        with self.assertRaises(ValueError):
            list(self.walker.batches(0))

    def test_sweep(self):
        """Test finding records written after a walk."""
        seen = set(self.walker.walk())
        self.ids = self.ids + ["f"]

        self.assertEqual(self.walker.sweep(seen), ["f"])

    def test_sweep_nothing_new(self):
        """Test a sweep that finds nothing."""
        self.assertEqual(self.walker.sweep(set(self.ids)), [])

    def test_empty_store(self):
        """Test walking an empty store."""
        self.ids = []
        self.assertEqual(list(self.walker.batches(3)), [])


if __name__ == "__main__":
    unittest.main()
