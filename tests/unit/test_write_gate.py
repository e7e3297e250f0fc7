"""Unit tests for the record write gate."""

import threading
import unittest

from record_key_custodian.write_gate import RecordWriteGate


class TestRecordWriteGate(unittest.TestCase):
    """Test cases for RecordWriteGate class."""

    def setUp(self):
        """Set up test fixtures."""
        self.gate = RecordWriteGate()

    def run_in_thread(self, context, entered):
        """Enter context on another thread, flagging entered once inside."""
        def target():
            with context:
                entered.set()

        thread = threading.Thread(target=target)
        thread.start()
        return thread

    def test_writers_of_different_records_run_together(self):
        """Test that the shared side admits several writers."""
        entered = threading.Event()
        with self.gate.writing("p-1"):
            thread = self.run_in_thread(self.gate.writing("p-2"), entered)
            self.assertTrue(entered.wait(timeout=5))
        thread.join(timeout=5)

    def test_swap_waits_for_writer_of_same_record(self):
        """Test that a swap cannot overlap a write to the same record."""
        entered = threading.Event()
        with self.gate.writing("p-1"):
            thread = self.run_in_thread(self.gate.swapping("p-1"), entered)
            self.assertFalse(entered.wait(timeout=0.2))
        self.assertTrue(entered.wait(timeout=5))
        thread.join(timeout=5)

    def test_writer_waits_for_swap_of_same_record(self):
        """Test that a write cannot overlap a swap of the same record."""
        entered = threading.Event()
        with self.gate.swapping("p-1"):
            thread = self.run_in_thread(self.gate.writing("p-1"), entered)
            self.assertFalse(entered.wait(timeout=0.2))
        self.assertTrue(entered.wait(timeout=5))
        thread.join(timeout=5)

    def test_swap_of_other_record_does_not_wait(self):
        """Test that record locks are independent."""
        entered = threading.Event()
        with self.gate.writing("p-1"):
            thread = self.run_in_thread(self.gate.swapping("p-2"), entered)
            self.assertTrue(entered.wait(timeout=5))
        thread.join(timeout=5)

    def test_exclusive_waits_for_writers(self):
        """Test that the exclusive side waits for in-flight writers."""
        entered = threading.Event()
        with self.gate.writing("p-1"):
            thread = self.run_in_thread(self.gate.exclusive(), entered)
            self.assertFalse(entered.wait(timeout=0.2))
        self.assertTrue(entered.wait(timeout=5))
        thread.join(timeout=5)

    def test_exclusive_keeps_writers_out(self):
        """Test that writers wait while the exclusive side is held."""
        entered = threading.Event()
        with self.gate.exclusive():
            thread = self.run_in_thread(self.gate.writing("p-1"), entered)
            self.assertFalse(entered.wait(timeout=0.2))
            # Swaps still go through
            with self.gate.swapping("p-1"):
                pass
        self.assertTrue(entered.wait(timeout=5))
        thread.join(timeout=5)

    def test_record_locks_are_released(self):
        """Test that no per-record state outlives its holders."""
        with self.gate.writing("p-1"):
            with self.gate.swapping("p-2"):
                pass
        self.assertEqual(self.gate._record_locks, {})


if __name__ == "__main__":
    unittest.main()
