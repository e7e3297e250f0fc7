"""Coordination between record writers and the key rotation."""

import threading
from contextlib import contextmanager
from typing import Iterator


class _RecordLock:
    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class RecordWriteGate:
    """Serializes record writes against the rotation's swaps and key purges.

    Writers hold the shared side of the gate together with the lock of the
    record they touch. The rotation holds a record's lock while it swaps the
    staged copy in, and the exclusive side while it makes the last check for
    records under a retired key and purges that key.

    The gate coordinates threads of one process only.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._writers = 0
        self._exclusive = False
        self._record_locks: dict[str, _RecordLock] = {}
        self._record_locks_guard = threading.Lock()

    @contextmanager
    def _record_lock(self, record_id: str) -> Iterator[None]:
        with self._record_locks_guard:
            entry = self._record_locks.get(record_id)
            if entry is None:
                entry = self._record_locks[record_id] = _RecordLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._record_locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._record_locks[record_id]

    @contextmanager
    def writing(self, record_id: str) -> Iterator[None]:
        """Hold the shared side and the record's lock for a put or delete."""
        with self._condition:
            while self._exclusive:
                self._condition.wait()
            self._writers += 1
        try:
            with self._record_lock(record_id):
                yield
        finally:
            with self._condition:
                self._writers -= 1
                if self._writers == 0:
                    self._condition.notify_all()

    @contextmanager
    def swapping(self, record_id: str) -> Iterator[None]:
        """Hold only the record's lock, for replacing a live record with its staged copy."""
        with self._record_lock(record_id):
            yield

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Wait for in-flight writers to finish and keep new ones out."""
        with self._condition:
            while self._exclusive:
                self._condition.wait()
            self._exclusive = True
            while self._writers:
                self._condition.wait()
        try:
            yield
        finally:
            with self._condition:
                self._exclusive = False
                self._condition.notify_all()
