"""Resumable, crash-safe rotation of the data-encryption key."""

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from record_key_custodian.constants import Constants
from record_key_custodian.crypto_utils import CryptoUtils
from record_key_custodian.exceptions import (
    FileOperationError,
    KeyRotationError,
    RecordNotFoundError,
    RotationCancelledError,
)
from record_key_custodian.key_store import KeyStore
from record_key_custodian.models import (
    Key,
    KeyStatus,
    MigrationStatus,
    RotationJournal,
    RotationResult,
    RotationState,
)
from record_key_custodian.record_codec import RecordCodec
from record_key_custodian.record_store import RecordStore
from record_key_custodian.walker import RecordStoreWalker
from record_key_custodian.write_gate import RecordWriteGate

from record_key_custodian.rotation.journal import RotationJournalStore
from record_key_custodian.rotation.lock import RotationLock
from record_key_custodian.rotation.transaction import RotationTransaction

logger = logging.getLogger(__name__)


class _KeyCache:
    """Keys resolved during one rotation, zeroed when the rotation ends."""

    def __init__(self, key_store: KeyStore):
        self._key_store = key_store
        self._keys: dict[str, Key] = {}
        self._lock = threading.Lock()

    def get(self, key_id: str) -> Key:
        with self._lock:
            key = self._keys.get(key_id)
            if key is None:
                key = self._key_store.get(key_id)
                self._keys[key_id] = key
            return key

    def zeroize(self) -> None:
        with self._lock:
            for key in self._keys.values():
                key.zeroize()
            self._keys.clear()


@dataclass
class _RunCounters:
    migrated: int = 0
    skipped: int = 0


class RotationCoordinator:
    """Drives a rotation through IDLE, KEY_GENERATED, REENCRYPTING, COMMITTING and DONE.

    Every transition is written to the rotation journal before the work of
    the new state starts, and each record's migration status is journaled
    per batch. Re-running ``rotate`` after a crash resumes from the journal.

    Until COMMITTING begins, live records are never modified: re-encrypted
    copies go to the staging area and any failure discards them together with
    the pending key. From COMMITTING on the rotation only moves forward; a
    failure leaves the journal in place and the next ``rotate`` completes it.
    """

    def __init__(
        self,
        key_store: KeyStore,
        record_store: RecordStore,
        codec: RecordCodec,
        journal_store: RotationJournalStore,
        lock: RotationLock,
        *,
        max_workers: Optional[int] = None,
        batch_size: Optional[int] = None,
        io_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        max_sweeps: Optional[int] = None,
        write_gate: Optional[RecordWriteGate] = None
    ):
        """Initialize the rotation coordinator.

        Args:
            key_store: Key store owning the keys
            record_store: Store of encrypted records
            codec: Record codec
            journal_store: Persistence for the rotation journal and history
            lock: Lock guaranteeing a single rotation at a time
            max_workers: Worker threads for per-record work (default 4)
            batch_size: Records handed to the workers at once (default 50)
            io_retries: Retries for transient I/O errors (default 3)
            retry_delay: Seconds between I/O retries (default 0.1)
            max_sweeps: Extra passes for records written mid-rotation (default 3)
            write_gate: Gate shared with the service writing records
        """
        self._key_store = key_store
        self._record_store = record_store
        self._codec = codec
        self._journal_store = journal_store
        self._lock = lock
        self._walker = RecordStoreWalker(record_store)
        self._max_workers = max_workers or Constants.ROTATION_MAX_WORKERS()
        self._batch_size = batch_size or Constants.ROTATION_BATCH_SIZE()
        self._io_retries = Constants.IO_RETRIES() if io_retries is None else io_retries
        self._retry_delay = Constants.IO_RETRY_DELAY() if retry_delay is None else retry_delay
        self._max_sweeps = max_sweeps or Constants.ROTATION_MAX_SWEEPS()
        self._write_gate = write_gate or RecordWriteGate()

    def status(self) -> Optional[RotationJournal]:
        """Return the journal of an unfinished rotation, if any."""
        return self._journal_store.load()

    def rotate(self, *, cancel_event: Optional[threading.Event] = None) -> RotationResult:
        """Rotate to a new key, or resume an interrupted rotation.

        Args:
            cancel_event: When set, the rotation stops before the next record
                and rolls back (only honoured before COMMITTING)

        Returns:
            Summary of the completed rotation

        Raises:
            RotationInProgressError: If another rotation holds the lock
            NotInitializedError: If there is no active key to rotate away from
            EntropyError: If the new key cannot be generated
            AuthenticationFailure: If a record fails verification
            RotationCancelledError: If cancel_event was set
            KeyRotationError: If the rotation cannot complete
        """
        cancel_event = cancel_event or threading.Event()
        with self._lock:
            journal = self._journal_store.load()
            resumed = journal is not None

            if journal is None:
                old_key = self._key_store.get_active()
                journal = RotationJournal(
                    rotation_id=str(uuid.uuid4()),
                    old_key_id=old_key.key_id,
                )
                old_key.zeroize()
                self._transition(journal, RotationState.IDLE)
                logger.info("Key rotation started", extra={
                    "rotation_id": journal.rotation_id,
                    "old_key_id": journal.old_key_id,
                    "event": "rotation_started"
                })
            else:
                logger.info("Resuming key rotation", extra={
                    "rotation_id": journal.rotation_id,
                    "state": journal.state,
                    "event": "rotation_resumed"
                })

            counters = _RunCounters()
            keys = _KeyCache(self._key_store)
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                try:
                    if journal.state in RotationState.ROLLBACK_SAFE:
                        self._prepare(journal, keys, counters, executor, cancel_event)
                    self._complete(journal, keys, counters, executor)
                finally:
                    keys.zeroize()

            result = RotationResult(
                rotation_id=journal.rotation_id,
                old_key_id=journal.old_key_id,
                new_key_id=journal.new_key_id,
                records_migrated=counters.migrated,
                records_skipped=counters.skipped,
                resumed=resumed,
            )

            logger.info("Key rotation completed successfully", extra={
                "rotation_id": journal.rotation_id,
                "new_key_id": journal.new_key_id,
                "affected_records": counters.migrated,
                "event": "rotation_completed"
            })
            return result

    def _prepare(
        self,
        journal: RotationJournal,
        keys: _KeyCache,
        counters: _RunCounters,
        executor: ThreadPoolExecutor,
        cancel_event: threading.Event
    ) -> None:
        """Generate the new key and stage every record under it."""
        try:
            with RotationTransaction(self._record_store, self._key_store, self._journal_store) as transaction:
                if journal.state == RotationState.IDLE:
                    if journal.new_key_id is None:
                        # A crash between generating and journaling leaves an orphan
                        self._key_store.discard_pending()
                        journal.new_key_id = self._key_store.generate().key_id
                    self._transition(journal, RotationState.KEY_GENERATED)

                new_key = keys.get(journal.new_key_id)
                if journal.state == RotationState.KEY_GENERATED:
                    self._transition(journal, RotationState.REENCRYPTING)

                self._reencrypt(journal, new_key, keys, counters, executor, cancel_event)

                self._transition(journal, RotationState.COMMITTING)
                transaction.commit()

        except RotationCancelledError as e:
            self._record_failure(journal, "cancelled", e)
            raise
        except Exception as e:
            self._record_failure(journal, "failed", e)
            raise

    def _reencrypt(
        self,
        journal: RotationJournal,
        new_key: Key,
        keys: _KeyCache,
        counters: _RunCounters,
        executor: ThreadPoolExecutor,
        cancel_event: threading.Event
    ) -> None:
        """Stage a copy of every live record re-encrypted under new_key."""
        for record_id in journal.ids_with_status(MigrationStatus.STAGED):
            if not self._record_store.has_staged(record_id):
                journal.mark(record_id, MigrationStatus.PENDING)

        seen = set(journal.ids_with_status(MigrationStatus.STAGED, MigrationStatus.COMMITTED))

        for batch in self._walker.batches(self._batch_size, skip=seen):
            self._check_cancelled(cancel_event)
            self._stage_batch(batch, journal, new_key, keys, counters, executor, cancel_event)
            seen.update(batch)

        # Records written under the old key while the walk ran
        for _ in range(self._max_sweeps):
            fresh = self._walker.sweep(seen)
            if not fresh:
                break
            for batch in self._chunks(fresh):
                self._check_cancelled(cancel_event)
                self._stage_batch(batch, journal, new_key, keys, counters, executor, cancel_event)
            seen.update(fresh)

    def _stage_batch(
        self,
        batch: list[str],
        journal: RotationJournal,
        new_key: Key,
        keys: _KeyCache,
        counters: _RunCounters,
        executor: ThreadPoolExecutor,
        cancel_event: threading.Event
    ) -> None:
        outcomes = self._run_parallel(
            executor,
            batch,
            lambda record_id: self._stage_record(record_id, new_key, keys, cancel_event),
        )
        for record_id, outcome in outcomes.items():
            if outcome is None:
                journal.records.pop(record_id, None)
            elif outcome == MigrationStatus.COMMITTED:
                journal.mark(record_id, MigrationStatus.COMMITTED)
                counters.skipped += 1
            else:
                journal.mark(record_id, MigrationStatus.STAGED, source_fingerprint=outcome)
        self._journal_store.save(journal)

    def _stage_record(
        self,
        record_id: str,
        new_key: Key,
        keys: _KeyCache,
        cancel_event: Optional[threading.Event] = None
    ) -> Optional[str]:
        """Stage one record under new_key.

        Returns:
            None if the record vanished, ``MigrationStatus.COMMITTED`` if it is
            already under new_key, otherwise the fingerprint of the live
            record that was staged
        """
        if cancel_event is not None:
            self._check_cancelled(cancel_event)

        try:
            live = self._with_retries(self._record_store.read, record_id)
        except RecordNotFoundError:
            return None

        if live.key_id == new_key.key_id:
            return MigrationStatus.COMMITTED

        plaintext = self._codec.decrypt(live, keys.get(live.key_id))
        staged = self._codec.encrypt(plaintext, new_key, record_id=record_id)
        self._with_retries(self._record_store.stage, record_id, staged)

        check = self._with_retries(self._record_store.read_staged, record_id)
        if not CryptoUtils.constant_time_compare(self._codec.decrypt(check, new_key), plaintext):
            raise KeyRotationError(f"Staged copy of record {record_id} does not match the original")

        return live.fingerprint

    def _complete(
        self,
        journal: RotationJournal,
        keys: _KeyCache,
        counters: _RunCounters,
        executor: ThreadPoolExecutor
    ) -> None:
        """Swap staged records live, promote the new key and purge the old one."""
        try:
            new_key = keys.get(journal.new_key_id)

            if journal.state == RotationState.COMMITTING:
                self._commit_staged(journal, new_key, keys, counters, executor)

            self._key_store.promote(new_key)
            if journal.state != RotationState.DONE:
                self._transition(journal, RotationState.DONE)

            self._migrate_stragglers(new_key, keys, counters, executor)

            with self._write_gate.exclusive():
                # No writer holds a retired key past this point
                self._migrate_stragglers(new_key, keys, counters, executor)
                for key in self._key_store.list_keys():
                    if key.status == KeyStatus.RETIRED:
                        self._key_store.purge(key.key_id)

            self._journal_store.clear()
            self._journal_store.record_outcome(journal, "done", record_count=len(journal.records))

        except Exception as e:
            journal.error = str(e)
            logger.error(f"Key rotation failed after commit began; rerun rotate to finish: {e}", extra={
                "rotation_id": journal.rotation_id,
                "state": journal.state,
                "event": "rotation_commit_failed"
            })
            try:
                self._journal_store.save(journal)
            except FileOperationError as save_error:
                logger.error(f"Failed to record rotation error in journal: {save_error}")
            raise

    def _commit_staged(
        self,
        journal: RotationJournal,
        new_key: Key,
        keys: _KeyCache,
        counters: _RunCounters,
        executor: ThreadPoolExecutor
    ) -> None:
        staged = journal.ids_with_status(MigrationStatus.STAGED)
        for batch in self._chunks(staged):
            outcomes = self._run_parallel(
                executor,
                batch,
                lambda record_id: self._commit_record(
                    record_id,
                    journal.records[record_id].source_fingerprint,
                    new_key,
                    keys,
                ),
            )
            for record_id, outcome in outcomes.items():
                if outcome is None:
                    journal.records.pop(record_id, None)
                    continue
                journal.mark(record_id, MigrationStatus.COMMITTED)
                if outcome:
                    counters.migrated += 1
                else:
                    counters.skipped += 1
            self._journal_store.save(journal)

    def _commit_record(
        self,
        record_id: str,
        source_fingerprint: Optional[str],
        new_key: Key,
        keys: _KeyCache
    ) -> Optional[bool]:
        """Atomically swap the staged copy of a record over the live one.

        Returns:
            True if the record was swapped, False if it was already under
            new_key, None if it no longer exists
        """
        with self._write_gate.swapping(record_id):
            try:
                live = self._with_retries(self._record_store.read, record_id)
            except RecordNotFoundError:
                self._with_retries(self._record_store.discard_staged, record_id)
                return None

            if live.key_id == new_key.key_id:
                self._with_retries(self._record_store.discard_staged, record_id)
                return False

            if live.fingerprint != source_fingerprint or not self._record_store.has_staged(record_id):
                # Rewritten after it was staged; stage the current version instead
                if self._stage_record(record_id, new_key, keys) is None:
                    self._with_retries(self._record_store.discard_staged, record_id)
                    return None

            self._with_retries(self._record_store.commit_staged, record_id)
            return True

    def _migrate_stragglers(
        self,
        new_key: Key,
        keys: _KeyCache,
        counters: _RunCounters,
        executor: ThreadPoolExecutor
    ) -> None:
        """Re-encrypt records still under a retired key before it is purged."""
        for attempt in range(self._max_sweeps + 1):
            stragglers = [
                record_id
                for record_id in self._walker.walk()
                if self._key_id_of(record_id) not in (None, new_key.key_id)
            ]
            if not stragglers:
                return
            if attempt == self._max_sweeps:
                raise KeyRotationError(
                    f"{len(stragglers)} record(s) are still encrypted under a retired key"
                )

            for batch in self._chunks(stragglers):
                outcomes = self._run_parallel(
                    executor,
                    batch,
                    lambda record_id: self._migrate_record(record_id, new_key, keys),
                )
                counters.migrated += sum(1 for migrated in outcomes.values() if migrated)

    def _migrate_record(self, record_id: str, new_key: Key, keys: _KeyCache) -> bool:
        with self._write_gate.swapping(record_id):
            if self._stage_record(record_id, new_key, keys) in (None, MigrationStatus.COMMITTED):
                self._with_retries(self._record_store.discard_staged, record_id)
                return False
            self._with_retries(self._record_store.commit_staged, record_id)
            return True

    def _key_id_of(self, record_id: str) -> Optional[str]:
        try:
            return self._with_retries(self._record_store.read, record_id).key_id
        except RecordNotFoundError:
            return None

    def _run_parallel(
        self,
        executor: ThreadPoolExecutor,
        record_ids: list[str],
        operation: Callable[[str], Any]
    ) -> dict[str, Any]:
        """Run operation once per record id on the worker pool.

        Every id is handled by exactly one worker. If any operation fails the
        queued ones are cancelled and the first error is raised once the
        running ones finish.
        """
        futures: dict[Future, str] = {
            executor.submit(operation, record_id): record_id
            for record_id in record_ids
        }
        results: dict[str, Any] = {}
        first_error: Optional[BaseException] = None
        for future in as_completed(futures):
            if future.cancelled():
                continue
            error = future.exception()
            if error is not None:
                if first_error is None:
                    first_error = error
                    for pending in futures:
                        pending.cancel()
                continue
            results[futures[future]] = future.result()

        if first_error is not None:
            raise first_error
        return results

    def _with_retries(self, operation: Callable[..., Any], *args: Any) -> Any:
        """Call operation, retrying transient I/O errors a bounded number of times."""
        attempt = 0
        while True:
            try:
                return operation(*args)
            except (FileOperationError, OSError) as e:
                attempt += 1
                if attempt > self._io_retries:
                    raise
                logger.warning(f"Transient I/O error, retrying ({attempt}/{self._io_retries}): {e}")
                time.sleep(self._retry_delay)

    def _chunks(self, record_ids: Iterable[str]) -> Iterable[list[str]]:
        record_ids = list(record_ids)
        for i in range(0, len(record_ids), self._batch_size):
            yield record_ids[i:i + self._batch_size]

    def _transition(self, journal: RotationJournal, state: str) -> None:
        journal.state = state
        self._journal_store.save(journal)
        logger.info(f"Rotation entered state {state}", extra={
            "rotation_id": journal.rotation_id,
            "state": state,
            "event": "rotation_state_changed"
        })

    def _record_failure(self, journal: RotationJournal, outcome: str, error: Exception) -> None:
        journal.state = RotationState.FAILED
        journal.error = str(error)
        logger.error(f"Key rotation {outcome}", extra={
            "rotation_id": journal.rotation_id,
            "error": str(error),
            "event": f"rotation_{outcome}"
        })
        self._journal_store.record_outcome(
            journal,
            outcome,
            record_count=len(journal.records),
            error=str(error),
        )

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event) -> None:
        if cancel_event.is_set():
            raise RotationCancelledError("Rotation cancelled")
