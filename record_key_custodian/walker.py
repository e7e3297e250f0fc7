"""Lazy enumeration of stored records for bulk operations."""

import logging
from typing import Container, Iterator, Optional

from record_key_custodian.record_store import RecordStore

logger = logging.getLogger(__name__)


class RecordStoreWalker:
    """Walks the record ids of a store without loading the records.

    A walk can be restarted by passing the ids already handled as ``skip``;
    ``sweep`` finds records that appeared after a walk.
    """

    def __init__(self, record_store: RecordStore):
        self._record_store = record_store

    def walk(self, *, skip: Optional[Container[str]] = None) -> Iterator[str]:
        """Yield live record ids not contained in skip."""
        for record_id in self._record_store.list_ids():
            if skip is not None and record_id in skip:
                continue
            yield record_id

    def batches(
        self,
        size: int,
        *,
        skip: Optional[Container[str]] = None
    ) -> Iterator[list[str]]:
        """Yield the walk in lists of at most size ids."""
        if size < 1:
            raise ValueError("size must be at least 1")

        batch: list[str] = []
        for record_id in self.walk(skip=skip):
            batch.append(record_id)
            if len(batch) >= size:
                yield batch
                batch = []
        if batch:
            yield batch

    def sweep(self, seen: Container[str]) -> list[str]:
        """Return ids that exist now but are not in seen."""
        found = list(self.walk(skip=seen))
        if found:
            logger.info(f"Sweep found {len(found)} record(s) written during the walk", extra={
                "record_count": len(found),
                "event": "walker_sweep"
            })
        return found
