"""Rotation services package for Record Key Custodian."""

from record_key_custodian.rotation.coordinator import RotationCoordinator
from record_key_custodian.rotation.journal import RotationJournalStore
from record_key_custodian.rotation.lock import RotationLock
from record_key_custodian.rotation.transaction import RotationTransaction

__all__ = [
    "RotationCoordinator",
    "RotationJournalStore",
    "RotationLock",
    "RotationTransaction",
]
