"""Record Key Custodian - data-encryption key lifecycle for stored records.

This package generates the key that protects stored records, encrypts and
decrypts individual records with it, and rotates it with crash-safe
re-encryption of every record.
"""

from importlib.metadata import PackageNotFoundError, version

from record_key_custodian.config import CustodianConfig
from record_key_custodian.exceptions import (
    AuthenticationFailure,
    EntropyError,
    FileOperationError,
    KeyCustodianError,
    KeyNotFoundError,
    KeyRotationError,
    NotInitializedError,
    RecordNotFoundError,
    RotationCancelledError,
    RotationInProgressError,
    ValidationError,
)
from record_key_custodian.key_custodian import RecordKeyCustodian
from record_key_custodian.key_store import KeyStore
from record_key_custodian.record_codec import RecordCodec

try:
    __version__ = version("record-key-custodian")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = [
    "AuthenticationFailure",
    "CustodianConfig",
    "EntropyError",
    "FileOperationError",
    "KeyCustodianError",
    "KeyNotFoundError",
    "KeyRotationError",
    "KeyStore",
    "NotInitializedError",
    "RecordCodec",
    "RecordKeyCustodian",
    "RecordNotFoundError",
    "RotationCancelledError",
    "RotationInProgressError",
    "ValidationError",
]
