"""Data models for the Record Key Custodian system."""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from record_key_custodian.constants import Constants
from record_key_custodian.crypto_utils import CryptoUtils


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Parse datetime string to datetime object."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class KeyStatus:
    """Lifecycle states of a data-encryption key."""

    PENDING = "pending"  # persisted by a rotation, not yet promoted
    ACTIVE = "active"
    RETIRED = "retired"

    ALL = (PENDING, ACTIVE, RETIRED)


class RotationState:
    """States of the rotation state machine."""

    IDLE = "idle"
    KEY_GENERATED = "key_generated"
    REENCRYPTING = "reencrypting"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"

    ALL = (IDLE, KEY_GENERATED, REENCRYPTING, COMMITTING, DONE, FAILED)
    TERMINAL = (DONE, FAILED)
    # States from which a failure still leaves every live record untouched
    ROLLBACK_SAFE = (IDLE, KEY_GENERATED, REENCRYPTING)


class MigrationStatus:
    """Per-record migration status recorded in the rotation journal."""

    PENDING = "pending"
    STAGED = "staged"
    COMMITTED = "committed"

    ALL = (PENDING, STAGED, COMMITTED)


def new_key_id(now: Optional[datetime] = None) -> str:
    """Create a timestamp-derived key id that sorts by creation time."""
    now = now or _utc_now()
    return f"k-{now:%Y%m%dT%H%M%S%f}-{secrets.token_hex(4)}"


@dataclass
class Key:
    """Data-encryption key with its lifecycle metadata."""

    key_id: str
    material: bytearray = field(repr=False)
    status: str = KeyStatus.ACTIVE
    created_at: datetime = field(default_factory=_utc_now)
    retired_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate and process fields after initialization."""
        if not self.key_id:
            raise ValueError("key_id cannot be empty")
        if self.material is None or len(self.material) != Constants.KEY_SIZE_BYTES():
            raise ValueError(f"material must be exactly {Constants.KEY_SIZE_BYTES()} bytes")
        if self.status not in KeyStatus.ALL:
            raise ValueError(f"Invalid key status: {self.status}")

        if not isinstance(self.material, bytearray):
            self.material = bytearray(self.material)
        self.created_at = _parse_datetime(self.created_at)
        self.retired_at = _parse_datetime(self.retired_at)

    @property
    def is_active(self) -> bool:
        return self.status == KeyStatus.ACTIVE

    def zeroize(self) -> None:
        """Overwrite the in-memory key material with zeros."""
        CryptoUtils.secure_zero(self.material)

    def describe(self) -> dict[str, Any]:
        """Key metadata without the secret material."""
        return {
            "key_id": self.key_id,
            "status": self.status,
            "created_at": _format_datetime(self.created_at),
            "retired_at": _format_datetime(self.retired_at),
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary with proper serialization."""
        data = self.describe()
        data["material"] = CryptoUtils.b64encode(self.material)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Key":
        """Create Key from dictionary."""
        return cls(
            key_id=data["key_id"],
            material=bytearray(CryptoUtils.b64decode(data["material"])),
            status=data.get("status", KeyStatus.ACTIVE),
            created_at=data.get("created_at") or _utc_now(),
            retired_at=data.get("retired_at"),
        )


@dataclass
class EncryptedRecord:
    """A single record encrypted under one data-encryption key."""

    key_id: str
    nonce: bytes
    ciphertext: bytes
    integrity_tag: bytes
    record_id: str = ""
    format_version: int = Constants.RECORD_FORMAT_VERSION()

    def __post_init__(self) -> None:
        if not self.key_id:
            raise ValueError("key_id cannot be empty")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary with base64-encoded binary fields."""
        return {
            "record_id": self.record_id,
            "key_id": self.key_id,
            "nonce": CryptoUtils.b64encode(self.nonce),
            "ciphertext": CryptoUtils.b64encode(self.ciphertext),
            "integrity_tag": CryptoUtils.b64encode(self.integrity_tag),
            "format_version": self.format_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EncryptedRecord":
        """Create EncryptedRecord from dictionary."""
        return cls(
            record_id=data.get("record_id", ""),
            key_id=data["key_id"],
            nonce=CryptoUtils.b64decode(data["nonce"]),
            ciphertext=CryptoUtils.b64decode(data["ciphertext"]),
            integrity_tag=CryptoUtils.b64decode(data["integrity_tag"]),
            format_version=data.get("format_version", Constants.RECORD_FORMAT_VERSION()),
        )

    @property
    def fingerprint(self) -> str:
        """Identity of this exact encryption (nonces are never reused)."""
        return CryptoUtils.b64encode(self.nonce)


@dataclass
class RecordMigration:
    """Migration status of one record within a rotation."""

    status: str = MigrationStatus.PENDING
    source_fingerprint: Optional[str] = None  # fingerprint of the live record that was staged

    def __post_init__(self) -> None:
        if self.status not in MigrationStatus.ALL:
            raise ValueError(f"Invalid migration status: {self.status}")

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "source_fingerprint": self.source_fingerprint}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecordMigration":
        return cls(
            status=data.get("status", MigrationStatus.PENDING),
            source_fingerprint=data.get("source_fingerprint"),
        )


@dataclass
class RotationJournal:
    """Durable markers of an in-flight rotation."""

    rotation_id: str
    old_key_id: str
    new_key_id: Optional[str] = None
    state: str = RotationState.IDLE
    records: dict[str, RecordMigration] = field(default_factory=dict)
    started_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)
    error: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate and process fields after initialization."""
        if not self.rotation_id:
            raise ValueError("rotation_id cannot be empty")
        if not self.old_key_id:
            raise ValueError("old_key_id cannot be empty")
        if self.state not in RotationState.ALL:
            raise ValueError(f"Invalid rotation state: {self.state}")

        self.started_at = _parse_datetime(self.started_at)
        self.updated_at = _parse_datetime(self.updated_at)

    def mark(self, record_id: str, status: str, source_fingerprint: Optional[str] = None) -> None:
        """Record the migration status of a record."""
        migration = self.records.get(record_id)
        if migration is None:
            migration = RecordMigration()
            self.records[record_id] = migration
        migration.status = status
        if source_fingerprint is not None:
            migration.source_fingerprint = source_fingerprint

    def ids_with_status(self, *statuses: str) -> list[str]:
        return [
            record_id
            for record_id, migration in self.records.items()
            if migration.status in statuses
        ]

    def count(self, status: str) -> int:
        return sum(1 for migration in self.records.values() if migration.status == status)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary with proper datetime serialization."""
        return {
            "rotation_id": self.rotation_id,
            "old_key_id": self.old_key_id,
            "new_key_id": self.new_key_id,
            "state": self.state,
            "records": {
                record_id: migration.to_dict()
                for record_id, migration in self.records.items()
            },
            "started_at": _format_datetime(self.started_at),
            "updated_at": _format_datetime(self.updated_at),
            "error": self.error,
            "version": "1.0",
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RotationJournal":
        """Create RotationJournal from dictionary."""
        return cls(
            rotation_id=data["rotation_id"],
            old_key_id=data["old_key_id"],
            new_key_id=data.get("new_key_id"),
            state=data.get("state", RotationState.IDLE),
            records={
                record_id: RecordMigration.from_dict(migration)
                for record_id, migration in data.get("records", {}).items()
            },
            started_at=data.get("started_at") or _utc_now(),
            updated_at=data.get("updated_at") or _utc_now(),
            error=data.get("error"),
        )

    def summary(self) -> dict[str, Any]:
        """Journal metadata with per-status record counts."""
        return {
            "rotation_id": self.rotation_id,
            "state": self.state,
            "old_key_id": self.old_key_id,
            "new_key_id": self.new_key_id,
            "records": {status: self.count(status) for status in MigrationStatus.ALL},
            "started_at": _format_datetime(self.started_at),
            "updated_at": _format_datetime(self.updated_at),
            "error": self.error,
        }


@dataclass
class RotationHistory:
    """Rotation history entry."""

    rotation_id: str
    old_key_id: str
    new_key_id: Optional[str]
    outcome: str  # done, failed, cancelled
    record_count: int = 0
    started_at: datetime = field(default_factory=_utc_now)
    finished_at: datetime = field(default_factory=_utc_now)
    error: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate and process fields after initialization."""
        if not self.rotation_id:
            raise ValueError("rotation_id cannot be empty")
        if self.outcome not in ("done", "failed", "cancelled"):
            raise ValueError(f"Invalid rotation outcome: {self.outcome}")

        self.started_at = _parse_datetime(self.started_at)
        self.finished_at = _parse_datetime(self.finished_at)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary with proper datetime serialization."""
        return {
            "rotation_id": self.rotation_id,
            "old_key_id": self.old_key_id,
            "new_key_id": self.new_key_id,
            "outcome": self.outcome,
            "record_count": self.record_count,
            "started_at": _format_datetime(self.started_at),
            "finished_at": _format_datetime(self.finished_at),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RotationHistory":
        """Create RotationHistory from dictionary."""
        return cls(
            rotation_id=data["rotation_id"],
            old_key_id=data.get("old_key_id", ""),
            new_key_id=data.get("new_key_id"),
            outcome=data["outcome"],
            record_count=data.get("record_count", 0),
            started_at=data.get("started_at") or _utc_now(),
            finished_at=data.get("finished_at") or _utc_now(),
            error=data.get("error"),
        )


@dataclass
class RotationResult:
    """Outcome of a successful rotation."""

    rotation_id: str
    old_key_id: str
    new_key_id: str
    records_migrated: int = 0
    records_skipped: int = 0
    resumed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "rotation_id": self.rotation_id,
            "old_key_id": self.old_key_id,
            "new_key_id": self.new_key_id,
            "records_migrated": self.records_migrated,
            "records_skipped": self.records_skipped,
            "resumed": self.resumed,
        }
