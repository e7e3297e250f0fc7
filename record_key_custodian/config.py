"""Configuration management for the Record Key Custodian system."""

import os
from dataclasses import dataclass
from typing import Optional

from record_key_custodian.constants import Constants
from record_key_custodian.exceptions import ValidationError

ENV_KEY_STORE_PATH = "RKC_KEY_STORE_PATH"
ENV_RECORD_STORE_PATH = "RKC_RECORD_STORE_PATH"
ENV_MAX_WORKERS = "RKC_MAX_WORKERS"
ENV_IO_RETRIES = "RKC_IO_RETRIES"


@dataclass
class CustodianConfig:
    """Configuration for RecordKeyCustodian instances."""

    # Locations
    key_store_path: str
    record_store_path: str

    # Rotation settings
    max_workers: int = Constants.ROTATION_MAX_WORKERS()
    batch_size: int = Constants.ROTATION_BATCH_SIZE()
    io_retries: int = Constants.IO_RETRIES()
    retry_delay: float = Constants.IO_RETRY_DELAY()  # seconds
    max_sweeps: int = Constants.ROTATION_MAX_SWEEPS()
    history_limit: int = Constants.MAX_ROTATION_HISTORY()

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        # Validate locations
        if not self.key_store_path or not str(self.key_store_path).strip():
            raise ValueError("key_store_path is required")
        if not self.record_store_path or not str(self.record_store_path).strip():
            raise ValueError("record_store_path is required")
        if os.path.abspath(self.key_store_path) == os.path.abspath(self.record_store_path):
            raise ValueError("key_store_path and record_store_path must differ")

        # Validate rotation settings
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.io_retries < 0:
            raise ValueError("io_retries must be non-negative")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")
        if self.max_sweeps < 1:
            raise ValueError("max_sweeps must be at least 1")
        if self.history_limit < 1:
            raise ValueError("history_limit must be at least 1")

    @classmethod
    def from_env(
        cls,
        *,
        key_store_path: Optional[str] = None,
        record_store_path: Optional[str] = None
    ) -> "CustodianConfig":
        """Build configuration from explicit values and environment variables.

        Explicit arguments win over the environment.

        Raises:
            ValidationError: If a location is missing or a numeric setting is invalid
        """
        key_store_path = key_store_path or os.getenv(ENV_KEY_STORE_PATH)
        record_store_path = record_store_path or os.getenv(ENV_RECORD_STORE_PATH)

        if not key_store_path:
            raise ValidationError(f"Key store path not configured (set {ENV_KEY_STORE_PATH})")
        if not record_store_path:
            raise ValidationError(f"Record store path not configured (set {ENV_RECORD_STORE_PATH})")

        overrides = {}
        for env_name, field_name in ((ENV_MAX_WORKERS, "max_workers"), (ENV_IO_RETRIES, "io_retries")):
            value = os.getenv(env_name)
            if value is None or value.strip() == "":
                continue
            try:
                overrides[field_name] = int(value)
            except ValueError as e:
                raise ValidationError(f"{env_name} must be an integer, got {value!r}") from e

        try:
            return cls(
                key_store_path=key_store_path,
                record_store_path=record_store_path,
                **overrides,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e
