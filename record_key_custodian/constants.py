"""Library-wide constants.

These constants centralize tunable values used across modules to keep
behavior consistent and avoid duplication.
"""



class Constants:

    # Key material
    _KEY_SIZE_BYTES: int = 32
    _NONCE_SIZE_BYTES: int = 12
    _TAG_SIZE_BYTES: int = 16
    _RECORD_FORMAT_VERSION: int = 1
    _MAX_RECORD_ID_LENGTH: int = 200

    # Key rotation policy
    _MAX_ROTATION_HISTORY: int = 10  # Maximum number of rotation history entries to keep
    _ROTATION_BATCH_SIZE: int = 50  # Number of records handed to the worker pool at once
    _ROTATION_MAX_WORKERS: int = 4
    _ROTATION_MAX_SWEEPS: int = 3  # Extra passes for records written mid-rotation
    _IO_RETRIES: int = 3
    _IO_RETRY_DELAY: float = 0.1  # seconds

    # File names
    _KEY_STORE_FILE_NAME: str = "record-key-custodian-keys.json"
    _JOURNAL_FILE_NAME: str = "rotation-journal.json"
    _HISTORY_FILE_NAME: str = "rotation-history.json"
    _LOCK_FILE_NAME: str = ".rotation.lock"
    _RECORD_SUFFIX: str = ".record.json"
    _STAGING_DIR_NAME: str = ".staging"

    # Key size in bytes
    @classmethod
    def KEY_SIZE_BYTES(cls) -> int:
        return cls._KEY_SIZE_BYTES

    @classmethod
    def NONCE_SIZE_BYTES(cls) -> int:
        return cls._NONCE_SIZE_BYTES

    @classmethod
    def TAG_SIZE_BYTES(cls) -> int:
        return cls._TAG_SIZE_BYTES

    @classmethod
    def RECORD_FORMAT_VERSION(cls) -> int:
        return cls._RECORD_FORMAT_VERSION

    @classmethod
    def MAX_RECORD_ID_LENGTH(cls) -> int:
        return cls._MAX_RECORD_ID_LENGTH

    # Key rotation policy
    @classmethod
    def MAX_ROTATION_HISTORY(cls) -> int:
        return cls._MAX_ROTATION_HISTORY

    @classmethod
    def ROTATION_BATCH_SIZE(cls) -> int:
        return cls._ROTATION_BATCH_SIZE

    @classmethod
    def ROTATION_MAX_WORKERS(cls) -> int:
        return cls._ROTATION_MAX_WORKERS

    @classmethod
    def ROTATION_MAX_SWEEPS(cls) -> int:
        return cls._ROTATION_MAX_SWEEPS

    @classmethod
    def IO_RETRIES(cls) -> int:
        return cls._IO_RETRIES

    @classmethod
    def IO_RETRY_DELAY(cls) -> float:
        return cls._IO_RETRY_DELAY

    # File names
    @classmethod
    def KEY_STORE_FILE_NAME(cls) -> str:
        return cls._KEY_STORE_FILE_NAME

    @classmethod
    def JOURNAL_FILE_NAME(cls) -> str:
        return cls._JOURNAL_FILE_NAME

    @classmethod
    def HISTORY_FILE_NAME(cls) -> str:
        return cls._HISTORY_FILE_NAME

    @classmethod
    def LOCK_FILE_NAME(cls) -> str:
        return cls._LOCK_FILE_NAME

    @classmethod
    def RECORD_SUFFIX(cls) -> str:
        return cls._RECORD_SUFFIX

    @classmethod
    def STAGING_DIR_NAME(cls) -> str:
        return cls._STAGING_DIR_NAME
