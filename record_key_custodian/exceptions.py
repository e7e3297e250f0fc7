"""Custom exceptions for the Record Key Custodian system."""


class KeyCustodianError(Exception):
    """Base exception for all Record Key Custodian errors."""


class EntropyError(KeyCustodianError):
    """Raised when the secure random source is unavailable."""


class NotInitializedError(KeyCustodianError):
    """Raised when no data-encryption key has ever been generated."""


class KeyNotFoundError(KeyCustodianError):
    """Raised when a requested key is not found or was already purged."""


class AuthenticationFailure(KeyCustodianError):
    """Raised when a record fails integrity verification."""


class RotationInProgressError(KeyCustodianError):
    """Raised when a rotation is requested while another one holds the lock."""


class KeyRotationError(KeyCustodianError):
    """Raised when key rotation fails."""


class RotationCancelledError(KeyRotationError):
    """Raised when a rotation is cancelled between records."""


class RecordNotFoundError(KeyCustodianError):
    """Raised when a requested record does not exist."""


class FileOperationError(KeyCustodianError):
    """Raised when file operations fail."""


class ValidationError(KeyCustodianError):
    """Raised when data validation fails."""
