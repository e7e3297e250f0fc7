"""Authenticated encryption of individual records."""

from record_key_custodian.constants import Constants
from record_key_custodian.crypto_utils import CryptoUtils
from record_key_custodian.exceptions import AuthenticationFailure, ValidationError
from record_key_custodian.models import EncryptedRecord, Key


class RecordCodec:
    """Encrypts and decrypts one record at a time with AES-256-GCM.

    The key id and record format version are bound to every record as
    associated data, so a record presented with the wrong key id fails
    verification even if the key material happened to match.
    """

    _AAD_PREFIX = b"rkc:v"

    @classmethod
    def _associated_data(cls, key_id: str, format_version: int) -> bytes:
        return cls._AAD_PREFIX + str(format_version).encode("ascii") + b":" + key_id.encode("utf-8")

    def encrypt(
        self,
        plaintext: bytes,
        key: Key,
        *,
        record_id: str = ""
    ) -> EncryptedRecord:
        """Encrypt plaintext under key with a fresh nonce.

        Args:
            plaintext: Record contents (may be empty)
            key: Key to encrypt under
            record_id: Identifier stored alongside the record

        Returns:
            The encrypted record

        Raises:
            ValidationError: If plaintext is not bytes
            EntropyError: If no nonce can be generated
        """
        if not isinstance(plaintext, (bytes, bytearray, memoryview)):
            raise ValidationError("Plaintext must be bytes")

        format_version = Constants.RECORD_FORMAT_VERSION()
        nonce = CryptoUtils.generate_nonce()
        ciphertext, tag = CryptoUtils.encrypt_aead(
            key.material,
            nonce,
            bytes(plaintext),
            self._associated_data(key.key_id, format_version),
        )
        return EncryptedRecord(
            record_id=record_id,
            key_id=key.key_id,
            nonce=nonce,
            ciphertext=ciphertext,
            integrity_tag=tag,
            format_version=format_version,
        )

    def decrypt(self, record: EncryptedRecord, key: Key) -> bytes:
        """Verify and decrypt a record.

        Raises:
            AuthenticationFailure: If the record was not encrypted under key,
                or was corrupted or tampered with
        """
        if record.key_id != key.key_id:
            raise AuthenticationFailure(
                f"Record {record.record_id or '<unnamed>'} is bound to key {record.key_id}, "
                f"not {key.key_id}"
            )

        return CryptoUtils.decrypt_aead(
            key.material,
            record.nonce,
            record.ciphertext,
            record.integrity_tag,
            self._associated_data(record.key_id, record.format_version),
        )
