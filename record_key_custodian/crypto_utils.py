"""Cryptographic utilities for the Record Key Custodian system."""

import base64
import binascii
import hmac
import os
import secrets

from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from record_key_custodian.constants import Constants
from record_key_custodian.exceptions import (
    AuthenticationFailure,
    EntropyError,
    ValidationError,
)


class CryptoUtils:
    """Cryptographic utilities for key and record operations."""

    _KEY_SIZE_BYTES = Constants.KEY_SIZE_BYTES()  # 256 bits = 32 bytes
    _NONCE_SIZE_BYTES = Constants.NONCE_SIZE_BYTES()  # 96-bit GCM nonce
    _TAG_SIZE_BYTES = Constants.TAG_SIZE_BYTES()

    @staticmethod
    def constant_time_compare(a: bytes, b: bytes) -> bool:
        """Perform constant-time comparison of two byte strings.

        Args:
            a: First byte string
            b: Second byte string

        Returns:
            True if strings are equal, False otherwise
        """
        return hmac.compare_digest(a, b)

    @classmethod
    def generate_random_key(cls) -> bytearray:
        """Generate a random 256-bit key.

        The key is returned as a bytearray so it can be zeroed in place.

        Returns:
            Random 256-bit key

        Raises:
            EntropyError: If the operating system random source is unavailable
        """
        try:
            return bytearray(secrets.token_bytes(cls._KEY_SIZE_BYTES))
        except (OSError, NotImplementedError) as e:
            raise EntropyError(f"Secure random source unavailable: {e}") from e

    @classmethod
    def generate_nonce(cls) -> bytes:
        """Generate a fresh 96-bit nonce.

        Random nonces keep the collision probability negligible for fewer
        than 2**32 encryptions under one key.

        Raises:
            EntropyError: If the operating system random source is unavailable
        """
        try:
            return os.urandom(cls._NONCE_SIZE_BYTES)
        except (OSError, NotImplementedError) as e:
            raise EntropyError(f"Secure random source unavailable: {e}") from e

    @classmethod
    def encrypt_aead(
        cls,
        key: bytes,
        nonce: bytes,
        data: bytes,
        associated_data: Optional[bytes] = None
    ) -> tuple[bytes, bytes]:
        """Encrypt data using AES-256-GCM.

        Args:
            key: Encryption key (32 bytes)
            nonce: Nonce (12 bytes), never reused under the same key
            data: Data to encrypt (may be empty)
            associated_data: Data authenticated but not encrypted

        Returns:
            Tuple of (ciphertext, tag)

        Raises:
            ValidationError: If key or nonce size is invalid
        """
        cls._validate_key(key)
        if len(nonce) != cls._NONCE_SIZE_BYTES:
            raise ValidationError(f"Nonce must be exactly {cls._NONCE_SIZE_BYTES} bytes")

        sealed = AESGCM(key).encrypt(nonce, data, associated_data)
        return sealed[:-cls._TAG_SIZE_BYTES], sealed[-cls._TAG_SIZE_BYTES:]

    @classmethod
    def decrypt_aead(
        cls,
        key: bytes,
        nonce: bytes,
        ciphertext: bytes,
        tag: bytes,
        associated_data: Optional[bytes] = None
    ) -> bytes:
        """Decrypt and verify data using AES-256-GCM.

        Args:
            key: Decryption key (32 bytes)
            nonce: Nonce used at encryption time
            ciphertext: Encrypted data
            tag: Authentication tag
            associated_data: Data authenticated at encryption time

        Returns:
            Decrypted data as bytes

        Raises:
            AuthenticationFailure: If the tag does not verify
            ValidationError: If key size is invalid
        """
        cls._validate_key(key)
        if len(nonce) != cls._NONCE_SIZE_BYTES or len(tag) != cls._TAG_SIZE_BYTES:
            raise AuthenticationFailure("Malformed nonce or authentication tag")

        try:
            return AESGCM(key).decrypt(nonce, ciphertext + tag, associated_data)
        except InvalidTag as e:
            raise AuthenticationFailure("Authentication tag verification failed") from e

    @classmethod
    def _validate_key(cls, key: bytes) -> None:
        if key is None or len(key) != cls._KEY_SIZE_BYTES:
            raise ValidationError(f"Key must be exactly {cls._KEY_SIZE_BYTES} bytes")

    @staticmethod
    def b64encode(data: bytes) -> str:
        """Encode bytes as base64 text for JSON storage."""
        return base64.b64encode(bytes(data)).decode("ascii")

    @staticmethod
    def b64decode(value: str) -> bytes:
        """Decode base64 text produced by b64encode.

        Raises:
            ValueError: If the value is not valid base64
        """
        try:
            return base64.b64decode(value.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, AttributeError) as e:
            raise ValueError(f"Invalid base64 value: {e}") from e

    @staticmethod
    def secure_zero(data: bytearray) -> None:
        """Securely zero sensitive data from memory.

        Args:
            data: Data to zero (must be bytearray for in-place modification)
        """
        if data:
            # Zero the data in place
            for i in range(len(data)):
                data[i] = 0
