"""Encryption of the LDAP bind password at rest."""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import ENCRYPTION_KEY_SIZE, ENCRYPTION_NONCE_SIZE
from .exceptions import (
    DecryptionFailedError,
    EncryptionKeyInvalidError,
    EncryptionKeyMissingError,
)

__all__ = ["CredentialCipher"]


class CredentialCipher:
    """Encrypt and decrypt the LDAP service bind password.

    Uses AES-256 in GCM mode with a fresh random nonce for every encryption.
    The nonce is prepended to the ciphertext and authentication tag and the
    result is stored as a single base64 string.

    Parameters
    ----------
    key
        Hex-encoded 32-byte key, or `None` if no key is configured. The key
        is only checked when it is used, so that an application without LDAP
        support does not need one.
    """

    @staticmethod
    def generate_key() -> str:
        """Generate a new random key.

        Returns
        -------
        str
            A new 32-byte key encoded in hex, suitable for the encryption key
            setting.
        """
        return os.urandom(ENCRYPTION_KEY_SIZE).hex()

    def __init__(self, key: str | None) -> None:
        self._key = key

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key=<redacted>)"

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored password.

        Parameters
        ----------
        ciphertext
            Base64 encoding of the nonce, ciphertext, and tag, as returned by
            `encrypt`.

        Returns
        -------
        str
            The plaintext password.

        Raises
        ------
        DecryptionFailedError
            Raised if the data is not valid canonical base64, is shorter than
            a nonce, or fails authentication because it was modified or
            encrypted with a different key.
        EncryptionKeyInvalidError
            Raised if the key is not 32 bytes encoded in hex.
        EncryptionKeyMissingError
            Raised if no key is configured.
        """
        aesgcm = self._get_cipher()
        try:
            data = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionFailedError("Encrypted data is not base64") from e
        if base64.b64encode(data).decode() != ciphertext:
            msg = "Encrypted data is not canonical base64"
            raise DecryptionFailedError(msg)
        if len(data) < ENCRYPTION_NONCE_SIZE:
            raise DecryptionFailedError("Encrypted data is too short")
        nonce = data[:ENCRYPTION_NONCE_SIZE]
        encrypted = data[ENCRYPTION_NONCE_SIZE:]
        try:
            plaintext = aesgcm.decrypt(nonce, encrypted, None)
        except InvalidTag as e:
            msg = "Encrypted data failed authentication"
            raise DecryptionFailedError(msg) from e
        return plaintext.decode()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a password for storage.

        Parameters
        ----------
        plaintext
            Password to encrypt.

        Returns
        -------
        str
            Base64 encoding of the random nonce, the ciphertext, and the
            authentication tag.

        Raises
        ------
        EncryptionKeyInvalidError
            Raised if the key is not 32 bytes encoded in hex.
        EncryptionKeyMissingError
            Raised if no key is configured.
        """
        aesgcm = self._get_cipher()
        nonce = os.urandom(ENCRYPTION_NONCE_SIZE)
        ciphertext = aesgcm.encrypt(nonce, plaintext.encode(), None)
        return base64.b64encode(nonce + ciphertext).decode()

    def _get_cipher(self) -> AESGCM:
        """Validate the key and construct the cipher."""
        if not self._key:
            raise EncryptionKeyMissingError
        try:
            key = bytes.fromhex(self._key)
        except ValueError as e:
            raise EncryptionKeyInvalidError from e
        if len(key) != ENCRYPTION_KEY_SIZE:
            raise EncryptionKeyInvalidError
        return AESGCM(key)
