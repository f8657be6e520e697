"""Tests for encryption of the LDAP bind password."""

from __future__ import annotations

import base64

import pytest

from ldaplink.constants import ENCRYPTION_NONCE_SIZE
from ldaplink.crypto import CredentialCipher
from ldaplink.exceptions import (
    DecryptionFailedError,
    EncryptionKeyInvalidError,
    EncryptionKeyMissingError,
)

from .support.constants import TEST_ENCRYPTION_KEY


def test_encrypt_decrypt() -> None:
    cipher = CredentialCipher(TEST_ENCRYPTION_KEY)

    encrypted = cipher.encrypt("some-password")
    assert "some-password" not in encrypted
    assert cipher.decrypt(encrypted) == "some-password"

    # Each encryption uses a new nonce.
    assert cipher.encrypt("some-password") != encrypted

    data = base64.b64decode(encrypted)
    assert len(data) == ENCRYPTION_NONCE_SIZE + len("some-password") + 16

    assert cipher.decrypt(cipher.encrypt("")) == ""
    assert cipher.decrypt(cipher.encrypt("pässwörd")) == "pässwörd"


def test_tampered() -> None:
    cipher = CredentialCipher(TEST_ENCRYPTION_KEY)
    data = bytearray(base64.b64decode(cipher.encrypt("some-password")))
    data[-1] ^= 0x01
    with pytest.raises(DecryptionFailedError):
        cipher.decrypt(base64.b64encode(data).decode())

    other = CredentialCipher(CredentialCipher.generate_key())
    with pytest.raises(DecryptionFailedError):
        other.decrypt(cipher.encrypt("some-password"))


def test_bit_flips() -> None:
    cipher = CredentialCipher(TEST_ENCRYPTION_KEY)
    encrypted = cipher.encrypt("some-password")

    for i, char in enumerate(encrypted):
        for bit in range(7):
            flipped = chr(ord(char) ^ (1 << bit))
            modified = encrypted[:i] + flipped + encrypted[i + 1 :]
            with pytest.raises(DecryptionFailedError):
                cipher.decrypt(modified)


def test_malformed() -> None:
    cipher = CredentialCipher(TEST_ENCRYPTION_KEY)
    with pytest.raises(DecryptionFailedError):
        cipher.decrypt("not base64!")
    with pytest.raises(DecryptionFailedError):
        cipher.decrypt(base64.b64encode(b"short").decode())


def test_bad_key() -> None:
    for key in (None, ""):
        cipher = CredentialCipher(key)
        with pytest.raises(EncryptionKeyMissingError):
            cipher.encrypt("some-password")
        with pytest.raises(EncryptionKeyMissingError):
            cipher.decrypt("AAAA")

    for key in ("not hex", "00112233", TEST_ENCRYPTION_KEY + "00"):
        cipher = CredentialCipher(key)
        with pytest.raises(EncryptionKeyInvalidError):
            cipher.encrypt("some-password")


def test_generate_key() -> None:
    key = CredentialCipher.generate_key()
    assert len(bytes.fromhex(key)) == 32
    assert key != CredentialCipher.generate_key()
    assert key not in repr(CredentialCipher(key))
