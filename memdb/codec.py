"""Reversible transform between tree values and the text stored on disk.

Plain mode (no passphrase):
    compact JSON text.

Encrypted mode:
    hex( salt[16] || nonce[12] || AES-256-GCM ciphertext+tag )

    - The 256-bit key is derived from the passphrase with PBKDF2-HMAC-SHA256
      over the salt; each codec instance picks one random salt and caches the
      derived key, so repeated encodes cost one derivation in total.
    - Every encode uses a fresh random nonce.
    - GCM authenticates the payload: a wrong passphrase or a flipped bit fails
      with DecryptionError instead of yielding garbage.
"""

from __future__ import annotations

import binascii
import json
import os
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import DecryptionError

_ENCODING = "utf-8"
SALT_SIZE = 16
NONCE_SIZE = 12
KEY_SIZE = 32
KDF_ITERATIONS = 200_000
_TAG_SIZE = 16


def dumps(value: Any) -> str:
    """Serialize a tree value to canonical JSON text (raises on non-JSON values)."""
    return json.dumps(value, ensure_ascii=False, allow_nan=False, separators=(",", ":"))


def normalize(value: Any) -> Any:
    """Return the value as it reads back from disk: tuples become lists, mapping
    keys become strings."""
    return json.loads(dumps(value))


class Codec:
    """Encode/decode tree values, optionally encrypted with a passphrase."""

    def __init__(self, passphrase: Optional[str] = None) -> None:
        self._passphrase = passphrase
        self._keys: Dict[bytes, bytes] = {}
        self._salt = os.urandom(SALT_SIZE) if passphrase else b""

    def __repr__(self) -> str:
        return f"Codec(encrypted={self.encrypted})"

    @property
    def encrypted(self) -> bool:
        return bool(self._passphrase)

    # ------------------------- Public API -------------------------

    def encode(self, value: Any) -> str:
        text = dumps(value)
        if not self.encrypted:
            return text
        nonce = os.urandom(NONCE_SIZE)
        sealed = AESGCM(self._key_for(self._salt)).encrypt(nonce, text.encode(_ENCODING), None)
        return binascii.hexlify(self._salt + nonce + sealed).decode("ascii")

    def decode(self, data: str) -> Any:
        """Reverse encode().

        Raises
        ------
        DecryptionError
            If the passphrase is wrong or the data is corrupt.
        """
        if self.encrypted:
            text = self._decrypt(data)
        else:
            text = data
        try:
            return json.loads(text)
        except ValueError as e:
            raise DecryptionError("Stored data is not valid JSON!", e) from e

    # ----------------------- Internal helpers ----------------------

    def _decrypt(self, data: str) -> str:
        try:
            raw = binascii.unhexlify(data.strip())
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Stored data is not valid ciphertext!", e) from e
        if len(raw) < SALT_SIZE + NONCE_SIZE + _TAG_SIZE:
            raise DecryptionError("Stored ciphertext is truncated!")

        salt = raw[:SALT_SIZE]
        nonce = raw[SALT_SIZE:SALT_SIZE + NONCE_SIZE]
        try:
            plain = AESGCM(self._key_for(salt)).decrypt(nonce, raw[SALT_SIZE + NONCE_SIZE:], None)
            return plain.decode(_ENCODING)
        except InvalidTag as e:
            raise DecryptionError("Wrong encryption key or corrupt data!", e) from e
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted data is not UTF-8!", e) from e

    def _key_for(self, salt: bytes) -> bytes:
        key = self._keys.get(salt)
        if key is None:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=KEY_SIZE,
                salt=salt,
                iterations=KDF_ITERATIONS,
            )
            key = kdf.derive(self._passphrase.encode(_ENCODING))
            self._keys[salt] = key
        return key
