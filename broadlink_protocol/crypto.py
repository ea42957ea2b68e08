#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
EncryptionContext -- the AES-128-CBC key/IV pair used to encrypt command payloads.

Payloads are zero-padded to the 16-byte block size before encryption. Zero padding
does not record the original length, so decrypted payloads remain block-aligned; each
message codec recovers its real length from its own length field.
"""

from __future__ import annotations

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .internal_types import *
from .constants import INITIAL_KEY, INITIAL_VECTOR
from .exceptions import CryptoError
from .util import compute_checksum

BLOCK_SIZE = 16

def zero_pad(data: bytes) -> bytes:
    """Pads data with zero bytes up to the next multiple of the AES block size."""
    return data + bytes(-len(data) % BLOCK_SIZE)

class EncryptionContext:
    """A 16-byte AES key and 16-byte IV. Immutable; a new session creates a new context."""

    _key: bytes
    _iv: bytes

    def __init__(self, key: bytes, iv: bytes=INITIAL_VECTOR):
        if len(key) != 16:
            raise CryptoError(f"AES key must be 16 bytes, got {len(key)}")
        if len(iv) != 16:
            raise CryptoError(f"AES IV must be 16 bytes, got {len(iv)}")
        self._key = bytes(key)
        self._iv = bytes(iv)

    @classmethod
    def default(cls) -> EncryptionContext:
        """Returns a context with the pre-shared key/IV used by all devices before authentication."""
        return cls(INITIAL_KEY, INITIAL_VECTOR)

    @property
    def key(self) -> bytes:
        return self._key

    @property
    def iv(self) -> bytes:
        return self._iv

    @property
    def is_default(self) -> bool:
        return self._key == INITIAL_KEY and self._iv == INITIAL_VECTOR

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(self._iv))

    def encrypt(self, payload: bytes) -> bytes:
        """Zero-pads and encrypts a payload."""
        encryptor = self._cipher().encryptor()
        return encryptor.update(zero_pad(payload)) + encryptor.finalize()

    def decrypt(self, data: bytes, checksum: Optional[int]=None) -> bytes:
        """Decrypts a payload. The result is still zero-padded to a block boundary.

        Parameters:
            data:      The encrypted bytes.
            checksum:  If provided, the expected running-sum checksum of the plaintext (as carried
                       in the payload checksum field of a command header). A mismatch means the
                       payload was encrypted with a different key or IV.

        Raises:
            CryptoError: data is empty or not block-aligned, or the plaintext checksum does not match.
        """
        if len(data) == 0:
            raise CryptoError("Cannot decrypt an empty payload")
        if len(data) % BLOCK_SIZE != 0:
            raise CryptoError(f"Encrypted payload length {len(data)} is not a multiple of {BLOCK_SIZE}")
        decryptor = self._cipher().decryptor()
        plaintext = decryptor.update(data) + decryptor.finalize()
        if checksum is not None:
            actual = compute_checksum(plaintext, None)
            if actual != checksum:
                raise CryptoError(
                    f"Decrypted payload checksum {actual:#06x} does not match expected {checksum:#06x}; wrong key or IV?"
                  )
        return plaintext

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EncryptionContext):
            return NotImplemented
        return self._key == other._key and self._iv == other._iv

    def __hash__(self) -> int:
        return hash((self._key, self._iv))

    def __str__(self) -> str:
        return f"EncryptionContext(default={self.is_default})"

    def __repr__(self) -> str:
        return str(self)
