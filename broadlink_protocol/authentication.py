#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
The authentication handshake, which exchanges the pre-shared key for a per-device session key.

The handshake request is a 0x50-byte payload encrypted with the default context and sent with
command code 0x65:

    0x04-0x13  client identifier (sixteen 0x31 bytes)
    0x1E       0x01
    0x2D       0x01
    0x30-0x4F  client name, UTF-8, zero-filled

The decrypted reply carries the authentication id (u32 at 0x00) and the 16-byte session
key (0x04-0x13). The IV never changes.
"""

from __future__ import annotations

from dataclasses import dataclass

from .internal_types import *
from .pkg_logging import logger
from .constants import AUTH_COMMAND, DEFAULT_CLIENT_NAME, INITIAL_VECTOR
from .crypto import EncryptionContext
from .exceptions import (
    ChecksumError,
    CryptoError,
    DeviceRejectedError,
    HandshakeFailedError,
  )

if TYPE_CHECKING:
    from .device import BroadlinkDevice

AUTH_PAYLOAD_SIZE = 0x50
AUTH_RESPONSE_SIZE = 0x14
CLIENT_NAME_SIZE = 0x20

@dataclass(frozen=True)
class SessionKey:
    """The result of a successful handshake."""

    auth_id: int
    """The authentication id, sent in the header of every subsequent command."""

    key: bytes
    """The 16-byte AES session key."""

    iv: bytes = INITIAL_VECTOR
    """The 16-byte AES IV."""

    def encryption_context(self) -> EncryptionContext:
        return EncryptionContext(self.key, self.iv)

    def __str__(self) -> str:
        # never log key material
        return f"SessionKey(auth_id={self.auth_id:#010x})"

    def __repr__(self) -> str:
        return str(self)

def build_auth_payload(client_name: str=DEFAULT_CLIENT_NAME) -> bytes:
    """Builds the plaintext handshake payload."""
    payload = bytearray(AUTH_PAYLOAD_SIZE)
    payload[0x04:0x14] = b'\x31' * 16
    payload[0x1E] = 0x01
    payload[0x2D] = 0x01
    name = client_name.encode('utf-8')[:CLIENT_NAME_SIZE]
    payload[0x30:0x30 + len(name)] = name
    return bytes(payload)

def parse_auth_response(plaintext: bytes) -> SessionKey:
    """Extracts the session from a decrypted handshake reply.

    Raises:
        HandshakeFailedError: the reply is too short to hold the id and key.
    """
    if len(plaintext) < AUTH_RESPONSE_SIZE:
        raise HandshakeFailedError(
            f"Authentication reply too short: expected at least {AUTH_RESPONSE_SIZE} bytes, got {len(plaintext)}"
          )
    auth_id = int.from_bytes(plaintext[0x00:0x04], 'little')
    key = bytes(plaintext[0x04:0x14])
    return SessionKey(auth_id=auth_id, key=key)

async def authenticate(device: BroadlinkDevice, client_name: str=DEFAULT_CLIENT_NAME) -> SessionKey:
    """Performs the handshake with a device and returns the new session. Does not modify the device;
       BroadlinkDevice.authenticate installs the result.

    Raises:
        HandshakeFailedError: the reply failed checksum or decryption, was rejected, or was too short.
        TransportError:       no reply, or a socket failure.
    """
    payload = build_auth_payload(client_name)
    try:
        _, plaintext = await device.exchange(
            AUTH_COMMAND,
            payload,
            context=EncryptionContext.default(),
            auth_id=0,
          )
    except (ChecksumError, CryptoError, DeviceRejectedError) as e:
        raise HandshakeFailedError(f"Authentication with {device} failed: {e}") from e
    session = parse_auth_response(plaintext)
    logger.debug(f"Handshake with {device} produced {session}")
    return session
