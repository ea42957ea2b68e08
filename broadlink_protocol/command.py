#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
The encrypted command/response envelope: a CommandHeader plus an AES-encrypted payload.
"""

from __future__ import annotations

from .internal_types import *
from .pkg_logging import logger
from .crypto import EncryptionContext
from .exceptions import DeviceRejectedError
from .packet import CommandHeader, build_packet, validate_and_strip
from .util import compute_checksum

def pack_command(header: CommandHeader, payload: bytes, context: EncryptionContext) -> bytes:
    """Stamps the plaintext payload checksum into header, encrypts the payload with context, and
       frames the result. header.payload_checksum is updated in place."""
    header.payload_checksum = compute_checksum(payload, None)
    return build_packet(header, context.encrypt(payload))

def unpack_command(data: bytes, context: EncryptionContext) -> Tuple[CommandHeader, bytes]:
    """Validates a reply envelope and decrypts its payload.

    The checksum is validated before anything else. A non-zero error code in the reply header
    is reported before decryption is attempted, since rejections typically carry no payload.

    Returns:
        A tuple of (reply header, decrypted payload). The payload is still zero-padded to a block
        boundary, and is b'' if the reply carried no payload.

    Raises:
        ChecksumError:       the packet is truncated or corrupt.
        DeviceRejectedError: the reply header carries a non-zero error code.
        CryptoError:         the payload could not be decrypted with context.
    """
    header, encrypted = validate_and_strip(data)
    if header.error_code != 0:
        logger.debug(f"Device replied with error: {header}")
        raise DeviceRejectedError(header.error_code)
    if len(encrypted) == 0:
        return header, b''
    return header, context.decrypt(encrypted, checksum=header.payload_checksum)
