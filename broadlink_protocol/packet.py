#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Framing of Broadlink command packets.

Every command packet (authentication and all post-authentication data exchanges) consists of
a fixed 0x38-byte plaintext header followed by an AES-encrypted payload. All multi-byte
fields are little-endian:

    0x00-0x07  magic 5A A5 AA 55 5A A5 AA 55
    0x20-0x21  checksum of the entire packet (header + encrypted payload)
    0x22-0x23  error code (replies only; 0 means success)
    0x24-0x25  device type code
    0x26-0x27  command code (0x65 authenticate, 0x6A data)
    0x28-0x29  packet count; bit 15 is always set
    0x2A-0x2F  MAC address, least significant byte first
    0x30-0x33  authentication id (0 before authentication)
    0x34-0x35  checksum of the plaintext payload
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from .internal_types import *
from .constants import COMMAND_MAGIC, COMMAND_HEADER_SIZE, CHECKSUM_OFFSET
from .exceptions import ChecksumError
from .util import compute_checksum, reverse_mac, format_mac

_HEADER_FIELDS = struct.Struct('<HHHH6sIH')
"""Layout of the header fields from 0x22 through 0x35."""

_HEADER_FIELDS_OFFSET = 0x22

@dataclass
class CommandHeader:
    """The decoded fields of a command packet header. The whole-packet checksum is not a field;
       it is always computed by build_packet and checked by validate_and_strip."""

    device_type: int = 0
    """The device type code of the addressed device."""

    command: int = 0
    """The command code (packet type)."""

    count: int = 0x8000
    """The packet sequence count. Bit 15 is always set on the wire."""

    mac: bytes = field(default=bytes(6))
    """The MAC address of the addressed device, in canonical order."""

    auth_id: int = 0
    """The authentication id returned by the handshake; 0 before authentication."""

    payload_checksum: int = 0
    """The checksum of the plaintext payload."""

    error_code: int = 0
    """The error code reported by a device in a reply; 0 on success."""

    def __post_init__(self) -> None:
        self.count = (self.count | 0x8000) & 0xFFFF

    def pack(self) -> bytearray:
        """Packs this header into a new 0x38-byte buffer, with a zero packet checksum."""
        buf = bytearray(COMMAND_HEADER_SIZE)
        buf[0:len(COMMAND_MAGIC)] = COMMAND_MAGIC
        _HEADER_FIELDS.pack_into(
            buf,
            _HEADER_FIELDS_OFFSET,
            self.error_code & 0xFFFF,
            self.device_type & 0xFFFF,
            self.command & 0xFFFF,
            (self.count | 0x8000) & 0xFFFF,
            reverse_mac(self.mac),
            self.auth_id & 0xFFFFFFFF,
            self.payload_checksum & 0xFFFF,
          )
        return buf

    @classmethod
    def unpack(cls, data: bytes) -> CommandHeader:
        """Decodes the fields of a header. Does not validate the checksum."""
        error_code, device_type, command, count, mac_reversed, auth_id, payload_checksum = \
            _HEADER_FIELDS.unpack_from(data, _HEADER_FIELDS_OFFSET)
        return cls(
            device_type=device_type,
            command=command,
            count=count,
            mac=reverse_mac(mac_reversed),
            auth_id=auth_id,
            payload_checksum=payload_checksum,
            error_code=error_code,
          )

    def __str__(self) -> str:
        return (f"CommandHeader(device_type={self.device_type:#06x}, command={self.command:#06x}, "
                f"count={self.count:#06x}, mac={format_mac(self.mac)}, auth_id={self.auth_id:#010x}, "
                f"error_code={self.error_code:#06x})")

def build_packet(header: CommandHeader, payload: bytes=b'') -> bytes:
    """Lays out a command packet: the fixed header, then the (already encrypted) payload, then
       writes the packet checksum into its reserved slot."""
    buf = header.pack()
    buf.extend(payload)
    checksum = compute_checksum(buf)
    buf[CHECKSUM_OFFSET:CHECKSUM_OFFSET + 2] = checksum.to_bytes(2, 'little')
    return bytes(buf)

def validate_and_strip(data: bytes) -> Tuple[CommandHeader, bytes]:
    """Validates the checksum of a received command packet and splits it into its decoded header
       and its (still encrypted) payload.

    Raises:
        ChecksumError: the packet is shorter than a header, or its checksum does not match.
    """
    if len(data) < COMMAND_HEADER_SIZE:
        raise ChecksumError(f"Command packet too short: expected at least {COMMAND_HEADER_SIZE} bytes, got {len(data)}")
    if data[0:len(COMMAND_MAGIC)] != COMMAND_MAGIC:
        raise ChecksumError(f"Command packet has bad magic: {data[0:len(COMMAND_MAGIC)].hex()}")
    stored = int.from_bytes(data[CHECKSUM_OFFSET:CHECKSUM_OFFSET + 2], 'little')
    actual = compute_checksum(data)
    if stored != actual:
        raise ChecksumError(f"Command checksum mismatch: packet says {stored:#06x}, computed {actual:#06x}")
    return CommandHeader.unpack(data), bytes(data[COMMAND_HEADER_SIZE:])
