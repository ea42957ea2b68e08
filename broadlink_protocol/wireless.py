#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Provisioning of a device onto a WiFi network.

Only works while the device is in its own access-point setup mode, with this host joined to
the device's network. The provisioning message is a 136-byte plaintext broadcast:

    0x20-0x21  checksum
    0x26       0x14
    0x44-0x63  SSID, zero-filled
    0x64-0x83  password, zero-filled
    0x84       SSID length
    0x85       password length
    0x86       security mode
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    BROADCAST_ADDRESS,
    BROADLINK_PORT,
    DEFAULT_PROVISIONING_WAIT_TIME,
    WIRELESS_MAGIC,
    WIRELESS_MESSAGE_SIZE,
  )
from .broadlink_socket import BroadlinkSocket
from .exceptions import ProvisioningNoConfirmationError, TransportTimeout, ValidationError
from .util import seal_checksum

MAX_FIELD_SIZE = 32

class SecurityMode(Enum):
    NONE = 0
    WEP = 1
    WPA1 = 2
    WPA2 = 3
    WPA = 4
    """WPA1 and WPA2 mixed mode."""

@dataclass(frozen=True)
class NetworkCredentials:
    """The WiFi network a device should join. Never persisted."""

    ssid: str
    password: str = ""
    security_mode: SecurityMode = SecurityMode.WPA2

    def __post_init__(self) -> None:
        if len(self.ssid.encode('utf-8')) > MAX_FIELD_SIZE:
            raise ValidationError(f"SSID is longer than {MAX_FIELD_SIZE} bytes")
        if len(self.password.encode('utf-8')) > MAX_FIELD_SIZE:
            raise ValidationError(f"Password is longer than {MAX_FIELD_SIZE} bytes")
        try:
            SecurityMode(self.security_mode)
        except ValueError:
            raise ValidationError(f"Invalid security mode: {self.security_mode!r}") from None

    def to_message(self) -> bytes:
        """Builds the provisioning broadcast. The password is omitted for open networks."""
        ssid = self.ssid.encode('utf-8')
        security_mode = SecurityMode(self.security_mode)
        password = b'' if security_mode == SecurityMode.NONE else self.password.encode('utf-8')
        buf = bytearray(WIRELESS_MESSAGE_SIZE)
        buf[0x26] = WIRELESS_MAGIC
        buf[0x44:0x44 + len(ssid)] = ssid
        buf[0x64:0x64 + len(password)] = password
        buf[0x84] = len(ssid)
        buf[0x85] = len(password)
        buf[0x86] = security_mode.value
        return bytes(seal_checksum(buf))

    def __str__(self) -> str:
        # never log the password
        return f"NetworkCredentials(ssid={self.ssid!r}, security_mode={SecurityMode(self.security_mode).name})"

    def __repr__(self) -> str:
        return str(self)

async def connect_to_network(
        credentials: NetworkCredentials,
        broadcast_address: str=BROADCAST_ADDRESS,
        port: int=BROADLINK_PORT,
        wait_time: float=DEFAULT_PROVISIONING_WAIT_TIME,
        bind_address: str="0.0.0.0",
      ) -> HostAndPort:
    """Broadcasts credentials to a device in setup mode and waits for any reply.

    Returns:
        The address of the first device that acknowledged.

    Raises:
        ProvisioningNoConfirmationError: nothing replied within wait_time seconds. The device
            leaves setup mode regardless, so it may still have joined the network.
    """
    async with BroadlinkSocket(bind_address=bind_address) as sock:
        try:
            src_addr, _ = await sock.send_and_receive(
                credentials.to_message(),
                (broadcast_address, port),
                timeout=wait_time,
                retries=0,
                accept_any_source=True,
              )
        except TransportTimeout as e:
            raise ProvisioningNoConfirmationError(
                f"No device acknowledged {credentials} within {wait_time} seconds"
              ) from e
    logger.info(f"Device at {src_addr[0]} acknowledged {credentials}")
    return src_addr
