#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
BroadlinkDevice -- the generic device variant, and the base class of all device families.

A BroadlinkDevice owns the identity of one appliance (DeviceInfo) and, once authenticated,
its session. It performs the authentication handshake and the encrypted command exchange that
all device families are built on.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    BROADLINK_PORT,
    DATA_COMMAND,
    DEFAULT_CLIENT_NAME,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
  )
from .authentication import SessionKey, authenticate
from .broadlink_socket import send_and_receive
from .command import pack_command, unpack_command
from .crypto import EncryptionContext
from .exceptions import NotAuthenticatedError
from .packet import CommandHeader
from .util import format_mac, parse_mac

@dataclass
class DeviceInfo:
    """The identity of a physical appliance, as reported by discovery or supplied by the caller."""

    address: str
    """The IPv4 address of the device."""

    mac: MacAddress
    """The 6-byte MAC address of the device, in canonical order."""

    model_code: int
    """The 16-bit device type code."""

    name: str = ""
    """The name the device reports for itself."""

    is_locked: bool = False
    """True if the device reports that it is locked against re-provisioning."""

    port: int = BROADLINK_PORT
    """The UDP port the device listens on."""

    friendly_type: str = "Unknown"
    """The device family, e.g. "Remote" or "HVAC"."""

    friendly_model: str = "Unknown"
    """The model name corresponding to model_code, if known."""

    def __post_init__(self) -> None:
        self.mac = parse_mac(self.mac)

    @property
    def host_and_port(self) -> HostAndPort:
        return (self.address, self.port)

class BroadlinkDevice:
    """
    A Broadlink device of any family. Used directly for device type codes that are not recognized;
    such devices support the handshake and raw commands only.

    All operations other than authenticate() require a prior successful authentication.
    Concurrent operations on one device are not serialized; callers should keep at most one
    request outstanding per device.
    """

    friendly_type: str = "Generic"
    """The device family name. Overridden by subclasses."""

    info: DeviceInfo
    """The identity of this device."""

    timeout: float
    """Time (in seconds) to wait for each reply."""

    retries: int
    """Number of times to re-send a request that timed out."""

    bind_address: str
    """The local IP address to send from."""

    _session: Optional[SessionKey] = None
    _count: int

    def __init__(
            self,
            info: DeviceInfo,
            timeout: float=DEFAULT_TIMEOUT,
            retries: int=DEFAULT_RETRIES,
            bind_address: str="0.0.0.0",
          ):
        self.info = info
        self.timeout = timeout
        self.retries = retries
        self.bind_address = bind_address
        self._count = random.randint(0x8000, 0xFFFF)

    @property
    def session(self) -> Optional[SessionKey]:
        """The session established by the most recent successful authentication, or None."""
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def encryption_context(self) -> EncryptionContext:
        """The context used to encrypt commands: the session context if authenticated, else the default."""
        if self._session is None:
            return EncryptionContext.default()
        return self._session.encryption_context()

    async def authenticate(self, client_name: str=DEFAULT_CLIENT_NAME) -> SessionKey:
        """Performs the authentication handshake and installs the resulting session.

        On failure the previous session (if any) is left untouched; on success it is replaced as
        a whole. Re-authenticating an authenticated device is allowed.

        Raises:
            HandshakeFailedError: the device did not produce a usable session.
            TransportError:       no reply, or a socket failure.
        """
        session = await authenticate(self, client_name=client_name)
        self._session = session
        logger.info(f"Authenticated with {self}")
        return session

    def require_authenticated(self) -> SessionKey:
        """Returns the current session.

        Raises:
            NotAuthenticatedError: the device has not been authenticated.
        """
        session = self._session
        if session is None:
            raise NotAuthenticatedError(f"{self} must be authenticated first")
        return session

    def _next_count(self) -> int:
        self._count = ((self._count + 1) | 0x8000) & 0xFFFF
        return self._count

    async def exchange(
            self,
            command: int,
            payload: bytes,
            context: EncryptionContext,
            auth_id: int,
          ) -> Tuple[CommandHeader, bytes]:
        """Sends one encrypted command envelope and returns the validated, decrypted reply.

        Raises:
            ChecksumError:       the reply is truncated or corrupt.
            DeviceRejectedError: the reply carries a non-zero error code.
            CryptoError:         the reply could not be decrypted.
            TransportError:      no reply, or a socket failure.
        """
        header = CommandHeader(
            device_type=self.info.model_code,
            command=command,
            count=self._next_count(),
            mac=self.info.mac,
            auth_id=auth_id,
          )
        packet = pack_command(header, payload, context)
        logger.debug(f"Sending {header} to {self}")
        reply = await send_and_receive(
            packet,
            self.info.host_and_port,
            timeout=self.timeout,
            retries=self.retries,
            bind_address=self.bind_address,
          )
        return unpack_command(reply, context)

    async def send_command(self, payload: bytes, command: int=DATA_COMMAND) -> bytes:
        """Sends a raw command payload to an authenticated device and returns the decrypted reply payload.

        Note: prefer the family-specific operations of the device subclasses.

        Raises:
            NotAuthenticatedError: the device has not been authenticated.
            DeviceRejectedError:   the reply carries a non-zero error code.
            ChecksumError, CryptoError, TransportError: see exchange().
        """
        session = self.require_authenticated()
        _, plaintext = await self.exchange(
            command,
            payload,
            context=session.encryption_context(),
            auth_id=session.auth_id,
          )
        return plaintext

    def __str__(self) -> str:
        info = self.info
        return (f"{info.name} [{self.friendly_type} {info.friendly_model}] (address = {info.address}, "
                f"mac = {format_mac(info.mac)}, type = {info.model_code:#06x}, locked? = {info.is_locked})")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self})"
