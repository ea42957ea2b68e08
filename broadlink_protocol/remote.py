#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
RemoteDevice -- IR/RF blasters (RM4 family) that can:

  1. Enter IR learning mode, and poll for a captured code
  2. Sweep for an RF carrier frequency, then capture an RF code
  3. Transmit a previously learned IR or RF code

All exchanges use a remote data message as the command payload:

    0x00-0x01  length of the rest of the message (u16, little-endian)
    0x02-0x05  remote command code (u32, little-endian)
    0x06-...   command data (e.g., the code to send)
"""

from __future__ import annotations

import asyncio
import base64
import struct
from dataclasses import dataclass
from enum import Enum, IntEnum

from .internal_types import *
from .pkg_logging import logger
from .constants import DEFAULT_LEARN_ATTEMPTS, DEFAULT_LEARN_POLL_INTERVAL
from .device import BroadlinkDevice
from .exceptions import DeviceRejectedError, ProtocolMalformedError, ProtocolTimeoutError, ValidationError

REMOTE_HEADER_SIZE = 6

NO_DATA_ERROR_CODES = frozenset([0xFFFB, 0xFFF6])
"""Reply error codes with which a device reports that nothing has been captured yet."""

class RemoteDataCommand(IntEnum):
    """Command codes carried in a remote data message."""
    SEND_CODE = 0x02
    START_LEARNING = 0x03
    GET_CODE = 0x04
    SWEEP_FREQUENCY = 0x19
    CHECK_FREQUENCY = 0x1A
    FIND_RF_PACKET = 0x1B
    CANCEL_SWEEP_FREQUENCY = 0x1E

class CodeKind(Enum):
    """The kind of signal a learned code reproduces, identified by the code's first byte."""
    UNKNOWN = -1
    IR = 0x26
    RF_433 = 0xB2
    RF_315 = 0xD7

@dataclass(frozen=True)
class LearnedCode:
    """An opaque captured IR/RF waveform, replayed verbatim by RemoteDevice.send_code()."""

    data: bytes

    def __post_init__(self) -> None:
        if len(self.data) == 0:
            raise ValidationError("A learned code cannot be empty")

    @property
    def kind(self) -> CodeKind:
        """The signal kind, from the leading type marker. CodeKind.UNKNOWN if not recognized."""
        try:
            return CodeKind(self.data[0])
        except ValueError:
            return CodeKind.UNKNOWN

    @property
    def is_ir(self) -> bool:
        return self.kind == CodeKind.IR

    @property
    def is_rf(self) -> bool:
        return self.kind in (CodeKind.RF_433, CodeKind.RF_315)

    def to_hex(self) -> str:
        return self.data.hex()

    @classmethod
    def from_hex(cls, s: str) -> LearnedCode:
        try:
            return cls(bytes.fromhex(s))
        except ValueError as e:
            raise ValidationError(f"Invalid hex code: {e}") from e

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode('ascii')

    @classmethod
    def from_base64(cls, s: str) -> LearnedCode:
        try:
            return cls(base64.b64decode(s, validate=True))
        except ValueError as e:
            raise ValidationError(f"Invalid base64 code: {e}") from e

    def __str__(self) -> str:
        return f"LearnedCode({self.kind.name}, {len(self.data)} bytes)"

def pack_remote_payload(command: int, data: bytes=b'') -> bytes:
    """Builds a remote data message."""
    if len(data) + 4 > 0xFFFF:
        raise ValidationError(f"Remote data too long: {len(data)} bytes")
    return struct.pack('<HI', len(data) + 4, command) + data

def unpack_remote_payload(plaintext: bytes) -> bytes:
    """Extracts the data from a decrypted remote data reply. Returns b'' if the reply carries no data.

    Raises:
        ProtocolMalformedError: the length field overruns the reply.
    """
    if len(plaintext) < REMOTE_HEADER_SIZE:
        return b''
    length = struct.unpack_from('<H', plaintext, 0)[0]
    end = length + 2
    if end <= REMOTE_HEADER_SIZE:
        return b''
    if end > len(plaintext):
        raise ProtocolMalformedError(f"Remote reply length {length} exceeds reply size {len(plaintext)}")
    return bytes(plaintext[REMOTE_HEADER_SIZE:end])

class RemoteDevice(BroadlinkDevice):
    """An IR/RF blaster."""

    friendly_type = "Remote"

    async def send_remote_command(self, command: RemoteDataCommand, data: bytes=b'') -> bytes:
        """Sends a remote data message and returns the data carried by the reply.

        Note: prefer the specific operations (learn_ir, send_code, etc.).
        """
        plaintext = await self.send_command(pack_remote_payload(command, data))
        return unpack_remote_payload(plaintext)

    async def enter_learning_mode(self) -> None:
        """Puts the device into IR learning mode. The next IR signal it sees is captured."""
        await self.send_remote_command(RemoteDataCommand.START_LEARNING)
        logger.debug(f"{self} entered learning mode")

    async def check_learned_code(self) -> Optional[LearnedCode]:
        """Reads the most recently captured code.

        Returns:
            The captured code, or None if nothing has been captured yet.
        """
        try:
            data = await self.send_remote_command(RemoteDataCommand.GET_CODE)
        except DeviceRejectedError as e:
            if e.error_code in NO_DATA_ERROR_CODES:
                return None
            raise
        if len(data) == 0:
            return None
        return LearnedCode(data)

    async def _poll_learned_code(self, attempts: int, poll_interval: float) -> LearnedCode:
        for attempt in range(attempts):
            await asyncio.sleep(poll_interval)
            code = await self.check_learned_code()
            if code is not None:
                logger.debug(f"{self} captured {code} after {attempt + 1} polls")
                return code
        raise ProtocolTimeoutError(f"No code captured by {self} after {attempts} polls")

    async def learn_ir(
            self,
            attempts: int=DEFAULT_LEARN_ATTEMPTS,
            poll_interval: float=DEFAULT_LEARN_POLL_INTERVAL,
          ) -> LearnedCode:
        """Enters learning mode, then polls for a captured IR code.

        Parameters:
            attempts:      The maximum number of polls.
            poll_interval: Delay (in seconds) before each poll.

        Raises:
            ProtocolTimeoutError: no code was captured within the allotted polls.
        """
        await self.enter_learning_mode()
        return await self._poll_learned_code(attempts, poll_interval)

    async def send_code(self, code: LearnedCode) -> None:
        """Transmits a learned IR or RF code.

        Raises:
            DeviceRejectedError: the device refused the code. The send is not retried.
        """
        await self.send_remote_command(RemoteDataCommand.SEND_CODE, code.data)
        logger.debug(f"{self} sent {code}")

    async def sweep_frequency(self) -> None:
        """Starts scanning for the carrier frequency of an RF remote held near the device."""
        await self.send_remote_command(RemoteDataCommand.SWEEP_FREQUENCY)

    async def check_frequency(self) -> bool:
        """Returns True once a frequency sweep has locked onto a carrier."""
        data = await self.send_remote_command(RemoteDataCommand.CHECK_FREQUENCY)
        return len(data) > 0 and data[0] == 1

    async def find_rf_packet(self) -> None:
        """After a successful sweep, captures the next RF packet on the identified frequency."""
        await self.send_remote_command(RemoteDataCommand.FIND_RF_PACKET)

    async def cancel_sweep_frequency(self) -> None:
        await self.send_remote_command(RemoteDataCommand.CANCEL_SWEEP_FREQUENCY)

    async def learn_rf(
            self,
            attempts: int=DEFAULT_LEARN_ATTEMPTS,
            poll_interval: float=DEFAULT_LEARN_POLL_INTERVAL,
          ) -> LearnedCode:
        """Sweeps for an RF carrier, then captures an RF code. The remote must be held down
           during the sweep and pressed again once the sweep locks.

        Raises:
            ProtocolTimeoutError: the sweep did not lock, or no code was captured, within the allotted polls.
        """
        await self.sweep_frequency()
        for _ in range(attempts):
            await asyncio.sleep(poll_interval)
            if await self.check_frequency():
                break
        else:
            await self.cancel_sweep_frequency()
            raise ProtocolTimeoutError(f"{self} did not find an RF frequency after {attempts} polls")
        logger.debug(f"{self} locked onto an RF frequency")
        await self.find_rf_packet()
        return await self._poll_learned_code(attempts, poll_interval)
