#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Discovery of Broadlink devices, either by broadcasting a probe and collecting every reply
within a listening window, or by probing one known address.

The probe is a 48-byte plaintext message (little-endian):

    0x08-0x0B  UTC offset of the local time, in hours (i32)
    0x0C-0x0D  year
    0x0E       minute
    0x0F       hour
    0x10       year without century
    0x11       ISO day of the week (Monday = 1)
    0x12       day of the month
    0x13       month
    0x18-0x1B  local IPv4 address, octets reversed
    0x1C-0x1D  local port
    0x20-0x21  checksum
    0x26       0x06

Each device answers with a 128-byte message carrying its type code (u16 at 0x34), its MAC
(reversed, at 0x3A), its NUL-terminated name (at 0x40) and its lock flag (at 0x7F).
"""

from __future__ import annotations

import struct
from datetime import datetime

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    BROADCAST_ADDRESS,
    BROADLINK_PORT,
    DEFAULT_DISCOVERY_WAIT_TIME,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    DISCOVERY_MAGIC,
    DISCOVERY_MESSAGE_SIZE,
    DISCOVERY_RESPONSE_SIZE,
  )
from .broadlink_socket import BroadlinkSocket
from .device import BroadlinkDevice, DeviceInfo
from .dispatch import create_device
from .exceptions import DiscoveryMalformedError, DiscoveryNoReplyError, TransportTimeout
from .util import get_local_ip, ipv4_to_reversed_bytes, reverse_mac, seal_checksum, verify_checksum

class DiscoveryMessage:
    """A discovery probe, stamped with the local address and time."""

    local_ip: str
    """The IPv4 address devices should reply to."""

    local_port: int
    """The UDP port devices should reply to."""

    when: datetime
    """The timestamp of the probe, with a UTC offset."""

    def __init__(self, local_ip: str, local_port: int, when: Optional[datetime]=None):
        self.local_ip = local_ip
        self.local_port = local_port
        if when is None:
            when = datetime.now()
        # naive datetimes are taken as local time
        self.when = when if when.tzinfo is not None else when.astimezone()

    @property
    def utc_offset_hours(self) -> int:
        offset = self.when.utcoffset()
        assert offset is not None
        return int(offset.total_seconds() / 3600)

    def pack(self) -> bytes:
        when = self.when
        buf = bytearray(DISCOVERY_MESSAGE_SIZE)
        struct.pack_into(
            '<iHBBBBBB',
            buf,
            0x08,
            self.utc_offset_hours,
            when.year,
            when.minute,
            when.hour,
            when.year % 100,
            when.isoweekday(),
            when.day,
            when.month,
          )
        buf[0x18:0x1C] = ipv4_to_reversed_bytes(self.local_ip)
        struct.pack_into('<H', buf, 0x1C, self.local_port)
        buf[0x26] = DISCOVERY_MAGIC
        return bytes(seal_checksum(buf))

    def __str__(self) -> str:
        return f"DiscoveryMessage(reply_to={self.local_ip}:{self.local_port}, when={self.when.isoformat()})"

def parse_discovery_response(addr: HostAndPort, data: bytes) -> DeviceInfo:
    """Parses a discovery reply received from addr.

    Raises:
        DiscoveryMalformedError: the reply is short, fails its checksum, or has an undecodable name.
    """
    if len(data) < DISCOVERY_RESPONSE_SIZE:
        raise DiscoveryMalformedError(
            f"Discovery reply from {addr[0]} too short: expected {DISCOVERY_RESPONSE_SIZE} bytes, got {len(data)}"
          )
    if not verify_checksum(data):
        raise DiscoveryMalformedError(f"Discovery reply from {addr[0]} failed checksum")
    model_code = struct.unpack_from('<H', data, 0x34)[0]
    mac = reverse_mac(bytes(data[0x3A:0x40]))
    raw_name = bytes(data[0x40:0x7F]).split(b'\x00', 1)[0]
    try:
        name = raw_name.decode('utf-8')
    except UnicodeDecodeError as e:
        raise DiscoveryMalformedError(f"Discovery reply from {addr[0]} has an invalid name: {e}") from e
    return DeviceInfo(
        address=addr[0],
        port=addr[1],
        mac=mac,
        model_code=model_code,
        name=name,
        is_locked=bool(data[0x7F]),
      )

async def iter_devices(
        local_ip: Optional[str]=None,
        wait_time: float=DEFAULT_DISCOVERY_WAIT_TIME,
        broadcast_address: str=BROADCAST_ADDRESS,
        port: int=BROADLINK_PORT,
        timeout: float=DEFAULT_TIMEOUT,
        retries: int=DEFAULT_RETRIES,
      ) -> AsyncIterator[BroadlinkDevice]:
    """Broadcasts one discovery probe and yields a device for each distinct address that
       replies within wait_time seconds. Malformed and duplicate replies are dropped, and transport
       errors during the window are logged without ending it.

    Each call is an independent probe; it is possible to exit the loop early.

    Parameters:
        local_ip:          The local IPv4 address to send from, and that devices reply to. If None,
                             the preferred local address is used.
        wait_time:         Time (in seconds) to collect replies.
        broadcast_address: The address the probe is sent to.
        port:              The UDP port the probe is sent to.
        timeout, retries:  Passed to each created device.

    Returned devices are not authenticated.
    """
    local_ip = get_local_ip(local_ip)
    seen: Set[str] = set()
    async with BroadlinkSocket(bind_address=local_ip) as sock:
        message = DiscoveryMessage(local_ip, sock.unicast_addr[1])
        logger.debug(f"Broadcasting {message} to {broadcast_address}:{port}")
        async for src_addr, data in sock.broadcast_and_collect(
                message.pack(), (broadcast_address, port), wait_time, ignore_errors=True
              ):
            if src_addr[0] in seen:
                logger.debug(f"Dropping duplicate discovery reply from {src_addr[0]}")
                continue
            try:
                info = parse_discovery_response(src_addr, data)
            except DiscoveryMalformedError as e:
                logger.debug(f"Dropping discovery reply: {e}")
                continue
            seen.add(src_addr[0])
            device = create_device(info, timeout=timeout, retries=retries, bind_address=local_ip)
            logger.debug(f"Discovered {device}")
            yield device

async def discover(
        local_ip: Optional[str]=None,
        wait_time: float=DEFAULT_DISCOVERY_WAIT_TIME,
        broadcast_address: str=BROADCAST_ADDRESS,
        port: int=BROADLINK_PORT,
        timeout: float=DEFAULT_TIMEOUT,
        retries: int=DEFAULT_RETRIES,
      ) -> List[BroadlinkDevice]:
    """Returns every device that replies to one discovery probe. See iter_devices()."""
    return [
        device async for device in iter_devices(
            local_ip=local_ip,
            wait_time=wait_time,
            broadcast_address=broadcast_address,
            port=port,
            timeout=timeout,
            retries=retries,
          )
      ]

async def from_address(
        address: str,
        local_ip: Optional[str]=None,
        port: int=BROADLINK_PORT,
        timeout: float=DEFAULT_TIMEOUT,
        retries: int=DEFAULT_RETRIES,
      ) -> BroadlinkDevice:
    """Probes a single known address and returns the device that answers. The device is
       not authenticated.

    Raises:
        DiscoveryNoReplyError:   nothing answered after all retries.
        DiscoveryMalformedError: the reply could not be parsed.
    """
    local_ip = get_local_ip(local_ip)
    async with BroadlinkSocket(bind_address=local_ip) as sock:
        message = DiscoveryMessage(local_ip, sock.unicast_addr[1])
        try:
            src_addr, data = await sock.send_and_receive(
                message.pack(),
                (address, port),
                timeout=timeout,
                retries=retries,
              )
        except TransportTimeout as e:
            raise DiscoveryNoReplyError(f"No discovery reply from {address}:{port}") from e
    info = parse_discovery_response(src_addr, data)
    return create_device(info, timeout=timeout, retries=retries, bind_address=local_ip)
