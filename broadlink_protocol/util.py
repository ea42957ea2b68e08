#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

import netifaces
from ipaddress import IPv4Address

from .internal_types import *
from .constants import CHECKSUM_SEED, CHECKSUM_OFFSET
from .exceptions import BroadlinkError, ValidationError

def compute_checksum(data: bytes, checksum_offset: Optional[int]=CHECKSUM_OFFSET) -> int:
    """Computes the 16-bit running-sum checksum used by every Broadlink packet.

    The checksum is the sum of all bytes, seeded with 0xBEAF, modulo 65536. The two bytes
    at checksum_offset (the packet's own checksum slot) are treated as zero. If
    checksum_offset is None, or the buffer is too short to contain the slot, every byte is summed.
    """
    total = CHECKSUM_SEED + sum(data)
    if checksum_offset is not None and len(data) >= checksum_offset + 2:
        total -= data[checksum_offset] + data[checksum_offset + 1]
    return total & 0xFFFF

def seal_checksum(buf: bytearray, checksum_offset: int=CHECKSUM_OFFSET) -> bytearray:
    """Computes the checksum of a packet and writes it (little-endian) into the packet's checksum slot.

    Returns the same buffer, for convenience.
    """
    checksum = compute_checksum(buf, checksum_offset)
    buf[checksum_offset:checksum_offset + 2] = checksum.to_bytes(2, 'little')
    return buf

def verify_checksum(data: bytes, checksum_offset: int=CHECKSUM_OFFSET) -> bool:
    """Returns True iff the checksum stored in a packet matches its contents."""
    if len(data) < checksum_offset + 2:
        return False
    stored = int.from_bytes(data[checksum_offset:checksum_offset + 2], 'little')
    return stored == compute_checksum(data, checksum_offset)

def compute_generic_checksum(data: bytes) -> int:
    """Computes the 16-bit one's-complement checksum of little-endian words used inside
    HVAC data messages. An odd trailing byte is treated as the low byte of a final word."""
    total = 0
    for i, b in enumerate(data):
        total += b if i % 2 == 0 else b << 8
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return 0xFFFF - total

def reverse_mac(mac: MacAddress) -> MacAddress:
    """Reverses the byte order of a MAC address. The protocol stores MACs least significant byte first."""
    if len(mac) != 6:
        raise ValidationError(f"MAC address must be 6 bytes, got {len(mac)}")
    return bytes(reversed(mac))

def format_mac(mac: MacAddress) -> str:
    """Formats a MAC address as colon-separated upper-case hex, e.g. "34:EA:34:01:02:03"."""
    return ':'.join(f"{b:02X}" for b in mac)

def parse_mac(mac: Union[str, bytes, bytearray]) -> MacAddress:
    """Parses a MAC address given as 6 raw bytes, or as 12 hex digits optionally separated by ':' or '-'."""
    if isinstance(mac, (bytes, bytearray)):
        result = bytes(mac)
    else:
        try:
            result = bytes.fromhex(mac.replace(':', '').replace('-', ''))
        except ValueError as e:
            raise ValidationError(f"Invalid MAC address {mac!r}") from e
    if len(result) != 6:
        raise ValidationError(f"MAC address must be 6 bytes: {mac!r}")
    return result

def ipv4_to_reversed_bytes(ip: str) -> bytes:
    """Packs an IPv4 address with its octets reversed, as required by discovery requests."""
    try:
        packed = IPv4Address(ip).packed
    except ValueError as e:
        raise ValidationError(f"Not a valid IPv4 address: {ip!r}") from e
    return bytes(reversed(packed))

def get_local_ip_addresses_and_interfaces(include_loopback: bool=True) -> List[Tuple[str, str]]:
    """Returns a list of Tuple[ip_address: str, interface_name: str] for the IPv4 addresses of the local host.
       The result is sorted in a way that attempts to place the "preferred"
       canonical IP address first in the list, according to the following scheme:
           1. Addresses on the default gateway interface precede all other addresses.
           2. Non-loopback addresses precede loopback addresses.
           3. IPV4 addresses that begin with 172. follow other IPV4 addresses. This is a hack to
              deprioritize local docker network addresses.
    """
    result_with_priority: List[Tuple[int, str, str]] = []
    _, default_gateway_ifname = get_default_ip_gateway()
    for ifname in netifaces.interfaces():
        ifinfo = netifaces.ifaddresses(ifname)
        if netifaces.AF_INET in ifinfo:
            for addrinfo in ifinfo[netifaces.AF_INET]:
              ip_str = addrinfo['addr']
              assert isinstance(ip_str, str)
              if IPv4Address(ip_str).is_loopback:
                  if not include_loopback:
                      continue
                  priority = 3
              elif ifname == default_gateway_ifname:
                  priority = 0
              elif ip_str.startswith('172.'):
                  priority = 2
              else:
                  priority = 1

              result_with_priority.append((priority, ip_str, ifname))
    return [ (ip, ifname) for _, ip, ifname in sorted(result_with_priority)]

def get_local_ip_addresses(include_loopback: bool=True) -> List[str]:
    """Returns a List[ip_address: str] for the IPv4 addresses of the local host, preferred address first.
       See get_local_ip_addresses_and_interfaces for the ordering."""
    return [ ip for ip, _ in get_local_ip_addresses_and_interfaces(include_loopback=include_loopback)]

def get_default_ip_gateway() -> Tuple[Optional[str], Optional[str]]:
    """Returns the (gateway_ip_address: str, gateway_interface_name: str) for the default IPv4 gateway, if any.
       returns (None, None) if there is no default gateway."""
    gws = netifaces.gateways()
    if "default" in gws:
        default_gateway_infos = gws["default"]
        if netifaces.AF_INET in default_gateway_infos:
            gw_ip, gw_interface_name = default_gateway_infos[netifaces.AF_INET][:2]
            return (gw_ip, gw_interface_name)
    return (None, None)

def get_local_ip(local_ip: Optional[str]=None) -> str:
    """Returns local_ip if provided, otherwise the preferred non-loopback IPv4 address of this host.

    Broadlink devices only speak IPv4, and the local address is embedded in discovery requests.
    """
    if local_ip is not None:
        return local_ip
    addresses = get_local_ip_addresses(include_loopback=False)
    if len(addresses) == 0:
        raise BroadlinkError("Could not find a local non-loopback IPv4 address")
    return addresses[0]
