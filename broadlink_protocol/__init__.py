#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package broadlink_protocol implements the LAN control protocol of Broadlink devices.

Broadlink devices (RM4 family IR/RF blasters, and air conditioners built on Broadlink
modules) are controlled with UDP datagrams on port 80. A client discovers devices with a
plaintext broadcast probe, authenticates to obtain a per-device AES session key, and then
exchanges encrypted command envelopes to learn and replay IR/RF codes or to read and write
climate state. Devices in access-point setup mode can also be provisioned onto a WiFi network.

The protocol is not publicly documented by Broadlink; it has been reverse-engineered by
the python-broadlink project and others.

Typical use:

    devices = await discover(local_ip="192.168.1.10")
    for device in devices:
        await device.authenticate()
        if isinstance(device, RemoteDevice):
            code = await device.learn_ir()
            await device.send_code(code)
"""

from .version import __version__

from .internal_types import HostAndPort, MacAddress

from .exceptions import (
    BroadlinkError,
    ChecksumError,
    CryptoError,
    TransportError,
    TransportTimeout,
    TransportIoError,
    AuthError,
    HandshakeFailedError,
    NotAuthenticatedError,
    DiscoveryError,
    DiscoveryNoReplyError,
    DiscoveryMalformedError,
    ProtocolError,
    ProtocolMalformedError,
    DeviceRejectedError,
    ProtocolTimeoutError,
    ValidationError,
    ProvisioningError,
    ProvisioningNoConfirmationError,
  )

from .packet import CommandHeader, build_packet, validate_and_strip
from .crypto import EncryptionContext
from .broadlink_socket import BroadlinkSocket
from .authentication import SessionKey
from .device import BroadlinkDevice, DeviceInfo
from .remote import RemoteDevice, LearnedCode, CodeKind
from .hvac import (
    HvacDevice,
    ClimateState,
    ClimateInfo,
    HvacMode,
    HvacSpeed,
    HvacPreset,
    HvacSwingHorizontal,
    HvacSwingVertical,
  )
from .dispatch import DEVICE_TYPES, create_device
from .discovery import discover, iter_devices, from_address
from .wireless import NetworkCredentials, SecurityMode, connect_to_network
from .util import compute_checksum, get_local_ip
from .constants import BROADLINK_PORT, BROADCAST_ADDRESS

__all__ = [
    '__version__',
    'HostAndPort', 'MacAddress',
    'BroadlinkError', 'ChecksumError', 'CryptoError',
    'TransportError', 'TransportTimeout', 'TransportIoError',
    'AuthError', 'HandshakeFailedError', 'NotAuthenticatedError',
    'DiscoveryError', 'DiscoveryNoReplyError', 'DiscoveryMalformedError',
    'ProtocolError', 'ProtocolMalformedError', 'DeviceRejectedError', 'ProtocolTimeoutError',
    'ValidationError',
    'ProvisioningError', 'ProvisioningNoConfirmationError',
    'CommandHeader', 'build_packet', 'validate_and_strip',
    'EncryptionContext',
    'BroadlinkSocket',
    'SessionKey',
    'BroadlinkDevice', 'DeviceInfo',
    'RemoteDevice', 'LearnedCode', 'CodeKind',
    'HvacDevice', 'ClimateState', 'ClimateInfo',
    'HvacMode', 'HvacSpeed', 'HvacPreset', 'HvacSwingHorizontal', 'HvacSwingVertical',
    'DEVICE_TYPES', 'create_device',
    'discover', 'iter_devices', 'from_address',
    'NetworkCredentials', 'SecurityMode', 'connect_to_network',
    'compute_checksum', 'get_local_ip',
    'BROADLINK_PORT', 'BROADCAST_ADDRESS',
]
