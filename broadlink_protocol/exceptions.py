#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from __future__ import annotations

from typing import Optional

class BroadlinkError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class ChecksumError(BroadlinkError):
  """A received packet failed checksum validation, or was too short to contain a checksum."""
  pass

class CryptoError(BroadlinkError):
  """An encrypted payload could not be decrypted (bad length, or key/IV mismatch)."""
  pass

class TransportError(BroadlinkError):
  """Base class for UDP transport failures."""
  pass

class TransportTimeout(TransportError):
  """No reply was received after exhausting all retries."""
  pass

class TransportIoError(TransportError):
  """A low-level socket operation failed."""
  pass

class AuthError(BroadlinkError):
  """Base class for authentication failures."""
  pass

class HandshakeFailedError(AuthError):
  """The authentication handshake with a device did not produce a session key."""
  pass

class NotAuthenticatedError(AuthError):
  """A device operation was attempted before the device was authenticated."""
  pass

class DiscoveryError(BroadlinkError):
  """Base class for discovery failures."""
  pass

class DiscoveryNoReplyError(DiscoveryError):
  """A probed address did not answer the discovery request."""
  pass

class DiscoveryMalformedError(DiscoveryError):
  """A discovery reply could not be parsed."""
  pass

class ProtocolError(BroadlinkError):
  """Base class for failures in device-family command exchanges."""
  pass

class ProtocolMalformedError(ProtocolError):
  """A decrypted reply did not have the expected structure or contained invalid values."""
  pass

class DeviceRejectedError(ProtocolError):
  """The device answered a command with a non-success error code."""

  error_code: int
  """The 16-bit error code reported in the reply header."""

  def __init__(self, error_code: int, msg: Optional[str]=None):
    if msg is None:
      msg = f"Device rejected command with error code {error_code:#06x}"
    super().__init__(msg)
    self.error_code = error_code

class ProtocolTimeoutError(ProtocolError):
  """A multi-step device operation (e.g., learning a code) did not complete in the allotted attempts."""
  pass

class ValidationError(BroadlinkError, ValueError):
  """A value was rejected locally before anything was sent to a device."""
  pass

class ProvisioningError(BroadlinkError):
  """Base class for network provisioning failures."""
  pass

class ProvisioningNoConfirmationError(ProvisioningError):
  """No device acknowledged the provisioning broadcast. The device may still have
     accepted the credentials, since it leaves setup mode regardless."""
  pass
