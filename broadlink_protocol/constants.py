#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

BROADLINK_PORT = 80
"""The UDP port on which Broadlink devices listen for commands and discovery requests."""

BROADCAST_ADDRESS = "255.255.255.255"
"""The broadcast address used for discovery and provisioning."""

INITIAL_KEY = bytes.fromhex("097628343fe99e23765c1513accf8b02")
"""The AES key used by all devices before authentication."""

INITIAL_VECTOR = bytes.fromhex("562e17996d093d28ddb3ba695a2e6f58")
"""The AES IV used by all devices, both before and after authentication."""

CHECKSUM_SEED = 0xBEAF
"""The initial value of the running-sum packet checksum."""

CHECKSUM_OFFSET = 0x20
"""Offset of the 16-bit packet checksum in every packet type."""

COMMAND_MAGIC = bytes([0x5A, 0xA5, 0xAA, 0x55, 0x5A, 0xA5, 0xAA, 0x55])
"""Magic bytes at the start of every command packet."""

COMMAND_HEADER_SIZE = 0x38
"""Size of the plaintext header of a command packet."""

DISCOVERY_MESSAGE_SIZE = 0x30
"""Size of a discovery request."""

DISCOVERY_RESPONSE_SIZE = 0x80
"""Minimum size of a discovery reply."""

WIRELESS_MESSAGE_SIZE = 0x88
"""Size of a network provisioning request."""

AUTH_COMMAND = 0x0065
"""Command code of the authentication handshake."""

DATA_COMMAND = 0x006A
"""Command code of all post-authentication data exchanges."""

DISCOVERY_MAGIC = 0x06
"""Command byte of a discovery request."""

WIRELESS_MAGIC = 0x14
"""Command byte of a network provisioning request."""

DEFAULT_TIMEOUT = 5.0
"""The default time (in seconds) to wait for a reply to a single request."""

DEFAULT_RETRIES = 2
"""The default number of times a request is re-sent after a timeout."""

DEFAULT_DISCOVERY_WAIT_TIME = 5.0
"""The default time (in seconds) to collect discovery replies after a broadcast."""

DEFAULT_PROVISIONING_WAIT_TIME = 3.0
"""The default time (in seconds) to wait for an acknowledgement of a provisioning broadcast."""

DEFAULT_LEARN_ATTEMPTS = 10
"""The default number of times to poll for a learned code."""

DEFAULT_LEARN_POLL_INTERVAL = 3.0
"""The default delay (in seconds) before each poll for a learned code."""

DEFAULT_CLIENT_NAME = "Test 1"
"""The client name presented to devices during the authentication handshake."""
