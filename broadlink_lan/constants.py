# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

BROADCAST_ADDRESS = "255.255.255.255"
"""The IPv4 limited broadcast address used for discovery and provisioning."""

DISCOVERY_PORT = 80
"""The UDP port that devices listen on for discovery, provisioning and commands."""

DEFAULT_TIMEOUT = 10.0
"""The default time (in seconds) to wait for a device to answer a command."""

DISCOVERY_MAX_WAIT = 10.0
"""Without a cancellation signal, discovery gives up after this many seconds."""

DISCOVERY_POLL_INTERVAL = 0.1
"""The interval (in seconds) at which the discovery loop checks for replies and cancellation."""

AES_BLOCK_SIZE = 16

KEY_TEMPLATE = bytes([
    0x09, 0x76, 0x28, 0x34, 0x3f, 0xe9, 0x9e, 0x23,
    0x76, 0x5c, 0x15, 0x13, 0xac, 0xcf, 0x8b, 0x02,
  ])
"""The shared AES key used until a device has been authenticated."""

IV_TEMPLATE = bytes([
    0x56, 0x2e, 0x17, 0x99, 0x6d, 0x09, 0x3d, 0x28,
    0xdd, 0xb3, 0xba, 0x69, 0x5a, 0x2e, 0x6f, 0x58,
  ])
"""The fixed AES initialization vector. Never replaced."""

CHECKSUM_SEED = 0xbeaf

PACKET_MAGIC = bytes([0x5a, 0xa5, 0xaa, 0x55, 0x5a, 0xa5, 0xaa, 0x55])
"""The first eight bytes of every command packet."""

PACKET_MARKER = bytes([0x2a, 0x27])
"""Fixed bytes at 0x24-0x25 of every command packet."""

COMMAND_HEADER_SIZE = 0x38
DISCOVERY_REQUEST_SIZE = 0x30
DISCOVERY_REPLY_MIN_SIZE = 0x40
SETUP_PACKET_SIZE = 0x88
AUTH_PAYLOAD_SIZE = 0x50

COMMAND_AUTH = 0x65
"""Command code of the key negotiation request."""

DISCOVERY_CATEGORY = 0x06
SETUP_CATEGORY = 0x14

SETUP_SSID_OFFSET = 68
SETUP_PASSWORD_OFFSET = 100
SETUP_MAX_SSID_LENGTH = SETUP_PASSWORD_OFFSET - SETUP_SSID_OFFSET
SETUP_MAX_PASSWORD_LENGTH = 0x84 - SETUP_PASSWORD_OFFSET

DEVICE_ID_SIZE = 4
MAC_SIZE = 6
