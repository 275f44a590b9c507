# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package broadlink_lan implements the local-network UDP protocol spoken by Broadlink-family
smart-home devices (IR/RF blasters, smart plugs, sensors, curtain motors, etc).

Devices listen on UDP port 80. The protocol has three parts:

  * Discovery: an unencrypted broadcast request, answered by each device with its type code,
    MAC address and IP address.
  * Authentication: a command encrypted with a shared template AES key, answered with a
    per-device id and session key used for everything afterwards.
  * Commands: a fixed 0x38-byte header followed by an AES-CBC encrypted payload, each
    answered by a single reply datagram.

Unconfigured devices can also be told which Wi-Fi network to join with a provisioning broadcast.

The protocol has no integrity protection beyond a 16-bit additive checksum.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict, HostAndPort

from .exceptions import (
    BroadlinkError,
    ConfigurationError,
    ResourceDisposedError,
    ProtocolMismatchError,
    UnsupportedAddressFamilyError,
    DeviceError,
  )

from .constants import BROADCAST_ADDRESS, DISCOVERY_PORT, DEFAULT_TIMEOUT, KEY_TEMPLATE, IV_TEMPLATE
from .packet import (
    checksum,
    pad_payload,
    build_command_packet,
    build_discovery_request,
    build_setup_packet,
    CommandPacket,
    DiscoveryReply,
  )
from .crypto import encrypt, decrypt
from .udp_socket import UdpEndpoint, send_once
from .device_types import DeviceType, DEVICE_TYPE_CODES, get_device_type
from .device import Device
from .factory import DeviceFactory, gen_device, create
from .discovery import DiscoveryScanner, discover, resolve_device_address
from .provisioning import WifiSecurityMode, setup
from .util import format_mac, parse_mac

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict', 'HostAndPort',
    'BroadlinkError', 'ConfigurationError', 'ResourceDisposedError', 'ProtocolMismatchError',
    'UnsupportedAddressFamilyError', 'DeviceError',
    'BROADCAST_ADDRESS', 'DISCOVERY_PORT', 'DEFAULT_TIMEOUT', 'KEY_TEMPLATE', 'IV_TEMPLATE',
    'checksum', 'pad_payload', 'build_command_packet', 'build_discovery_request', 'build_setup_packet',
    'CommandPacket', 'DiscoveryReply',
    'encrypt', 'decrypt',
    'UdpEndpoint', 'send_once',
    'DeviceType', 'DEVICE_TYPE_CODES', 'get_device_type',
    'Device',
    'DeviceFactory', 'gen_device', 'create',
    'DiscoveryScanner', 'discover', 'resolve_device_address',
    'WifiSecurityMode', 'setup',
    'format_mac', 'parse_mac',
]
