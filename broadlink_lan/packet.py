#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Framing of the fixed-offset packets used by the Broadlink LAN protocol.

Command packets have the form:

    0x00-0x07  magic 5A A5 AA 55 5A A5 AA 55
    0x20-0x21  checksum of the whole packet (computed with these two bytes zeroed)
    0x22-0x23  status word (responses only; 0 means success)
    0x24-0x25  2A 27
    0x26       command code
    0x28-0x29  sequence counter
    0x2a-0x2f  MAC address
    0x30-0x33  device id
    0x34-0x35  checksum of the padded, unencrypted payload
    0x38-      AES-CBC encrypted payload

All multi-byte integers are little-endian. Discovery requests and provisioning packets are
unencrypted and carry only the whole-packet checksum at 0x20-0x21.
"""

from __future__ import annotations

import datetime
import struct

from .internal_types import *
from .exceptions import ConfigurationError, ProtocolMismatchError
from .constants import (
    AES_BLOCK_SIZE,
    CHECKSUM_SEED,
    PACKET_MAGIC,
    PACKET_MARKER,
    COMMAND_HEADER_SIZE,
    DISCOVERY_REQUEST_SIZE,
    DISCOVERY_REPLY_MIN_SIZE,
    DISCOVERY_CATEGORY,
    SETUP_PACKET_SIZE,
    SETUP_CATEGORY,
    SETUP_SSID_OFFSET,
    SETUP_PASSWORD_OFFSET,
    SETUP_MAX_SSID_LENGTH,
    SETUP_MAX_PASSWORD_LENGTH,
    DEVICE_ID_SIZE,
    MAC_SIZE,
  )
from .util import format_mac, hexdump

Encryptor = Callable[[bytes], bytes]
"""A callable that encrypts a block-aligned payload with a device's current key."""

def checksum(data: Union[bytes, bytearray, Iterable[int]]) -> int:
    """The protocol's additive checksum: 0xbeaf plus every byte, truncated to 16 bits."""
    result = CHECKSUM_SEED
    for b in data:
        result = (result + b) & 0xffff
    return result

def _put_checksum(packet: bytearray, offset: int, value: int) -> None:
    struct.pack_into('<H', packet, offset, value)

def pad_payload(payload: Union[bytes, bytearray]) -> bytes:
    """Zero-pads a payload up to the next multiple of 16 bytes.

    A payload that is already block-aligned still gains a whole extra block, so the
    result is always strictly longer than a non-empty input. Devices expect exactly this.
    An empty payload is returned unchanged.
    """
    if len(payload) == 0:
        return b''
    padded_length = (len(payload) // AES_BLOCK_SIZE + 1) * AES_BLOCK_SIZE
    return bytes(payload) + bytes(padded_length - len(payload))

def build_command_header(command: int, count: int, mac: bytes, device_id: bytes) -> bytearray:
    """Builds the 0x38-byte command header with both checksum fields zeroed."""
    if not 0 <= command <= 0xff:
        raise ValueError(f"Command code out of range: {command}")
    if not 0 <= count <= 0xffff:
        raise ValueError(f"Sequence counter out of range: {count}")
    if len(mac) != MAC_SIZE:
        raise ValueError(f"MAC address must be {MAC_SIZE} bytes, got {len(mac)}")
    if len(device_id) != DEVICE_ID_SIZE:
        raise ValueError(f"Device id must be {DEVICE_ID_SIZE} bytes, got {len(device_id)}")
    packet = bytearray(COMMAND_HEADER_SIZE)
    packet[0x00:0x08] = PACKET_MAGIC
    packet[0x24:0x26] = PACKET_MARKER
    packet[0x26] = command
    struct.pack_into('<H', packet, 0x28, count)
    packet[0x2a:0x30] = mac
    packet[0x30:0x34] = device_id
    return packet

def build_command_packet(
        command: int,
        count: int,
        mac: bytes,
        device_id: bytes,
        payload: Union[bytes, bytearray],
        encrypt: Encryptor
      ) -> bytes:
    """Builds a complete command packet.

    The payload is padded, its checksum is written at 0x34, it is encrypted with `encrypt`
    and appended, and finally the checksum of the whole packet is written at 0x20.
    """
    packet = build_command_header(command, count, mac, device_id)
    padded = pad_payload(payload)
    _put_checksum(packet, 0x34, checksum(padded))
    packet += encrypt(padded)
    _put_checksum(packet, 0x20, checksum(packet))
    return bytes(packet)

class CommandPacket:
    """Read-only view of a command packet or a device's response to one."""

    _raw_data: bytes
    """The raw UDP datagram contents"""

    def __init__(self, raw_data: Union[bytes, bytearray]):
        if len(raw_data) < COMMAND_HEADER_SIZE:
            raise ProtocolMismatchError(f"Command packet is {len(raw_data)} bytes; at least {COMMAND_HEADER_SIZE} required")
        self._raw_data = bytes(raw_data)

    def __str__(self) -> str:
        return (f"CommandPacket(command=0x{self.command:02x}, count={self.count}, mac={format_mac(self.mac)}, "
                f"id={self.device_id.hex()}, error=0x{self.error:04x}, payload_len={len(self.payload)})")

    def __repr__(self) -> str:
        return str(self)

    @property
    def raw_data(self) -> bytes:
        """The raw UDP datagram contents"""
        return self._raw_data

    @property
    def command(self) -> int:
        return self._raw_data[0x26]

    @property
    def count(self) -> int:
        return struct.unpack_from('<H', self._raw_data, 0x28)[0]

    @property
    def mac(self) -> bytes:
        return self._raw_data[0x2a:0x30]

    @property
    def device_id(self) -> bytes:
        return self._raw_data[0x30:0x34]

    @property
    def error(self) -> int:
        """The status word reported by a device in a response. 0 means success."""
        return struct.unpack_from('<H', self._raw_data, 0x22)[0]

    @property
    def payload_checksum(self) -> int:
        return struct.unpack_from('<H', self._raw_data, 0x34)[0]

    @property
    def packet_checksum(self) -> int:
        return struct.unpack_from('<H', self._raw_data, 0x20)[0]

    @property
    def payload(self) -> bytes:
        """The (still encrypted) payload following the header."""
        return self._raw_data[COMMAND_HEADER_SIZE:]

    def has_magic(self) -> bool:
        return self._raw_data[0x00:0x08] == PACKET_MAGIC

    def verify_checksum(self) -> bool:
        """Returns True if the whole-packet checksum at 0x20 matches the packet contents."""
        data = bytearray(self._raw_data)
        data[0x20:0x22] = b'\x00\x00'
        return checksum(data) == self.packet_checksum

def _timezone_bytes(tz_offset: int) -> bytes:
    if tz_offset < 0:
        return bytes([(0xff + tz_offset - 1) & 0xff, 0xff, 0xff, 0xff])
    return bytes([tz_offset & 0xff, 0, 0, 0])

def build_discovery_request(
        local_ip: bytes,
        local_port: int,
        now: datetime.datetime,
        tz_offset: int
      ) -> bytes:
    """Builds the 0x30-byte discovery broadcast.

    Parameters:
        local_ip:   The 4 packed bytes of the local IPv4 address that devices should answer.
        local_port: The UDP port on which replies are awaited.
        now:        The local time to advertise.
        tz_offset:  Whole hours the local standard time is behind UTC (positive west of Greenwich).
    """
    if len(local_ip) != 4:
        raise ConfigurationError(f"Local address must be 4 bytes of IPv4, got {len(local_ip)} bytes")
    packet = bytearray(DISCOVERY_REQUEST_SIZE)
    packet[0x08:0x0c] = _timezone_bytes(tz_offset)
    struct.pack_into('<H', packet, 0x0c, now.year)
    packet[0x0e] = now.minute
    packet[0x0f] = now.hour
    packet[0x10] = now.year % 100
    packet[0x11] = now.isoweekday()
    packet[0x12] = now.day
    packet[0x13] = now.month
    packet[0x18:0x1c] = local_ip
    struct.pack_into('<H', packet, 0x1c, local_port)
    packet[0x26] = DISCOVERY_CATEGORY
    _put_checksum(packet, 0x20, checksum(packet))
    return bytes(packet)

class DiscoveryReply:
    """A device's answer to a discovery request."""

    raw_data: bytes

    def __init__(self, raw_data: Union[bytes, bytearray]):
        if len(raw_data) < DISCOVERY_REPLY_MIN_SIZE:
            raise ProtocolMismatchError(
                f"Discovery reply is {len(raw_data)} bytes; at least {DISCOVERY_REPLY_MIN_SIZE} required: {hexdump(raw_data)}")
        self.raw_data = bytes(raw_data)

    def __str__(self) -> str:
        return f"DiscoveryReply(devtype=0x{self.devtype:04x}, mac={format_mac(self.mac)}, embedded_address={self.embedded_address.hex()})"

    @property
    def devtype(self) -> int:
        return struct.unpack_from('<H', self.raw_data, 0x34)[0]

    @property
    def mac(self) -> bytes:
        """The device MAC address. It is transmitted in reverse byte order."""
        return self.raw_data[0x3a:0x40][::-1]

    @property
    def embedded_address(self) -> bytes:
        """The 4 address bytes the device reports for itself, in whatever order it chose to send them."""
        return self.raw_data[0x36:0x3a]

def _credential_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode('utf-8')

def build_setup_packet(ssid: Union[str, bytes], password: Union[str, bytes], security_mode: int) -> bytes:
    """Builds the 0x88-byte Wi-Fi provisioning broadcast.

    Raises ConfigurationError if the SSID or password would overrun its field.
    """
    ssid_bytes = _credential_bytes(ssid)
    password_bytes = _credential_bytes(password)
    if len(ssid_bytes) > SETUP_MAX_SSID_LENGTH:
        raise ConfigurationError(f"SSID is {len(ssid_bytes)} bytes; at most {SETUP_MAX_SSID_LENGTH} are supported")
    if len(password_bytes) > SETUP_MAX_PASSWORD_LENGTH:
        raise ConfigurationError(f"Password is {len(password_bytes)} bytes; at most {SETUP_MAX_PASSWORD_LENGTH} are supported")
    packet = bytearray(SETUP_PACKET_SIZE)
    packet[0x26] = SETUP_CATEGORY
    packet[SETUP_SSID_OFFSET:SETUP_SSID_OFFSET + len(ssid_bytes)] = ssid_bytes
    packet[SETUP_PASSWORD_OFFSET:SETUP_PASSWORD_OFFSET + len(password_bytes)] = password_bytes
    packet[0x84] = len(ssid_bytes)
    packet[0x85] = len(password_bytes)
    packet[0x86] = int(security_mode)
    _put_checksum(packet, 0x20, checksum(packet))
    return bytes(packet)
