#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Device -- A session with one Broadlink device that can:

  1. Negotiate a per-device session key and device id with auth()
  2. Send an encrypted command and await the device's single reply with send_packet()
  3. Decrypt the body of a reply with the session's current key

  Commands on one Device are serialized: a second send_packet() call does not start its
  network exchange until the first has received its reply or timed out. Independent
  Device instances are not serialized against each other.
"""

from __future__ import annotations


import asyncio
import random

from .internal_types import *
from .pkg_logging import logger
from .exceptions import DeviceError, ProtocolMismatchError, ResourceDisposedError
from .constants import (
    AES_BLOCK_SIZE,
    AUTH_PAYLOAD_SIZE,
    COMMAND_AUTH,
    COMMAND_HEADER_SIZE,
    DEFAULT_TIMEOUT,
    DEVICE_ID_SIZE,
    IV_TEMPLATE,
    KEY_TEMPLATE,
    MAC_SIZE,
  )
from .crypto import encrypt as aes_encrypt, decrypt as aes_decrypt
from .device_types import DeviceType
from .packet import CommandPacket, build_command_packet
from .udp_socket import UdpEndpoint
from .util import format_mac

def build_auth_payload() -> bytes:
    """The fixed 0x50-byte record every device of this family expects in a key negotiation request."""
    payload = bytearray(AUTH_PAYLOAD_SIZE)
    payload[0x04:0x13] = b'\x31' * 15
    payload[0x1e] = 0x01
    payload[0x2d] = 0x01
    payload[0x30:0x37] = b'Test  1'
    return bytes(payload)

class Device(AsyncContextManager['Device']):
    """
    A session with a single device on the local network.

    A Device starts out using the shared template key and an all-zero device id. A successful
    auth() replaces both with the values negotiated with the device. The key and id are always
    replaced together.

    Usage:
        async with Device(('192.168.1.20', 80), mac, 0x2737) as device:
            if await device.auth():
                response = await device.send_packet(0x6a, payload)
                if response is not None:
                    body = device.decrypt_payload(response)
    """

    host: HostAndPort
    """The (ip_address, port) of the device."""

    mac: bytes
    """The 6-byte hardware address, in the order it is written into command packets."""

    devtype: int
    """The 16-bit device-type code reported by the device."""

    device_type: DeviceType
    """The category of the device, as assigned by the factory."""

    model: str
    """A human-readable model name, as assigned by the factory."""

    timeout: float
    """The time (in seconds) to wait for the reply to each command."""

    id: bytes
    """The 4-byte device id. All zeros until authenticated."""

    count: int
    """The 16-bit sequence counter. Incremented (modulo 0x10000) before each command is sent."""

    _key: bytes
    _iv: bytes
    _lock: asyncio.Lock
    _endpoint: Optional[UdpEndpoint]
    _closed: bool = False

    def __init__(
            self,
            host: HostAndPort,
            mac: bytes,
            devtype: int,
            timeout: float=DEFAULT_TIMEOUT,
            device_type: DeviceType=DeviceType.UNKNOWN,
            model: str="Unknown",
            endpoint: Optional[UdpEndpoint]=None,
          ) -> None:
        if len(mac) != MAC_SIZE:
            raise ValueError(f"MAC address must be {MAC_SIZE} bytes, got {len(mac)}")
        self.host = (host[0], host[1])
        self.mac = bytes(mac)
        self.devtype = devtype
        self.timeout = timeout
        self.device_type = device_type
        self.model = model
        self.id = bytes(DEVICE_ID_SIZE)
        self._key = KEY_TEMPLATE
        self._iv = IV_TEMPLATE
        self.count = random.randrange(0xffff)
        self._lock = asyncio.Lock()
        self._endpoint = endpoint

    def __str__(self) -> str:
        return f"Device({self.host[0]}:{self.host[1]}, mac={format_mac(self.mac)}, devtype=0x{self.devtype:04x}, type={self.device_type.name})"

    def __repr__(self) -> str:
        return str(self)

    @property
    def key(self) -> bytes:
        """The AES key currently in use; the template key until authenticated."""
        return self._key

    @property
    def iv(self) -> bytes:
        return self._iv

    @property
    def authenticated(self) -> bool:
        return self._key != KEY_TEMPLATE or self.id != bytes(DEVICE_ID_SIZE)

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise ResourceDisposedError(f"{self} has been closed")

    def encrypt(self, payload: bytes) -> bytes:
        """Encrypts a block-aligned payload with the current key."""
        self._check_open()
        return aes_encrypt(self._key, self._iv, payload)

    def decrypt(self, data: bytes, offset: int=0, count: Optional[int]=None) -> bytes:
        """Decrypts a block-aligned range of data with the current key."""
        self._check_open()
        return aes_decrypt(self._key, self._iv, data, offset, count)

    def decrypt_payload(self, response: bytes) -> bytes:
        """Decrypts the body (offset 0x38 onward) of a raw response with the current key.

        The result may end with protocol padding; its meaning depends on the command.
        Raises ProtocolMismatchError if the body is not a whole number of AES blocks.
        """
        body_length = max(len(response) - COMMAND_HEADER_SIZE, 0)
        if body_length % AES_BLOCK_SIZE != 0:
            raise ProtocolMismatchError(f"Response body from {self} is {body_length} bytes, not a multiple of {AES_BLOCK_SIZE}")
        if body_length == 0:
            return b''
        return self.decrypt(response, COMMAND_HEADER_SIZE, body_length)

    def check_error(self, response: bytes) -> None:
        """Raises DeviceError if the status word of a raw response is non-zero."""
        packet = CommandPacket(response)
        if packet.error != 0:
            raise DeviceError(packet.error, f"{self} returned error code 0x{packet.error:04x}")

    async def _get_endpoint(self) -> UdpEndpoint:
        if self._endpoint is None:
            self._endpoint = UdpEndpoint()
        await self._endpoint.start()
        return self._endpoint

    async def send_packet(self, command: int, payload: bytes) -> Optional[bytes]:
        """Sends one encrypted command and waits for the reply.

        Returns the raw reply, header included, or None if the device did not answer within
        self.timeout seconds. Decrypting and interpreting the reply is left to the caller
        (see decrypt_payload()).
        """
        self._check_open()
        async with self._lock:
            self._check_open()
            self.count = (self.count + 1) & 0xffff
            packet = build_command_packet(command, self.count, self.mac, self.id, payload, self.encrypt)
            logger.debug(f"Sending command 0x{command:02x} (count={self.count}) to {self}")
            endpoint = await self._get_endpoint()
            result = await endpoint.send_and_receive(packet, self.host, self.timeout)
        if result is None:
            logger.info(f"No response from {self} to command 0x{command:02x} within {self.timeout} seconds")
            return None
        data, addr = result
        logger.debug(f"Received {len(data)}-byte response from {addr} for command 0x{command:02x}")
        return data

    async def auth(self) -> bool:
        """Negotiates a session key and device id with the device.

        Returns True and replaces the key and id on success. Returns False, leaving both
        unchanged, if the device did not answer or its answer did not contain a key.
        """
        response = await self.send_packet(COMMAND_AUTH, build_auth_payload())
        if response is None:
            return False

        try:
            result = self.decrypt_payload(response)
        except ProtocolMismatchError as e:
            logger.warning(f"Authentication with {self} failed: {e}")
            return False

        if len(result) <= 0:
            logger.warning(f"Authentication with {self} failed: empty response")
            return False

        key = result[0x04:0x04 + AES_BLOCK_SIZE]
        if len(key) % AES_BLOCK_SIZE != 0:
            logger.warning(f"Authentication with {self} failed: {len(key)}-byte key is not block aligned")
            return False

        self.id = result[0x00:0x04]
        self._key = key
        logger.debug(f"Authenticated {self}: id={self.id.hex()}")
        return True

    def close(self) -> None:
        """Releases the socket. Any later operation raises ResourceDisposedError."""
        if self._closed:
            return
        self._closed = True
        if not self._endpoint is None:
            self._endpoint.close()
            self._endpoint = None

    async def __aenter__(self) -> Self:
        self._check_open()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False
