"""Fakes and packet builders shared by broadlink_lan tests."""

from __future__ import annotations

import asyncio
import struct
from typing import Callable, List, Optional, Tuple

from broadlink_lan.constants import COMMAND_HEADER_SIZE, IV_TEMPLATE, KEY_TEMPLATE
from broadlink_lan.crypto import encrypt

DEVICE_HOST = ("192.168.1.20", 80)
DEVICE_MAC = bytes([0x34, 0xea, 0x34, 0x01, 0x02, 0x03])
DEVICE_ID = bytes([0x01, 0x00, 0x00, 0x00])
SESSION_KEY = bytes(range(0x10, 0x20))

Responder = Callable[[bytes], Optional[bytes]]


class FakeEndpoint:
    """Stands in for UdpEndpoint in Device tests; records each exchange."""

    def __init__(self, responder: Optional[Responder] = None, delay: float = 0.0) -> None:
        self.responder = responder
        self.delay = delay
        self.sent: List[Tuple[bytes, Tuple[str, int]]] = []
        self.events: List[Tuple[str, int]] = []
        self.started = False
        self.closed = False

    async def start(self) -> None:
        self.started = True

    async def send_and_receive(self, data, addr, timeout):
        n = len(self.sent)
        self.sent.append((bytes(data), addr))
        self.events.append(("start", n))
        await asyncio.sleep(self.delay)
        self.events.append(("end", n))
        reply = None if self.responder is None else self.responder(bytes(data))
        if reply is None:
            return None
        return (reply, addr)

    def close(self) -> None:
        self.closed = True


def make_response(body: bytes, key: bytes = KEY_TEMPLATE, error: int = 0) -> bytes:
    """A device response: zeroed header with an optional status word, then the encrypted body."""
    header = bytearray(COMMAND_HEADER_SIZE)
    struct.pack_into("<H", header, 0x22, error)
    return bytes(header) + encrypt(key, IV_TEMPLATE, body)


def auth_responder(device_id: bytes = DEVICE_ID, key: bytes = SESSION_KEY) -> Responder:
    def respond(request: bytes) -> bytes:
        return make_response(device_id + key + bytes(12))

    return respond


def make_discovery_reply(devtype: int, mac: bytes, embedded: bytes) -> bytes:
    data = bytearray(0x40)
    struct.pack_into("<H", data, 0x34, devtype)
    data[0x36:0x3A] = embedded
    data[0x3A:0x40] = mac[::-1]
    return bytes(data)
