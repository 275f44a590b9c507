"""Tests for packet framing (packet.py)."""

import datetime
import struct

import pytest

from broadlink_lan.crypto import encrypt
from broadlink_lan.exceptions import ConfigurationError, ProtocolMismatchError
from broadlink_lan.packet import (
    CommandPacket,
    DiscoveryReply,
    build_command_header,
    build_command_packet,
    build_discovery_request,
    build_setup_packet,
    checksum,
    pad_payload,
)

from tests.helpers import make_discovery_reply

MAC = bytes([0x01, 0x02, 0x03, 0x04, 0x05, 0x06])
ZERO_ID = bytes(4)


def _identity(data: bytes) -> bytes:
    return data


class TestChecksum:
    def test_empty(self):
        assert checksum(b"") == 0xBEAF

    def test_two_ff_bytes(self):
        assert checksum([0xFF] * 2) == (0xBEAF + 0x1FE) & 0xFFFF

    def test_wraps_to_16_bits(self):
        data = bytes([0xFF] * 300)
        assert checksum(data) == (0xBEAF + sum(data)) & 0xFFFF
        assert checksum(data) <= 0xFFFF

    def test_matches_formula(self):
        data = bytes(range(256)) * 3
        assert checksum(data) == (0xBEAF + sum(data)) & 0xFFFF

    def test_accepts_bytearray(self):
        assert checksum(bytearray(b"\x01\x02")) == 0xBEB2


class TestPadding:
    @pytest.mark.parametrize("length", [1, 3, 15, 16, 17, 31, 32, 80])
    def test_padded_length(self, length):
        padded = pad_payload(bytes([0xAA] * length))
        assert len(padded) == (length // 16 + 1) * 16
        assert len(padded) > length

    def test_aligned_payload_gains_a_block(self):
        assert len(pad_payload(bytes(16))) == 32

    def test_pads_with_zeros(self):
        padded = pad_payload(b"\x01\x02\x03")
        assert padded == b"\x01\x02\x03" + bytes(13)

    def test_empty_payload_is_unchanged(self):
        assert pad_payload(b"") == b""


class TestCommandPacket:
    def test_reference_packet(self):
        packet = build_command_packet(0x65, 0x1234, MAC, ZERO_ID, b"\x01\x02\x03", _identity)
        expected = bytes.fromhex(
            "5aa5aa555aa5aa55"
            + "00" * 24
            + "35c5"  # whole-packet checksum
            + "0000"
            + "2a27"
            + "6500"
            + "3412"
            + "010203040506"
            + "00000000"
            + "b5be"  # payload checksum
            + "0000"
            + "010203"
            + "00" * 13
        )
        assert packet == expected

    def test_encrypted_reference_packet(self):
        # AES-128 with an all-zero key and IV maps the zero block to 66e94bd4... (AES known answer)
        packet = build_command_packet(0x65, 0x1234, MAC, ZERO_ID, bytes(15), lambda data: encrypt(bytes(16), bytes(16), data))
        expected = bytes.fromhex(
            "5aa5aa555aa5aa55"
            + "00" * 24
            + "f5cc"  # whole-packet checksum, over the ciphertext
            + "0000"
            + "2a27"
            + "6500"
            + "3412"
            + "010203040506"
            + "00000000"
            + "afbe"  # payload checksum, over the padded plaintext
            + "0000"
            + "66e94bd4ef8a2c3b884cfa59ca342b2e"
        )
        assert packet == expected

    def test_header_offsets(self):
        header = build_command_header(0x6A, 0xBEEF, MAC, b"\xaa\xbb\xcc\xdd")
        assert len(header) == 0x38
        assert header[0x00:0x08] == bytes([0x5A, 0xA5, 0xAA, 0x55, 0x5A, 0xA5, 0xAA, 0x55])
        assert header[0x24:0x26] == b"\x2a\x27"
        assert header[0x26] == 0x6A
        assert header[0x28:0x2A] == b"\xef\xbe"
        assert header[0x2A:0x30] == MAC
        assert header[0x30:0x34] == b"\xaa\xbb\xcc\xdd"
        assert header[0x20:0x22] == b"\x00\x00"
        assert header[0x34:0x36] == b"\x00\x00"

    def test_whole_packet_checksum_verifies(self):
        packet = CommandPacket(build_command_packet(0x6A, 7, MAC, ZERO_ID, bytes(40), _identity))
        assert packet.verify_checksum()

    def test_payload_is_encrypted_after_payload_checksum(self):
        calls = []

        def fake_encrypt(data: bytes) -> bytes:
            calls.append(data)
            return bytes(b ^ 0xFF for b in data)

        raw = build_command_packet(0x6A, 1, MAC, ZERO_ID, b"\x05", fake_encrypt)
        packet = CommandPacket(raw)
        assert calls == [b"\x05" + bytes(15)]
        assert packet.payload_checksum == checksum(b"\x05" + bytes(15))
        assert packet.payload == bytes(b ^ 0xFF for b in calls[0])
        assert packet.verify_checksum()

    def test_empty_payload(self):
        raw = build_command_packet(0x6A, 1, MAC, ZERO_ID, b"", _identity)
        assert len(raw) == 0x38
        assert CommandPacket(raw).payload_checksum == 0xBEAF

    def test_view_properties(self):
        raw = bytearray(build_command_packet(0x65, 0x0102, MAC, b"\x09\x08\x07\x06", b"x", _identity))
        struct.pack_into("<H", raw, 0x22, 0xFFF9)
        packet = CommandPacket(raw)
        assert packet.command == 0x65
        assert packet.count == 0x0102
        assert packet.mac == MAC
        assert packet.device_id == b"\x09\x08\x07\x06"
        assert packet.error == 0xFFF9
        assert packet.has_magic()

    def test_short_packet_rejected(self):
        with pytest.raises(ProtocolMismatchError):
            CommandPacket(bytes(0x37))

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"mac": b"\x01\x02\x03"},
            {"device_id": b"\x00\x00"},
            {"command": 0x100},
            {"count": 0x10000},
        ],
    )
    def test_invalid_arguments(self, kwargs):
        args = {"command": 0x6A, "count": 1, "mac": MAC, "device_id": ZERO_ID}
        args.update(kwargs)
        with pytest.raises(ValueError):
            build_command_header(**args)


class TestDiscoveryRequest:
    NOW = datetime.datetime(2024, 3, 5, 14, 7)

    def test_layout(self):
        request = build_discovery_request(bytes([192, 168, 1, 10]), 0x1234, self.NOW, 5)
        assert len(request) == 0x30
        assert request[0x08:0x0C] == b"\x05\x00\x00\x00"
        assert request[0x0C:0x0E] == b"\xe8\x07"
        assert request[0x0E] == 7
        assert request[0x0F] == 14
        assert request[0x10] == 24
        assert request[0x11] == 2  # Tuesday
        assert request[0x12] == 5
        assert request[0x13] == 3
        assert request[0x18:0x1C] == bytes([192, 168, 1, 10])
        assert request[0x1C:0x1E] == b"\x34\x12"
        assert request[0x26] == 0x06

    def test_checksum(self):
        request = bytearray(build_discovery_request(bytes(4), 80, self.NOW, 0))
        stored = struct.unpack_from("<H", request, 0x20)[0]
        request[0x20:0x22] = b"\x00\x00"
        assert stored == checksum(request)

    def test_negative_timezone(self):
        request = build_discovery_request(bytes(4), 80, self.NOW, -9)
        assert request[0x08:0x0C] == b"\xf5\xff\xff\xff"

    def test_sunday_is_seven(self):
        request = build_discovery_request(bytes(4), 80, datetime.datetime(2024, 3, 10, 0, 0), 0)
        assert request[0x11] == 7

    def test_rejects_non_ipv4_address(self):
        with pytest.raises(ConfigurationError):
            build_discovery_request(bytes(16), 80, self.NOW, 0)


class TestDiscoveryReply:
    def test_fields(self):
        mac = bytes([0x34, 0xEA, 0x34, 0xAA, 0xBB, 0xCC])
        reply = DiscoveryReply(make_discovery_reply(0x2737, mac, bytes([192, 168, 1, 20])))
        assert reply.devtype == 0x2737
        assert reply.mac == mac
        assert reply.embedded_address == bytes([192, 168, 1, 20])

    def test_short_reply_rejected(self):
        with pytest.raises(ProtocolMismatchError):
            DiscoveryReply(bytes(0x3F))


class TestSetupPacket:
    def test_layout(self):
        packet = build_setup_packet("home", "secret", 3)
        assert len(packet) == 0x88
        assert packet[0x26] == 0x14
        assert packet[68:72] == b"home"
        assert packet[72:100] == bytes(28)
        assert packet[100:106] == b"secret"
        assert packet[0x84] == 4
        assert packet[0x85] == 6
        assert packet[0x86] == 3

    def test_checksum(self):
        packet = bytearray(build_setup_packet(b"net", b"pw", 0))
        stored = struct.unpack_from("<H", packet, 0x20)[0]
        packet[0x20:0x22] = b"\x00\x00"
        assert stored == checksum(packet)

    def test_max_length_credentials(self):
        packet = build_setup_packet("s" * 32, "p" * 32, 4)
        assert packet[68:100] == b"s" * 32
        assert packet[100:132] == b"p" * 32

    def test_ssid_too_long(self):
        with pytest.raises(ConfigurationError):
            build_setup_packet("s" * 33, "pw", 3)

    def test_password_too_long_is_a_value_error(self):
        with pytest.raises(ValueError):
            build_setup_packet("ssid", "p" * 33, 3)
