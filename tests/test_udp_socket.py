"""Tests for the async UDP endpoint (udp_socket.py), over the loopback interface."""

import asyncio
import socket

import pytest

from broadlink_lan.exceptions import ConfigurationError, ResourceDisposedError
from broadlink_lan.udp_socket import UdpEndpoint, send_once

LOOPBACK = "127.0.0.1"


async def _echo_once(server: UdpEndpoint) -> None:
    received = await server.receive(2.0)
    assert received is not None
    data, addr = received
    server.sendto(data[::-1], addr)


class TestUdpEndpoint:
    @pytest.mark.asyncio
    async def test_send_and_receive(self):
        async with UdpEndpoint(bind_address=LOOPBACK) as server:
            async with UdpEndpoint(bind_address=LOOPBACK) as client:
                echo = asyncio.create_task(_echo_once(server))
                result = await client.send_and_receive(b"\x01\x02\x03", (LOOPBACK, server.local_port), 2.0)
                await echo
        assert result is not None
        data, addr = result
        assert data == b"\x03\x02\x01"
        assert addr[0] == LOOPBACK

    @pytest.mark.asyncio
    async def test_ephemeral_port(self):
        async with UdpEndpoint(bind_address=LOOPBACK) as endpoint:
            assert endpoint.started
            assert endpoint.local_port > 0

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self):
        async with UdpEndpoint(bind_address=LOOPBACK) as server:
            async with UdpEndpoint(bind_address=LOOPBACK) as client:
                assert await client.send_and_receive(b"ping", (LOOPBACK, server.local_port), 0.1) is None

    @pytest.mark.asyncio
    async def test_stale_datagrams_are_discarded(self):
        async with UdpEndpoint(bind_address=LOOPBACK) as server:
            async with UdpEndpoint(bind_address=LOOPBACK) as client:
                server.sendto(b"stale", (LOOPBACK, client.local_port))
                await asyncio.sleep(0.1)
                echo = asyncio.create_task(_echo_once(server))
                result = await client.send_and_receive(b"fresh", (LOOPBACK, server.local_port), 2.0)
                await echo
        assert result is not None
        assert result[0] == b"hserf"

    @pytest.mark.asyncio
    async def test_receive_nowait_empty(self):
        async with UdpEndpoint(bind_address=LOOPBACK) as endpoint:
            assert endpoint.receive_nowait() is None

    @pytest.mark.asyncio
    async def test_close_wakes_pending_receive(self):
        endpoint = UdpEndpoint(bind_address=LOOPBACK)
        await endpoint.start()
        pending = asyncio.create_task(endpoint.receive(5.0))
        await asyncio.sleep(0.05)
        endpoint.close()
        assert await asyncio.wait_for(pending, 1.0) is None

    @pytest.mark.asyncio
    async def test_use_after_close(self):
        endpoint = UdpEndpoint(bind_address=LOOPBACK)
        await endpoint.start()
        endpoint.close()
        assert endpoint.closed
        with pytest.raises(ResourceDisposedError):
            endpoint.sendto(b"x", (LOOPBACK, 9))
        with pytest.raises(ResourceDisposedError):
            await endpoint.receive(0.1)
        with pytest.raises(ResourceDisposedError):
            await endpoint.start()

    @pytest.mark.asyncio
    async def test_send_before_start(self):
        endpoint = UdpEndpoint(bind_address=LOOPBACK)
        with pytest.raises(RuntimeError):
            endpoint.sendto(b"x", (LOOPBACK, 9))
        endpoint.close()

    @pytest.mark.asyncio
    async def test_send_once(self):
        async with UdpEndpoint(bind_address=LOOPBACK) as server:
            await send_once(b"hello", (LOOPBACK, server.local_port), bind_address=LOOPBACK)
            received = await server.receive(2.0)
        assert received is not None
        assert received[0] == b"hello"


def _dual_stack_available() -> bool:
    if not socket.has_ipv6:
        return False
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_DGRAM) as sock:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
            sock.bind(("::", 0))
    except OSError:
        return False
    return True


class TestAddressFamily:
    def test_default_is_ipv4(self):
        endpoint = UdpEndpoint()
        assert endpoint.family == socket.AF_INET
        assert endpoint.bind_address == "0.0.0.0"

    def test_family_inferred_from_bind_address(self):
        endpoint = UdpEndpoint(bind_address="::")
        assert endpoint.family == socket.AF_INET6
        assert str(endpoint) == "UdpEndpoint([::]:0)"

    def test_ipv6_defaults_to_all_interfaces(self):
        assert UdpEndpoint(family=socket.AF_INET6).bind_address == "::"

    @pytest.mark.parametrize(
        "bind_address, family",
        [("127.0.0.1", socket.AF_INET6), ("::1", socket.AF_INET), ("localhost", socket.AF_INET), (None, socket.AF_UNSPEC)],
    )
    def test_invalid_configuration(self, bind_address, family):
        with pytest.raises(ConfigurationError):
            UdpEndpoint(bind_address=bind_address, family=family)

    def test_map_address(self):
        endpoint = UdpEndpoint(family=socket.AF_INET6)
        assert endpoint.map_address(("255.255.255.255", 80)) == ("::ffff:255.255.255.255", 80)
        assert endpoint.map_address(("fe80::1", 80)) == ("fe80::1", 80)
        assert endpoint.map_address(("my-host", 80)) == ("my-host", 80)
        assert UdpEndpoint().map_address(("255.255.255.255", 80)) == ("255.255.255.255", 80)

    @pytest.mark.skipif(not _dual_stack_available(), reason="dual-stack sockets unavailable")
    @pytest.mark.asyncio
    async def test_dual_stack_talks_to_ipv4_peer(self):
        async with UdpEndpoint(bind_address=LOOPBACK) as server:
            async with UdpEndpoint(family=socket.AF_INET6) as client:
                echo = asyncio.create_task(_echo_once(server))
                result = await client.send_and_receive(b"\x01\x02", (LOOPBACK, server.local_port), 2.0)
                await echo
        assert result is not None
        data, addr = result
        assert data == b"\x02\x01"
        assert addr[0] == "::ffff:127.0.0.1"
