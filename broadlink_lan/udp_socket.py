#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
UdpEndpoint -- An async UDP socket that can:

  1. Bind to an ephemeral local port (optionally on a specific local address) with broadcast enabled,
     either IPv4-only or dual-stack (IPv6 with IPv4-mapped addresses)
  2. Send a datagram to a unicast or broadcast address
  3. Queue received datagrams for a single consumer, which may wait for the next one with a timeout

  There is no retry, reordering or deduplication. A request/reply exchange is a single send followed
  by a single bounded wait.
"""

from __future__ import annotations


import asyncio
import ipaddress
import socket

from .internal_types import *
from .pkg_logging import logger
from .exceptions import ConfigurationError, ResourceDisposedError

MAX_QUEUE_SIZE = 1000

ReceivedDatagram = Tuple[bytes, Tuple[Any, ...]]
"""A (data, source_address) tuple. The source address is a 2-tuple for IPv4 and a 4-tuple for IPv6."""

class _UdpEndpointProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio transport and UdpEndpoint."""
    endpoint: UdpEndpoint

    def __init__(self, endpoint: UdpEndpoint):
        self.endpoint = endpoint

    def connection_made(self, transport: asyncio.BaseTransport):
        """Called when a connection is made."""
        logger.debug(f"Connection made: {self.endpoint}")

    def datagram_received(self, data: bytes, addr: Tuple[Any, ...]):
        """Called when some datagram is received."""
        self.endpoint.datagram_received(data, addr)

    def error_received(self, exc: Exception):
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.)
        """
        logger.info(f"Error received from transport {self.endpoint}: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """Called when the connection is lost or closed."""
        logger.debug(f"Connection to transport lost on {self.endpoint}, exc={exc}")
        self.endpoint.connection_lost(exc)

class UdpEndpoint(AsyncContextManager['UdpEndpoint']):
    """
    An async UDP endpoint bound to a local port, with a queue of received datagrams.

    Usage:
        async with UdpEndpoint() as endpoint:
            result = await endpoint.send_and_receive(packet, ('192.168.1.20', 80), timeout=10.0)
    """

    family: int
    """socket.AF_INET, or socket.AF_INET6 for a dual-stack socket that also sends and receives IPv4."""

    bind_address: str
    """The local address to bind to. "0.0.0.0" (or "::" for AF_INET6) binds all interfaces."""

    bind_port: int
    """The local port to bind to. 0 selects an ephemeral port."""

    allow_broadcast: bool
    """If True, SO_BROADCAST is enabled so datagrams may be sent to broadcast addresses."""

    queue: asyncio.Queue[Optional[ReceivedDatagram]]
    """Received datagrams waiting to be consumed. None is queued when the endpoint closes."""

    transport: Optional[asyncio.DatagramTransport] = None

    _closed: bool = False

    def __init__(
            self,
            bind_address: Optional[str]=None,
            bind_port: int=0,
            allow_broadcast: bool=True,
            max_queue_size: int=MAX_QUEUE_SIZE,
            family: Optional[int]=None,
          ) -> None:
        if family is None:
            family = socket.AF_INET6 if not bind_address is None and ':' in bind_address else socket.AF_INET
        if not family in (socket.AF_INET, socket.AF_INET6):
            raise ConfigurationError(f"Unsupported address family: {family}")
        is_ipv6 = family == socket.AF_INET6
        if bind_address is None:
            bind_address = '::' if is_ipv6 else '0.0.0.0'
        try:
            bind_ip = ipaddress.ip_address(bind_address)
        except ValueError as e:
            raise ConfigurationError(f"Invalid bind address '{bind_address}'") from e
        if isinstance(bind_ip, ipaddress.IPv6Address) != is_ipv6:
            raise ConfigurationError(f"Bind address '{bind_address}' does not match address family {family}")
        self.family = family
        self.bind_address = bind_address
        self.bind_port = bind_port
        self.allow_broadcast = allow_broadcast
        self.queue = asyncio.Queue(max_queue_size)

    def __str__(self) -> str:
        if self.family == socket.AF_INET6:
            return f"UdpEndpoint([{self.bind_address}]:{self.bind_port})"
        return f"UdpEndpoint({self.bind_address}:{self.bind_port})"

    def __repr__(self) -> str:
        return str(self)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def started(self) -> bool:
        return not self.transport is None

    @property
    def local_port(self) -> int:
        """The local port actually bound. Only valid once started."""
        self._check_open()
        if self.transport is None:
            raise RuntimeError(f"{self} has not been started")
        return self.transport.get_extra_info('sockname')[1]

    def _check_open(self) -> None:
        if self._closed:
            raise ResourceDisposedError(f"{self} has been closed")

    async def start(self) -> None:
        """Creates and binds the socket. Does nothing if already started."""
        self._check_open()
        if not self.transport is None:
            return
        loop = asyncio.get_running_loop()
        sock = socket.socket(self.family, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if self.family == socket.AF_INET6:
                # accept and send IPv4 traffic as IPv4-mapped addresses
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
            if self.allow_broadcast:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind((self.bind_address, self.bind_port))
            untyped_transport, _ = await loop.create_datagram_endpoint(
                lambda: _UdpEndpointProtocol(self),
                sock=sock
              )
        except BaseException:
            sock.close()
            raise
        # asyncio datagram transports do not inherit from asyncio.DatagramTransport
        self.transport = untyped_transport # type: ignore[assignment]
        logger.debug(f"Created datagram endpoint for {self} on port {self.local_port}")

    def datagram_received(self, data: bytes, addr: Tuple[Any, ...]) -> None:
        if self._closed:
            return
        logger.debug(f"Received {len(data)} bytes on {self} from {addr}")
        try:
            self.queue.put_nowait((data, addr))
        except asyncio.QueueFull:
            logger.warning(f"Queue full, dropping datagram from {addr} on {self}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.transport = None
        self._wake_waiters()

    def _wake_waiters(self) -> None:
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            # queue is full so waiters will wake up soon
            pass

    def sendto(self, data: Union[bytes, bytearray], addr: HostAndPort) -> None:
        self._check_open()
        if self.transport is None:
            raise RuntimeError(f"{self} has not been started")
        addr = self.map_address(addr)
        logger.debug(f"Sending {len(data)} bytes via {self} to {addr}")
        self.transport.sendto(bytes(data), addr)

    def map_address(self, addr: HostAndPort) -> HostAndPort:
        """On a dual-stack endpoint, rewrites an IPv4 destination as its IPv4-mapped IPv6 form,
           e.g. 255.255.255.255 becomes ::ffff:255.255.255.255. Other addresses are returned unchanged."""
        if self.family != socket.AF_INET6:
            return addr
        host, port = addr[0], addr[1]
        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            return addr
        if isinstance(ip, ipaddress.IPv4Address):
            return (f"::ffff:{ip}", port)
        return addr

    def receive_nowait(self) -> Optional[ReceivedDatagram]:
        """Returns the next queued datagram, or None if there is none."""
        self._check_open()
        try:
            result = self.queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        self.queue.task_done()
        return result

    async def receive(self, timeout: Optional[float]=None) -> Optional[ReceivedDatagram]:
        """Waits up to timeout seconds for the next datagram. Returns None on timeout
           or if the endpoint is closed while waiting."""
        self._check_open()
        try:
            result = await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        self.queue.task_done()
        return result

    def drain(self) -> int:
        """Discards any queued datagrams. Returns the number discarded."""
        n = 0
        while not self.receive_nowait() is None:
            n += 1
        if n > 0:
            logger.debug(f"Discarded {n} stale datagram(s) on {self}")
        return n

    async def send_and_receive(
            self,
            data: Union[bytes, bytearray],
            addr: HostAndPort,
            timeout: Optional[float]
          ) -> Optional[ReceivedDatagram]:
        """Sends one datagram and waits up to timeout seconds for one reply.

        Returns the (data, source_address) of the reply, or None if no reply arrived in time.
        """
        await self.start()
        self.drain()
        self.sendto(data, addr)
        result = await self.receive(timeout)
        if result is None:
            logger.debug(f"No reply to {addr} on {self} within {timeout} seconds")
        return result

    def close(self) -> None:
        """Closes the socket. Any later operation raises ResourceDisposedError."""
        if self._closed:
            return
        self._closed = True
        transport = self.transport
        self.transport = None
        if not transport is None:
            try:
                transport.close()
            except Exception as e:
                logger.error(f"Error closing transport on {self}: {e}")
        self._wake_waiters()

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False

async def send_once(data: Union[bytes, bytearray], addr: HostAndPort, bind_address: str="0.0.0.0") -> None:
    """Sends a single datagram (broadcast permitted) from a temporary endpoint."""
    async with UdpEndpoint(bind_address=bind_address, allow_broadcast=True) as endpoint:
        endpoint.sendto(data, addr)
