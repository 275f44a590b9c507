#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DiscoveryScanner -- Finds devices on the local network segment:

  1. Broadcasts a single discovery request to 255.255.255.255:80, from a dual-stack socket where the
     host supports IPv6 so that replies may also arrive from IPv4-mapped addresses
  2. Polls for replies every 100 ms, stopping after the first device is found or 10 seconds have
     passed, or, if a cancellation event is supplied, only when that event is set
  3. Works out the address each device reports for itself and builds a Device for it through a factory
"""

from __future__ import annotations


import asyncio
import datetime
import ipaddress
import socket
import time

from .internal_types import *
from .pkg_logging import logger
from .exceptions import ConfigurationError, ProtocolMismatchError, UnsupportedAddressFamilyError
from .constants import (
    BROADCAST_ADDRESS,
    DISCOVERY_MAX_WAIT,
    DISCOVERY_POLL_INTERVAL,
    DISCOVERY_PORT,
  )
from .device import Device
from .factory import DeviceFactory, gen_device
from .packet import DiscoveryReply, build_discovery_request
from .udp_socket import UdpEndpoint
from .util import get_local_primary_address

def get_timezone_offset() -> int:
    """Whole hours the local standard time is behind UTC, as devices expect it in the request."""
    return int(time.timezone / 3600)

def parse_local_ip_address(local_ip_address: Optional[str]) -> ipaddress.IPv4Address:
    """Validates the local address to advertise in the request. None means 0.0.0.0.

    Raises ConfigurationError for IPv6 or unparseable addresses.
    """
    if local_ip_address is None:
        return ipaddress.IPv4Address('0.0.0.0')
    try:
        addr = ipaddress.ip_address(local_ip_address)
    except ValueError as e:
        raise ConfigurationError(f"Invalid local IP address '{local_ip_address}'") from e
    if not isinstance(addr, ipaddress.IPv4Address):
        raise ConfigurationError(f"IPv6 local address '{local_ip_address}' is not supported")
    return addr

def resolve_device_address(source_host: str, embedded: bytes, local_primary_address: bytes) -> str:
    """Returns the IPv4 address of a device that answered a discovery request.

    Replies received over IPv4 use the source address directly. Replies received over IPv6
    use the 4 address bytes embedded in the reply, whose byte order depends on the device:
        1. If they equal the (IPv4-mapped) source address, they are used as received.
        2. If they equal the source address reversed, they are reversed.
        3. If their last two bytes, reversed, equal the first two octets of the local primary
           IPv4 address, they are reversed. This is a best-effort guess for devices that
           always send their address little-endian; it only works when the device shares
           the host's /16.
        4. Otherwise they are used as received.

    Raises UnsupportedAddressFamilyError if source_host is neither IPv4 nor IPv6.
    """
    try:
        addr = ipaddress.ip_address(source_host.split('%', 1)[0])
    except ValueError as e:
        raise UnsupportedAddressFamilyError(f"Unexpected address: {source_host!r}") from e

    if isinstance(addr, ipaddress.IPv4Address):
        return str(addr)

    address = bytes(embedded)
    sock_addr = addr.packed
    if not addr.ipv4_mapped is None:
        sock_addr = addr.ipv4_mapped.packed
    reverse_addr = sock_addr[::-1]

    if sock_addr == address:
        pass
    elif reverse_addr == address:
        address = address[::-1]
    elif address[3] == local_primary_address[0] and address[2] == local_primary_address[1]:
        address = address[::-1]
    return str(ipaddress.IPv4Address(address))

class DiscoveryScanner:
    """
    Broadcasts a discovery request and collects the devices that answer.

    Usage:
        scanner = DiscoveryScanner(local_ip_address='192.168.1.10')
        devices = await scanner.scan()
    """

    local_ip_address: ipaddress.IPv4Address
    """The local address written into the request. Devices do not rely on it being correct."""

    factory: DeviceFactory
    """Builds a Device from (devtype, host, mac) for each reply."""

    broadcast_address: str = BROADCAST_ADDRESS
    port: int = DISCOVERY_PORT

    max_wait_time: float = DISCOVERY_MAX_WAIT
    """Without a cancellation event, the scan ends after this many seconds even if nothing answered."""

    poll_interval: float = DISCOVERY_POLL_INTERVAL

    dual_stack: bool
    """If True, the request is sent from a dual-stack IPv6 socket, so replies may arrive from IPv4-mapped
       addresses and are resolved with the IPv6 address rules."""

    _local_primary_address: Optional[bytes] = None

    def __init__(
            self,
            local_ip_address: Optional[str]=None,
            factory: DeviceFactory=gen_device,
            broadcast_address: str=BROADCAST_ADDRESS,
            port: int=DISCOVERY_PORT,
            max_wait_time: float=DISCOVERY_MAX_WAIT,
            poll_interval: float=DISCOVERY_POLL_INTERVAL,
            local_primary_address: Optional[bytes]=None,
            dual_stack: Optional[bool]=None,
          ) -> None:
        self.local_ip_address = parse_local_ip_address(local_ip_address)
        self.factory = factory
        self.broadcast_address = broadcast_address
        self.port = port
        self.max_wait_time = max_wait_time
        self.poll_interval = poll_interval
        self._local_primary_address = local_primary_address
        self.dual_stack = socket.has_ipv6 if dual_stack is None else dual_stack

    @property
    def local_primary_address(self) -> bytes:
        """The packed preferred local IPv4 address used by the byte-order heuristic."""
        if self._local_primary_address is None:
            self._local_primary_address = get_local_primary_address()
        return self._local_primary_address

    def create_endpoint(self) -> UdpEndpoint:
        if self.dual_stack:
            return UdpEndpoint(family=socket.AF_INET6, allow_broadcast=True)
        return UdpEndpoint(family=socket.AF_INET, allow_broadcast=True)

    def build_request(self, local_port: int) -> bytes:
        return build_discovery_request(self.local_ip_address.packed, local_port, datetime.datetime.now(), get_timezone_offset())

    def handle_reply(self, data: bytes, addr: Tuple[Any, ...]) -> Optional[Device]:
        """Builds a Device from one discovery reply. Returns None if the reply is dropped."""
        try:
            reply = DiscoveryReply(data)
            ip = resolve_device_address(str(addr[0]), reply.embedded_address, self.local_primary_address)
        except ProtocolMismatchError as e:
            logger.info(f"Dropping discovery reply from {addr}: {e}")
            return None
        except UnsupportedAddressFamilyError as e:
            logger.warning(f"Dropping discovery reply from {addr}: {e}")
            return None
        logger.debug(f"Discovered {reply} at {ip}")
        return self.factory(reply.devtype, (ip, DISCOVERY_PORT), reply.mac)

    def _collect(self, endpoint: UdpEndpoint, devices: List[Device]) -> None:
        while True:
            received = endpoint.receive_nowait()
            if received is None:
                break
            data, addr = received
            device = self.handle_reply(data, addr)
            if not device is None:
                devices.append(device)

    async def scan(
            self,
            devices: Optional[List[Device]]=None,
            cancel: Optional[asyncio.Event]=None
          ) -> List[Device]:
        """Broadcasts the request and collects replies.

        Parameters:
            devices: A list to append discovered devices to, in arrival order. A new list is
                     created if None.
            cancel:  If provided, the scan continues until this event is set. If None, the scan
                     ends as soon as a device has been found, or after max_wait_time seconds.

        Returns the list of devices. Finding no devices is not an error.
        """
        if devices is None:
            devices = []
        endpoint = self.create_endpoint()
        try:
            try:
                await endpoint.start()
            except OSError as e:
                if not self.dual_stack:
                    raise
                logger.info(f"Dual-stack socket unavailable ({e}); discovering over IPv4 only")
                endpoint.close()
                endpoint = UdpEndpoint(family=socket.AF_INET, allow_broadcast=True)
                await endpoint.start()
            request = self.build_request(endpoint.local_port)
            start_time = time.monotonic()
            endpoint.sendto(request, (self.broadcast_address, self.port))
            while True:
                self._collect(endpoint, devices)
                if cancel is None:
                    if len(devices) > 0 or time.monotonic() - start_time > self.max_wait_time:
                        break
                elif cancel.is_set():
                    break
                await asyncio.sleep(self.poll_interval)
            self._collect(endpoint, devices)
        finally:
            endpoint.close()
        logger.debug(f"Discovery finished with {len(devices)} device(s)")
        return devices

async def discover(
        timeout: Optional[float]=None,
        local_ip_address: Optional[str]=None,
        cancel: Optional[asyncio.Event]=None,
        factory: DeviceFactory=gen_device,
      ) -> List[Device]:
    """Finds devices on the local network.

    Parameters:
        timeout:          If positive, the scan runs for this many seconds and collects every reply.
                          If None or 0 (the default), the scan ends after the first device is found, or after
                          10 seconds.
        local_ip_address: The local IPv4 address to advertise in the request. IPv6 is rejected with
                          ConfigurationError.
        cancel:           An event that ends the scan when set. Combined with timeout, whichever
                          comes first ends the scan.
        factory:          Builds a Device from (devtype, host, mac).
    """
    scanner = DiscoveryScanner(local_ip_address=local_ip_address, factory=factory)
    if timeout is None or timeout <= 0:
        return await scanner.scan(cancel=cancel)

    timed_cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    handle = loop.call_later(timeout, timed_cancel.set)
    watcher: Optional[asyncio.Task[None]] = None
    if not cancel is None:
        watcher = asyncio.create_task(_forward_event(cancel, timed_cancel))
    try:
        return await scanner.scan(cancel=timed_cancel)
    finally:
        handle.cancel()
        if not watcher is None:
            watcher.cancel()
            try:
                await watcher
            except asyncio.CancelledError:
                pass

async def _forward_event(source: asyncio.Event, target: asyncio.Event) -> None:
    await source.wait()
    target.set()
