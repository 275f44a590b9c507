#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Wi-Fi provisioning of unconfigured devices.

A device in access-point mode accepts a single broadcast carrying the SSID, password and
security mode of the network it should join. Nothing is sent back.
"""

from __future__ import annotations

from enum import IntEnum

from .internal_types import *
from .pkg_logging import logger
from .constants import BROADCAST_ADDRESS, DISCOVERY_PORT
from .packet import build_setup_packet
from .udp_socket import send_once

class WifiSecurityMode(IntEnum):
    NONE = 0
    WEP = 1
    WPA1 = 2
    WPA2 = 3
    WPA12 = 4

async def setup(
        ssid: Union[str, bytes],
        password: Union[str, bytes],
        security_mode: WifiSecurityMode,
        broadcast_address: str=BROADCAST_ADDRESS,
        port: int=DISCOVERY_PORT
      ) -> bool:
    """Broadcasts Wi-Fi credentials to devices awaiting setup. Returns True once the datagram is sent.

    Raises ConfigurationError if the SSID or password is longer than 32 bytes.
    """
    packet = build_setup_packet(ssid, password, int(security_mode))
    logger.debug(f"Broadcasting Wi-Fi setup for SSID {ssid!r} ({WifiSecurityMode(security_mode).name}) to {broadcast_address}:{port}")
    await send_once(packet, (broadcast_address, port))
    return True
