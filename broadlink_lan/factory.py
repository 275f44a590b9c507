#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Construction of Device sessions from a device-type code, endpoint and MAC address."""

from __future__ import annotations

from .internal_types import *
from .pkg_logging import logger
from .constants import DEFAULT_TIMEOUT
from .device import Device
from .device_types import DeviceType, get_device_type

DeviceFactory = Callable[[int, HostAndPort, bytes], Device]
"""A callable (devtype, host, mac) -> Device, invoked by discovery for every device found."""

def gen_device(devtype: int, host: HostAndPort, mac: bytes, timeout: float=DEFAULT_TIMEOUT) -> Device:
    """Creates a Device tagged with the category and model that its device-type code maps to."""
    device_type, model = get_device_type(devtype)
    if device_type == DeviceType.UNKNOWN:
        logger.info(f"Unrecognized device type 0x{devtype:04x} at {host[0]}:{host[1]}")
    return Device(host, mac, devtype, timeout=timeout, device_type=device_type, model=model)

def create(devtype: int, mac: bytes, host: HostAndPort) -> Device:
    """Creates a Device for a known device without discovering it first."""
    return gen_device(devtype, host, mac)
