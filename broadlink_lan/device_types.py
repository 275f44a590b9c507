#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Device categories and the table mapping 16-bit device-type codes to them."""

from __future__ import annotations

from enum import Enum

from .internal_types import *

class DeviceType(Enum):
    """The capability set of a device, selected by its device-type code."""
    UNKNOWN = "unknown"
    SP1 = "sp1"
    SP2 = "sp2"
    RM = "rm"
    A1 = "a1"
    MP1 = "mp1"
    HYSEN = "hysen"
    DOOYA = "dooya"

DEVICE_TYPE_CODES: Dict[int, Tuple[DeviceType, str]] = {
    0x0000: (DeviceType.SP1, "SP1"),
    0x2711: (DeviceType.SP2, "SP2"),
    0x2719: (DeviceType.SP2, "Honeywell SP2"),
    0x7919: (DeviceType.SP2, "Honeywell SP2"),
    0x271a: (DeviceType.SP2, "Honeywell SP2"),
    0x791a: (DeviceType.SP2, "Honeywell SP2"),
    0x2720: (DeviceType.SP2, "SPMini"),
    0x753e: (DeviceType.SP2, "SP3"),
    0x7d00: (DeviceType.SP2, "OEM branded SP3"),
    0x947a: (DeviceType.SP2, "SP3S"),
    0x9479: (DeviceType.SP2, "SP3S"),
    0x2728: (DeviceType.SP2, "SPMini2"),
    0x2733: (DeviceType.SP2, "OEM branded SPMini"),
    0x273e: (DeviceType.SP2, "OEM branded SPMini"),
    0x7530: (DeviceType.SP2, "OEM branded SPMini2"),
    0x7918: (DeviceType.SP2, "OEM branded SPMini2"),
    0x2736: (DeviceType.SP2, "SPMiniPlus"),
    0x2712: (DeviceType.RM, "RM2"),
    0x2737: (DeviceType.RM, "RM Mini"),
    0x273d: (DeviceType.RM, "RM Pro Phicomm"),
    0x2783: (DeviceType.RM, "RM2 Home Plus"),
    0x277c: (DeviceType.RM, "RM2 Home Plus GDT"),
    0x272a: (DeviceType.RM, "RM2 Pro Plus"),
    0x2787: (DeviceType.RM, "RM2 Pro Plus2"),
    0x279d: (DeviceType.RM, "RM2 Pro Plus3"),
    0x27a9: (DeviceType.RM, "RM2 Pro Plus_300"),
    0x278b: (DeviceType.RM, "RM2 Pro Plus BL"),
    0x2797: (DeviceType.RM, "RM2 Pro Plus HYC"),
    0x27a1: (DeviceType.RM, "RM2 Pro Plus R1"),
    0x27a6: (DeviceType.RM, "RM2 Pro PP"),
    0x278f: (DeviceType.RM, "RM Mini Shate"),
    0x2714: (DeviceType.A1, "A1"),
    0x4eb5: (DeviceType.MP1, "MP1"),
    0x4ef7: (DeviceType.MP1, "Honyar oem mp1"),
    0x4ead: (DeviceType.HYSEN, "Hysen controller"),
    0x4e4d: (DeviceType.DOOYA, "Dooya DT360E"),
}
"""Known device-type codes, as reported at offset 0x34 of a discovery reply."""

def get_device_type(devtype: int) -> Tuple[DeviceType, str]:
    """Returns the (category, model name) for a device-type code. Unknown codes map to (UNKNOWN, "Unknown")."""
    return DEVICE_TYPE_CODES.get(devtype, (DeviceType.UNKNOWN, "Unknown"))
