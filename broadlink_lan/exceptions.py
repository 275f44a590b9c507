#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from typing import Optional

class BroadlinkError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class ConfigurationError(BroadlinkError, ValueError):
  """An unsupported argument was supplied, such as an IPv6 local address.
     Raised before any network activity takes place."""
  pass

class ResourceDisposedError(BroadlinkError):
  """An operation was attempted on a device or endpoint that has been closed."""
  pass

class ProtocolMismatchError(BroadlinkError):
  """A received packet is too short or not aligned to the AES block size."""
  pass

class UnsupportedAddressFamilyError(BroadlinkError):
  """A datagram arrived from an address that is neither IPv4 nor IPv6."""
  pass

class DeviceError(BroadlinkError):
  """A device answered a command with a non-zero status word."""
  error_code: int

  def __init__(self, error_code: int, msg: Optional[str]=None):
    if msg is None:
      msg = f"Device returned error code 0x{error_code:04x}"
    super().__init__(msg)
    self.error_code = error_code
