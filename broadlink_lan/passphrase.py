# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Storage of Wi-Fi passphrases in the OS keyring, so they need not be passed on the command line."""

from typing import Optional

import keyring

DEFAULT_KEYRING_SERVICE = "broadlink-lan"

class KeyringPassphrase:
  _keyring_service: str
  _keyring_key: str
  _default_passphrase: Optional[str] = None

  def __init__(self, key: str, service: Optional[str]=None, default_passphrase: Optional[str]=None):
    self._keyring_key = key
    self._keyring_service = DEFAULT_KEYRING_SERVICE if service is None else service
    self._default_passphrase = default_passphrase

  def get_passphrase(self) -> str:
    result = keyring.get_password(self._keyring_service, self._keyring_key)
    if result is None:
      if self._default_passphrase is None:
        raise KeyError(f"KeyringPassphrase: service '{self._keyring_service}', key name '{self._keyring_key}' does not exist")
      result = self._default_passphrase
    return result

  def set_passphrase(self, s: str) -> None:
    keyring.set_password(self._keyring_service, self._keyring_key, s)

  def delete_passphrase(self) -> None:
    keyring.delete_password(self._keyring_service, self._keyring_key)

  def passphrase_exists(self) -> bool:
    try:
      self.get_passphrase()
    except KeyError:
      return False

    return True
