#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
AES-CBC encryption of command payloads.

No padding scheme is applied by the cipher; callers pad explicitly (see packet.pad_payload)
and must interpret any trailing zero bytes of decrypted data according to the layout of
the particular response.
"""

from __future__ import annotations

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .internal_types import *
from .pkg_logging import logger
from .constants import AES_BLOCK_SIZE
from .util import hexdump

def _cipher(key: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(bytes(key)), modes.CBC(bytes(iv)))

def encrypt(key: bytes, iv: bytes, plaintext: Union[bytes, bytearray]) -> bytes:
    """Encrypts a block-aligned plaintext. Returns ciphertext of the same length.

    Raises ValueError if len(plaintext) is not a multiple of 16.
    """
    if len(plaintext) % AES_BLOCK_SIZE != 0:
        raise ValueError(f"Plaintext length {len(plaintext)} is not a multiple of {AES_BLOCK_SIZE}")
    encryptor = _cipher(key, iv).encryptor()
    result = encryptor.update(bytes(plaintext)) + encryptor.finalize()
    logger.debug(f"Encrypt before: {hexdump(plaintext)}")
    logger.debug(f"Encrypt after : {hexdump(result)}")
    return result

def decrypt(
        key: bytes,
        iv: bytes,
        ciphertext: Union[bytes, bytearray],
        offset: int=0,
        count: Optional[int]=None
      ) -> bytes:
    """Decrypts count bytes of ciphertext starting at offset. If count is None, everything
    from offset to the end is decrypted.

    Raises ValueError if the selected range is not a multiple of 16 bytes long.
    """
    if count is None:
        count = len(ciphertext) - offset
    if offset < 0 or count < 0 or offset + count > len(ciphertext):
        raise ValueError(f"Range [{offset}:{offset + count}] is outside of a {len(ciphertext)}-byte buffer")
    if count % AES_BLOCK_SIZE != 0:
        raise ValueError(f"Ciphertext length {count} is not a multiple of {AES_BLOCK_SIZE}")
    decryptor = _cipher(key, iv).decryptor()
    return decryptor.update(bytes(ciphertext[offset:offset + count])) + decryptor.finalize()
