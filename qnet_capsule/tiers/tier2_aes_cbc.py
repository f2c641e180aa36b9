"""
Tier 2 — SYMMETRIC: AES-256-CBC + PBKDF2-HMAC-SHA256
======================================================
Bulk encryption for capsule contents and for wrapping the content key.

AES-256 in Cipher Block Chaining mode with PKCS#7 padding. CBC gives
confidentiality only: there is no authentication tag, so a modified
ciphertext is only noticed when the padding or a later parsing step breaks.

Key size:  256 bits (32 bytes)
IV:        128 bits (16 bytes) — random per message, stored beside the data
Salt:      256 bits (32 bytes) — random per package, for PBKDF2
PBKDF2:    100 000 iterations of HMAC-SHA256, 32-byte output

Dependencies: cryptography >= 41.0
"""

import os
from typing import Tuple

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

PBKDF2_ITERATIONS = 100_000


def derive_key(secret: bytes, salt: bytes,
               iterations: int = PBKDF2_ITERATIONS, length: int = 32) -> bytes:
    """PBKDF2-HMAC-SHA256(secret, salt) -> length bytes."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(secret)


class AESCBCCipher:
    """AES-256-CBC with PKCS#7 padding."""

    KEY_SIZE   = 32   # 256-bit key
    IV_SIZE    = 16   # one AES block
    SALT_SIZE  = 32
    BLOCK_BITS = 128

    def __init__(self, key: bytes):
        if len(key) != self.KEY_SIZE:
            raise ValueError(f"AES-256 key must be {self.KEY_SIZE} bytes.")
        self._key = key

    @staticmethod
    def generate_key() -> bytes:
        return os.urandom(AESCBCCipher.KEY_SIZE)

    @staticmethod
    def generate_salt() -> bytes:
        return os.urandom(AESCBCCipher.SALT_SIZE)

    def encrypt(self, plaintext: bytes) -> Tuple[bytes, bytes]:
        """
        Pad and encrypt under a fresh random IV.
        Returns: (iv, ciphertext)
        """
        iv      = os.urandom(self.IV_SIZE)
        padder  = padding.PKCS7(self.BLOCK_BITS).padder()
        padded  = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        return iv, encryptor.update(padded) + encryptor.finalize()

    def decrypt(self, ciphertext: bytes, iv: bytes) -> bytes:
        """
        Decrypt and strip padding.
        Raises ValueError on a bad IV, a partial block or invalid padding.
        """
        if len(iv) != self.IV_SIZE:
            raise ValueError(f"IV must be {self.IV_SIZE} bytes.")
        if not ciphertext or len(ciphertext) % self.IV_SIZE:
            raise ValueError("Ciphertext is not a whole number of blocks.")
        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded    = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder  = padding.PKCS7(self.BLOCK_BITS).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
