"""
Tier 5 — HYBRID: key exchange + RSA token + AES-256-CBC (Envelope Encryption)
===============================================================================
Turns a plaintext into a self-contained package only the keypair owner
can open.

Encrypt (recipient public key):
    1. (shared, ephemeral) = KeyExchange.encapsulate(recipient.exchangeKey)
    2. kek          = SHA256(shared)
    3. content_key  = random 32 bytes, salt = random 32, iv = random 16
    4. derived_key  = PBKDF2-HMAC-SHA256(content_key, salt, 100 000, 32)
    5. ciphertext   = AES-256-CBC(plaintext, derived_key, iv)
    6. wrapped_key  = AES-256-CBC(content_key, kek, wrap_iv)
    7. rsa_token    = recipient.rsa.wrap_secret(shared)      (Tier 3)

Decrypt (recipient private key):
    1. shared_a = own.rsa.unwrap_secret(rsa_token)
    2. shared_b = KeyExchange.decapsulate(own key, ephemeral)
    3. shared_a != shared_b              -> TamperError
    4. content_key = AES-256-CBC-decrypt(wrapped_key, SHA256(shared_b), wrap_iv)
    5. plaintext   = AES-256-CBC-decrypt(ciphertext, PBKDF2(content_key, salt), iv)
    6. any other cryptographic failure   -> DecryptionError

The dual shared-secret comparison is the only integrity check. It runs
before PBKDF2 so a forged package is rejected cheaply. It does NOT
authenticate the ciphertext itself: CBC has no tag, and a flipped byte in
an interior block decrypts to garbage instead of failing. Capsule payloads
are JSON, so such damage usually surfaces as a parse failure one level up.

Dependencies: cryptography >= 41.0
"""

import base64
import binascii
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from ..errors import DecryptionError, TamperError
from .tier2_aes_cbc import PBKDF2_ITERATIONS, AESCBCCipher, derive_key
from .tier4_keys import algorithm_id, decode_private_key, decode_public_key

logger = logging.getLogger(__name__)

_BYTE_FIELDS = {
    "ciphertext":           "ciphertext",
    "iv":                   "iv",
    "salt":                 "salt",
    "wrapped_content_key":  "wrappedContentKey",
    "wrap_iv":              "wrapIv",
    "ephemeral_public_key": "ephemeralPublicKey",
    "rsa_wrapped_secret":   "rsaWrappedSecret",
}


@dataclass(frozen=True)
class EncryptedPackage:
    """Everything needed to decrypt, apart from the private key."""

    ciphertext:           bytes = field(repr=False)
    iv:                   bytes
    salt:                 bytes
    wrapped_content_key:  bytes = field(repr=False)
    wrap_iv:              bytes
    ephemeral_public_key: bytes = field(repr=False)
    rsa_wrapped_secret:   bytes = field(repr=False)
    algorithm_id:         str
    created_at:           datetime
    plaintext_size:       int

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form: camelCase keys, base64 byte fields, ISO-8601 time."""
        out = {key: base64.b64encode(getattr(self, attr)).decode("ascii")
               for attr, key in _BYTE_FIELDS.items()}
        out["algorithmId"]   = self.algorithm_id
        out["createdAt"]     = self.created_at.isoformat()
        out["plaintextSize"] = self.plaintext_size
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedPackage":
        """Inverse of to_dict. Raises ValueError on missing or malformed fields."""
        if not isinstance(data, dict):
            raise ValueError("Encrypted package must be a JSON object.")
        try:
            values = {attr: base64.b64decode(data[key], validate=True)
                      for attr, key in _BYTE_FIELDS.items()}
            created_at = datetime.fromisoformat(data["createdAt"])
            return cls(
                algorithm_id=str(data["algorithmId"]),
                created_at=created_at,
                plaintext_size=int(data["plaintextSize"]),
                **values,
            )
        except KeyError as exc:
            raise ValueError(f"Encrypted package is missing {exc.args[0]!r}") from exc
        except (binascii.Error, TypeError) as exc:
            raise ValueError(f"Encrypted package is malformed: {exc}") from exc


class HybridCipher:
    """Dual-secret hybrid envelope encryption for capsule payloads."""

    def __init__(self, iterations: int = PBKDF2_ITERATIONS):
        self.iterations = iterations

    @staticmethod
    def _kek(shared_secret: bytes) -> bytes:
        return hashlib.sha256(shared_secret).digest()

    def encrypt(self, plaintext: bytes, public_key: str) -> EncryptedPackage:
        """
        Encrypt plaintext for the holder of the matching private key.
        Raises ValueError if public_key is malformed.
        """
        recipient = decode_public_key(public_key)

        shared, ephemeral = recipient.exchange.encapsulate(recipient.exchange_key)
        kek = self._kek(shared)

        content_key = AESCBCCipher.generate_key()
        salt        = AESCBCCipher.generate_salt()
        derived_key = derive_key(content_key, salt, self.iterations)

        iv, ciphertext = AESCBCCipher(derived_key).encrypt(plaintext)
        wrap_iv, wrapped_key = AESCBCCipher(kek).encrypt(content_key)

        rsa_token = recipient.rsa.wrap_secret(shared)

        package = EncryptedPackage(
            ciphertext=ciphertext,
            iv=iv,
            salt=salt,
            wrapped_content_key=wrapped_key,
            wrap_iv=wrap_iv,
            ephemeral_public_key=ephemeral,
            rsa_wrapped_secret=rsa_token,
            algorithm_id=algorithm_id(recipient.exchange.name),
            created_at=datetime.now(timezone.utc),
            plaintext_size=len(plaintext),
        )
        logger.debug(f"Encrypted {len(plaintext)}B -> {len(ciphertext)}B ({package.algorithm_id})")
        return package

    def decrypt(self, package: EncryptedPackage, private_key: str) -> bytes:
        """
        Decrypt a package produced by encrypt().
        Raises TamperError when the shared secrets disagree and
        DecryptionError for every other cryptographic failure.
        """
        try:
            own = decode_private_key(private_key)
        except (ValueError, TypeError) as exc:
            raise DecryptionError(f"Private key is malformed: {exc}") from exc

        try:
            secret_a = own.rsa.unwrap_secret(package.rsa_wrapped_secret)
        except (ValueError, TypeError) as exc:
            raise DecryptionError(f"RSA verification token could not be opened: {exc}") from exc

        try:
            secret_b = own.exchange.decapsulate(own.exchange_key,
                                                package.ephemeral_public_key)
        except (ValueError, TypeError) as exc:
            raise DecryptionError(f"Key exchange failed: {exc}") from exc

        if not hmac.compare_digest(secret_a, secret_b):
            logger.warning("Shared-secret mismatch: package forged or corrupted")
            raise TamperError("Key verification failed - potential tampering detected")

        try:
            content_key = AESCBCCipher(self._kek(secret_b)).decrypt(
                package.wrapped_content_key, package.wrap_iv)
            if len(content_key) != AESCBCCipher.KEY_SIZE:
                raise ValueError(f"Unwrapped content key is {len(content_key)} bytes.")
            derived_key = derive_key(content_key, package.salt, self.iterations)
            plaintext = AESCBCCipher(derived_key).decrypt(package.ciphertext, package.iv)
        except (ValueError, TypeError) as exc:
            raise DecryptionError(f"Decryption failed: {exc}") from exc

        logger.debug(f"Decrypted {len(plaintext)}B ({package.algorithm_id})")
        return plaintext

    def validate_key_pair(self, public_key: str, private_key: str) -> bool:
        """True if private_key opens what public_key seals."""
        sample = b"key_pair_check_" + datetime.now(timezone.utc).isoformat().encode()
        try:
            return self.decrypt(self.encrypt(sample, public_key), private_key) == sample
        except (ValueError, TypeError, DecryptionError, TamperError) as exc:
            logger.info(f"Key pair validation failed: {exc}")
            return False
