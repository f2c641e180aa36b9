"""
Tier 3 — ASYMMETRIC: RSA-2048 verification token
==================================================
Carries a second, independent copy of the key-exchange shared secret.

    wrap_secret(shared)   -> RSA-OAEP( base64(shared) )
    unwrap_secret(token)  -> base64decode( RSA-OAEP-decrypt(token) )

On decryption the hybrid cipher compares the unwrapped secret with the one
re-derived through the key exchange; a mismatch means the package was
forged or corrupted. RSA is a verification token here, not the primary
key transport, so nothing but shared secrets ever goes through it.

Padding: OAEP with MGF1-SHA256 and SHA-256. A 2048-bit key carries at most
190 bytes; the base64 of a 32-byte secret is 44.

Like X25519, RSA is broken by a large quantum computer.

Dependencies: cryptography >= 41.0
"""

import base64
import binascii

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


class RSACipher:
    """One capsule's RSA half: wraps shared secrets, or unwraps them."""

    KEY_SIZE        = 2048
    PUBLIC_EXPONENT = 65537

    def __init__(self, public_key: rsa.RSAPublicKey,
                 private_key: rsa.RSAPrivateKey = None):
        self._public_key  = public_key
        self._private_key = private_key

    @classmethod
    def generate_keypair(cls) -> "RSACipher":
        private_key = rsa.generate_private_key(
            public_exponent=cls.PUBLIC_EXPONENT,
            key_size=cls.KEY_SIZE,
        )
        return cls(private_key.public_key(), private_key)

    @classmethod
    def from_public_pem(cls, pem: bytes) -> "RSACipher":
        """SubjectPublicKeyInfo PEM. Raises ValueError unless it is an RSA key."""
        key = serialization.load_pem_public_key(pem)
        if not isinstance(key, rsa.RSAPublicKey):
            raise ValueError("Public PEM is not an RSA key.")
        return cls(key)

    @classmethod
    def from_private_pem(cls, pem: bytes) -> "RSACipher":
        """Unencrypted PKCS8 PEM. Raises ValueError unless it is an RSA key."""
        key = serialization.load_pem_private_key(pem, password=None)
        if not isinstance(key, rsa.RSAPrivateKey):
            raise ValueError("Private PEM is not an RSA key.")
        return cls(key.public_key(), key)

    @property
    def has_private_key(self) -> bool:
        return self._private_key is not None

    def public_pem(self) -> bytes:
        return self._public_key.public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def private_pem(self) -> bytes:
        if self._private_key is None:
            raise ValueError("No private key loaded.")
        return self._private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    def wrap_secret(self, shared: bytes) -> bytes:
        """Encrypt base64(shared) to this key."""
        return self._public_key.encrypt(base64.b64encode(shared), _OAEP)

    def unwrap_secret(self, token: bytes) -> bytes:
        """
        Inverse of wrap_secret.
        Raises ValueError when there is no private key, the OAEP check fails
        or the payload is not strict base64.
        """
        if self._private_key is None:
            raise ValueError("No private key loaded.")
        encoded = self._private_key.decrypt(token, _OAEP)
        try:
            return base64.b64decode(encoded, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"Verification token is not base64: {exc}") from exc
