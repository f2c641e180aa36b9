"""
Tier 1 — KEY EXCHANGE: X25519 ECDH / ML-KEM-768
=================================================
The primitive that gives sender and recipient the same shared secret.

Every exchange is expressed in KEM shape so the hybrid cipher above it
never needs to know which one it is talking to:

    generate()                        -> (public, private)
    encapsulate(public)               -> (shared_secret, encapsulation)
    decapsulate(private, encapsulation) -> shared_secret

X25519 (default):
    encapsulate() creates an ephemeral X25519 keypair, runs ECDH against
    the recipient's public key and returns the ephemeral public key as the
    encapsulation. The key is discarded afterwards.

    X25519 falls to Shor's algorithm. So does the RSA layer in Tier 3.
    Nothing in the default stack is quantum resistant.

ML-KEM-768 (NIST FIPS 203):
    A genuine lattice KEM, via kyber-py. Select it with
    KeyPairGenerator(MLKEMKeyExchange()); the rest of the protocol is
    unchanged. The encapsulation is the KEM ciphertext.

Dependencies: cryptography >= 41.0, kyber-py (ML-KEM only)
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Tuple, Type

from cryptography.hazmat.primitives.asymmetric import x25519

logger = logging.getLogger(__name__)


class KeyExchange(ABC):
    """Shared-secret agreement in KEM form."""

    name = "abstract"

    @abstractmethod
    def generate(self) -> Tuple[bytes, bytes]:
        """Return a fresh (public, private) pair of raw key bytes."""

    @abstractmethod
    def encapsulate(self, public: bytes) -> Tuple[bytes, bytes]:
        """Return (shared_secret, encapsulation) for the holder of public."""

    @abstractmethod
    def decapsulate(self, private: bytes, encapsulation: bytes) -> bytes:
        """Recover the shared secret from an encapsulation."""

    def __repr__(self):
        return f"{type(self).__name__}({self.name})"


class X25519KeyExchange(KeyExchange):
    """Ephemeral-static X25519 Diffie-Hellman."""

    name     = "X25519"
    KEY_SIZE = 32

    def generate(self) -> Tuple[bytes, bytes]:
        private = x25519.X25519PrivateKey.generate()
        return private.public_key().public_bytes_raw(), private.private_bytes_raw()

    def encapsulate(self, public: bytes) -> Tuple[bytes, bytes]:
        recipient = x25519.X25519PublicKey.from_public_bytes(public)
        ephemeral = x25519.X25519PrivateKey.generate()
        shared    = ephemeral.exchange(recipient)
        return shared, ephemeral.public_key().public_bytes_raw()

    def decapsulate(self, private: bytes, encapsulation: bytes) -> bytes:
        own  = x25519.X25519PrivateKey.from_private_bytes(private)
        peer = x25519.X25519PublicKey.from_public_bytes(encapsulation)
        return own.exchange(peer)


class MLKEMKeyExchange(KeyExchange):
    """ML-KEM-768 key encapsulation (CRYSTALS-Kyber, FIPS 203) via kyber-py."""

    name = "ML-KEM-768"

    def __init__(self):
        from kyber_py.ml_kem import ML_KEM_768
        self._kem = ML_KEM_768
        logger.debug("ML-KEM-768 key exchange ready (kyber-py)")

    def generate(self) -> Tuple[bytes, bytes]:
        ek, dk = self._kem.keygen()
        return ek, dk

    def encapsulate(self, public: bytes) -> Tuple[bytes, bytes]:
        ss, ct = self._kem.encaps(public)
        return ss, ct

    def decapsulate(self, private: bytes, encapsulation: bytes) -> bytes:
        # Implicit rejection: a forged ciphertext yields an unrelated secret,
        # which the hybrid cipher's dual-secret check then rejects.
        return self._kem.decaps(private, encapsulation)


_REGISTRY: Dict[str, Type[KeyExchange]] = {
    X25519KeyExchange.name: X25519KeyExchange,
    MLKEMKeyExchange.name:  MLKEMKeyExchange,
}


def get_key_exchange(name: str) -> KeyExchange:
    """
    Instantiate the exchange registered under name.
    Raises ValueError for an unknown name or one whose backend is not installed.
    """
    try:
        cls = _REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown key exchange: {name!r}") from None
    try:
        return cls()
    except ImportError as exc:
        raise ValueError(f"Key exchange {name!r} is not available: {exc}") from exc
