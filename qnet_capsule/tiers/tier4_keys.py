"""
Tier 4 — KEYS: per-capsule hybrid keypair
===========================================
One key-exchange keypair (Tier 1) plus one RSA-2048 keypair (Tier 3),
packed into two opaque strings.

Encoding of each half:

    base64( JSON {
        "exchange":    "X25519",          key-exchange name (Tier 1 registry)
        "exchangeKey": base64(raw key),
        "rsa":         base64(PEM),        SubjectPublicKeyInfo / PKCS8
        "algorithm":   "<algorithm id>",
        "version":     "1.0"
    } )

A keypair is made once per capsule. The private half is handed to the
caller exactly once; nothing in this package stores it.

Dependencies: cryptography >= 41.0
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .tier1_exchange import KeyExchange, X25519KeyExchange, get_key_exchange
from .tier3_rsa import RSACipher

logger = logging.getLogger(__name__)

KEY_FORMAT_VERSION = "1.0"


def algorithm_id(exchange_name: str) -> str:
    """Name of the full scheme built on the given key exchange."""
    return f"{exchange_name}+RSA-{RSACipher.KEY_SIZE}-OAEP+AES-256-CBC+PBKDF2-SHA256"


@dataclass(frozen=True)
class KeyPair:
    """Encoded public/private halves of a capsule keypair."""

    public_key:  str
    private_key: str = field(repr=False)
    algorithm:   str = ""
    key_size:    int = RSACipher.KEY_SIZE
    created_at:  datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class KeyMaterial:
    """One decoded half: the exchange it belongs to, its raw key and RSA."""

    exchange:     KeyExchange
    exchange_key: bytes = field(repr=False)
    rsa:          RSACipher = field(repr=False)
    algorithm:    str = ""


def _encode(exchange: str, exchange_key: bytes, rsa_pem: bytes, algorithm: str) -> str:
    doc = {
        "exchange":    exchange,
        "exchangeKey": base64.b64encode(exchange_key).decode("ascii"),
        "rsa":         base64.b64encode(rsa_pem).decode("ascii"),
        "algorithm":   algorithm,
        "version":     KEY_FORMAT_VERSION,
    }
    return base64.b64encode(json.dumps(doc).encode("utf-8")).decode("ascii")


def _decode(blob: str) -> dict:
    try:
        doc = json.loads(base64.b64decode(blob, validate=True))
    except (binascii.Error, ValueError, TypeError) as exc:
        raise ValueError(f"Key blob is not base64 JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise ValueError("Key blob does not hold a JSON object.")
    missing = [k for k in ("exchange", "exchangeKey", "rsa") if k not in doc]
    if missing:
        raise ValueError(f"Key blob is missing fields: {', '.join(missing)}")
    return doc


def decode_public_key(blob: str) -> KeyMaterial:
    """Parse a public-key string. Raises ValueError when malformed."""
    doc = _decode(blob)
    return KeyMaterial(
        exchange=get_key_exchange(doc["exchange"]),
        exchange_key=base64.b64decode(doc["exchangeKey"]),
        rsa=RSACipher.from_public_pem(base64.b64decode(doc["rsa"])),
        algorithm=doc.get("algorithm", ""),
    )


def decode_private_key(blob: str) -> KeyMaterial:
    """Parse a private-key string. Raises ValueError when malformed."""
    doc = _decode(blob)
    return KeyMaterial(
        exchange=get_key_exchange(doc["exchange"]),
        exchange_key=base64.b64decode(doc["exchangeKey"]),
        rsa=RSACipher.from_private_pem(base64.b64decode(doc["rsa"])),
        algorithm=doc.get("algorithm", ""),
    )


class KeyPairGenerator:
    """Produces fresh hybrid keypairs from the OS random source."""

    def __init__(self, key_exchange: KeyExchange = None):
        self.key_exchange = key_exchange or X25519KeyExchange()

    @property
    def algorithm(self) -> str:
        return algorithm_id(self.key_exchange.name)

    def generate(self) -> KeyPair:
        """
        Generate a new keypair.
        Failure of the random source propagates; there is nothing to recover.
        """
        kex_public, kex_private = self.key_exchange.generate()
        rsa = RSACipher.generate_keypair()
        algorithm = self.algorithm

        pair = KeyPair(
            public_key=_encode(self.key_exchange.name, kex_public,
                               rsa.public_pem(), algorithm),
            private_key=_encode(self.key_exchange.name, kex_private,
                                rsa.private_pem(), algorithm),
            algorithm=algorithm,
        )
        logger.debug(f"Generated {algorithm} keypair")
        return pair
