"""
qnet_capsule — time-locked encrypted file capsules
====================================================
Hybrid encryption protocol and capsule lifecycle manager.

Tiers:
    1  KEY EXCHANGE  — X25519 ECDH (default) or ML-KEM-768 behind one interface
    2  SYMMETRIC     — AES-256-CBC + PBKDF2-HMAC-SHA256
    3  ASYMMETRIC    — RSA-2048 + OAEP (shared-secret verification token)
    4  KEYS          — per-capsule hybrid keypair
    5  HYBRID        — dual-secret envelope encryption

Around them:
    FileAnalyzer             descriptive MIME / magic-byte / entropy analysis
    CapsuleLifecycleManager  create, status and time-gated unlock
    RecoveryScanner          rebuilds lost index entries from the blob store
    CapsuleAPI               tagged results for a transport layer

The default stack is classical cryptography: X25519 and RSA both fall to a
large quantum computer. Use MLKEMKeyExchange for a lattice-based exchange.

License: Apache 2.0
"""

__version__ = "1.0.0"

from .errors import (
    CapsuleError,
    ValidationError,
    TimeLockError,
    AuthorizationError,
    NotFoundError,
    StorageError,
    CryptographicError,
    TamperError,
    DecryptionError,
)
from .tiers.tier1_exchange import KeyExchange, X25519KeyExchange, MLKEMKeyExchange
from .tiers.tier4_keys      import KeyPair, KeyPairGenerator
from .tiers.tier5_hybrid    import EncryptedPackage, HybridCipher
from .analyzer              import FileAnalyzer
from .models                import Capsule, CapsuleStatus, FileAnalysis, CapsuleRecord
from .blobstore             import BlobEntry, BlobStore, InMemoryBlobStore, PinataBlobStore
from .repository            import (CapsuleRepository, InMemoryCapsuleRepository,
                                    RecoveringCapsuleRepository)
from .recovery              import RecoveryScanner
from .lifecycle             import CapsuleLifecycleManager, UnlockResult, UserCapsule
from .api                   import CapsuleAPI

__all__ = [
    "CapsuleError",
    "ValidationError",
    "TimeLockError",
    "AuthorizationError",
    "NotFoundError",
    "StorageError",
    "CryptographicError",
    "TamperError",
    "DecryptionError",
    "KeyExchange",
    "X25519KeyExchange",
    "MLKEMKeyExchange",
    "KeyPair",
    "KeyPairGenerator",
    "EncryptedPackage",
    "HybridCipher",
    "FileAnalyzer",
    "Capsule",
    "CapsuleStatus",
    "FileAnalysis",
    "CapsuleRecord",
    "BlobEntry",
    "BlobStore",
    "InMemoryBlobStore",
    "PinataBlobStore",
    "CapsuleRepository",
    "InMemoryCapsuleRepository",
    "RecoveringCapsuleRepository",
    "RecoveryScanner",
    "CapsuleLifecycleManager",
    "UnlockResult",
    "UserCapsule",
    "CapsuleAPI",
]
