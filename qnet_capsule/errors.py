"""
Error kinds raised by the capsule core.

Every error carries a ``kind`` string so the transport layer can map it to
whatever protocol it speaks without importing the classes themselves.

    ValidationError     malformed input, non-future unlock time, creator == recipient
    TimeLockError       unlock attempted before the unlock timestamp
    AuthorizationError  requester is not the recipient
    NotFoundError       capsule absent even after recovery
    StorageError        blob store unreachable or returned malformed data
    TamperError         the two independently derived shared secrets differ
    DecryptionError     any other cryptographic failure
"""


class CapsuleError(Exception):
    """Base class for every error the core raises on purpose."""

    kind = "CapsuleError"


class ValidationError(CapsuleError):
    kind = "ValidationError"


class TimeLockError(CapsuleError):
    kind = "TimeLockError"


class AuthorizationError(CapsuleError):
    kind = "AuthorizationError"


class NotFoundError(CapsuleError):
    kind = "NotFoundError"


class StorageError(CapsuleError):
    kind = "StorageError"


class CryptographicError(CapsuleError):
    kind = "CryptographicError"


class TamperError(CryptographicError):
    kind = "TamperError"


class DecryptionError(CryptographicError):
    kind = "DecryptionError"
