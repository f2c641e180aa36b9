"""
Capsule lifecycle — create, query and unlock time-locked capsules.

    sealed --(time reached, requester is recipient, decryption succeeds)--> unlocked

``unlocked`` is terminal. Validation, the time gate and the authorization
check all run before any blob-store or cryptographic work. Nothing is
retried here; a failed unlock is final for that attempt.
"""

import base64
import binascii
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import TypeAdapter

from .analyzer import FileAnalyzer
from .blobstore import BlobStore
from .config import Settings
from .errors import (
    AuthorizationError,
    CryptographicError,
    DecryptionError,
    NotFoundError,
    StorageError,
    TimeLockError,
    ValidationError,
)
from .models import Capsule, CapsuleRecord, CapsuleStats, CapsuleStatus
from .recovery import RecoveryScanner, record_name
from .repository import (
    CapsuleRepository,
    InMemoryCapsuleRepository,
    RecoveringCapsuleRepository,
)
from .tiers.tier4_keys import KeyPairGenerator
from .tiers.tier5_hybrid import EncryptedPackage, HybridCipher

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_DATETIME = TypeAdapter(datetime)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Accept a datetime, an ISO-8601 string or epoch seconds; return aware UTC.
    Naive values are taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = _DATETIME.validate_python(value.strip())
        except ValueError:
            raise ValidationError(f"Unlock timestamp is not ISO-8601: {value!r}") from None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise ValidationError(f"Unlock timestamp is out of range: {value!r}") from None
    else:
        raise ValidationError("Unlock timestamp is required")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class UnlockResult:
    content:  bytes = field(repr=False)
    metadata: Dict[str, Any]
    message:  str
    capsule:  Capsule


@dataclass(frozen=True)
class UserCapsule:
    capsule:    Capsule
    can_unlock: bool
    role:       str


class CapsuleLifecycleManager:
    """Owns capsules: seals files into them and opens them for recipients."""

    def __init__(self, blob_store: BlobStore,
                 repository: Optional[CapsuleRepository] = None,
                 key_generator: Optional[KeyPairGenerator] = None,
                 cipher: Optional[HybridCipher] = None,
                 analyzer: Optional[FileAnalyzer] = None,
                 clock: Optional[Clock] = None,
                 settings: Optional[Settings] = None):
        self.blob_store = blob_store
        if repository is None:
            local = InMemoryCapsuleRepository()
            scanner = RecoveryScanner(blob_store, local, settings)
            repository = RecoveringCapsuleRepository(local, scanner)
        self.repository = repository
        self.key_generator = key_generator or KeyPairGenerator()
        self.cipher = cipher or HybridCipher()
        self.analyzer = analyzer or FileAnalyzer()
        self.clock = clock or utc_now

    # ── create ────────────────────────────────────────────────────────────

    def create_capsule(self, file: Optional[bytes], file_name: Optional[str],
                       file_type: Optional[str], unlock_timestamp: Any,
                       creator_address: str, recipient_address: str,
                       message: str = "") -> Tuple[Capsule, str]:
        """
        Seal file into a new capsule.

        Returns (capsule, private_key). The private key is surfaced only
        here; the caller alone is responsible for keeping it.
        """
        if not creator_address or not recipient_address:
            raise ValidationError("Missing required fields: creatorAddress, recipientAddress")
        now = self.clock()
        unlock_at = parse_timestamp(unlock_timestamp)
        if unlock_at <= now:
            raise ValidationError("Unlock timestamp must be in the future")
        if creator_address == recipient_address:
            raise ValidationError("Creator and recipient must be different addresses")

        message = message or ""
        if not file:
            if not message:
                raise ValidationError("No file or message content provided")
            file, file_name, file_type = message.encode("utf-8"), "message.txt", "text/plain"

        file_name = file_name or "unknown_file"
        capsule_id = str(uuid.uuid4())

        key_pair = self.key_generator.generate()
        analysis = self.analyzer.classify(file, file_name)
        file_type = file_type or analysis.mime_type

        payload = json.dumps({
            "content": base64.b64encode(file).decode("ascii"),
            "metadata": {
                "fileName":   file_name,
                "fileType":   file_type,
                "size":       len(file),
                "sha256":     analysis.sha256,
                "uploadedAt": now.isoformat(),
                "analysis":   analysis.model_dump(mode="json", by_alias=True),
            },
        }).encode("utf-8")
        package = self.cipher.encrypt(payload, key_pair.public_key)

        capsule = Capsule(
            id=capsule_id,
            content_ref="",
            file_name=file_name,
            file_type=file_type,
            unlock_timestamp=unlock_at,
            creator_address=creator_address,
            recipient_address=recipient_address,
            message=message,
            status=CapsuleStatus.SEALED,
            created_at=now,
            algorithm=key_pair.algorithm,
            public_key=key_pair.public_key,
            key_created_at=key_pair.created_at,
            file_analysis=analysis,
        )
        record = CapsuleRecord.from_capsule(capsule, package.to_dict())
        entry = self.blob_store.put(record.to_bytes(), record_name(capsule_id))

        capsule = capsule.model_copy(update={"content_ref": entry.hash})
        self.repository.put(capsule)
        logger.info(f"Sealed capsule {capsule_id} ({len(file)}B, {analysis.category}) "
                    f"until {unlock_at.isoformat()} as {entry.hash}")
        return capsule, key_pair.private_key

    # ── query ─────────────────────────────────────────────────────────────

    def _resolve(self, capsule_id: str) -> Capsule:
        if not capsule_id:
            raise ValidationError("Missing capsule ID")
        capsule = self.repository.get(capsule_id)
        if capsule is None:
            raise NotFoundError(f"Capsule {capsule_id} not found")
        return capsule

    def get_status(self, capsule_id: str) -> Tuple[Capsule, bool]:
        """
        Return (capsule, can_unlock), recovering from the blob store if needed.

        NotFoundError also covers a blob store that could not be listed or
        read during recovery; the scanner logs that case as a warning.
        """
        capsule = self._resolve(capsule_id)
        return capsule, capsule.can_unlock(self.clock())

    def list_by_user(self, address: str) -> List[UserCapsule]:
        """Capsules in the local index that address created or receives."""
        if not address:
            raise ValidationError("Missing user address")
        now = self.clock()
        found = []
        for capsule in self.repository.list():
            role = capsule.role_of(address)
            if role is not None:
                found.append(UserCapsule(capsule, capsule.can_unlock(now), role))
        found.sort(key=lambda uc: uc.capsule.created_at)
        return found

    def stats(self) -> CapsuleStats:
        capsules = self.repository.list()
        unlocked = sum(1 for c in capsules if c.status is CapsuleStatus.UNLOCKED)
        return CapsuleStats(
            total_capsules=len(capsules),
            sealed_capsules=len(capsules) - unlocked,
            unlocked_capsules=unlocked,
            encryption_algorithm=self.key_generator.algorithm,
            timestamp=self.clock(),
        )

    # ── unlock ────────────────────────────────────────────────────────────

    def _load_package(self, capsule: Capsule) -> EncryptedPackage:
        raw = self.blob_store.get(capsule.content_ref)
        try:
            record = CapsuleRecord.from_bytes(raw)
            package = EncryptedPackage.from_dict(record.encrypted_content)
        except ValueError as e:
            raise StorageError(f"Stored record {capsule.content_ref} is malformed: {e}") from e
        if record.id != capsule.id:
            raise StorageError(f"Stored record {capsule.content_ref} belongs to capsule {record.id}")
        return package

    @staticmethod
    def _open_payload(payload: bytes) -> Tuple[bytes, Dict[str, Any]]:
        try:
            doc = json.loads(payload)
            content = base64.b64decode(doc["content"], validate=True)
            metadata = doc["metadata"]
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise DecryptionError(f"Decrypted payload is not a capsule package: {e}") from e
        return content, metadata

    def unlock(self, capsule_id: str, private_key: str,
               requester_address: str) -> UnlockResult:
        """
        Decrypt a capsule for its recipient once its unlock time has passed.

        Raises NotFoundError, TimeLockError, AuthorizationError, StorageError,
        TamperError or DecryptionError, in that order of checking.
        """
        if not private_key or not requester_address:
            raise ValidationError("Missing required fields: privateKey, requesterAddress")
        capsule = self._resolve(capsule_id)

        now = self.clock()
        if not capsule.can_unlock(now):
            raise TimeLockError(
                f"Capsule {capsule_id} cannot be unlocked before "
                f"{capsule.unlock_timestamp.isoformat()}")
        if requester_address != capsule.recipient_address:
            raise AuthorizationError("Unauthorized: you are not the recipient of this capsule")

        package = self._load_package(capsule)
        try:
            payload = self.cipher.decrypt(package, private_key)
        except CryptographicError as e:
            logger.warning(f"Unlock of capsule {capsule_id} failed: {e.kind}")
            raise
        content, metadata = self._open_payload(payload)

        updated = self.repository.mark_unlocked(capsule_id, now, requester_address)
        if updated is None:
            logger.info(f"Capsule {capsule_id} was already unlocked; returning content again")
            updated = self.repository.get(capsule_id) or capsule
        else:
            logger.info(f"Unlocked capsule {capsule_id} for {requester_address}")

        return UnlockResult(
            content=content,
            metadata=metadata,
            message=capsule.message,
            capsule=updated,
        )
