"""Pydantic models for capsules and their durable blob-store record."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CapsuleStatus(str, Enum):
    SEALED = "sealed"
    UNLOCKED = "unlocked"


class _CamelModel(BaseModel):
    """Serializes with camelCase keys; accepts either spelling on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class FileAnalysis(_CamelModel):
    """Descriptive facts about a file. Never used for authorization or decryption."""

    mime_type: str = "application/octet-stream"
    category: str = "other"
    signature: str = "unknown"
    is_multimedia: bool = False
    entropy: float = 0.0
    compression: str = "unknown"
    size: int = 0
    sha256: str = ""
    dimensions: Optional[tuple[int, int]] = None


class Capsule(_CamelModel):
    """A sealed, time-gated encrypted file plus its non-secret metadata.

    Instances are frozen: a status change produces a new capsule via
    ``model_copy`` and the unlock timestamp can never be edited in place.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    content_ref: str = Field(description="Blob-store hash of the CapsuleRecord")
    file_name: str
    file_type: str
    unlock_timestamp: datetime
    creator_address: str
    recipient_address: str
    message: str = ""
    status: CapsuleStatus = CapsuleStatus.SEALED
    created_at: datetime
    unlocked_at: Optional[datetime] = None
    unlocked_by: Optional[str] = None
    algorithm: str = ""
    public_key: str = ""
    key_created_at: Optional[datetime] = None
    file_analysis: Optional[FileAnalysis] = None

    @model_validator(mode="after")
    def _check_unlocked_fields(self) -> "Capsule":
        if self.status is CapsuleStatus.UNLOCKED:
            if self.unlocked_at is None or self.unlocked_by is None:
                raise ValueError("An unlocked capsule needs unlocked_at and unlocked_by")
            if self.unlocked_by != self.recipient_address:
                raise ValueError("Only the recipient can have unlocked a capsule")
        return self

    def can_unlock(self, now: datetime) -> bool:
        return now >= self.unlock_timestamp

    def role_of(self, address: str) -> Optional[str]:
        if address == self.creator_address:
            return "creator"
        if address == self.recipient_address:
            return "recipient"
        return None


class RecordMetadata(_CamelModel):
    file_name: str
    file_type: str
    unlock_timestamp: datetime
    recipient_address: str
    creator_address: str
    message: str = ""
    created_at: datetime
    status: CapsuleStatus = CapsuleStatus.SEALED


class RecordEncryption(_CamelModel):
    algorithm: str
    public_key: str
    key_created_at: datetime


class CapsuleRecord(_CamelModel):
    """What is written to the blob store for one capsule.

    There is deliberately no private-key field, and unknown keys are
    dropped on load, so a record carrying one is never propagated.
    """

    id: str
    encrypted_content: dict[str, Any]
    metadata: RecordMetadata
    encryption: RecordEncryption
    file_analysis: Optional[FileAnalysis] = None

    @classmethod
    def from_capsule(cls, capsule: Capsule, encrypted_content: dict[str, Any]) -> "CapsuleRecord":
        return cls(
            id=capsule.id,
            encrypted_content=encrypted_content,
            metadata=RecordMetadata(
                file_name=capsule.file_name,
                file_type=capsule.file_type,
                unlock_timestamp=capsule.unlock_timestamp,
                recipient_address=capsule.recipient_address,
                creator_address=capsule.creator_address,
                message=capsule.message,
                created_at=capsule.created_at,
                status=capsule.status,
            ),
            encryption=RecordEncryption(
                algorithm=capsule.algorithm,
                public_key=capsule.public_key,
                key_created_at=capsule.key_created_at or capsule.created_at,
            ),
            file_analysis=capsule.file_analysis,
        )

    def to_capsule(self, content_ref: str) -> Capsule:
        """Rebuild the capsule's non-secret state from this record."""
        meta = self.metadata
        return Capsule(
            id=self.id,
            content_ref=content_ref,
            file_name=meta.file_name,
            file_type=meta.file_type,
            unlock_timestamp=meta.unlock_timestamp,
            creator_address=meta.creator_address,
            recipient_address=meta.recipient_address,
            message=meta.message,
            status=meta.status,
            created_at=meta.created_at,
            algorithm=self.encryption.algorithm,
            public_key=self.encryption.public_key,
            key_created_at=self.encryption.key_created_at,
            file_analysis=self.file_analysis,
        )

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "CapsuleRecord":
        """Raises pydantic.ValidationError on anything that is not a record."""
        return cls.model_validate_json(data)


class CapsuleStats(_CamelModel):
    total_capsules: int
    sealed_capsules: int
    unlocked_capsules: int
    encryption_algorithm: str
    timestamp: datetime
