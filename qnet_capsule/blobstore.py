"""
Content-addressed blob stores.

The capsule core only needs three calls:

    put(data, name)        -> BlobEntry   (entry.hash addresses the bytes)
    get(hash)              -> bytes
    list(limit, offset)    -> [BlobEntry]  newest first

``InMemoryBlobStore`` is used by tests and single-process setups.
``PinataBlobStore`` talks to the Pinata IPFS pinning API. Neither retries;
retries belong to the caller.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import httpx

from .config import Settings
from .errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlobEntry:
    hash: str
    name: str
    size: int
    timestamp: datetime


class BlobStore(ABC):
    """Opaque byte blobs addressed by a hash of their contents."""

    @abstractmethod
    def put(self, data: bytes, name: str) -> BlobEntry:
        ...

    @abstractmethod
    def get(self, blob_hash: str) -> bytes:
        ...

    @abstractmethod
    def list(self, limit: int = 10, offset: int = 0) -> list[BlobEntry]:
        ...


class InMemoryBlobStore(BlobStore):
    """SHA-256 addressed store held in a dict."""

    def __init__(self):
        self._blobs: dict[str, bytes] = {}
        self._entries: dict[str, BlobEntry] = {}
        self._lock = threading.Lock()

    def put(self, data: bytes, name: str) -> BlobEntry:
        blob_hash = hashlib.sha256(data).hexdigest()
        with self._lock:
            entry = self._entries.get(blob_hash)
            if entry is None:
                entry = BlobEntry(blob_hash, name, len(data), datetime.now(timezone.utc))
                self._blobs[blob_hash] = bytes(data)
                self._entries[blob_hash] = entry
        return entry

    def get(self, blob_hash: str) -> bytes:
        with self._lock:
            try:
                return self._blobs[blob_hash]
            except KeyError:
                raise StorageError(f"No blob with hash {blob_hash}") from None

    def list(self, limit: int = 10, offset: int = 0) -> list[BlobEntry]:
        with self._lock:
            entries = list(self._entries.values())
        entries.reverse()
        return entries[offset:offset + limit]

    def __len__(self):
        return len(self._entries)


class PinataBlobStore(BlobStore):
    """Pinata pinning API for writes and listings, the IPFS gateway for reads."""

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        if not settings.pinata_configured:
            raise StorageError("Pinata is not configured. Set QNET_PINATA_JWT.")
        self.settings = settings
        self.api_url = settings.pinata_api_url.rstrip("/")
        self.gateway_url = settings.pinata_gateway_url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {settings.pinata_jwt}"}
        self._client = client or httpx.Client(timeout=settings.blob_timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def put(self, data: bytes, name: str) -> BlobEntry:
        """POST /pinning/pinFileToIPFS."""
        try:
            resp = self._client.post(
                f"{self.api_url}/pinning/pinFileToIPFS",
                headers=self.headers,
                files={"file": (name, data, "application/octet-stream")},
                data={"pinataMetadata": json.dumps({"name": name})},
            )
            resp.raise_for_status()
            body = resp.json()
            entry = BlobEntry(
                hash=body["IpfsHash"],
                name=name,
                size=int(body.get("PinSize", len(data))),
                timestamp=_parse_time(body.get("Timestamp")),
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Pinata upload failed: {e}") from e
        except (KeyError, ValueError, TypeError) as e:
            raise StorageError(f"Pinata upload returned a malformed response: {e}") from e

        logger.info(f"Pinned {name} ({len(data)}B) as {entry.hash}")
        return entry

    def get(self, blob_hash: str) -> bytes:
        """GET <gateway>/ipfs/<hash>."""
        try:
            resp = self._client.get(f"{self.gateway_url}/ipfs/{blob_hash}")
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"Pinata download of {blob_hash} failed: {e}") from e
        return resp.content

    def list(self, limit: int = 10, offset: int = 0) -> list[BlobEntry]:
        """GET /data/pinList?status=pinned."""
        try:
            resp = self._client.get(
                f"{self.api_url}/data/pinList",
                headers=self.headers,
                params={"status": "pinned", "pageLimit": limit, "pageOffset": offset},
            )
            resp.raise_for_status()
            rows = resp.json()["rows"]
            return [
                BlobEntry(
                    hash=row["ipfs_pin_hash"],
                    name=(row.get("metadata") or {}).get("name") or "",
                    size=int(row.get("size", 0)),
                    timestamp=_parse_time(row.get("date_pinned")),
                )
                for row in rows
            ]
        except httpx.HTTPError as e:
            raise StorageError(f"Pinata listing failed: {e}") from e
        except (KeyError, ValueError, TypeError) as e:
            raise StorageError(f"Pinata listing returned a malformed response: {e}") from e


def _parse_time(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
