"""
Recovery of capsule metadata from the blob store.

When the process restarts the local index is empty, but every capsule's
record is still in the blob store under the name ``capsule_<id>.json``.
The scanner pages through the store's listing, downloads records whose
name contains the id and accepts the first whose embedded id matches.

This is a best-effort reconstruction, not a source of truth:

  * it is O(number of stored blobs), bounded by ``recovery_max_pages``;
  * the record is written once at creation, so a recovered capsule is
    always reported as sealed;
  * private keys are never recovered because they were never stored.
"""

import logging
from typing import Optional

from .blobstore import BlobEntry, BlobStore
from .config import Settings
from .errors import StorageError
from .models import Capsule, CapsuleRecord
from .repository import CapsuleRepository

logger = logging.getLogger(__name__)


def record_name(capsule_id: str) -> str:
    """Blob name a capsule record is stored under."""
    return f"capsule_{capsule_id}.json"


class RecoveryScanner:
    """Rebuilds a Capsule from its stored record and caches it locally."""

    def __init__(self, blob_store: BlobStore, index: CapsuleRepository,
                 settings: Optional[Settings] = None):
        settings = settings or Settings()
        self.blob_store = blob_store
        self.index = index
        self.page_size = settings.recovery_page_size
        self.max_pages = settings.recovery_max_pages

    def _candidates(self, capsule_id: str):
        for page in range(self.max_pages):
            entries = self.blob_store.list(limit=self.page_size, offset=page * self.page_size)
            for entry in entries:
                if entry.name and capsule_id in entry.name:
                    yield entry
            if len(entries) < self.page_size:
                return
        logger.warning(f"Recovery scan for {capsule_id} stopped after {self.max_pages} pages")

    def _load(self, entry: BlobEntry) -> Optional[CapsuleRecord]:
        try:
            return CapsuleRecord.from_bytes(self.blob_store.get(entry.hash))
        except StorageError as e:
            logger.warning(f"Could not download candidate {entry.name} ({entry.hash}): {e}")
        except ValueError as e:
            logger.warning(f"Candidate {entry.name} ({entry.hash}) is not a capsule record: {e}")
        return None

    def recover(self, capsule_id: str) -> Optional[Capsule]:
        """
        Return the reconstructed capsule, or None if no record matches.
        A match is stored in the local index before it is returned.
        """
        try:
            for entry in self._candidates(capsule_id):
                record = self._load(entry)
                if record is None:
                    continue
                if record.id != capsule_id:
                    logger.debug(f"Candidate {entry.name} holds capsule {record.id}, skipping")
                    continue

                capsule = record.to_capsule(content_ref=entry.hash)
                self.index.put(capsule)
                logger.info(f"Recovered capsule {capsule_id} from blob {entry.hash}")
                return capsule
        except StorageError as e:
            logger.warning(f"Recovery scan for {capsule_id} failed, reporting it as not found: {e}")
            return None

        logger.info(f"No stored record found for capsule {capsule_id}")
        return None
