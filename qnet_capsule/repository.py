"""
Capsule repositories — the local index of capsule metadata.

The local index is a cache, not durable storage. ``RecoveringCapsuleRepository``
puts the blob-store recovery scan behind the same interface, so callers
simply ask for a capsule and get one back if it can be found anywhere.

``mark_unlocked`` is the only state transition. It is an atomic
compare-and-swap on status: when two unlocks race, both may decrypt, but
only one records the transition.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional

from .errors import NotFoundError
from .models import Capsule, CapsuleStatus

if TYPE_CHECKING:
    from .recovery import RecoveryScanner

logger = logging.getLogger(__name__)


class CapsuleRepository(ABC):

    @abstractmethod
    def get(self, capsule_id: str) -> Optional[Capsule]:
        """Return the capsule or None."""

    @abstractmethod
    def put(self, capsule: Capsule) -> None:
        """Insert or replace a capsule."""

    @abstractmethod
    def list(self) -> List[Capsule]:
        """Every capsule currently in the index."""

    @abstractmethod
    def mark_unlocked(self, capsule_id: str, unlocked_at: datetime,
                      unlocked_by: str) -> Optional[Capsule]:
        """
        Move a sealed capsule to unlocked.
        Returns the updated capsule, or None if it was already unlocked.
        Raises NotFoundError if the capsule is not in the index.
        """


class InMemoryCapsuleRepository(CapsuleRepository):
    """Dict-backed index guarded by a lock."""

    def __init__(self):
        self._capsules: Dict[str, Capsule] = {}
        self._lock = threading.Lock()

    def get(self, capsule_id: str) -> Optional[Capsule]:
        with self._lock:
            return self._capsules.get(capsule_id)

    def put(self, capsule: Capsule) -> None:
        with self._lock:
            self._capsules[capsule.id] = capsule

    def list(self) -> List[Capsule]:
        with self._lock:
            return [*self._capsules.values()]

    def mark_unlocked(self, capsule_id: str, unlocked_at: datetime,
                      unlocked_by: str) -> Optional[Capsule]:
        with self._lock:
            current = self._capsules.get(capsule_id)
            if current is None:
                raise NotFoundError(f"Capsule {capsule_id} not found")
            if current.status is CapsuleStatus.UNLOCKED:
                return None
            # model_validate re-runs the unlocked-field checks on the copy
            updated = Capsule.model_validate({
                **current.model_dump(),
                "status": CapsuleStatus.UNLOCKED,
                "unlocked_at": unlocked_at,
                "unlocked_by": unlocked_by,
            })
            self._capsules[capsule_id] = updated
            return updated

    def clear(self) -> None:
        """Drop every entry, as a process restart would."""
        with self._lock:
            self._capsules.clear()

    def __len__(self):
        with self._lock:
            return len(self._capsules)


class RecoveringCapsuleRepository(CapsuleRepository):
    """A local index that falls back to a blob-store scan on misses."""

    def __init__(self, local: CapsuleRepository, scanner: "RecoveryScanner"):
        self.local = local
        self.scanner = scanner

    def get(self, capsule_id: str) -> Optional[Capsule]:
        capsule = self.local.get(capsule_id)
        if capsule is not None:
            return capsule
        logger.info(f"Capsule {capsule_id} not in local index, attempting recovery")
        return self.scanner.recover(capsule_id)

    def put(self, capsule: Capsule) -> None:
        self.local.put(capsule)

    def list(self) -> List[Capsule]:
        return self.local.list()

    def mark_unlocked(self, capsule_id: str, unlocked_at: datetime,
                      unlocked_by: str) -> Optional[Capsule]:
        return self.local.mark_unlocked(capsule_id, unlocked_at, unlocked_by)
