"""
Tagged-result facade for whatever transport sits in front of the core.

Every call returns a plain dict:

    {"success": True,  ...payload...}
    {"success": False, "error": "<kind>", "message": "<text>"}

``kind`` is one of the error kinds in ``qnet_capsule.errors``. Mapping those
onto HTTP status codes or anything else is the transport's job.
"""

import base64
import functools
import logging
from typing import Any, Dict, Optional

from .errors import CapsuleError
from .lifecycle import CapsuleLifecycleManager

logger = logging.getLogger(__name__)

Result = Dict[str, Any]


def _tagged(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs) -> Result:
        try:
            return {"success": True, **method(self, *args, **kwargs)}
        except CapsuleError as e:
            logger.info(f"{method.__name__} -> {e.kind}: {e}")
            return {"success": False, "error": e.kind, "message": str(e)}
    return wrapper


def _capsule_view(capsule) -> Dict[str, Any]:
    return capsule.model_dump(mode="json", by_alias=True)


class CapsuleAPI:
    """Operations exposed to the transport layer."""

    def __init__(self, manager: CapsuleLifecycleManager):
        self.manager = manager

    @_tagged
    def create_capsule(self, file: Optional[bytes], file_name: Optional[str],
                       file_type: Optional[str], unlock_timestamp: Any,
                       creator_address: str, recipient_address: str,
                       message: str = "") -> Result:
        capsule, private_key = self.manager.create_capsule(
            file, file_name, file_type, unlock_timestamp,
            creator_address, recipient_address, message)
        return {
            "capsule": _capsule_view(capsule),
            "privateKey": private_key,
            "message": "Time capsule created successfully",
        }

    @_tagged
    def get_status(self, capsule_id: str) -> Result:
        capsule, can_unlock = self.manager.get_status(capsule_id)
        return {"capsule": _capsule_view(capsule), "canUnlock": can_unlock}

    @_tagged
    def unlock(self, capsule_id: str, private_key: str, requester_address: str) -> Result:
        result = self.manager.unlock(capsule_id, private_key, requester_address)
        return {
            "content": {
                "fileData": base64.b64encode(result.content).decode("ascii"),
                "metadata": result.metadata,
                "message": result.message,
            },
            "capsuleInfo": {
                "id": result.capsule.id,
                "createdAt": result.capsule.created_at.isoformat(),
                "unlockedAt": result.capsule.unlocked_at.isoformat()
                if result.capsule.unlocked_at else None,
                "creator": result.capsule.creator_address,
            },
        }

    @_tagged
    def list_by_user(self, address: str) -> Result:
        capsules = [
            {**_capsule_view(uc.capsule), "canUnlock": uc.can_unlock, "role": uc.role}
            for uc in self.manager.list_by_user(address)
        ]
        return {"capsules": capsules, "count": len(capsules)}

    @_tagged
    def stats(self) -> Result:
        return {"stats": self.manager.stats().model_dump(mode="json", by_alias=True)}

    @_tagged
    def generate_key_pair(self) -> Result:
        pair = self.manager.key_generator.generate()
        return {
            "publicKey": pair.public_key,
            "privateKey": pair.private_key,
            "algorithm": pair.algorithm,
            "keySize": pair.key_size,
            "createdAt": pair.created_at.isoformat(),
        }

    @_tagged
    def validate_key_pair(self, public_key: str, private_key: str) -> Result:
        valid = self.manager.cipher.validate_key_pair(public_key, private_key)
        return {
            "valid": valid,
            "message": "Key pair is valid" if valid else "Key pair is invalid",
        }
