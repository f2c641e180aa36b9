"""
qnet_capsule — capsule lifecycle
=================================
Run with:  python -m pytest tests/ -v
"""

import dataclasses
import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest

from qnet_capsule.errors import (
    AuthorizationError,
    DecryptionError,
    NotFoundError,
    StorageError,
    TimeLockError,
    ValidationError,
)
from qnet_capsule.lifecycle import parse_timestamp
from qnet_capsule.models import CapsuleRecord, CapsuleStatus
from qnet_capsule.tiers.tier5_hybrid import EncryptedPackage

CREATOR   = "0xCreator"
RECIPIENT = "0xRecipient"
HELLO     = b"Hello capsule"


def seal(manager, clock, content=HELLO, delay=2, **kwargs):
    kwargs.setdefault("file_name", "hello.txt")
    kwargs.setdefault("file_type", "text/plain")
    kwargs.setdefault("creator_address", CREATOR)
    kwargs.setdefault("recipient_address", RECIPIENT)
    return manager.create_capsule(
        file=content,
        unlock_timestamp=clock() + timedelta(seconds=delay),
        **kwargs,
    )


def rewrite_record(store, capsule, **package_changes):
    """Replace the stored record in place with a modified encrypted package."""
    record = CapsuleRecord.from_bytes(store.get(capsule.content_ref))
    package = dataclasses.replace(
        EncryptedPackage.from_dict(record.encrypted_content), **package_changes)
    record = record.model_copy(update={"encrypted_content": package.to_dict()})
    store._blobs[capsule.content_ref] = record.to_bytes()


# ── Timestamps ────────────────────────────────────────────────────────────────
def test_parse_timestamp_forms(clock):
    assert parse_timestamp("2030-01-01T12:00:10Z") == clock() + timedelta(seconds=10)
    assert parse_timestamp("2030-01-01T12:00:10") == clock() + timedelta(seconds=10)
    assert parse_timestamp("2030-01-01T12:00:10.5Z") == clock() + timedelta(seconds=10.5)
    assert parse_timestamp("2030-01-01T12:00:10.250+00:00") == clock() + timedelta(seconds=10.25)
    assert parse_timestamp(clock().timestamp() + 10) == clock() + timedelta(seconds=10)
    assert parse_timestamp(datetime(2030, 1, 1, 12)).tzinfo is not None

@pytest.mark.parametrize("value", [None, "", "next tuesday", True, [1]])
def test_parse_timestamp_rejects(value):
    with pytest.raises(ValidationError):
        parse_timestamp(value)


# ── Create ────────────────────────────────────────────────────────────────────
def test_create_returns_sealed_capsule_and_private_key(manager, clock, store):
    capsule, private_key = seal(manager, clock)
    assert capsule.status is CapsuleStatus.SEALED
    assert capsule.unlocked_at is None and capsule.unlocked_by is None
    assert capsule.content_ref in store._blobs
    assert capsule.created_at == clock()
    assert capsule.file_analysis.category == "document"
    assert capsule.file_analysis.size == len(HELLO)
    assert private_key and private_key != capsule.public_key

def test_create_ids_are_unique(manager, clock):
    a, _ = seal(manager, clock)
    b, _ = seal(manager, clock)
    assert a.id != b.id
    assert a.content_ref != b.content_ref

def test_stored_record_never_holds_the_private_key(manager, clock, store):
    capsule, private_key = seal(manager, clock)
    raw = store.get(capsule.content_ref)
    assert private_key.encode() not in raw
    assert b"privateKey" not in raw
    doc = json.loads(raw)
    assert doc["id"] == capsule.id
    assert doc["encryption"]["publicKey"] == capsule.public_key

def test_create_message_only_becomes_text_file(manager, clock):
    capsule, key = seal(manager, clock, content=None, file_name=None,
                        file_type=None, message="see you in ten years")
    assert capsule.file_name == "message.txt"
    assert capsule.file_type == "text/plain"
    clock.advance(5)
    result = manager.unlock(capsule.id, key, RECIPIENT)
    assert result.content == b"see you in ten years"
    assert result.message == "see you in ten years"

def test_create_infers_file_type(manager, clock):
    capsule, _ = seal(manager, clock, file_name="notes.txt", file_type=None)
    assert capsule.file_type == "text/plain"

@pytest.mark.parametrize("overrides", [
    {"creator_address": ""},
    {"recipient_address": ""},
    {"recipient_address": CREATOR},
    {"content": None},
    {"content": b""},
    {"delay": 0},
    {"delay": -60},
])
def test_create_validation(manager, clock, store, overrides):
    with pytest.raises(ValidationError):
        seal(manager, clock, **overrides)
    assert len(store) == 0
    assert manager.repository.list() == []


# ── Status and listing ────────────────────────────────────────────────────────
def test_status_tracks_the_clock(manager, clock):
    capsule, _ = seal(manager, clock)
    found, can_unlock = manager.get_status(capsule.id)
    assert found == capsule
    assert can_unlock is False
    clock.advance(2)
    assert manager.get_status(capsule.id)[1] is True

def test_status_unknown_and_missing_id(manager):
    with pytest.raises(NotFoundError):
        manager.get_status("no-such-capsule")
    with pytest.raises(ValidationError):
        manager.get_status("")

def test_list_by_user_roles(manager, clock):
    first, _ = seal(manager, clock, creator_address="A", recipient_address="B")
    clock.advance(1)
    second, _ = seal(manager, clock, creator_address="C", recipient_address="A")
    listed = manager.list_by_user("A")
    assert [uc.capsule.id for uc in listed] == [first.id, second.id]
    assert [uc.role for uc in listed] == ["creator", "recipient"]
    assert [uc.role for uc in manager.list_by_user("B")] == ["recipient"]
    assert manager.list_by_user("Z") == []
    with pytest.raises(ValidationError):
        manager.list_by_user("")

def test_stats(manager, clock):
    a, key = seal(manager, clock)
    seal(manager, clock)
    clock.advance(3)
    manager.unlock(a.id, key, RECIPIENT)
    stats = manager.stats()
    assert stats.total_capsules == 2
    assert stats.sealed_capsules == 1
    assert stats.unlocked_capsules == 1
    assert stats.encryption_algorithm.startswith("X25519+")


# ── Unlock ────────────────────────────────────────────────────────────────────
def test_hello_capsule_end_to_end(manager, clock):
    capsule, key = seal(manager, clock)

    with pytest.raises(TimeLockError):
        manager.unlock(capsule.id, key, RECIPIENT)

    clock.advance(3)
    result = manager.unlock(capsule.id, key, RECIPIENT)
    assert result.content == HELLO
    assert result.metadata["fileName"] == "hello.txt"
    assert result.metadata["size"] == len(HELLO)
    assert result.capsule.status is CapsuleStatus.UNLOCKED
    assert result.capsule.unlocked_by == RECIPIENT
    assert result.capsule.unlocked_at == clock()

    with pytest.raises(AuthorizationError):
        manager.unlock(capsule.id, key, "X")

def test_time_gate_comes_before_key_check(manager, clock):
    capsule, _ = seal(manager, clock)
    with pytest.raises(TimeLockError):
        manager.unlock(capsule.id, "not-a-key", RECIPIENT)
    with pytest.raises(TimeLockError):
        manager.unlock(capsule.id, "not-a-key", "X")

def test_unlock_exactly_at_unlock_time(manager, clock):
    capsule, key = seal(manager, clock, delay=2)
    clock.advance(2)
    assert manager.unlock(capsule.id, key, RECIPIENT).content == HELLO

def test_creator_cannot_unlock(manager, clock):
    capsule, key = seal(manager, clock)
    clock.advance(3)
    with pytest.raises(AuthorizationError):
        manager.unlock(capsule.id, key, CREATOR)
    assert manager.get_status(capsule.id)[0].status is CapsuleStatus.SEALED

def test_unlock_missing_fields(manager, clock):
    capsule, key = seal(manager, clock)
    with pytest.raises(ValidationError):
        manager.unlock(capsule.id, "", RECIPIENT)
    with pytest.raises(ValidationError):
        manager.unlock(capsule.id, key, "")
    with pytest.raises(NotFoundError):
        manager.unlock("no-such-capsule", key, RECIPIENT)

def test_unlock_with_another_capsules_key(manager, clock):
    capsule, _ = seal(manager, clock)
    _, other_key = seal(manager, clock)
    clock.advance(3)
    with pytest.raises(DecryptionError):
        manager.unlock(capsule.id, other_key, RECIPIENT)
    assert manager.get_status(capsule.id)[0].status is CapsuleStatus.SEALED

def test_unlock_twice_keeps_first_transition(manager, clock):
    capsule, key = seal(manager, clock)
    clock.advance(3)
    first = manager.unlock(capsule.id, key, RECIPIENT)
    clock.advance(60)
    second = manager.unlock(capsule.id, key, RECIPIENT)
    assert second.content == HELLO
    assert second.capsule.unlocked_at == first.capsule.unlocked_at

def test_concurrent_unlocks_record_one_transition(manager, clock):
    capsule, key = seal(manager, clock)
    clock.advance(3)
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda _: manager.unlock(capsule.id, key, RECIPIENT), range(4)))
    assert all(r.content == HELLO for r in results)
    assert len({r.capsule.unlocked_at for r in results}) == 1
    assert manager.stats().unlocked_capsules == 1

def test_mark_unlocked_is_compare_and_swap(manager, clock):
    capsule, _ = seal(manager, clock)
    repo = manager.repository
    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(
            lambda _: repo.mark_unlocked(capsule.id, clock(), RECIPIENT), range(8)))
    assert sum(o is not None for o in outcomes) == 1
    with pytest.raises(NotFoundError):
        repo.mark_unlocked("no-such-capsule", clock(), RECIPIENT)


# ── Stored data failures ──────────────────────────────────────────────────────
def test_tampered_ciphertext_leaves_capsule_sealed(manager, clock, store):
    capsule, key = seal(manager, clock)
    package = EncryptedPackage.from_dict(
        CapsuleRecord.from_bytes(store.get(capsule.content_ref)).encrypted_content)
    bad = bytearray(package.ciphertext)
    bad[-17] ^= 0xFF
    rewrite_record(store, capsule, ciphertext=bytes(bad))
    clock.advance(3)
    with pytest.raises(DecryptionError):
        manager.unlock(capsule.id, key, RECIPIENT)
    assert manager.get_status(capsule.id)[0].status is CapsuleStatus.SEALED

def test_malformed_record_is_storage_error(manager, clock, store):
    capsule, key = seal(manager, clock)
    store._blobs[capsule.content_ref] = b"{not a record"
    clock.advance(3)
    with pytest.raises(StorageError):
        manager.unlock(capsule.id, key, RECIPIENT)

def test_record_of_another_capsule_is_storage_error(manager, clock, store):
    capsule, key = seal(manager, clock)
    other, _ = seal(manager, clock)
    store._blobs[capsule.content_ref] = store.get(other.content_ref)
    clock.advance(3)
    with pytest.raises(StorageError):
        manager.unlock(capsule.id, key, RECIPIENT)

def test_missing_blob_is_storage_error(manager, clock, store):
    capsule, key = seal(manager, clock)
    del store._blobs[capsule.content_ref]
    clock.advance(3)
    with pytest.raises(StorageError):
        manager.unlock(capsule.id, key, RECIPIENT)
