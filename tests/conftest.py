"""Shared pytest fixtures for the qnet_capsule test suite."""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from qnet_capsule.blobstore       import InMemoryBlobStore
from qnet_capsule.lifecycle       import CapsuleLifecycleManager
from qnet_capsule.tiers.tier4_keys  import KeyPairGenerator
from qnet_capsule.tiers.tier5_hybrid import HybridCipher


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2030, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def manager(store, clock) -> CapsuleLifecycleManager:
    return CapsuleLifecycleManager(store, clock=clock)


@pytest.fixture(scope="session")
def key_pair():
    """RSA generation is slow; one keypair serves every cipher-level test."""
    return KeyPairGenerator().generate()


@pytest.fixture(scope="session")
def other_key_pair():
    return KeyPairGenerator().generate()


@pytest.fixture(scope="session")
def cipher() -> HybridCipher:
    return HybridCipher()
