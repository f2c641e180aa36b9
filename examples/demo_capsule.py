"""
qnet_capsule — Live Demo: seal, wait, unlock, recover
======================================================
Run:  python examples/demo_capsule.py

Seals a short message into a capsule that opens two seconds later, shows
the time lock and recipient check refusing early or foreign unlocks, then
opens it and rebuilds the index from the blob store as after a restart.

Uses Pinata when QNET_PINATA_JWT is set, an in-memory store otherwise.
"""

import dataclasses, sys, os, time
from datetime import datetime, timedelta, timezone
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from qnet_capsule.blobstore      import InMemoryBlobStore, PinataBlobStore
from qnet_capsule.config         import get_settings
from qnet_capsule.errors         import AuthorizationError, TamperError, TimeLockError
from qnet_capsule.lifecycle      import CapsuleLifecycleManager
from qnet_capsule.logging_config import setup_logging

LINE      = "═" * 70
MSG       = b"Hello capsule"
CREATOR   = "0xA11CE"
RECIPIENT = "0xB0B"

def header(step, name):
    print(f"\n{LINE}")
    print(f"  Step {step} — {name}")
    print(LINE)

def ok(label, value=""):
    print(f"  ✓  {label}{f': {value}' if value else ''}")

# ─────────────────────────────────────────────────────────────────────────────
settings = get_settings()
setup_logging(level=settings.log_level)

store = PinataBlobStore(settings) if settings.pinata_configured else InMemoryBlobStore()
manager = CapsuleLifecycleManager(store, settings=settings)

print(f"\n{LINE}")
print("  qnet_capsule — Time-Locked Capsule Demo")
print(f"  Blob store: {type(store).__name__}")
print(LINE)
print(f"  Message: {MSG.decode()}\n")

# ── SEAL ─────────────────────────────────────────────────────────────────────
header(1, "SEAL — X25519 + RSA-2048 + AES-256-CBC")
print("  (Generating a fresh RSA-2048 keypair for this capsule...)")
t0 = time.perf_counter()
capsule, private_key = manager.create_capsule(
    MSG, "hello.txt", "text/plain",
    datetime.now(timezone.utc) + timedelta(seconds=2),
    CREATOR, RECIPIENT, message="Open me later")
elapsed = time.perf_counter() - t0
ok("Capsule",     capsule.id)
ok("Stored as",   capsule.content_ref)
ok("Algorithm",   capsule.algorithm)
ok("Unlocks at",  capsule.unlock_timestamp.isoformat())
ok("Private key", f"{len(private_key)} chars (returned once, never stored)")
ok("Seal time",   f"{elapsed*1000:.0f} ms")

# ── GATES ────────────────────────────────────────────────────────────────────
header(2, "GATES — time lock and recipient check")
try:
    manager.unlock(capsule.id, private_key, RECIPIENT)
except TimeLockError as e:
    ok("Too early", e.kind)
print("  (Waiting for the unlock time...)")
time.sleep(2.5)
try:
    manager.unlock(capsule.id, private_key, "0xEVE")
except AuthorizationError as e:
    ok("Wrong requester", e.kind)

# ── UNLOCK ───────────────────────────────────────────────────────────────────
header(3, "UNLOCK — dual-secret verification, then decrypt")
t0 = time.perf_counter()
result = manager.unlock(capsule.id, private_key, RECIPIENT)
elapsed = time.perf_counter() - t0
ok("Content",     result.content.decode())
ok("Message",     result.message)
ok("File",        f"{result.metadata['fileName']} ({result.metadata['size']} bytes)")
ok("Status",      result.capsule.status.value)
ok("Unlock time", f"{elapsed*1000:.0f} ms")

# ── TAMPER ───────────────────────────────────────────────────────────────────
header(4, "TAMPER — swapped ephemeral key")
package = manager._load_package(capsule)
forged  = manager.cipher.encrypt(b"forged", capsule.public_key)
try:
    manager.cipher.decrypt(
        dataclasses.replace(package, ephemeral_public_key=forged.ephemeral_public_key),
        private_key)
except TamperError as e:
    ok("Rejected", str(e))

# ── RECOVER ──────────────────────────────────────────────────────────────────
header(5, "RECOVER — rebuild the index from the blob store")
restarted = CapsuleLifecycleManager(store, settings=settings)
t0 = time.perf_counter()
recovered, can_unlock = restarted.get_status(capsule.id)
elapsed = time.perf_counter() - t0
ok("Recovered",  recovered.id)
ok("Status",     f"{recovered.status.value} (stored record predates the unlock)")
ok("Can unlock", str(can_unlock))
ok("Scan time",  f"{elapsed*1000:.0f} ms")

# ── Summary ──────────────────────────────────────────────────────────────────
stats = manager.stats()
print(f"\n{LINE}")
print("  DEMO COMPLETE")
print(f"  {LINE}")
print(f"  Capsules  {stats.total_capsules} total, "
      f"{stats.sealed_capsules} sealed, {stats.unlocked_capsules} unlocked")
print(f"  Scheme    {stats.encryption_algorithm}")
print("  X25519 and RSA are classical; MLKEMKeyExchange swaps in ML-KEM-768.")
print(LINE + "\n")
