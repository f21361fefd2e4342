from __future__ import annotations

from lead_intake.adapters.storage import SessionStorageRegistry
from lead_intake.app.dependencies import ClientLockRegistry


def test_lock_registry_is_capped_like_session_storage():
    locks = ClientLockRegistry(max_clients=10)
    sessions = SessionStorageRegistry(max_sessions=10)

    for i in range(5000):
        locks.lock_for(f"client-{i}")
        sessions.for_session(f"session-{i}")

    assert len(locks) <= 10
    assert len(sessions) <= 10


def test_same_client_gets_same_lock():
    locks = ClientLockRegistry(max_clients=10)

    assert locks.lock_for("client-1") is locks.lock_for("client-1")


def test_held_lock_is_never_evicted():
    locks = ClientLockRegistry(max_clients=3)
    held = locks.lock_for("client-busy")
    held.acquire()
    try:
        for i in range(50):
            locks.lock_for(f"client-{i}")

        assert locks.lock_for("client-busy") is held
        assert len(locks) <= 3
    finally:
        held.release()


def test_recently_used_client_survives_eviction():
    locks = ClientLockRegistry(max_clients=2)
    first = locks.lock_for("client-a")
    locks.lock_for("client-b")
    locks.lock_for("client-a")
    locks.lock_for("client-c")

    assert locks.lock_for("client-a") is first
