"""Tests for the in-memory backend."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from spaceledger.models import Challenge, Delegation, Session
from spaceledger.storage.memory import MemoryBackend

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def _session(session_id: str = "s1", **overrides) -> Session:
    fields = {
        "session_id": session_id,
        "email": "admin@example.com",
        "did": None,
        "created_at": NOW,
        "last_active_at": NOW,
        "expires_at": NOW + timedelta(hours=1),
    }
    fields.update(overrides)
    return Session(**fields)


def _delegation(cid: str, **overrides) -> Delegation:
    fields = {
        "user_did": "u",
        "space_did": "s",
        "delegation_cid": cid,
        "payload": "p",
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return Delegation(**fields)


class TestIsolation:
    """Stored rows are copies."""

    def test_mutating_returned_session_does_not_leak(self):
        backend = MemoryBackend()
        backend.insert_session(_session())
        backend.get_session("s1").is_active = False
        assert backend.get_session("s1").is_active is True

    def test_mutating_inserted_object_does_not_leak(self):
        backend = MemoryBackend()
        session = _session()
        backend.insert_session(session)
        session.email = "changed@example.com"
        assert backend.get_session("s1").email == "admin@example.com"


class TestChallenges:
    def test_mark_used_once(self):
        backend = MemoryBackend()
        backend.insert_challenge(Challenge("c", "d", "text", NOW, NOW + timedelta(minutes=5)))
        assert backend.mark_challenge_used("c") is True
        assert backend.mark_challenge_used("c") is False
        assert backend.mark_challenge_used("missing") is False

    def test_get_requires_matching_did(self):
        backend = MemoryBackend()
        backend.insert_challenge(Challenge("c", "d", "text", NOW, NOW + timedelta(minutes=5)))
        assert backend.get_challenge("c", "other") is None


class TestDelegations:
    def test_upsert_preserves_created_at(self):
        backend = MemoryBackend()
        backend.upsert_delegation(_delegation("c1"))
        later = NOW + timedelta(hours=1)
        stored = backend.upsert_delegation(_delegation("c1", payload="v2", created_at=later, updated_at=later))
        assert stored.created_at == NOW
        assert stored.updated_at == later
        assert stored.payload == "v2"

    def test_expiry_boundaries(self):
        backend = MemoryBackend()
        backend.upsert_delegation(_delegation("at-now", expires_at=NOW))
        backend.upsert_delegation(_delegation("later", expires_at=NOW + timedelta(seconds=1)))
        backend.upsert_delegation(_delegation("never"))

        active = {d.delegation_cid for d in backend.list_all_active_delegations(NOW)}
        assert active == {"later", "never"}
        assert backend.delete_expired_delegations(NOW) == 1
