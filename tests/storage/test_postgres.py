"""Tests for the PostgreSQL backend.

Uses a MagicMock cursor so no database is needed; the assertions pin the
SQL shape that carries each guarantee.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from spaceledger.models import Challenge, Delegation, PrincipalRecord, Session, VerificationKind
from spaceledger.storage.postgres import PostgresBackend

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def mock_cursor():
    cursor = MagicMock()
    cursor.fetchone.return_value = None
    cursor.fetchall.return_value = []
    cursor.rowcount = 0
    return cursor


@pytest.fixture
def pg(mock_cursor):
    pool = MagicMock()

    @contextmanager
    def fake_cursor():
        yield mock_cursor

    pool.cursor = fake_cursor
    return PostgresBackend(pool=pool)


def _sql(mock_cursor) -> str:
    return " ".join(mock_cursor.execute.call_args[0][0].split())


def _params(mock_cursor):
    return mock_cursor.execute.call_args[0][1]


def _make_challenge_row(**overrides):
    row = {
        "challenge_id": "c-1",
        "did": "did:key:z6MkA",
        "challenge": "did:key:z6MkA:1:ff",
        "created_at": NOW,
        "expires_at": NOW + timedelta(minutes=5),
        "used": False,
    }
    row.update(overrides)
    return row


def _make_session_row(**overrides):
    row = {
        "session_id": "s" * 32,
        "email": "admin@example.com",
        "did": None,
        "created_at": NOW,
        "last_active_at": NOW,
        "expires_at": NOW + timedelta(hours=24),
        "user_agent": None,
        "ip_address": None,
        "is_active": True,
        "email_verified": True,
        "did_verified": False,
    }
    row.update(overrides)
    return row


def _make_delegation_row(**overrides):
    row = {
        "user_did": "did:key:z6MkU",
        "space_did": "did:key:z6MkS",
        "delegation_cid": "bafy1",
        "delegation_payload": "payload",
        "created_at": NOW,
        "updated_at": NOW,
        "expires_at": None,
        "created_by": "admin@example.com",
    }
    row.update(overrides)
    return row


class TestChallenges:
    """Tests for auth_challenges statements."""

    def test_insert(self, pg, mock_cursor):
        pg.insert_challenge(Challenge.from_row(_make_challenge_row()))
        assert "INSERT INTO auth_challenges" in _sql(mock_cursor)
        assert _params(mock_cursor)[0] == "c-1"

    def test_get_maps_row(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = _make_challenge_row()
        challenge = pg.get_challenge("c-1", "did:key:z6MkA")
        assert challenge.challenge_text == "did:key:z6MkA:1:ff"
        assert "WHERE challenge_id = %s AND did = %s" in _sql(mock_cursor)

    def test_get_missing(self, pg):
        assert pg.get_challenge("c-1", "did:key:z6MkA") is None

    def test_mark_used_is_conditional(self, pg, mock_cursor):
        mock_cursor.rowcount = 1
        assert pg.mark_challenge_used("c-1") is True
        assert "WHERE challenge_id = %s AND used = FALSE" in _sql(mock_cursor)

    def test_mark_used_loses_race(self, pg, mock_cursor):
        mock_cursor.rowcount = 0
        assert pg.mark_challenge_used("c-1") is False

    def test_delete_expired(self, pg, mock_cursor):
        mock_cursor.rowcount = 4
        assert pg.delete_expired_challenges(NOW) == 4
        assert "expires_at < %s" in _sql(mock_cursor)


class TestSessions:
    """Tests for account_sessions statements."""

    def test_insert_column_order(self, pg, mock_cursor):
        session = Session.from_row(_make_session_row())
        pg.insert_session(session)
        params = _params(mock_cursor)
        assert params[0] == session.session_id
        assert params[-2:] == (True, False)

    def test_get_maps_row(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = _make_session_row()
        session = pg.get_session("s" * 32)
        assert session.email_verified is True
        assert session.did_verified is False

    @pytest.mark.parametrize(("kind", "column"), [(VerificationKind.EMAIL, "email_verified"), (VerificationKind.DID, "did_verified")])
    def test_set_flag_column(self, pg, mock_cursor, kind, column):
        mock_cursor.rowcount = 1
        assert pg.set_session_flag("s", kind, True) is True
        assert f"SET {column} = %s" in _sql(mock_cursor)

    def test_bind_did_only_when_unset_or_equal(self, pg, mock_cursor):
        mock_cursor.rowcount = 1
        assert pg.bind_session_did("s", "did:key:z6Mk") is True
        assert "did IS NULL OR did = %s" in _sql(mock_cursor)
        mock_cursor.rowcount = 0
        assert pg.bind_session_did("s", "did:key:z6Mk") is False

    def test_deactivate_only_active(self, pg, mock_cursor):
        mock_cursor.rowcount = 0
        assert pg.deactivate_session("s") is False
        assert "AND is_active = TRUE" in _sql(mock_cursor)

    def test_deactivate_expired_returns_ids(self, pg, mock_cursor):
        mock_cursor.fetchall.return_value = [{"session_id": "a"}, {"session_id": "b"}]
        assert pg.deactivate_expired_sessions(NOW) == ["a", "b"]
        assert "expires_at <= %s" in _sql(mock_cursor)
        assert "RETURNING session_id" in _sql(mock_cursor)

    def test_list_sessions_filters_inactive(self, pg, mock_cursor):
        pg.list_sessions("admin@example.com")
        assert "is_active = TRUE" in _sql(mock_cursor)
        pg.list_sessions("admin@example.com", include_inactive=True)
        assert "is_active = TRUE" not in _sql(mock_cursor)
        assert "ORDER BY last_active_at DESC" in _sql(mock_cursor)


class TestPrincipalsAndLinks:
    """Tests for user_principals and did_email_mapping statements."""

    def test_insert_if_absent_returns_inserted(self, pg, mock_cursor):
        row = {
            "user_did": "u",
            "principal_did": "p",
            "principal_key": "{}",
            "created_at": NOW,
            "updated_at": NOW,
        }
        mock_cursor.fetchone.return_value = row
        record = pg.insert_principal_if_absent(PrincipalRecord.from_row(row))
        assert record.key_material == "{}"
        assert "ON CONFLICT (user_did) DO NOTHING" in _sql(mock_cursor)

    def test_insert_if_absent_falls_back_to_existing(self, pg, mock_cursor):
        existing = {
            "user_did": "u",
            "principal_did": "first",
            "principal_key": "first-key",
            "created_at": NOW,
            "updated_at": NOW,
        }
        mock_cursor.fetchone.side_effect = [None, existing]
        record = pg.insert_principal_if_absent(
            PrincipalRecord("u", "second", "second-key", NOW, NOW)
        )
        assert record.principal_did == "first"
        assert mock_cursor.execute.call_count == 2

    def test_link_is_idempotent(self, pg, mock_cursor):
        mock_cursor.rowcount = 0
        assert pg.link_did_email("did", "e", NOW) is False
        assert "ON CONFLICT (email, did) DO NOTHING" in _sql(mock_cursor)


class TestDelegations:
    """Tests for delegations statements."""

    def test_upsert_keeps_created_at(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = _make_delegation_row()
        stored = pg.upsert_delegation(Delegation.from_row(_make_delegation_row()))
        sql = _sql(mock_cursor)
        assert "ON CONFLICT (user_did, space_did, delegation_cid) DO UPDATE" in sql
        assert "created_at = EXCLUDED" not in sql
        assert stored.payload == "payload"

    def test_upsert_writes_space_name(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = _make_delegation_row(space_name="Team Photos")
        stored = pg.upsert_delegation(Delegation.from_row(_make_delegation_row(space_name="Team Photos")))
        assert "space_name = EXCLUDED.space_name" in _sql(mock_cursor)
        assert _params(mock_cursor)[-1] == "Team Photos"
        assert stored.space_name == "Team Photos"

    def test_active_for_user(self, pg, mock_cursor):
        mock_cursor.fetchall.return_value = [_make_delegation_row()]
        result = pg.list_active_delegations_for_user("did:key:z6MkU", NOW)
        assert [d.delegation_cid for d in result] == ["bafy1"]
        assert "user_did = %s AND (expires_at IS NULL OR expires_at > %s)" in _sql(mock_cursor)
        assert list(_params(mock_cursor)) == ["did:key:z6MkU", NOW]

    def test_all_active(self, pg, mock_cursor):
        pg.list_all_active_delegations(NOW)
        assert list(_params(mock_cursor)) == [NOW]
        assert "ORDER BY created_at DESC" in _sql(mock_cursor)

    def test_delete(self, pg, mock_cursor):
        mock_cursor.rowcount = 1
        assert pg.delete_delegation("u", "s", "c") is True
        mock_cursor.rowcount = 0
        assert pg.delete_delegation("u", "s", "c") is False

    def test_delete_expired(self, pg, mock_cursor):
        mock_cursor.rowcount = 2
        assert pg.delete_expired_delegations(NOW) == 2
        assert "expires_at IS NOT NULL AND expires_at <= %s" in _sql(mock_cursor)
