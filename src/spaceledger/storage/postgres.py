# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""PostgreSQL ledger backend (psycopg2).

Every method is one short transaction on a pooled connection. The challenge
consumption is a single conditional UPDATE whose affected-row count decides
the winner, so concurrent verifications across threads or processes cannot
both succeed.
"""

from __future__ import annotations

from datetime import datetime

from ..core.config import CoreSettings
from ..core.db import ConnectionPool
from ..models import (
    Challenge,
    Delegation,
    PrincipalRecord,
    Session,
    VerificationKind,
)
from .base import LedgerBackend

_SESSION_COLUMNS = """
    session_id, email, did, created_at, last_active_at, expires_at,
    user_agent, ip_address, is_active, email_verified, did_verified
"""

_DELEGATION_COLUMNS = """
    user_did, space_did, delegation_cid, delegation_payload,
    created_at, updated_at, expires_at, created_by, space_name
"""

_ACTIVE_DELEGATION = "(expires_at IS NULL OR expires_at > %s)"

_FLAG_COLUMNS = {
    VerificationKind.EMAIL: "email_verified",
    VerificationKind.DID: "did_verified",
}


class PostgresBackend(LedgerBackend):
    """psycopg2-backed implementation of :class:`LedgerBackend`."""

    name = "postgres"

    def __init__(self, settings: CoreSettings | None = None, pool: ConnectionPool | None = None) -> None:
        self._pool = pool or ConnectionPool(settings)

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    def close(self) -> None:
        self._pool.close()

    # -- auth_challenges ------------------------------------------------

    def insert_challenge(self, challenge: Challenge) -> None:
        with self._pool.cursor() as cur:
            cur.execute(
                """
                INSERT INTO auth_challenges (challenge_id, did, challenge, created_at, expires_at, used)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    challenge.challenge_id,
                    challenge.did,
                    challenge.challenge_text,
                    challenge.created_at,
                    challenge.expires_at,
                    challenge.used,
                ),
            )

    def get_challenge(self, challenge_id: str, did: str) -> Challenge | None:
        with self._pool.cursor() as cur:
            cur.execute(
                """
                SELECT challenge_id, did, challenge, created_at, expires_at, used
                FROM auth_challenges
                WHERE challenge_id = %s AND did = %s
                """,
                (challenge_id, did),
            )
            row = cur.fetchone()
        return Challenge.from_row(row) if row else None

    def mark_challenge_used(self, challenge_id: str) -> bool:
        with self._pool.cursor() as cur:
            cur.execute(
                "UPDATE auth_challenges SET used = TRUE WHERE challenge_id = %s AND used = FALSE",
                (challenge_id,),
            )
            return cur.rowcount == 1

    def delete_expired_challenges(self, now: datetime) -> int:
        with self._pool.cursor() as cur:
            cur.execute("DELETE FROM auth_challenges WHERE expires_at < %s", (now,))
            return cur.rowcount

    # -- account_sessions -----------------------------------------------

    def insert_session(self, session: Session) -> None:
        with self._pool.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO account_sessions ({_SESSION_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    session.session_id,
                    session.email,
                    session.did,
                    session.created_at,
                    session.last_active_at,
                    session.expires_at,
                    session.user_agent,
                    session.ip_address,
                    session.is_active,
                    session.email_verified,
                    session.did_verified,
                ),
            )

    def get_session(self, session_id: str) -> Session | None:
        with self._pool.cursor() as cur:
            cur.execute(
                f"SELECT {_SESSION_COLUMNS} FROM account_sessions WHERE session_id = %s",
                (session_id,),
            )
            row = cur.fetchone()
        return Session.from_row(row) if row else None

    def touch_session(self, session_id: str, at: datetime) -> bool:
        with self._pool.cursor() as cur:
            cur.execute(
                "UPDATE account_sessions SET last_active_at = %s WHERE session_id = %s",
                (at, session_id),
            )
            return cur.rowcount > 0

    def set_session_flag(self, session_id: str, kind: VerificationKind, value: bool) -> bool:
        column = _FLAG_COLUMNS[kind]
        with self._pool.cursor() as cur:
            cur.execute(
                f"UPDATE account_sessions SET {column} = %s WHERE session_id = %s",
                (value, session_id),
            )
            return cur.rowcount > 0

    def bind_session_did(self, session_id: str, did: str) -> bool:
        with self._pool.cursor() as cur:
            cur.execute(
                """
                UPDATE account_sessions SET did = %s
                WHERE session_id = %s AND (did IS NULL OR did = %s)
                """,
                (did, session_id, did),
            )
            return cur.rowcount > 0

    def deactivate_session(self, session_id: str) -> bool:
        with self._pool.cursor() as cur:
            cur.execute(
                "UPDATE account_sessions SET is_active = FALSE WHERE session_id = %s AND is_active = TRUE",
                (session_id,),
            )
            return cur.rowcount > 0

    def deactivate_sessions_for_email(self, email: str) -> int:
        with self._pool.cursor() as cur:
            cur.execute(
                "UPDATE account_sessions SET is_active = FALSE WHERE email = %s AND is_active = TRUE",
                (email,),
            )
            return cur.rowcount

    def deactivate_expired_sessions(self, now: datetime) -> list[str]:
        with self._pool.cursor() as cur:
            cur.execute(
                """
                UPDATE account_sessions SET is_active = FALSE
                WHERE expires_at <= %s AND is_active = TRUE
                RETURNING session_id
                """,
                (now,),
            )
            return [row["session_id"] for row in cur.fetchall()]

    def list_sessions(self, email: str, include_inactive: bool = False) -> list[Session]:
        where = "email = %s" if include_inactive else "email = %s AND is_active = TRUE"
        with self._pool.cursor() as cur:
            cur.execute(
                f"""
                SELECT {_SESSION_COLUMNS} FROM account_sessions
                WHERE {where}
                ORDER BY last_active_at DESC
                """,
                (email,),
            )
            rows = cur.fetchall()
        return [Session.from_row(row) for row in rows]

    def list_live_sessions(self, now: datetime) -> list[Session]:
        with self._pool.cursor() as cur:
            cur.execute(
                f"""
                SELECT {_SESSION_COLUMNS} FROM account_sessions
                WHERE is_active = TRUE AND expires_at > %s
                """,
                (now,),
            )
            rows = cur.fetchall()
        return [Session.from_row(row) for row in rows]

    # -- did_email_mapping ----------------------------------------------

    def link_did_email(self, did: str, email: str, at: datetime) -> bool:
        with self._pool.cursor() as cur:
            cur.execute(
                """
                INSERT INTO did_email_mapping (did, email, created_at)
                VALUES (%s, %s, %s)
                ON CONFLICT (email, did) DO NOTHING
                """,
                (did, email, at),
            )
            return cur.rowcount > 0

    def is_did_linked(self, did: str, email: str) -> bool:
        with self._pool.cursor() as cur:
            cur.execute(
                "SELECT 1 FROM did_email_mapping WHERE email = %s AND did = %s",
                (email, did),
            )
            return cur.fetchone() is not None

    def list_dids_for_email(self, email: str) -> list[str]:
        with self._pool.cursor() as cur:
            cur.execute(
                "SELECT did FROM did_email_mapping WHERE email = %s ORDER BY created_at",
                (email,),
            )
            return [row["did"] for row in cur.fetchall()]

    # -- user_principals ------------------------------------------------

    def get_principal(self, user_did: str) -> PrincipalRecord | None:
        with self._pool.cursor() as cur:
            cur.execute(
                """
                SELECT user_did, principal_did, principal_key, created_at, updated_at
                FROM user_principals WHERE user_did = %s
                """,
                (user_did,),
            )
            row = cur.fetchone()
        return PrincipalRecord.from_row(row) if row else None

    def insert_principal_if_absent(self, record: PrincipalRecord) -> PrincipalRecord:
        with self._pool.cursor() as cur:
            cur.execute(
                """
                INSERT INTO user_principals (user_did, principal_did, principal_key, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (user_did) DO NOTHING
                RETURNING user_did, principal_did, principal_key, created_at, updated_at
                """,
                (
                    record.user_did,
                    record.principal_did,
                    record.key_material,
                    record.created_at,
                    record.updated_at,
                ),
            )
            row = cur.fetchone()
            if row is None:
                cur.execute(
                    """
                    SELECT user_did, principal_did, principal_key, created_at, updated_at
                    FROM user_principals WHERE user_did = %s
                    """,
                    (record.user_did,),
                )
                row = cur.fetchone()
        return PrincipalRecord.from_row(row)

    def list_principals(self) -> list[PrincipalRecord]:
        with self._pool.cursor() as cur:
            cur.execute(
                "SELECT user_did, principal_did, principal_key, created_at, updated_at FROM user_principals"
            )
            rows = cur.fetchall()
        return [PrincipalRecord.from_row(row) for row in rows]

    # -- delegations ----------------------------------------------------

    def upsert_delegation(self, delegation: Delegation) -> Delegation:
        with self._pool.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO delegations ({_DELEGATION_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_did, space_did, delegation_cid) DO UPDATE
                SET delegation_payload = EXCLUDED.delegation_payload,
                    updated_at = EXCLUDED.updated_at,
                    expires_at = EXCLUDED.expires_at,
                    created_by = EXCLUDED.created_by,
                    space_name = EXCLUDED.space_name
                RETURNING {_DELEGATION_COLUMNS}
                """,
                (
                    delegation.user_did,
                    delegation.space_did,
                    delegation.delegation_cid,
                    delegation.payload,
                    delegation.created_at,
                    delegation.updated_at,
                    delegation.expires_at,
                    delegation.created_by,
                    delegation.space_name,
                ),
            )
            row = cur.fetchone()
        return Delegation.from_row(row)

    def _select_active(self, column: str | None, value: str | None, now: datetime) -> list[Delegation]:
        where = _ACTIVE_DELEGATION
        params: list = [now]
        if column is not None:
            where = f"{column} = %s AND {where}"
            params.insert(0, value)
        with self._pool.cursor() as cur:
            cur.execute(
                f"""
                SELECT {_DELEGATION_COLUMNS} FROM delegations
                WHERE {where}
                ORDER BY created_at DESC
                """,
                params,
            )
            rows = cur.fetchall()
        return [Delegation.from_row(row) for row in rows]

    def list_active_delegations_for_user(self, user_did: str, now: datetime) -> list[Delegation]:
        return self._select_active("user_did", user_did, now)

    def list_active_delegations_for_space(self, space_did: str, now: datetime) -> list[Delegation]:
        return self._select_active("space_did", space_did, now)

    def list_active_delegations_by_creator(self, created_by: str, now: datetime) -> list[Delegation]:
        return self._select_active("created_by", created_by, now)

    def list_all_active_delegations(self, now: datetime) -> list[Delegation]:
        return self._select_active(None, None, now)

    def delete_delegation(self, user_did: str, space_did: str, delegation_cid: str) -> bool:
        with self._pool.cursor() as cur:
            cur.execute(
                "DELETE FROM delegations WHERE user_did = %s AND space_did = %s AND delegation_cid = %s",
                (user_did, space_did, delegation_cid),
            )
            return cur.rowcount > 0

    def delete_expired_delegations(self, now: datetime) -> int:
        with self._pool.cursor() as cur:
            cur.execute(
                "DELETE FROM delegations WHERE expires_at IS NOT NULL AND expires_at <= %s",
                (now,),
            )
            return cur.rowcount
