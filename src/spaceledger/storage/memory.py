# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""In-memory ledger backend.

Suitable for development, tests and single-process deployments that can
afford to lose state on restart. Every table is a dict; one lock guards all
of them so conditional updates are atomic the same way a single SQL
statement is.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime

from ..models import (
    Challenge,
    Delegation,
    DidEmailLink,
    PrincipalRecord,
    Session,
    VerificationKind,
)
from .base import LedgerBackend


def _newest_first(delegations: list[Delegation]) -> list[Delegation]:
    return sorted(delegations, key=lambda d: d.created_at, reverse=True)


class MemoryBackend(LedgerBackend):
    """Dict-backed implementation of :class:`LedgerBackend`.

    Stored objects are copied on the way in and out so callers can never
    mutate a "durable" row by accident.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._challenges: dict[str, Challenge] = {}
        self._sessions: dict[str, Session] = {}
        self._links: dict[tuple[str, str], DidEmailLink] = {}
        self._principals: dict[str, PrincipalRecord] = {}
        self._delegations: dict[tuple[str, str, str], Delegation] = {}

    # -- auth_challenges ------------------------------------------------

    def insert_challenge(self, challenge: Challenge) -> None:
        with self._lock:
            self._challenges[challenge.challenge_id] = replace(challenge)

    def get_challenge(self, challenge_id: str, did: str) -> Challenge | None:
        with self._lock:
            found = self._challenges.get(challenge_id)
            if found is None or found.did != did:
                return None
            return replace(found)

    def mark_challenge_used(self, challenge_id: str) -> bool:
        with self._lock:
            found = self._challenges.get(challenge_id)
            if found is None or found.used:
                return False
            found.used = True
            return True

    def delete_expired_challenges(self, now: datetime) -> int:
        with self._lock:
            expired = [cid for cid, c in self._challenges.items() if c.expires_at < now]
            for cid in expired:
                del self._challenges[cid]
            return len(expired)

    # -- account_sessions -----------------------------------------------

    def insert_session(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.session_id] = replace(session)

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            found = self._sessions.get(session_id)
            return replace(found) if found else None

    def touch_session(self, session_id: str, at: datetime) -> bool:
        with self._lock:
            found = self._sessions.get(session_id)
            if found is None:
                return False
            found.last_active_at = at
            return True

    def set_session_flag(self, session_id: str, kind: VerificationKind, value: bool) -> bool:
        with self._lock:
            found = self._sessions.get(session_id)
            if found is None:
                return False
            self._sessions[session_id] = found.with_flag(kind, value)
            return True

    def bind_session_did(self, session_id: str, did: str) -> bool:
        with self._lock:
            found = self._sessions.get(session_id)
            if found is None:
                return False
            if found.did is None:
                found.did = did
            return found.did == did

    def deactivate_session(self, session_id: str) -> bool:
        with self._lock:
            found = self._sessions.get(session_id)
            if found is None or not found.is_active:
                return False
            found.is_active = False
            return True

    def deactivate_sessions_for_email(self, email: str) -> int:
        with self._lock:
            count = 0
            for s in self._sessions.values():
                if s.email == email and s.is_active:
                    s.is_active = False
                    count += 1
            return count

    def deactivate_expired_sessions(self, now: datetime) -> list[str]:
        with self._lock:
            ids = []
            for s in self._sessions.values():
                if s.is_active and s.expires_at <= now:
                    s.is_active = False
                    ids.append(s.session_id)
            return ids

    def list_sessions(self, email: str, include_inactive: bool = False) -> list[Session]:
        with self._lock:
            found = [
                replace(s)
                for s in self._sessions.values()
                if s.email == email and (include_inactive or s.is_active)
            ]
        return sorted(found, key=lambda s: s.last_active_at, reverse=True)

    def list_live_sessions(self, now: datetime) -> list[Session]:
        with self._lock:
            return [replace(s) for s in self._sessions.values() if s.is_live(now)]

    # -- did_email_mapping ----------------------------------------------

    def link_did_email(self, did: str, email: str, at: datetime) -> bool:
        with self._lock:
            if (email, did) in self._links:
                return False
            self._links[(email, did)] = DidEmailLink(did=did, email=email, created_at=at)
            return True

    def is_did_linked(self, did: str, email: str) -> bool:
        with self._lock:
            return (email, did) in self._links

    def list_dids_for_email(self, email: str) -> list[str]:
        with self._lock:
            links = [link for (e, _), link in self._links.items() if e == email]
        return [link.did for link in sorted(links, key=lambda link: link.created_at)]

    # -- user_principals ------------------------------------------------

    def get_principal(self, user_did: str) -> PrincipalRecord | None:
        with self._lock:
            return self._principals.get(user_did)

    def insert_principal_if_absent(self, record: PrincipalRecord) -> PrincipalRecord:
        with self._lock:
            return self._principals.setdefault(record.user_did, record)

    def list_principals(self) -> list[PrincipalRecord]:
        with self._lock:
            return list(self._principals.values())

    # -- delegations ----------------------------------------------------

    def upsert_delegation(self, delegation: Delegation) -> Delegation:
        with self._lock:
            existing = self._delegations.get(delegation.key)
            stored = replace(delegation)
            if existing is not None:
                stored.created_at = existing.created_at
            self._delegations[delegation.key] = stored
            return replace(stored)

    def _select(self, now: datetime, **match: str) -> list[Delegation]:
        with self._lock:
            found = [
                replace(d)
                for d in self._delegations.values()
                if d.is_active(now) and all(getattr(d, k) == v for k, v in match.items())
            ]
        return _newest_first(found)

    def list_active_delegations_for_user(self, user_did: str, now: datetime) -> list[Delegation]:
        return self._select(now, user_did=user_did)

    def list_active_delegations_for_space(self, space_did: str, now: datetime) -> list[Delegation]:
        return self._select(now, space_did=space_did)

    def list_active_delegations_by_creator(self, created_by: str, now: datetime) -> list[Delegation]:
        return self._select(now, created_by=created_by)

    def list_all_active_delegations(self, now: datetime) -> list[Delegation]:
        return self._select(now)

    def delete_delegation(self, user_did: str, space_did: str, delegation_cid: str) -> bool:
        with self._lock:
            return self._delegations.pop((user_did, space_did, delegation_cid), None) is not None

    def delete_expired_delegations(self, now: datetime) -> int:
        with self._lock:
            expired = [k for k, d in self._delegations.items() if not d.is_active(now)]
            for k in expired:
                del self._delegations[k]
            return len(expired)
