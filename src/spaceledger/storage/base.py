# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Durable store interface for the ledger.

One backend instance backs every component in a process. Methods are
grouped per table and map closely onto single SQL statements; caching,
expiry policy and logging live in the components, not here.

Backends raise :class:`~spaceledger.core.exceptions.PersistenceError` for
any I/O failure and never for "not found".
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from ..models import (
    Challenge,
    Delegation,
    PrincipalRecord,
    Session,
    VerificationKind,
)


class LedgerBackend(ABC):
    """Abstract durable storage for challenges, sessions, principals and delegations."""

    name: str = "abstract"

    # ------------------------------------------------------------------
    # auth_challenges
    # ------------------------------------------------------------------

    @abstractmethod
    def insert_challenge(self, challenge: Challenge) -> None:
        """Persist a freshly issued challenge."""

    @abstractmethod
    def get_challenge(self, challenge_id: str, did: str) -> Challenge | None:
        """Load a challenge by id, only if it was issued for ``did``."""

    @abstractmethod
    def mark_challenge_used(self, challenge_id: str) -> bool:
        """Flip ``used`` false→true.

        Must be an atomic compare-and-set: returns True only for the single
        caller that performed the transition.
        """

    @abstractmethod
    def delete_expired_challenges(self, now: datetime) -> int:
        """Delete challenges with ``expires_at < now``; returns how many."""

    # ------------------------------------------------------------------
    # account_sessions
    # ------------------------------------------------------------------

    @abstractmethod
    def insert_session(self, session: Session) -> None:
        """Persist a new session."""

    @abstractmethod
    def get_session(self, session_id: str) -> Session | None:
        """Load a session regardless of its state."""

    @abstractmethod
    def touch_session(self, session_id: str, at: datetime) -> bool:
        """Set ``last_active_at``."""

    @abstractmethod
    def set_session_flag(self, session_id: str, kind: VerificationKind, value: bool) -> bool:
        """Set one verification flag; returns whether the session exists."""

    @abstractmethod
    def bind_session_did(self, session_id: str, did: str) -> bool:
        """Set ``did`` when the session has none; True if it now holds ``did``."""

    @abstractmethod
    def deactivate_session(self, session_id: str) -> bool:
        """Set ``is_active = false``; returns whether an active row changed."""

    @abstractmethod
    def deactivate_sessions_for_email(self, email: str) -> int:
        """Deactivate every active session of an account."""

    @abstractmethod
    def deactivate_expired_sessions(self, now: datetime) -> list[str]:
        """Deactivate active sessions with ``expires_at <= now``; returns their ids."""

    @abstractmethod
    def list_sessions(self, email: str, include_inactive: bool = False) -> list[Session]:
        """Sessions of one account, most recently active first."""

    @abstractmethod
    def list_live_sessions(self, now: datetime) -> list[Session]:
        """Every active, unexpired session (startup warm-up)."""

    # ------------------------------------------------------------------
    # did_email_mapping
    # ------------------------------------------------------------------

    @abstractmethod
    def link_did_email(self, did: str, email: str, at: datetime) -> bool:
        """Record that ``did`` belongs to ``email``; returns False if already linked."""

    @abstractmethod
    def is_did_linked(self, did: str, email: str) -> bool:
        """Whether ``did`` is registered for ``email``."""

    @abstractmethod
    def list_dids_for_email(self, email: str) -> list[str]:
        """All DIDs registered for ``email``, oldest first."""

    # ------------------------------------------------------------------
    # user_principals
    # ------------------------------------------------------------------

    @abstractmethod
    def get_principal(self, user_did: str) -> PrincipalRecord | None:
        """Load the stored principal of a user."""

    @abstractmethod
    def insert_principal_if_absent(self, record: PrincipalRecord) -> PrincipalRecord:
        """Store ``record`` unless the user already has a principal.

        Returns the record that is stored afterwards, which is the existing
        one when there was a conflict.
        """

    @abstractmethod
    def list_principals(self) -> list[PrincipalRecord]:
        """All stored principals (startup warm-up)."""

    # ------------------------------------------------------------------
    # delegations
    # ------------------------------------------------------------------

    @abstractmethod
    def upsert_delegation(self, delegation: Delegation) -> Delegation:
        """Insert or replace on ``(user_did, space_did, delegation_cid)``.

        On conflict the original ``created_at`` is kept. Returns the stored row.
        """

    @abstractmethod
    def list_active_delegations_for_user(self, user_did: str, now: datetime) -> list[Delegation]:
        """Active grants of a user, most recent first."""

    @abstractmethod
    def list_active_delegations_for_space(self, space_did: str, now: datetime) -> list[Delegation]:
        """Active grants into a space, most recent first."""

    @abstractmethod
    def list_active_delegations_by_creator(self, created_by: str, now: datetime) -> list[Delegation]:
        """Active grants issued by one admin, most recent first."""

    @abstractmethod
    def list_all_active_delegations(self, now: datetime) -> list[Delegation]:
        """Every active grant, most recent first (startup warm-up)."""

    @abstractmethod
    def delete_delegation(self, user_did: str, space_did: str, delegation_cid: str) -> bool:
        """Delete one grant; returns whether a row was deleted."""

    @abstractmethod
    def delete_expired_delegations(self, now: datetime) -> int:
        """Delete grants with ``expires_at <= now``; returns how many."""

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release backend resources."""
