# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Account sessions with independent email and DID verification.

A session only backs authenticated actions once both of its verification
flags are set:

- ``email_verified``: the storage service confirmed the account
- ``did_verified``: the holder answered a signed DID challenge

Sessions live in the durable store; memory is a write-through index over
it. Expired sessions are deactivated lazily on read and in bulk by
:meth:`SessionManager.sweep_expired`.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from ..core.cache import CachedRepository
from ..core.config import get_config
from ..core.exceptions import AuthenticationError, PersistenceError, ValidationException
from ..identity.did_key import decode_public_key
from ..models import Session, VerificationKind, utcnow
from ..storage.base import LedgerBackend

logger = logging.getLogger(__name__)

# Random bytes in a session id (hex-encoded to 32 characters)
SESSION_ID_BYTES = 16


@dataclass(frozen=True)
class CreatedSession:
    """Handle returned to the client when a session is opened."""

    session_id: str
    expires_at: datetime


def _verification_kind(kind: VerificationKind | str) -> VerificationKind:
    try:
        return VerificationKind(kind)
    except ValueError as e:
        raise ValidationException(f"Unknown verification kind: {kind}", field="kind", value=kind) from e


class SessionManager:
    """Creates, looks up and retires account sessions."""

    def __init__(
        self,
        backend: LedgerBackend,
        *,
        ttl_seconds: int | None = None,
        cache_size: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backend = backend
        self._clock = clock
        if ttl_seconds is None:
            ttl_seconds = get_config().session_ttl_seconds
        self._ttl = timedelta(seconds=ttl_seconds)
        self._cache: CachedRepository[str, Session] = CachedRepository("sessions", cache_size)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        email: str,
        did: str | None = None,
        metadata: dict[str, Any] | None = None,
        *,
        email_verified: bool = False,
        did_verified: bool = False,
    ) -> CreatedSession:
        """Open a session for an account.

        Args:
            email: Account the session belongs to.
            did: DID the holder claims, if any.
            metadata: Optional ``user_agent`` / ``ip_address``.
            email_verified: Initial email verification flag.
            did_verified: Initial DID verification flag.

        Raises:
            PersistenceError: the session could not be stored.
        """
        if not email:
            raise ValidationException("email is required", field="email")
        metadata = metadata or {}
        now = self._clock()
        session = Session(
            session_id=secrets.token_hex(SESSION_ID_BYTES),
            email=email,
            did=did,
            created_at=now,
            last_active_at=now,
            expires_at=now + self._ttl,
            user_agent=metadata.get("user_agent"),
            ip_address=metadata.get("ip_address"),
            email_verified=email_verified,
            did_verified=did_verified,
        )
        self._cache.write(session.session_id, session, lambda: self._backend.insert_session(session))

        logger.info(
            "Created session",
            extra={
                "extra_data": {
                    "session_id": session.session_id,
                    "email": email,
                    "did": did,
                    "state": session.state.value,
                }
            },
        )
        return CreatedSession(session.session_id, session.expires_at)

    def get(self, session_id: str) -> Session | None:
        """Return a live session, refreshing its activity time.

        Inactive or expired sessions read as None; an expired one still
        marked active is deactivated on the way out.
        """
        session = self._cache.read(session_id, self._backend.get_session)
        if session is None:
            return None

        now = self._clock()
        if not session.is_live(now):
            self._retire(session)
            return None

        try:
            self._cache.update(
                session_id,
                lambda: self._backend.touch_session(session_id, now),
                lambda cached: replace(cached, last_active_at=now),
            )
        except PersistenceError:
            logger.warning(
                "Failed to refresh session activity",
                extra={"extra_data": {"session_id": session_id}},
            )
            return replace(session)
        return replace(session, last_active_at=now)

    def _retire(self, session: Session) -> None:
        if not session.is_active:
            self._cache.evict(session.session_id)
            return
        try:
            self._cache.remove(session.session_id, lambda: self._backend.deactivate_session(session.session_id))
        except PersistenceError:
            logger.warning(
                "Failed to deactivate expired session",
                extra={"extra_data": {"session_id": session.session_id}},
            )
            self._cache.evict(session.session_id)
            return
        logger.info("Deactivated expired session", extra={"extra_data": {"session_id": session.session_id}})

    def deactivate(self, session_id: str) -> bool:
        """Log out one session. Returns whether an active session was closed."""
        changed = self._cache.remove(session_id, lambda: self._backend.deactivate_session(session_id))
        if changed:
            logger.info("Deactivated session", extra={"extra_data": {"session_id": session_id}})
        return changed

    def deactivate_all(self, email: str) -> int:
        """Log out every session of an account."""
        with self._cache.lock:
            count = self._backend.deactivate_sessions_for_email(email)
            self._cache.evict_where(lambda _, s: s.email == email)
        logger.info("Deactivated account sessions", extra={"extra_data": {"email": email, "count": count}})
        return count

    def sweep_expired(self) -> int:
        """Deactivate every session past its expiry. Returns how many."""
        now = self._clock()
        ids = set(self._backend.deactivate_expired_sessions(now))
        self._cache.evict_where(lambda k, s: k in ids or not s.is_live(now))
        if ids:
            logger.info("Swept expired sessions", extra={"extra_data": {"count": len(ids)}})
        return len(ids)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def update_verification(self, session_id: str, kind: VerificationKind | str, value: bool = True) -> bool:
        """Set one verification flag. Returns False when the session is unknown."""
        kind = _verification_kind(kind)
        with self._cache.lock:
            found = self._backend.set_session_flag(session_id, kind, value)
            if not found:
                self._cache.evict(session_id)
                return False
            cached = self._cache.peek(session_id)
            if cached is not None:
                self._cache.put(session_id, cached.with_flag(kind, value))

        logger.info(
            "Updated session verification",
            extra={"extra_data": {"session_id": session_id, "kind": kind.value, "value": value}},
        )
        return True

    def bind_did(self, session_id: str, did: str) -> bool:
        """Attach a DID to a session that has none.

        Returns False when the session is unknown or already holds a
        different DID. A session's DID is never replaced.
        """
        with self._cache.lock:
            bound = self._backend.bind_session_did(session_id, did)
            if not bound:
                self._cache.evict(session_id)
                return False
            cached = self._cache.peek(session_id)
            if cached is not None and cached.did is None:
                self._cache.put(session_id, replace(cached, did=did))

        logger.info("Bound DID to session", extra={"extra_data": {"session_id": session_id, "did": did}})
        return True

    def is_usable(self, session_id: str) -> bool:
        """Live and verified on both axes."""
        session = self.get(session_id)
        return session is not None and session.is_usable(self._clock())

    def is_verified(self, session_id: str) -> bool:
        session = self.get(session_id)
        return session is not None and session.is_verified

    def list_for_account(self, email: str, include_inactive: bool = False) -> list[Session]:
        """Sessions of an account, most recently active first."""
        return self._backend.list_sessions(email, include_inactive)

    # ------------------------------------------------------------------
    # DID / email links
    # ------------------------------------------------------------------

    def link_did(self, email: str, did: str) -> bool:
        """Associate a device DID with an account. Returns False if already linked."""
        decode_public_key(did)
        created = self._backend.link_did_email(did, email, self._clock())
        if created:
            logger.info("Linked DID to account", extra={"extra_data": {"email": email, "did": did}})
        return created

    def is_linked(self, email: str, did: str) -> bool:
        return self._backend.is_did_linked(did, email)

    def linked_dids(self, email: str) -> list[str]:
        return self._backend.list_dids_for_email(email)

    def create_authenticated(
        self,
        did: str,
        email: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CreatedSession:
        """Open a DID-verified session after a successful challenge.

        With an ``email`` the DID must already be linked to that account;
        without one the DID itself is the account identifier.

        Raises:
            AuthenticationError: the DID is not linked to ``email``.
        """
        if email is not None and not self.is_linked(email, did):
            logger.warning(
                "Refused DID session: DID not linked to account",
                extra={"extra_data": {"email": email, "did": did}},
            )
            raise AuthenticationError("DID is not linked to this account", details={"did": did})
        return self.create(email or did, did, metadata, did_verified=True)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Warm the cache with live sessions, then sweep stale ones."""
        try:
            sessions = self._backend.list_live_sessions(self._clock())
        except PersistenceError:
            logger.exception("Failed to load sessions from store")
            return 0
        loaded = self._cache.warm((s.session_id, s) for s in sessions)
        logger.info("Loaded sessions from store", extra={"extra_data": {"count": loaded}})
        self.sweep_expired()
        return loaded

    def stats(self) -> dict:
        return self._cache.stats()
