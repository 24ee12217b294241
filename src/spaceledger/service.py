# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Composition root for the credential and delegation ledger.

:class:`CredentialLedger` owns one durable backend and the components built
on it. Nothing in spaceledger is a module-level singleton; an HTTP layer
constructs one ledger per process and passes it to its handlers.

Example:
    ledger = CredentialLedger()
    ledger.load()

    issued = ledger.challenges.issue_challenge(did)
    ...
    if ledger.authenticate_did(session_id, did, issued.challenge_id, signature):
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from .auth.challenges import ChallengeAuthenticator
from .auth.sessions import SessionManager
from .core.config import CoreSettings, get_config
from .identity.principals import Principal, PrincipalDeriver
from .ledger.delegations import DelegationLedger, check_expiry
from .models import Delegation, VerificationKind, utcnow
from .storage import LedgerBackend, create_backend

logger = logging.getLogger(__name__)


class CredentialLedger:
    """Challenges, sessions, principals and delegations over one store."""

    def __init__(
        self,
        settings: CoreSettings | None = None,
        backend: LedgerBackend | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or get_config()
        self.backend = backend if backend is not None else create_backend(self.settings)
        cache_size = self.settings.cache_max_size

        self.challenges = ChallengeAuthenticator(
            self.backend,
            ttl_seconds=self.settings.challenge_ttl_seconds,
            clock=clock,
        )
        self.sessions = SessionManager(
            self.backend,
            ttl_seconds=self.settings.session_ttl_seconds,
            cache_size=cache_size,
            clock=clock,
        )
        self.principals = PrincipalDeriver(self.backend, cache_size=cache_size, clock=clock)
        self.delegations = DelegationLedger(
            self.backend,
            self.principals,
            cache_size=cache_size,
            clock=clock,
        )

    def load(self) -> dict[str, int]:
        """Warm every cache from the durable store."""
        counts = {
            "principals": self.principals.load(),
            "sessions": self.sessions.load(),
            "delegations": self.delegations.load(),
        }
        logger.info("Ledger loaded", extra={"extra_data": {"backend": self.backend.name, **counts}})
        return counts

    def authenticate_did(
        self,
        session_id: str,
        did: str,
        challenge_id: str,
        signature: bytes | str,
    ) -> bool:
        """Verify a signed challenge and mark the session DID-verified.

        ``signature`` is raw bytes or, as sent over the wire, base64 text.
        A session without a DID only accepts one linked to its account, and
        that DID is bound to the session once the challenge verifies.

        Returns False for an unknown session, a session bound to another DID,
        an unlinked DID, or any challenge failure.
        """
        session = self.sessions.get(session_id)
        if session is None:
            logger.info("DID authentication refused: no live session", extra={"extra_data": {"session_id": session_id}})
            return False
        if session.did is not None and session.did != did:
            logger.warning(
                "DID authentication refused: session bound to another DID",
                extra={"extra_data": {"session_id": session_id, "did": did}},
            )
            return False
        if session.did is None and not self.sessions.is_linked(session.email, did):
            logger.warning(
                "DID authentication refused: DID not linked to account",
                extra={"extra_data": {"session_id": session_id, "email": session.email, "did": did}},
            )
            return False

        if isinstance(signature, str):
            verified = self.challenges.verify_base64(did, challenge_id, signature)
        else:
            verified = self.challenges.verify(did, challenge_id, signature)
        if not verified:
            return False

        if session.did is None and not self.sessions.bind_did(session_id, did):
            logger.warning(
                "DID authentication refused: session bound to another DID",
                extra={"extra_data": {"session_id": session_id, "did": did}},
            )
            return False
        return self.sessions.update_verification(session_id, VerificationKind.DID, True)

    def delegate(
        self,
        user_did: str,
        space_did: str,
        delegation_cid: str,
        payload: str,
        expires_at: datetime | None = None,
        created_by: str | None = None,
        principal: Principal | None = None,
        space_name: str | None = None,
    ) -> Delegation:
        """Make sure the user has a principal, then record the delegation.

        A supplied ``principal`` is only stored when the user has none yet;
        otherwise the stored or derived one is used.
        """
        check_expiry(expires_at)
        if principal is not None:
            self.principals.store_supplied(user_did, principal)
        else:
            self.principals.get_or_derive(user_did)
        return self.delegations.store(
            user_did,
            space_did,
            delegation_cid,
            payload,
            expires_at=expires_at,
            created_by=created_by,
            space_name=space_name,
        )

    def stats(self) -> dict[str, dict]:
        return {
            "sessions": self.sessions.stats(),
            "principals": self.principals.stats(),
            "delegations": self.delegations.stats(),
        }

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> CredentialLedger:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
