# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Signed-challenge authentication for did:key identities.

Flow:
    1. Client asks for a challenge for its DID.
    2. Server stores a one-time random text bound to that DID, valid for a
       few minutes, and returns its id and text.
    3. Client signs the UTF-8 text with the DID's Ed25519 key.
    4. Server verifies the signature and consumes the challenge.

Consumption is a conditional update on the durable store, so a challenge
can authenticate exactly one request even when two verifications race.
Verification never raises; every failure is ``False`` with the reason
logged.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from cryptography.exceptions import InvalidSignature

from ..core.config import get_config
from ..core.exceptions import InvalidDIDError, PersistenceError
from ..identity.did_key import decode_public_key, load_verify_key
from ..models import Challenge, utcnow
from ..storage.base import LedgerBackend

logger = logging.getLogger(__name__)

# Random bytes in each challenge (hex-encoded to 64 characters)
CHALLENGE_NONCE_BYTES = 32


@dataclass(frozen=True)
class IssuedChallenge:
    """What the client needs to answer a challenge."""

    challenge_id: str
    challenge_text: str
    expires_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "challenge_id": self.challenge_id,
            "challenge": self.challenge_text,
            "expires_at": self.expires_at.isoformat(),
        }


class ChallengeAuthenticator:
    """Issues and verifies one-time DID challenges."""

    def __init__(
        self,
        backend: LedgerBackend,
        *,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backend = backend
        self._clock = clock
        if ttl_seconds is None:
            ttl_seconds = get_config().challenge_ttl_seconds
        self._ttl = timedelta(seconds=ttl_seconds)

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue_challenge(self, did: str) -> IssuedChallenge:
        """Create and persist a fresh challenge for ``did``.

        Raises:
            InvalidDIDError: ``did`` is not an Ed25519 did:key.
            PersistenceError: the challenge could not be stored.
        """
        decode_public_key(did)

        now = self._clock()
        epoch_ms = int(now.timestamp() * 1000)
        challenge = Challenge(
            challenge_id=str(uuid.uuid4()),
            did=did,
            challenge_text=f"{did}:{epoch_ms}:{secrets.token_hex(CHALLENGE_NONCE_BYTES)}",
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._backend.insert_challenge(challenge)

        logger.debug(
            "Issued auth challenge",
            extra={"extra_data": {"did": did, "challenge_id": challenge.challenge_id}},
        )
        return IssuedChallenge(challenge.challenge_id, challenge.challenge_text, challenge.expires_at)

    def verify(self, did: str, challenge_id: str, signature: bytes) -> bool:
        """Check a signed challenge and consume it.

        Returns True only for the single caller whose signature is valid and
        who wins the durable used-flag update.
        """
        context = {"did": did, "challenge_id": challenge_id}
        try:
            challenge = self._backend.get_challenge(challenge_id, did)
            if challenge is None:
                logger.info("Challenge verification failed: not found", extra={"extra_data": context})
                return False
            if challenge.used:
                logger.info("Challenge verification failed: already used", extra={"extra_data": context})
                return False
            if self._clock() > challenge.expires_at:
                logger.info("Challenge verification failed: expired", extra={"extra_data": context})
                return False

            load_verify_key(did).verify(signature, challenge.challenge_text.encode("utf-8"))

            if not self._backend.mark_challenge_used(challenge_id):
                logger.warning("Challenge verification failed: consumed concurrently", extra={"extra_data": context})
                return False
        except InvalidDIDError as e:
            logger.info(
                "Challenge verification failed: invalid DID",
                extra={"extra_data": {**context, "reason": e.reason}},
            )
            return False
        except (InvalidSignature, TypeError, ValueError):
            logger.info("Challenge verification failed: bad signature", extra={"extra_data": context})
            return False
        except PersistenceError:
            logger.exception("Challenge verification failed: store error", extra={"extra_data": context})
            return False

        logger.info("Challenge verified", extra={"extra_data": context})
        return True

    def verify_base64(self, did: str, challenge_id: str, signature_b64: str) -> bool:
        """:meth:`verify` for signatures sent base64-encoded over the wire."""
        try:
            signature = base64.b64decode(signature_b64, validate=True)
        except (binascii.Error, ValueError, TypeError):
            logger.info(
                "Challenge verification failed: malformed base64 signature",
                extra={"extra_data": {"did": did, "challenge_id": challenge_id}},
            )
            return False
        return self.verify(did, challenge_id, signature)

    def cleanup_expired(self) -> int:
        """Delete challenges whose validity window has passed."""
        removed = self._backend.delete_expired_challenges(self._clock())
        if removed:
            logger.info("Removed expired challenges", extra={"extra_data": {"count": removed}})
        return removed
