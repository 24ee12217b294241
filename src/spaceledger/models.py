# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Data models for the credential and delegation ledger.

Each model maps one-to-one onto a durable table (see ``storage/schema.sql``)
and knows how to build itself from a database row. Timestamps are always
timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# ENUMS
# =============================================================================


class VerificationKind(str, Enum):
    """Independent verification flags carried by a session."""
    EMAIL = "email"  # Account/email confirmed by the storage service
    DID = "did"      # Signed DID challenge verified


class SessionState(str, Enum):
    """Lifecycle state of a session, derived from its flags."""
    UNVERIFIED = "unverified"
    PARTIALLY_VERIFIED = "partially_verified"
    FULLY_VERIFIED = "fully_verified"
    DEACTIVATED = "deactivated"


# =============================================================================
# CHALLENGE
# =============================================================================


@dataclass
class Challenge:
    """A one-time, time-bound value a client must sign to prove a DID."""

    challenge_id: str
    did: str
    challenge_text: str
    created_at: datetime
    expires_at: datetime
    used: bool = False

    def is_valid(self, did: str, now: datetime) -> bool:
        return not self.used and now <= self.expires_at and self.did == did

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Challenge:
        """Create from database row."""
        return cls(
            challenge_id=str(row["challenge_id"]),
            did=row["did"],
            challenge_text=row["challenge"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            used=bool(row["used"]),
        )


# =============================================================================
# SESSION
# =============================================================================


@dataclass
class Session:
    """An account session with independent email and DID verification."""

    session_id: str
    email: str
    did: str | None
    created_at: datetime
    last_active_at: datetime
    expires_at: datetime
    user_agent: str | None = None
    ip_address: str | None = None
    is_active: bool = True
    email_verified: bool = False
    did_verified: bool = False

    @property
    def is_verified(self) -> bool:
        """Both verification flags are set."""
        return self.email_verified and self.did_verified

    def is_live(self, now: datetime) -> bool:
        return self.is_active and now < self.expires_at

    def is_usable(self, now: datetime) -> bool:
        """Whether the session may back an authenticated action."""
        return self.is_live(now) and self.is_verified

    @property
    def state(self) -> SessionState:
        if not self.is_active:
            return SessionState.DEACTIVATED
        if self.is_verified:
            return SessionState.FULLY_VERIFIED
        if self.email_verified or self.did_verified:
            return SessionState.PARTIALLY_VERIFIED
        return SessionState.UNVERIFIED

    def with_flag(self, kind: VerificationKind, value: bool) -> Session:
        if kind is VerificationKind.EMAIL:
            return replace(self, email_verified=value)
        return replace(self, did_verified=value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "email": self.email,
            "did": self.did,
            "created_at": self.created_at.isoformat(),
            "last_active_at": self.last_active_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "user_agent": self.user_agent,
            "ip_address": self.ip_address,
            "is_active": self.is_active,
            "email_verified": self.email_verified,
            "did_verified": self.did_verified,
            "is_verified": self.is_verified,
            "state": self.state.value,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Session:
        """Create from database row."""
        return cls(
            session_id=row["session_id"],
            email=row["email"],
            did=row.get("did"),
            created_at=row["created_at"],
            last_active_at=row["last_active_at"],
            expires_at=row["expires_at"],
            user_agent=row.get("user_agent"),
            ip_address=row.get("ip_address"),
            is_active=bool(row.get("is_active", True)),
            email_verified=bool(row.get("email_verified", False)),
            did_verified=bool(row.get("did_verified", False)),
        )


# =============================================================================
# PRINCIPAL RECORD
# =============================================================================


@dataclass(frozen=True)
class PrincipalRecord:
    """Persisted form of a user's signing principal.

    ``key_material`` is the exported JSON archive of the signer; it is
    opaque to the storage layer.
    """

    user_did: str
    principal_did: str
    key_material: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> PrincipalRecord:
        """Create from database row."""
        return cls(
            user_did=row["user_did"],
            principal_did=row["principal_did"],
            key_material=row["principal_key"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


# =============================================================================
# DELEGATION
# =============================================================================


@dataclass
class Delegation:
    """A grant letting ``user_did`` upload into ``space_did``.

    ``payload`` is the serialized delegation archive produced by the
    delegation-object service; the ledger never looks inside it.
    """

    user_did: str
    space_did: str
    delegation_cid: str
    payload: str
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None = None
    created_by: str | None = None
    space_name: str | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.user_did, self.space_did, self.delegation_cid)

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now

    def to_dict(self, include_payload: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "user_did": self.user_did,
            "space_did": self.space_did,
            "delegation_cid": self.delegation_cid,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_by": self.created_by,
            "space_name": self.space_name,
        }
        if include_payload:
            data["payload"] = self.payload
        return data

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Delegation:
        """Create from database row."""
        return cls(
            user_did=row["user_did"],
            space_did=row["space_did"],
            delegation_cid=row["delegation_cid"],
            payload=row["delegation_payload"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            expires_at=row.get("expires_at"),
            created_by=row.get("created_by"),
            space_name=row.get("space_name"),
        )


@dataclass
class SpaceGrants:
    """Active delegations into one space, grouped by requesting user."""

    user_did: str
    delegations: list[Delegation] = field(default_factory=list)


# =============================================================================
# DID / EMAIL LINK
# =============================================================================


@dataclass(frozen=True)
class DidEmailLink:
    """Association between an admin email and one of their device DIDs."""

    did: str
    email: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> DidEmailLink:
        """Create from database row."""
        return cls(did=row["did"], email=row["email"], created_at=row["created_at"])
