# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Delegation ledger.

Tracks which user DIDs may upload into which spaces, keyed by
``(user_did, space_did, delegation_cid)``. The delegation payload itself is
an opaque archive produced elsewhere; the ledger only stores and returns it.

Memory holds, per user, the list of that user's active delegations, newest
first. It is written through after every durable change and pruned of
expired entries whenever it is read.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from ..core.cache import CachedRepository
from ..core.exceptions import MissingPrincipalError, PersistenceError, ValidationException
from ..identity.principals import PrincipalDeriver
from ..models import Delegation, SpaceGrants, utcnow
from ..storage.base import LedgerBackend

logger = logging.getLogger(__name__)


def _newest_first(delegations: list[Delegation]) -> list[Delegation]:
    return sorted(delegations, key=lambda d: d.created_at, reverse=True)


def check_expiry(expires_at: datetime | None) -> None:
    """Reject naive expiry times; every stored timestamp is aware UTC."""
    if expires_at is not None and expires_at.tzinfo is None:
        raise ValidationException("expires_at must be timezone-aware", field="expires_at", value=expires_at)


class DelegationLedger:
    """Stores, lists, revokes and expires delegations."""

    def __init__(
        self,
        backend: LedgerBackend,
        principals: PrincipalDeriver,
        *,
        cache_size: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backend = backend
        self._principals = principals
        self._clock = clock
        self._cache: CachedRepository[str, list[Delegation]] = CachedRepository("delegations", cache_size)

    def store(
        self,
        user_did: str,
        space_did: str,
        delegation_cid: str,
        payload: str,
        expires_at: datetime | None = None,
        created_by: str | None = None,
        space_name: str | None = None,
    ) -> Delegation:
        """Record a delegation, replacing any with the same key.

        ``space_name`` is the display name shown to the delegated user in
        place of the space DID.

        Raises:
            ValidationException: ``expires_at`` has no timezone.
            MissingPrincipalError: the user has no stored principal.
            PersistenceError: the delegation could not be written.
        """
        check_expiry(expires_at)
        if not self._principals.has_principal(user_did):
            raise MissingPrincipalError(user_did)

        now = self._clock()
        delegation = Delegation(
            user_did=user_did,
            space_did=space_did,
            delegation_cid=delegation_cid,
            payload=payload,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
            created_by=created_by,
            space_name=space_name,
        )

        with self._cache.lock:
            stored = self._backend.upsert_delegation(delegation)
            cached = self._cache.peek(user_did)
            if cached is not None:
                kept = [d for d in cached if d.key != stored.key]
                if stored.is_active(now):
                    kept.append(stored)
                self._cache.put(user_did, _newest_first(kept))

        logger.info(
            "Stored delegation",
            extra={
                "extra_data": {
                    "user_did": user_did,
                    "space_did": space_did,
                    "delegation_cid": delegation_cid,
                    "expires_at": expires_at,
                    "created_by": created_by,
                }
            },
        )
        return stored

    def get_active_for_user(self, user_did: str) -> list[Delegation]:
        """Active delegations held by a user, newest first."""
        now = self._clock()
        with self._cache.lock:
            cached = self._cache.read(
                user_did,
                lambda u: self._backend.list_active_delegations_for_user(u, now),
            )
            if cached is None:
                return []
            active = [d for d in cached if d.is_active(now)]
            if len(active) != len(cached):
                self._cache.put(user_did, active)
                logger.debug(
                    "Dropped expired delegations from cache",
                    extra={"extra_data": {"user_did": user_did, "count": len(cached) - len(active)}},
                )
            return [replace(d) for d in active]

    def get_for_user_and_space(self, user_did: str, space_did: str) -> Delegation | None:
        """Most recent active delegation letting a user into one space."""
        for delegation in self.get_active_for_user(user_did):
            if delegation.space_did == space_did:
                return delegation
        return None

    def get_for_space(self, space_did: str) -> list[SpaceGrants]:
        """Active delegations into a space, grouped by user.

        Reads the durable store directly; the cache is indexed by user.
        """
        grouped: dict[str, list[Delegation]] = {}
        for delegation in self._backend.list_active_delegations_for_space(space_did, self._clock()):
            grouped.setdefault(delegation.user_did, []).append(delegation)
        return [SpaceGrants(user_did, delegations) for user_did, delegations in grouped.items()]

    def get_created_by(self, created_by: str) -> list[Delegation]:
        """Active delegations issued by one admin, newest first."""
        return self._backend.list_active_delegations_by_creator(created_by, self._clock())

    def revoke(self, user_did: str, space_did: str, delegation_cid: str) -> bool:
        """Delete a delegation. Returns whether a durable row was removed."""
        key = (user_did, space_did, delegation_cid)
        deleted = self._cache.update(
            user_did,
            lambda: self._backend.delete_delegation(user_did, space_did, delegation_cid),
            lambda cached: [d for d in cached if d.key != key],
        )
        logger.info(
            "Revoked delegation" if deleted else "Revoke found no delegation",
            extra={"extra_data": {"user_did": user_did, "space_did": space_did, "delegation_cid": delegation_cid}},
        )
        return deleted

    def sweep_expired(self) -> int:
        """Delete expired delegations from the store and memory."""
        now = self._clock()
        removed = self._backend.delete_expired_delegations(now)

        def prune(_: str, cached: list[Delegation]) -> list[Delegation]:
            active = [d for d in cached if d.is_active(now)]
            return cached if len(active) == len(cached) else active

        self._cache.replace_where(prune)
        if removed:
            logger.info("Swept expired delegations", extra={"extra_data": {"count": removed}})
        return removed

    def load(self) -> int:
        """Warm the cache with every active delegation, then sweep."""
        try:
            delegations = self._backend.list_all_active_delegations(self._clock())
        except PersistenceError:
            logger.exception("Failed to load delegations from store")
            return 0

        by_user: dict[str, list[Delegation]] = {}
        for delegation in delegations:
            by_user.setdefault(delegation.user_did, []).append(delegation)
        self._cache.warm((user_did, _newest_first(items)) for user_did, items in by_user.items())

        logger.info(
            "Loaded delegations from store",
            extra={"extra_data": {"count": len(delegations), "users": len(by_user)}},
        )
        self.sweep_expired()
        return len(delegations)

    def stats(self) -> dict:
        return self._cache.stats()
