# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Signing principals for delegated users.

Every user DID that receives a delegation is paired with exactly one
Ed25519 signing principal. A principal is either supplied by the caller
when it first delegates to the user, or derived from the user's DID:

    seed = SHA-256(utf8(user_did))
    key  = Ed25519PrivateKey.from_private_bytes(seed)

Once a principal is stored it is authoritative. It is imported from its
key material on every later load and never re-derived, so a change to the
derivation scheme cannot silently hand a user a different key. The scheme
name is recorded in the key material for that reason.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from ..core.cache import CachedRepository
from ..core.exceptions import PersistenceError, ValidationException
from ..models import PrincipalRecord, utcnow
from ..storage.base import LedgerBackend
from .did_key import did_from_public_key

logger = logging.getLogger(__name__)

DERIVATION_SHA256_SEED_V1 = "sha256-seed/v1"
DERIVATION_SUPPLIED = "supplied"


# =============================================================================
# PRINCIPAL
# =============================================================================


@dataclass(frozen=True, eq=False)
class Principal:
    """An Ed25519 signer identified by its own did:key."""

    private_key: Ed25519PrivateKey
    derivation: str = DERIVATION_SUPPLIED

    @classmethod
    def generate(cls) -> Principal:
        """Create a principal with a fresh random key."""
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes, derivation: str = DERIVATION_SUPPLIED) -> Principal:
        return cls(Ed25519PrivateKey.from_private_bytes(seed), derivation)

    @property
    def public_key_bytes(self) -> bytes:
        return self.private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)

    @property
    def seed(self) -> bytes:
        return self.private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())

    @property
    def did(self) -> str:
        return did_from_public_key(self.public_key_bytes)

    def sign(self, data: bytes) -> bytes:
        return self.private_key.sign(data)

    def export(self) -> str:
        """Serialize to a JSON archive: ``{id, keys: {did: b64 seed}, derivation}``."""
        did = self.did
        return json.dumps(
            {
                "id": did,
                "keys": {did: base64.b64encode(self.seed).decode("ascii")},
                "derivation": self.derivation,
            },
            sort_keys=True,
        )

    @classmethod
    def import_(cls, archive: str) -> Principal:
        """Rebuild a principal from :meth:`export` output.

        Raises:
            ValidationException: the archive is malformed or its id does not
                match the key it carries.
        """
        try:
            data = json.loads(archive)
            key_id = data["id"]
            seed = base64.b64decode(data["keys"][key_id], validate=True)
            principal = cls.from_seed(seed, data.get("derivation", DERIVATION_SUPPLIED))
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise ValidationException(f"Malformed principal archive: {e}", field="principal_key") from e
        if principal.did != key_id:
            raise ValidationException("Principal archive id does not match its key", field="principal_key")
        return principal

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Principal):
            return NotImplemented
        return self.seed == other.seed

    def __hash__(self) -> int:
        return hash(self.public_key_bytes)

    def __repr__(self) -> str:
        return f"Principal(did={self.did!r}, derivation={self.derivation!r})"


def derive_principal(user_did: str) -> Principal:
    """Deterministically derive the principal of ``user_did``."""
    if not user_did:
        raise ValidationException("user_did is required", field="user_did")
    seed = hashlib.sha256(user_did.encode("utf-8")).digest()
    return Principal.from_seed(seed, DERIVATION_SHA256_SEED_V1)


# =============================================================================
# DERIVER
# =============================================================================


class PrincipalDeriver:
    """Looks up, stores and derives user principals.

    Lookups go memory → durable store → derivation. Derived and supplied
    principals are stored with insert-if-absent semantics, so whichever
    principal reaches the store first for a user is the one every later
    caller gets.
    """

    def __init__(
        self,
        backend: LedgerBackend,
        *,
        cache_size: int | None = None,
        clock: Callable[[], datetime] = utcnow,
        derive: Callable[[str], Principal] = derive_principal,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._derive = derive
        self._cache: CachedRepository[str, Principal] = CachedRepository("principals", cache_size)

    def _load(self, user_did: str) -> Principal | None:
        record = self._backend.get_principal(user_did)
        return Principal.import_(record.key_material) if record else None

    def get(self, user_did: str) -> Principal | None:
        """Stored principal of a user, without deriving one."""
        return self._cache.read(user_did, self._load)

    def has_principal(self, user_did: str) -> bool:
        return self.get(user_did) is not None

    def get_or_derive(self, user_did: str) -> Principal:
        """Return the user's principal, deriving and persisting it if needed.

        A failure to persist the derived principal is logged and the derived
        value returned anyway; derivation is deterministic, so the next call
        produces the same key.

        Raises:
            PersistenceError: the store could not be read, so whether a
                principal already exists is unknown.
        """
        existing = self._cache.read(user_did, self._load, degrade=False)
        if existing is not None:
            return existing

        principal = self._derive(user_did)
        logger.info(
            "No stored principal, derived one from user DID",
            extra={"extra_data": {"user_did": user_did, "principal_did": principal.did}},
        )
        try:
            return self._persist(user_did, principal)
        except PersistenceError:
            logger.exception(
                "Failed to persist derived principal",
                extra={"extra_data": {"user_did": user_did}},
            )
            return principal

    def store_supplied(self, user_did: str, principal: Principal) -> Principal:
        """Register a caller-supplied principal for a user.

        Supplied principals only win when the user has none yet. If one is
        already stored (supplied earlier or derived), it is kept and
        returned; principals are never rotated in place.

        Raises:
            PersistenceError: the store could not be written.
        """
        existing = self._cache.read(user_did, self._load, degrade=False)
        if existing is not None:
            if existing != principal:
                logger.warning(
                    "Ignoring supplied principal: user already has one",
                    extra={"extra_data": {"user_did": user_did, "principal_did": existing.did}},
                )
            return existing
        return self._persist(user_did, principal)

    def _persist(self, user_did: str, principal: Principal) -> Principal:
        now = self._clock()
        record = PrincipalRecord(
            user_did=user_did,
            principal_did=principal.did,
            key_material=principal.export(),
            created_at=now,
            updated_at=now,
        )
        with self._cache.lock:
            stored = self._backend.insert_principal_if_absent(record)
            winner = principal if stored.key_material == record.key_material else Principal.import_(stored.key_material)
            self._cache.put(user_did, winner)
        if winner is principal:
            logger.info(
                "Stored user principal",
                extra={"extra_data": {"user_did": user_did, "principal_did": principal.did, "derivation": principal.derivation}},
            )
        return winner

    def load(self) -> int:
        """Warm the cache with every stored principal."""
        try:
            records = self._backend.list_principals()
        except PersistenceError:
            logger.exception("Failed to load principals from store")
            return 0
        loaded = self._cache.warm((r.user_did, Principal.import_(r.key_material)) for r in records)
        logger.info("Loaded principals from store", extra={"extra_data": {"count": loaded}})
        return loaded

    def stats(self) -> dict:
        return self._cache.stats()
