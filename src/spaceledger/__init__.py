# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""spaceledger - delegation ledger with DID challenge authentication.

Admins authenticate by signing a one-time challenge with the Ed25519 key
behind their ``did:key``. Once signed in they grant time-bounded upload
delegations into their storage spaces to third-party users; each user gets
a stable signing principal derived from their DID.

Architecture:
  KeyCodec (identity.did_key)
    → ChallengeAuthenticator (auth.challenges)
    → SessionManager (auth.sessions)
  PrincipalDeriver (identity.principals)
    → DelegationLedger (ledger.delegations)

All components share one storage backend (storage.*): the durable store is
the source of truth, per-component caches are write-through and read-repair.
``service.CredentialLedger`` wires everything together.
"""

__version__ = "0.1.0"

from .service import CredentialLedger

__all__ = ["CredentialLedger", "__version__"]
