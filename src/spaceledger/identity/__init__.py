# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Identity primitives.

- did_key: Ed25519 did:key codec
- principals: per-user signing principals (supplied or derived)
"""

from .did_key import decode_public_key, did_from_public_key, is_valid_did, load_verify_key
from .principals import Principal, PrincipalDeriver, derive_principal

__all__ = [
    "decode_public_key",
    "did_from_public_key",
    "is_valid_did",
    "load_verify_key",
    "Principal",
    "PrincipalDeriver",
    "derive_principal",
]
