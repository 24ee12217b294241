# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Ed25519 did:key decoding and encoding.

Format: ``did:key:z<base58btc(0xed 0x01 || 32-byte public key)>``

Only the Ed25519 variant is supported. Anything else, including other DID
methods, is rejected with :class:`InvalidDIDError`.
"""

from __future__ import annotations

import base58
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import load_der_public_key

from ..core.exceptions import InvalidDIDError

# =============================================================================
# CONSTANTS
# =============================================================================

DID_KEY_PREFIX = "did:key:"

# Multibase prefix for base58btc encoding
MULTIBASE_BASE58BTC = "z"
_BASE58_CHARS = frozenset(base58.BITCOIN_ALPHABET.decode("ascii"))

# Multicodec prefix for Ed25519 public key (varint of 0xed)
MULTICODEC_ED25519_PUB = bytes([0xED, 0x01])

ED25519_KEY_LENGTH = 32

# SubjectPublicKeyInfo header for Ed25519 (OID 1.3.101.112), followed by the raw key
ED25519_SPKI_HEADER = bytes([0x30, 0x2A, 0x30, 0x05, 0x06, 0x03, 0x2B, 0x65, 0x70, 0x03, 0x21, 0x00])


# =============================================================================
# DECODING
# =============================================================================


def decode_public_key(did: str) -> bytes:
    """Extract the raw 32-byte Ed25519 public key from a did:key.

    Raises:
        InvalidDIDError: wrong method or multibase, bad base58 characters,
            short payload, or a multicodec other than Ed25519.
    """
    if not isinstance(did, str) or not did.startswith(DID_KEY_PREFIX + MULTIBASE_BASE58BTC):
        raise InvalidDIDError(str(did), f"must start with '{DID_KEY_PREFIX}{MULTIBASE_BASE58BTC}'")

    encoded = did[len(DID_KEY_PREFIX) + 1 :]
    # b58decode strips surrounding whitespace before decoding
    bad = sorted({c for c in encoded if c not in _BASE58_CHARS})
    if bad:
        raise InvalidDIDError(did, f"invalid base58btc characters: {bad!r}")
    try:
        decoded = base58.b58decode(encoded)
    except ValueError as e:
        raise InvalidDIDError(did, f"invalid base58btc encoding: {e}") from e

    if len(decoded) < len(MULTICODEC_ED25519_PUB) + ED25519_KEY_LENGTH:
        raise InvalidDIDError(did, f"decoded key too short ({len(decoded)} bytes)")
    if decoded[: len(MULTICODEC_ED25519_PUB)] != MULTICODEC_ED25519_PUB:
        raise InvalidDIDError(did, f"unsupported multicodec 0x{decoded[:2].hex()}, expected 0xed01")

    raw = decoded[len(MULTICODEC_ED25519_PUB) :]
    if len(raw) != ED25519_KEY_LENGTH:
        raise InvalidDIDError(did, f"Ed25519 key must be {ED25519_KEY_LENGTH} bytes, got {len(raw)}")
    return raw


def spki_der(raw_public_key: bytes) -> bytes:
    """Wrap a raw Ed25519 public key as DER-encoded SubjectPublicKeyInfo."""
    if len(raw_public_key) != ED25519_KEY_LENGTH:
        raise ValueError(f"Ed25519 key must be {ED25519_KEY_LENGTH} bytes, got {len(raw_public_key)}")
    return ED25519_SPKI_HEADER + raw_public_key


def load_verify_key(did: str) -> Ed25519PublicKey:
    """Decode a did:key into a key ready for signature verification."""
    key = load_der_public_key(spki_der(decode_public_key(did)))
    if not isinstance(key, Ed25519PublicKey):  # pragma: no cover - header pins the algorithm
        raise InvalidDIDError(did, "not an Ed25519 key")
    return key


def is_valid_did(did: str) -> bool:
    """Check if a string is a usable Ed25519 did:key without raising."""
    try:
        decode_public_key(did)
        return True
    except InvalidDIDError:
        return False


# =============================================================================
# ENCODING
# =============================================================================


def did_from_public_key(raw_public_key: bytes) -> str:
    """Construct a did:key from a raw 32-byte Ed25519 public key."""
    if len(raw_public_key) != ED25519_KEY_LENGTH:
        raise ValueError(f"Ed25519 key must be {ED25519_KEY_LENGTH} bytes, got {len(raw_public_key)}")
    encoded = base58.b58encode(MULTICODEC_ED25519_PUB + raw_public_key).decode("ascii")
    return f"{DID_KEY_PREFIX}{MULTIBASE_BASE58BTC}{encoded}"
