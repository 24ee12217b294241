"""Tests for the Ed25519 did:key codec."""

from __future__ import annotations

import base58
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from spaceledger.core.exceptions import InvalidDIDError, ValidationException
from spaceledger.identity.did_key import (
    ED25519_SPKI_HEADER,
    MULTICODEC_ED25519_PUB,
    decode_public_key,
    did_from_public_key,
    is_valid_did,
    load_verify_key,
    spki_der,
)

from ..helpers import make_keypair

RAW_KEY = bytes(range(32))


class TestDecodePublicKey:
    """Tests for decode_public_key."""

    def test_returns_32_bytes_for_generated_dids(self):
        for _ in range(20):
            _, did = make_keypair()
            assert len(decode_public_key(did)) == 32

    def test_roundtrips_known_key(self):
        did = did_from_public_key(RAW_KEY)
        assert did.startswith("did:key:z6Mk")
        assert decode_public_key(did) == RAW_KEY

    @pytest.mark.parametrize(
        "did",
        [
            "",
            "did:web:example.com",
            "did:key:",
            "did:key:f" + "ab" * 34,
            "key:z6MkhaXgBZDvotDkL5257faiztiGiC2QtKLGpbnnEGta2doK",
        ],
    )
    def test_rejects_wrong_method_or_multibase(self, did):
        with pytest.raises(InvalidDIDError):
            decode_public_key(did)

    def test_rejects_corrupted_base58(self):
        _, did = make_keypair()
        # 0, O, I and l are outside the base58btc alphabet
        corrupted = did[:12] + "0OIl" + did[16:]
        with pytest.raises(InvalidDIDError):
            decode_public_key(corrupted)

    @pytest.mark.parametrize("suffix", [" ", "\n", "\t", "\r\n"])
    def test_rejects_trailing_whitespace(self, suffix):
        _, did = make_keypair()
        with pytest.raises(InvalidDIDError, match="base58btc characters"):
            decode_public_key(did + suffix)
        assert is_valid_did(did + suffix) is False

    def test_rejects_inner_whitespace(self):
        _, did = make_keypair()
        with pytest.raises(InvalidDIDError):
            decode_public_key(did[:9] + " " + did[9:])

    def test_rejects_short_payload(self):
        short = "did:key:z" + base58.b58encode(MULTICODEC_ED25519_PUB + bytes(10)).decode()
        with pytest.raises(InvalidDIDError, match="too short"):
            decode_public_key(short)

    def test_rejects_other_multicodec(self):
        secp = "did:key:z" + base58.b58encode(bytes([0xE7, 0x01]) + bytes(33)).decode()
        with pytest.raises(InvalidDIDError, match="multicodec"):
            decode_public_key(secp)

    def test_rejects_trailing_bytes(self):
        long = "did:key:z" + base58.b58encode(MULTICODEC_ED25519_PUB + bytes(33)).decode()
        with pytest.raises(InvalidDIDError):
            decode_public_key(long)

    def test_rejects_non_string(self):
        with pytest.raises(InvalidDIDError):
            decode_public_key(None)  # type: ignore[arg-type]

    def test_error_is_validation_exception(self):
        with pytest.raises(ValidationException) as exc_info:
            decode_public_key("did:web:example.com")
        assert exc_info.value.field == "did"
        assert exc_info.value.to_dict()["error"] == "InvalidDIDError"


class TestSpki:
    """Tests for SubjectPublicKeyInfo wrapping."""

    def test_prefixes_fixed_header(self):
        der = spki_der(RAW_KEY)
        assert der[:12] == bytes.fromhex("302a300506032b6570032100")
        assert der[12:] == RAW_KEY
        assert len(der) == 44

    def test_header_constant(self):
        assert len(ED25519_SPKI_HEADER) == 12

    def test_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            spki_der(bytes(31))

    def test_load_verify_key_checks_signatures(self):
        key, did = make_keypair()
        verify_key = load_verify_key(did)
        assert isinstance(verify_key, Ed25519PublicKey)
        verify_key.verify(key.sign(b"hello"), b"hello")


class TestHelpers:
    """Tests for is_valid_did and did_from_public_key."""

    def test_is_valid_did(self):
        _, did = make_keypair()
        assert is_valid_did(did) is True
        assert is_valid_did("did:key:zExampleA") is False
        assert is_valid_did("not a did") is False

    def test_did_from_public_key_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            did_from_public_key(b"short")
