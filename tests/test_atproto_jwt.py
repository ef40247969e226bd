"""
Unit tests for DPoP utilities in social.graze.atclient.atproto.jwt

Tests cover key generation and loading, claim construction and signed proof
structure (header, required claims, optional nonce and ath).
"""

import base64
import hashlib
import json
from datetime import datetime, timezone

import pytest
from jwcrypto import jwk, jwt

from social.graze.atclient.atproto.jwt import (
    access_token_hash,
    create_dpop_claims,
    create_dpop_header,
    create_dpop_jwt,
    generate_dpop_key,
    load_dpop_key,
)
from social.graze.atclient.errors import SigningError


def decode_proof(token: str, public_key: dict):
    """Verify a proof with the public key and return (header, claims)."""
    verified = jwt.JWT(jwt=token, key=jwk.JWK(**public_key))
    return verified.token.jose_header, json.loads(verified.claims)


class TestGenerateDpopKey:
    """Test DPoP key generation functionality."""

    def test_generate_dpop_key_uses_correct_algorithm(self):
        """Test that generated key uses ECDSA P-256 (ES256)."""
        dpop_key, public_key_dict = generate_dpop_key()

        key_dict = dpop_key.export(private_key=True, as_dict=True)
        assert key_dict["kty"] == "EC"
        assert key_dict["crv"] == "P-256"
        assert "d" in key_dict

        assert public_key_dict["kty"] == "EC"
        assert public_key_dict["crv"] == "P-256"
        assert "d" not in public_key_dict

    def test_generate_dpop_key_has_unique_kid(self):
        """Test that each generated key has a unique key identifier."""
        key1, _ = generate_dpop_key()
        key2, _ = generate_dpop_key()
        assert key1.key_id != key2.key_id

    def test_load_dpop_key_round_trip(self):
        """Test an exported private key loads back."""
        dpop_key, _ = generate_dpop_key()
        loaded = load_dpop_key(dpop_key.export(private_key=True, as_dict=True))
        assert loaded.thumbprint() == dpop_key.thumbprint()

    def test_load_dpop_key_rejects_garbage(self):
        """Test malformed key material raises SigningError."""
        with pytest.raises(SigningError):
            load_dpop_key({"kty": "EC", "crv": "P-256", "x": "nope"})


class TestCreateDpopClaims:
    """Test DPoP claim construction."""

    def test_required_claims(self):
        """Test jti, htm, htu and iat are always present."""
        issued_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        claims = create_dpop_claims(
            "post", "https://auth.example/oauth/token", issued_at=issued_at
        )
        assert set(claims) == {"jti", "htm", "htu", "iat"}
        assert claims["htm"] == "POST"
        assert claims["htu"] == "https://auth.example/oauth/token"
        assert claims["iat"] == int(issued_at.timestamp())

    def test_jti_is_unique(self):
        """Test each proof gets a fresh identifier."""
        first = create_dpop_claims("GET", "https://pds.example/xrpc/a")
        second = create_dpop_claims("GET", "https://pds.example/xrpc/a")
        assert first["jti"] != second["jti"]

    def test_nonce_iff_supplied(self):
        """Test nonce is included only when one is given."""
        assert "nonce" not in create_dpop_claims("GET", "https://pds.example")
        claims = create_dpop_claims("GET", "https://pds.example", nonce="n-1")
        assert claims["nonce"] == "n-1"

    def test_ath_iff_access_token(self):
        """Test ath is the base64url SHA-256 of the access token."""
        assert "ath" not in create_dpop_claims("GET", "https://pds.example")

        claims = create_dpop_claims("GET", "https://pds.example", access_token="tok")
        expected = (
            base64.urlsafe_b64encode(hashlib.sha256(b"tok").digest())
            .decode("ascii")
            .rstrip("=")
        )
        assert claims["ath"] == expected
        assert access_token_hash("tok") == expected


class TestCreateDpopJwt:
    """Test signed DPoP proofs."""

    def test_header(self):
        """Test the header embeds the public key with the dpop+jwt type."""
        dpop_key, public_key = generate_dpop_key()
        header = create_dpop_header(public_key)
        assert header == {"alg": "ES256", "jwk": public_key, "typ": "dpop+jwt"}

        token = create_dpop_jwt(dpop_key, "POST", "https://auth.example/oauth/token")
        decoded_header, _ = decode_proof(token, public_key)
        assert decoded_header["typ"] == "dpop+jwt"
        assert decoded_header["alg"] == "ES256"
        assert decoded_header["jwk"]["x"] == public_key["x"]
        assert "d" not in decoded_header["jwk"]

    def test_signed_claims(self):
        """Test the proof verifies and carries nonce and ath when given."""
        dpop_key, public_key = generate_dpop_key()
        token = create_dpop_jwt(
            dpop_key,
            "get",
            "https://pds.example/xrpc/com.atproto.repo.getRecord",
            nonce="n-1",
            access_token="tok",
        )
        _, claims = decode_proof(token, public_key)
        assert claims["htm"] == "GET"
        assert claims["htu"] == "https://pds.example/xrpc/com.atproto.repo.getRecord"
        assert claims["nonce"] == "n-1"
        assert claims["ath"] == access_token_hash("tok")
        assert {"jti", "iat"} <= set(claims)

    def test_without_optional_claims(self):
        """Test nonce and ath are absent when not supplied."""
        dpop_key, public_key = generate_dpop_key()
        token = create_dpop_jwt(dpop_key, "POST", "https://auth.example/oauth/token")
        _, claims = decode_proof(token, public_key)
        assert "nonce" not in claims
        assert "ath" not in claims

    def test_public_key_cannot_sign(self):
        """Test signing with a public-only key raises SigningError."""
        dpop_key, public_key = generate_dpop_key()
        with pytest.raises(SigningError):
            create_dpop_jwt(jwk.JWK(**public_key), "POST", "https://auth.example")
