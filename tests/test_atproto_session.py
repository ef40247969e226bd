"""
Unit tests for sessions in social.graze.atclient.atproto.session

Tests cover the bearer and DPoP-bound header contracts.
"""

import json

import pytest
from jwcrypto import jwk, jwt

from social.graze.atclient.atproto.jwt import access_token_hash
from social.graze.atclient.atproto.session import BearerSession, DpopSession, Session


class TestBearerSession:
    """Test suite for BearerSession."""

    @pytest.mark.asyncio
    async def test_static_header(self):
        """Test the bearer header ignores method, URL and nonce."""
        session = BearerSession("did:plc:abc123", "https://pds.example", "tok")
        first = await session.get_auth_headers("GET", "https://pds.example/a")
        second = await session.get_auth_headers("POST", "https://other/b", "nonce")
        assert first == second == {"Authorization": "Bearer tok"}
        assert session.did == "did:plc:abc123"
        assert session.pds_url == "https://pds.example"

    def test_is_session(self):
        """Test BearerSession satisfies the Session protocol."""
        assert isinstance(
            BearerSession("did:plc:abc123", "https://pds.example", "tok"), Session
        )


class TestDpopSession:
    """Test suite for DpopSession."""

    @pytest.mark.asyncio
    async def test_headers(self, credential, dpop_key):
        """Test DPoP authorization plus a proof bound to method, URL, nonce and token."""
        session = DpopSession(credential)
        url = "https://pds.example/xrpc/com.atproto.repo.createRecord"

        headers = await session.get_auth_headers("POST", url, "n-1")

        assert headers["Authorization"] == "DPoP access-1"
        verified = jwt.JWT(
            jwt=headers["DPoP"], key=jwk.JWK(**dpop_key.export_public(as_dict=True))
        )
        claims = json.loads(verified.claims)
        assert claims["htm"] == "POST"
        assert claims["htu"] == url
        assert claims["nonce"] == "n-1"
        assert claims["ath"] == access_token_hash("access-1")

    @pytest.mark.asyncio
    async def test_proofs_are_fresh(self, credential):
        """Test each call signs a new proof."""
        session = DpopSession(credential)
        first = await session.get_auth_headers("GET", "https://pds.example/a")
        second = await session.get_auth_headers("GET", "https://pds.example/a")
        assert first["DPoP"] != second["DPoP"]

    @pytest.mark.asyncio
    async def test_picks_up_refreshed_token(self, credential):
        """Test a token replaced on the credential is used by the next call."""
        session = DpopSession(credential)
        credential.access_token = "access-2"
        headers = await session.get_auth_headers("GET", "https://pds.example/a")
        assert headers["Authorization"] == "DPoP access-2"

    def test_identity(self, credential):
        """Test the session reports the credential's DID and PDS."""
        session = DpopSession(credential)
        assert session.did == "did:plc:abc123"
        assert session.pds_url == "https://pds.example"
        assert isinstance(session, Session)
