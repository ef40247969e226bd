"""
Unit tests for DID document resolution in social.graze.atclient.resolve.did
"""

import pytest
from unittest.mock import Mock
from aiohttp import ClientConnectionError

from social.graze.atclient.errors import InvalidIdentifier, ResolutionError, ResolutionHop
from social.graze.atclient.resolve.did import (
    did_document_url,
    fetch_did_document,
    handle_from_document,
    handle_predicate,
    pds_from_document,
    pds_predicate,
    resolve_pds,
)
from tests.test_helpers import create_mock_response, create_routed_session


class TestDidDocumentUrl:
    """Test suite for did_document_url function."""

    def test_plc(self):
        """Test did:plc documents live on the PLC directory."""
        assert did_document_url("did:plc:abc123") == "https://plc.directory/did:plc:abc123"
        assert (
            did_document_url("did:plc:abc123", "plc.example")
            == "https://plc.example/did:plc:abc123"
        )

    def test_web_bare_domain(self):
        """Test a bare did:web domain uses the well-known path."""
        assert (
            did_document_url("did:web:example.com")
            == "https://example.com/.well-known/did.json"
        )

    def test_web_with_path_and_port(self):
        """Test extra segments become path segments and ports are unescaped."""
        assert (
            did_document_url("did:web:example.com%3A8443:users:alice")
            == "https://example.com:8443/users/alice/did.json"
        )

    def test_unsupported_method(self):
        """Test other DID methods fail resolution."""
        with pytest.raises(ResolutionError) as exc_info:
            did_document_url("did:key:z6Mk")
        assert exc_info.value.hop == ResolutionHop.did_document

    def test_not_a_did(self):
        """Test a non-DID is rejected as input."""
        with pytest.raises(InvalidIdentifier):
            did_document_url("alice.example.com")


class TestPredicates:
    """Test suite for document predicates and extractors."""

    def test_handle_predicate(self):
        """Test only at:// aliases count as handles."""
        assert handle_predicate("at://alice.example.com")
        assert not handle_predicate("https://alice.example.com")

    def test_pds_predicate(self):
        """Test PDS services need the right type and an endpoint."""
        assert pds_predicate(
            {"type": "AtprotoPersonalDataServer", "serviceEndpoint": "https://pds"}
        )
        assert not pds_predicate({"type": "AtprotoPersonalDataServer"})
        assert not pds_predicate({"type": "Other", "serviceEndpoint": "https://x"})
        assert not pds_predicate("AtprotoPersonalDataServer")

    def test_extractors(self):
        """Test the first matching entries are used."""
        document = {
            "alsoKnownAs": ["https://x", "at://alice.example.com", "at://other"],
            "service": [
                {"type": "Labeler", "serviceEndpoint": "https://labeler"},
                {"type": "AtprotoPersonalDataServer", "serviceEndpoint": "https://pds"},
            ],
        }
        assert handle_from_document(document) == "alice.example.com"
        assert pds_from_document(document) == "https://pds"

    def test_extractors_empty(self):
        """Test missing sections yield None."""
        assert handle_from_document({}) is None
        assert pds_from_document({"service": None}) is None


class TestFetchDidDocument:
    """Test suite for fetch_did_document and resolve_pds."""

    @pytest.mark.asyncio
    async def test_fetch(self):
        """Test the JSON document is returned."""
        document = {"id": "did:web:example.com"}
        session = create_routed_session(
            {"https://example.com/.well-known/did.json": create_mock_response(200, document)}
        )
        assert await fetch_did_document(session, "did:web:example.com") == document

    @pytest.mark.asyncio
    async def test_not_found(self):
        """Test a non-200 response is a DID document failure."""
        session = create_routed_session()
        with pytest.raises(ResolutionError) as exc_info:
            await fetch_did_document(session, "did:plc:abc123")
        assert exc_info.value.hop == ResolutionHop.did_document

    @pytest.mark.asyncio
    async def test_not_json(self):
        """Test an unparseable document is a DID document failure."""
        session = create_routed_session(
            {"https://plc.directory/did:plc:abc123": create_mock_response(200, "<html>")}
        )
        with pytest.raises(ResolutionError):
            await fetch_did_document(session, "did:plc:abc123")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Test network errors are wrapped."""
        session = create_routed_session()
        session.get = Mock(side_effect=ClientConnectionError("refused"))
        with pytest.raises(ResolutionError):
            await fetch_did_document(session, "did:plc:abc123")

    @pytest.mark.asyncio
    async def test_resolve_pds(self):
        """Test resolve_pds returns the declared endpoint."""
        session = create_routed_session(
            {
                "https://plc.directory/did:plc:abc123": create_mock_response(
                    200,
                    {
                        "service": [
                            {
                                "type": "AtprotoPersonalDataServer",
                                "serviceEndpoint": "https://pds.example",
                            }
                        ]
                    },
                )
            }
        )
        assert await resolve_pds(session, "did:plc:abc123") == "https://pds.example"

    @pytest.mark.asyncio
    async def test_resolve_pds_missing(self):
        """Test a document without a PDS fails."""
        session = create_routed_session(
            {"https://plc.directory/did:plc:abc123": create_mock_response(200, {"service": []})}
        )
        with pytest.raises(ResolutionError):
            await resolve_pds(session, "did:plc:abc123")
