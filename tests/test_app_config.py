"""
Unit tests for settings in social.graze.atclient.app.config
"""

from urllib.parse import parse_qs, urlparse

from aiohttp import ClientSession
import pytest

from social.graze.atclient.app.config import (
    Settings,
    client_metadata,
    create_http_session,
    create_pending_authorization_store,
)
from social.graze.atclient.atproto.store import (
    MemoryPendingAuthorizationStore,
    RedisPendingAuthorizationStore,
)


class TestSettings:
    """Test suite for Settings and the derived client identity."""

    def test_defaults(self, monkeypatch):
        """Test defaults suit local development."""
        for name in ("EXTERNAL_HOSTNAME", "PLC_HOSTNAME", "REQUEST_TIMEOUT", "REDIS_DSN", "REDIS_URL"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings()
        assert settings.external_hostname == "localhost:5100"
        assert settings.plc_hostname == "plc.directory"
        assert settings.request_timeout == 10.0
        assert settings.redis_dsn is None

    def test_environment(self, monkeypatch):
        """Test settings are read from the environment."""
        monkeypatch.setenv("PLC_HOSTNAME", "plc.example")
        monkeypatch.setenv("REQUEST_TIMEOUT", "2.5")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
        settings = Settings()
        assert settings.plc_hostname == "plc.example"
        assert settings.request_timeout == 2.5
        assert str(settings.redis_dsn) == "redis://cache:6379/1"

    def test_public_client(self, settings):
        """Test a public hostname uses the metadata document URL as client id."""
        assert not settings.is_loopback
        assert settings.client_id == (
            "https://app.example.com/auth/atproto/client-metadata.json"
        )
        assert settings.redirect_uri == "https://app.example.com/auth/atproto/callback"

    @pytest.mark.parametrize(
        "hostname", ["localhost:5100", "127.0.0.1:8080", "[::1]:5100", "localhost"]
    )
    def test_loopback_detection(self, hostname):
        """Test loopback hosts are recognised with or without a port."""
        assert Settings(external_hostname=hostname).is_loopback

    def test_loopback_client(self):
        """Test the loopback client id carries scope and redirect URI."""
        settings = Settings(external_hostname="localhost:5100")
        parsed = urlparse(settings.client_id)
        query = parse_qs(parsed.query)

        assert f"{parsed.scheme}://{parsed.netloc}" == "http://localhost"
        assert query["scope"] == ["atproto transition:generic"]
        assert query["redirect_uri"] == ["http://localhost:5100/auth/atproto/callback"]

    def test_client_metadata(self, settings):
        """Test the metadata document describes a DPoP public client."""
        metadata = client_metadata(settings)
        assert metadata.client_id == settings.client_id
        assert metadata.redirect_uris == [settings.redirect_uri]
        assert metadata.grant_types == ["authorization_code", "refresh_token"]
        assert metadata.token_endpoint_auth_method == "none"
        assert metadata.dpop_bound_access_tokens is True
        assert metadata.client_name == "Example App"

    @pytest.mark.asyncio
    async def test_http_session_timeout(self, settings):
        """Test the shared session applies the total request timeout."""
        session = create_http_session(settings)
        try:
            assert isinstance(session, ClientSession)
            assert session.timeout.total == 10.0
        finally:
            await session.close()


class TestPendingAuthorizationStoreFactory:
    """Test suite for create_pending_authorization_store."""

    def test_memory_without_redis(self, settings):
        """Test the in-process store is used when no Redis DSN is set."""
        settings.redis_dsn = None
        store = create_pending_authorization_store(settings)
        assert isinstance(store, MemoryPendingAuthorizationStore)

    def test_redis_with_dsn(self):
        """Test a Redis DSN selects the Redis store with the configured TTL."""
        settings = Settings(redis_dsn="redis://cache:6379/1", pending_authorization_ttl=90)
        store = create_pending_authorization_store(settings)
        assert isinstance(store, RedisPendingAuthorizationStore)
        assert store._ttl == 90
