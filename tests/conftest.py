"""
Shared test configuration and fixtures.

Provides settings, DPoP keys, a session credential and a fake Redis client
used across the test modules.
"""

from datetime import datetime, timedelta, timezone

import fakeredis.aioredis
import pytest
import pytest_asyncio

from social.graze.atclient.app.config import Settings
from social.graze.atclient.atproto.jwt import generate_dpop_key
from social.graze.atclient.model.oauth import SessionCredential


@pytest.fixture
def settings() -> Settings:
    return Settings(
        external_hostname="app.example.com",
        client_name="Example App",
        plc_hostname="plc.directory",
        public_api_hostname="public.api.bsky.app",
    )


@pytest.fixture
def dpop_key():
    key, _ = generate_dpop_key()
    return key


@pytest.fixture
def credential(dpop_key) -> SessionCredential:
    now = datetime.now(timezone.utc)
    return SessionCredential(
        did="did:plc:abc123",
        handle="alice.example.com",
        pds="https://pds.example",
        issuer="https://auth.example",
        access_token="access-1",
        refresh_token="refresh-1",
        expires_at=now + timedelta(minutes=30),
        dpop_jwk=dpop_key.export(private_key=True, as_dict=True),
        created_at=now,
    )


@pytest_asyncio.fixture
async def fake_redis_client():
    """Provide fake Redis client for unit tests."""
    client = fakeredis.aioredis.FakeRedis(decode_responses=False)
    yield client
    await client.flushall()
    await client.aclose()
