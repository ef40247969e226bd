"""
Configuration Module for the AT Protocol client

Settings are loaded from environment variables with defaults suitable for
local development, validated by pydantic-settings. The derived OAuth client
identity (client id, redirect URI) is computed from ``external_hostname``;
a loopback hostname selects the loopback client id form so a development
client works without publishing a metadata document.
"""

from typing import Optional
from urllib.parse import urlencode
import logging

from aiohttp import ClientSession, ClientTimeout
from pydantic import AliasChoices, Field, RedisDsn
from pydantic_settings import BaseSettings
from redis import asyncio as redis

from social.graze.atclient.atproto.store import (
    MemoryPendingAuthorizationStore,
    PendingAuthorizationStore,
    RedisPendingAuthorizationStore,
)
from social.graze.atclient.model.oauth import ClientMetadata

logger = logging.getLogger(__name__)

LOOPBACK_HOSTNAMES = ("localhost", "127.0.0.1", "[::1]")

CALLBACK_PATH = "/auth/atproto/callback"
CLIENT_METADATA_PATH = "/auth/atproto/client-metadata.json"


class Settings(BaseSettings):
    """
    Application settings for the AT Protocol client.

    Environment variables map to fields by name, for example ``PLC_HOSTNAME``
    or ``REQUEST_TIMEOUT``.
    """

    debug: bool = False
    """
    Enable debug mode for verbose logging.
    Set with DEBUG=true environment variable.
    """

    external_hostname: str = "localhost:5100"
    """
    Public hostname of the application, used to build the client id and
    callback URL. Loopback hosts (localhost, 127.0.0.1, [::1]) use the
    loopback client form.
    Set with EXTERNAL_HOSTNAME environment variable.
    """

    plc_hostname: str = "plc.directory"
    """
    Hostname for the PLC directory service for DID resolution.
    Set with PLC_HOSTNAME environment variable.
    """

    public_api_hostname: str = "public.api.bsky.app"
    """
    Hostname of the public API used when a handle has no well-known DID.
    Set with PUBLIC_API_HOSTNAME environment variable.
    """

    oauth_scope: str = "atproto transition:generic"
    """Scope requested during authorization."""

    client_name: str = "AT Protocol Client"
    """Human readable client name advertised in the client metadata."""

    request_timeout: float = 10.0
    """
    Total timeout in seconds for every outbound HTTP request.
    Set with REQUEST_TIMEOUT environment variable.
    """

    pending_authorization_ttl: int = 600
    """
    Seconds a pending authorization stays valid between redirect and callback.
    Set with PENDING_AUTHORIZATION_TTL environment variable.
    """

    redis_dsn: Optional[RedisDsn] = Field(
        None,
        validation_alias=AliasChoices("redis_dsn", "redis_url"),
    )
    """
    Redis connection string for pending authorization storage. Optional,
    authorizations are kept in process memory if not set.
    Set with REDIS_DSN or REDIS_URL environment variables.
    """

    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    @property
    def is_loopback(self) -> bool:
        host = self.external_hostname
        if host.startswith("["):
            host = host[: host.find("]") + 1]
        else:
            host = host.split(":", 1)[0]
        return host in LOOPBACK_HOSTNAMES

    @property
    def redirect_uri(self) -> str:
        scheme = "http" if self.is_loopback else "https"
        return f"{scheme}://{self.external_hostname}{CALLBACK_PATH}"

    @property
    def client_uri(self) -> str:
        scheme = "http" if self.is_loopback else "https"
        return f"{scheme}://{self.external_hostname}"

    @property
    def client_id(self) -> str:
        if self.is_loopback:
            query = urlencode(
                {"scope": self.oauth_scope, "redirect_uri": self.redirect_uri}
            )
            return f"http://localhost?{query}"
        return f"https://{self.external_hostname}{CLIENT_METADATA_PATH}"


def create_http_session(settings: Settings) -> ClientSession:
    """Shared HTTP session with the configured total request timeout."""
    return ClientSession(timeout=ClientTimeout(total=settings.request_timeout))


def client_metadata(settings: Settings) -> ClientMetadata:
    return ClientMetadata(
        client_id=settings.client_id,
        client_name=settings.client_name,
        client_uri=settings.client_uri,
        redirect_uris=[settings.redirect_uri],
        grant_types=["authorization_code", "refresh_token"],
        response_types=["code"],
        scope=settings.oauth_scope,
        token_endpoint_auth_method="none",
        application_type="web",
        dpop_bound_access_tokens=True,
    )


def create_pending_authorization_store(settings: Settings) -> PendingAuthorizationStore:
    """Redis-backed store when ``redis_dsn`` is set, in-process otherwise."""
    if settings.redis_dsn is None:
        logger.info("REDIS_DSN not set, keeping pending authorizations in memory")
        return MemoryPendingAuthorizationStore()
    redis_client = redis.Redis(
        connection_pool=redis.ConnectionPool.from_url(str(settings.redis_dsn))
    )
    return RedisPendingAuthorizationStore(
        redis_client, ttl=settings.pending_authorization_ttl
    )
