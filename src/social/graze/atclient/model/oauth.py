"""OAuth 2.0 data models for AT Protocol authentication.

Provides pydantic models for discovery documents, token endpoint responses,
in-flight authorization state and the durable session credential.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from jwcrypto import jwk
from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

from social.graze.atclient.atproto.jwt import load_dpop_key
from social.graze.atclient.model.identifiers import DidStr

DEFAULT_EXPIRES_IN = 1800


class ProtectedResourceMetadata(BaseModel):
    """``/.well-known/oauth-protected-resource`` document of a PDS."""

    model_config = ConfigDict(extra="ignore")

    resource: Optional[str] = None
    authorization_servers: List[str] = Field(default_factory=list)


class AuthorizationServerMetadata(BaseModel):
    """``/.well-known/oauth-authorization-server`` document.

    Only the fields the client acts on are required; everything else the
    server advertises is ignored.
    """

    model_config = ConfigDict(extra="ignore")

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    pushed_authorization_request_endpoint: Optional[str] = None
    dpop_signing_alg_values_supported: Optional[List[str]] = None
    scopes_supported: Optional[List[str]] = None


class TokenResponse(BaseModel):
    """Successful token endpoint response for either grant type."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: int = DEFAULT_EXPIRES_IN
    scope: Optional[str] = None
    sub: Optional[str] = None


class PendingAuthorization(BaseModel):
    """OAuth authorization request state held between redirect and callback.

    Stores the anti-forgery state value, PKCE verifier, the DPoP key generated
    for this login and the endpoints discovered while starting the flow. It is
    consumed exactly once by the callback.
    """

    state: str
    pkce_verifier: str
    dpop_jwk: Dict[str, Any]
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    did: DidStr
    handle: Optional[str] = None
    pds: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


class SessionCredential(BaseModel):
    """Authorization material for one authenticated account.

    ``access_token``, ``refresh_token`` and ``expires_at`` change together on
    refresh. ``did``, ``pds`` and ``dpop_jwk`` are fixed for the life of the
    login: the DPoP key is generated once and never rotated mid-session.
    """

    session_group: str = Field(default_factory=lambda: str(ULID()))
    did: DidStr
    handle: Optional[str] = None
    pds: str
    issuer: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime
    dpop_jwk: Dict[str, Any]
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def dpop_key(self) -> jwk.JWK:
        return load_dpop_key(self.dpop_jwk)

    def apply_token_response(
        self, tokens: TokenResponse, now: Optional[datetime] = None
    ) -> None:
        now = now or datetime.now(timezone.utc)
        self.access_token = tokens.access_token
        if tokens.refresh_token is not None:
            self.refresh_token = tokens.refresh_token
        self.expires_at = now + timedelta(0, tokens.expires_in)

    def adopt_tokens(self, other: "SessionCredential") -> None:
        """Take the token fields of ``other``, a refreshed copy of this login."""
        self.access_token = other.access_token
        self.refresh_token = other.refresh_token
        self.expires_at = other.expires_at


class ClientMetadata(BaseModel):
    """
    OAuth 2.0 Client Metadata for AT Protocol integration.

    Served at the client id URL (or implied by the loopback client id) and
    read by authorization servers to validate requests from this client.
    """

    client_id: str
    client_name: str
    client_uri: str
    redirect_uris: List[str]
    grant_types: List[str]
    response_types: List[str]
    scope: str
    token_endpoint_auth_method: str
    application_type: str
    dpop_bound_access_tokens: bool
