"""
AT Protocol OAuth Client Implementation

This module implements the OAuth 2.0 client used to obtain DPoP-bound tokens
for an AT Protocol account, as a public client (no client assertion).

The implementation follows these OAuth 2.0 standards and specifications:
- OAuth 2.0 Authorization Code Grant (RFC 6749)
- Proof Key for Code Exchange (PKCE) (RFC 7636)
- OAuth 2.0 Demonstrating Proof of Possession (DPoP) (RFC 9449)

The OAuth flow is implemented in three stages:
1. Start (`OAuthClient.start`): Resolve the user's identity and authorization
   server, prepare PKCE and a fresh DPoP key, store the pending authorization
   and return the authorization URL to redirect the user to
2. Complete (`OAuthClient.complete`): Check the returned state, exchange the
   authorization code for tokens and build the session credential
3. Refresh (`OAuthClient.refresh`): Use the refresh token to replace the
   access token once it has expired

Token endpoint requests carry a DPoP proof. When the token endpoint answers
400 with a ``DPoP-Nonce`` header the request is signed again with that nonce
and sent exactly once more; see ``GenerateDpopMiddleware``.
"""

import asyncio
from datetime import datetime, timedelta, timezone
import logging
import secrets
from typing import Dict, Optional, Type
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse
import weakref

from aiohttp import ClientSession
from jwcrypto import jwk
from pydantic import ValidationError

from social.graze.atclient.app.config import Settings
from social.graze.atclient.atproto.agent import Agent
from social.graze.atclient.atproto.chain import (
    ChainMiddlewareClient,
    ChainResponse,
    GenerateDpopMiddleware,
)
from social.graze.atclient.atproto.jwt import generate_dpop_key, load_dpop_key
from social.graze.atclient.atproto.pds import discover_authorization_server
from social.graze.atclient.atproto.pkce import (
    PKCE_CHALLENGE_METHOD,
    generate_pkce_verifier,
)
from social.graze.atclient.atproto.session import DpopSession
from social.graze.atclient.atproto.store import PendingAuthorizationStore
from social.graze.atclient.errors import (
    AuthError,
    RefreshError,
    ResolutionError,
    SessionExpired,
    SigningError,
    StateMismatch,
    SubjectMismatch,
    TokenExchangeError,
    TransportError,
)
from social.graze.atclient.model.oauth import (
    PendingAuthorization,
    SessionCredential,
    TokenResponse,
)
from social.graze.atclient.resolve.handle import resolve_subject

AUTHORIZATION_CODE_GRANT = "authorization_code"
REFRESH_TOKEN_GRANT = "refresh_token"

logger = logging.getLogger(__name__)


async def token_request(
    http_session: ClientSession,
    token_endpoint: str,
    dpop_key: jwk.JWK,
    data: Dict[str, str],
) -> ChainResponse:
    """POST a form-encoded grant request with a DPoP proof.

    The form is passed as a plain dict so the nonce retry can encode it again.
    """
    chain_client = ChainMiddlewareClient(
        client_session=http_session,
        logger=logger,
        middleware=[GenerateDpopMiddleware(dpop_key)],
    )
    async with chain_client.post(token_endpoint, data=data) as (_, chain_response):
        return chain_response


def _token_response(
    chain_response: ChainResponse, error_type: Type[AuthError]
) -> TokenResponse:
    body = chain_response.body_text()
    if not chain_response.ok:
        message = f"token exchange failed: {chain_response.status} - {body}"
        if error_type is RefreshError:
            raise RefreshError(message, chain_response.status, body)
        raise TokenExchangeError(chain_response.status, body, message)

    try:
        return TokenResponse.model_validate(chain_response.body)
    except ValidationError as e:
        message = f"invalid token response: {chain_response.status} - {body}"
        if error_type is RefreshError:
            raise RefreshError(message, chain_response.status, body) from e
        raise TokenExchangeError(chain_response.status, body, message) from e


async def exchange_authorization_code(
    http_session: ClientSession,
    token_endpoint: str,
    dpop_key: jwk.JWK,
    code: str,
    redirect_uri: str,
    client_id: str,
    code_verifier: str,
) -> TokenResponse:
    """Exchange an authorization code for tokens.

    Raises:
        TokenExchangeError: With the status and raw body of the final response
    """
    data = {
        "grant_type": AUTHORIZATION_CODE_GRANT,
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
        "code_verifier": code_verifier,
    }
    chain_response = await token_request(http_session, token_endpoint, dpop_key, data)
    return _token_response(chain_response, TokenExchangeError)


async def exchange_refresh_token(
    http_session: ClientSession,
    token_endpoint: str,
    dpop_key: jwk.JWK,
    refresh_token: str,
    client_id: str,
) -> TokenResponse:
    """Exchange a refresh token for a new access token.

    Raises:
        RefreshError: With the status and raw body of the final response
    """
    data = {
        "grant_type": REFRESH_TOKEN_GRANT,
        "refresh_token": refresh_token,
        "client_id": client_id,
    }
    chain_response = await token_request(http_session, token_endpoint, dpop_key, data)
    return _token_response(chain_response, RefreshError)


def build_authorization_url(authorization_endpoint: str, params: Dict[str, str]) -> str:
    """Add ``params`` to the endpoint, keeping any query it already has."""
    parsed = urlparse(authorization_endpoint)
    query = dict(parse_qsl(parsed.query))
    query.update(params)
    return urlunparse(parsed._replace(query=urlencode(query)))


class _RefreshFlight:
    """Refresh state shared by the callers of one ``session_group``."""

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.replaced_access_token: Optional[str] = None
        self.refreshed: Optional[SessionCredential] = None


class OAuthClient:
    """
    OAuth client for one application identity.

    Pending authorizations go to ``store``; session credentials are returned
    to the caller, which owns them. Refreshes of the same credential (same
    ``session_group``) are serialized: a task that waited for another task's
    refresh finds the credential fresh and does not refresh again.
    """

    def __init__(
        self,
        settings: Settings,
        http_session: ClientSession,
        store: PendingAuthorizationStore,
    ) -> None:
        self._settings = settings
        self._http_session = http_session
        self._store = store
        self._refreshes: "weakref.WeakValueDictionary[str, _RefreshFlight]" = (
            weakref.WeakValueDictionary()
        )

    async def start(self, subject: str) -> str:
        """
        Begin the authorization flow for ``subject`` (handle or DID).

        Returns:
            str: URL to redirect the user to for authentication

        Raises:
            InvalidInput: If the subject is malformed
            ResolutionError: If identity or authorization server discovery fails
        """
        settings = self._settings

        resolved_subject = await resolve_subject(
            self._http_session,
            subject,
            plc_hostname=settings.plc_hostname,
            public_api_hostname=settings.public_api_hostname,
        )

        authorization_server = await discover_authorization_server(
            self._http_session, resolved_subject.pds
        )

        state = secrets.token_urlsafe(32)
        (pkce_verifier, code_challenge) = generate_pkce_verifier()
        dpop_key, _ = generate_dpop_key()

        now = datetime.now(timezone.utc)
        await self._store.save(
            PendingAuthorization(
                state=state,
                pkce_verifier=pkce_verifier,
                dpop_jwk=dpop_key.export(private_key=True, as_dict=True),
                issuer=authorization_server.issuer,
                authorization_endpoint=authorization_server.authorization_endpoint,
                token_endpoint=authorization_server.token_endpoint,
                did=resolved_subject.did,
                handle=resolved_subject.handle,
                pds=resolved_subject.pds,
                created_at=now,
                expires_at=now + timedelta(0, settings.pending_authorization_ttl),
            )
        )

        params = {
            "response_type": "code",
            "client_id": settings.client_id,
            "redirect_uri": settings.redirect_uri,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": PKCE_CHALLENGE_METHOD,
            "scope": settings.oauth_scope,
        }
        if resolved_subject.handle is not None:
            params["login_hint"] = resolved_subject.handle

        logger.info(
            "starting authorization for %s at %s",
            resolved_subject.did,
            authorization_server.issuer,
        )
        return build_authorization_url(
            authorization_server.authorization_endpoint, params
        )

    async def complete(
        self,
        state: Optional[str],
        code: Optional[str],
        issuer: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> SessionCredential:
        """
        Handle the authorization callback and return the new credential.

        The pending authorization for ``state`` is consumed by the first
        callback that names it, whatever the outcome.

        Args:
            state: ``state`` query parameter of the callback
            code: ``code`` query parameter of the callback
            issuer: ``iss`` query parameter, checked when present
            error: ``error`` query parameter sent instead of a code
            error_description: ``error_description`` query parameter

        Raises:
            StateMismatch: If no pending authorization matches ``state``
            AuthError: If the server reported an error or the issuer differs
            TokenExchangeError: If the code exchange fails
            SubjectMismatch: If the tokens were issued for another account
        """
        if error is not None:
            if state:
                await self._store.delete(state)
            detail = f": {error_description}" if error_description else ""
            raise AuthError(f"authorization failed: {error}{detail}")

        if not state:
            raise StateMismatch("missing state")

        pending = await self._store.pop(state)
        if pending is None or not secrets.compare_digest(pending.state, state):
            raise StateMismatch("no pending authorization for state")

        if issuer is not None and issuer != pending.issuer:
            raise AuthError("issuer mismatch")

        if not code:
            raise AuthError("missing authorization code")

        dpop_key = load_dpop_key(pending.dpop_jwk)
        tokens = await exchange_authorization_code(
            self._http_session,
            pending.token_endpoint,
            dpop_key,
            code=code,
            redirect_uri=self._settings.redirect_uri,
            client_id=self._settings.client_id,
            code_verifier=pending.pkce_verifier,
        )

        if tokens.sub != pending.did:
            raise SubjectMismatch(
                f"tokens issued for {tokens.sub}, expected {pending.did}"
            )

        now = datetime.now(timezone.utc)
        credential = SessionCredential(
            did=pending.did,
            handle=pending.handle,
            pds=pending.pds,
            issuer=pending.issuer,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=now + timedelta(0, tokens.expires_in),
            dpop_jwk=pending.dpop_jwk,
            created_at=now,
        )

        logger.info("authorized %s", credential.did)
        return credential

    async def refresh(
        self, credential: SessionCredential, now: Optional[datetime] = None
    ) -> SessionCredential:
        """
        Refresh ``credential`` in place and return it.

        The authorization server is discovered again from the credential's
        PDS. Only the token fields change.

        Raises:
            SessionExpired: If the credential has no refresh token
            RefreshError: If discovery or the refresh exchange fails, including
                network failures and an unusable stored DPoP key
        """
        if credential.refresh_token is None:
            raise SessionExpired(f"no refresh token for {credential.did}")

        try:
            authorization_server = await discover_authorization_server(
                self._http_session, credential.pds
            )
        except ResolutionError as e:
            raise RefreshError(f"unable to refresh {credential.did}: {e}") from e

        try:
            tokens = await exchange_refresh_token(
                self._http_session,
                authorization_server.token_endpoint,
                credential.dpop_key(),
                refresh_token=credential.refresh_token,
                client_id=self._settings.client_id,
            )
        except (TransportError, SigningError) as e:
            raise RefreshError(f"unable to refresh {credential.did}: {e}") from e

        credential.apply_token_response(tokens, now)
        logger.info("refreshed session for %s", credential.did)
        return credential

    async def ensure_fresh(
        self, credential: SessionCredential, now: Optional[datetime] = None
    ) -> SessionCredential:
        """Refresh ``credential`` if it has expired, once per expiry.

        Callers holding separate copies of the same login (same
        ``session_group``) that overlap in time share one refresh: a copy
        still carrying the access token that was just replaced takes the new
        tokens instead of spending the rotated refresh token again. A copy
        that arrives after every overlapping caller has finished is not
        recognised and refreshes on its own.
        """
        if not credential.is_expired(now):
            return credential

        flight = self._refreshes.get(credential.session_group)
        if flight is None:
            flight = _RefreshFlight()
            self._refreshes[credential.session_group] = flight

        async with flight.lock:
            if (
                flight.refreshed is not None
                and credential is not flight.refreshed
                and credential.access_token == flight.replaced_access_token
            ):
                credential.adopt_tokens(flight.refreshed)
            elif credential.is_expired(now):
                replaced_access_token = credential.access_token
                await self.refresh(credential, now)
                flight.replaced_access_token = replaced_access_token
                flight.refreshed = credential
        return credential

    async def agent_for(self, credential: SessionCredential) -> Agent:
        """An ``Agent`` acting with ``credential``, refreshed first if due."""
        await self.ensure_fresh(credential)
        return Agent(DpopSession(credential), self._http_session)
