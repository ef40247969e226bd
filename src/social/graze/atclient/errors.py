"""Exception hierarchy for the AT Protocol client stack.

Every error raised by this package derives from ``AtClientError`` so callers can
catch the whole family in one place, while the subclasses let them tell apart
network failures, malformed input, server-reported RPC errors, discovery
failures and authentication problems.
"""

from enum import Enum
from typing import Optional


class AtClientError(Exception):
    """Base class for all client stack errors."""


class TransportError(AtClientError):
    """The request never produced an HTTP response (connection, TLS, timeout)."""


class XrpcError(AtClientError):
    """A non-success XRPC response.

    ``error`` is the server-declared error code, or ``"Unknown"`` when the body
    did not match the ``{"error": ..., "message": ...}`` shape. In that case
    the raw body is kept in ``message``.
    """

    def __init__(self, status: int, error: str, message: Optional[str] = None):
        super().__init__(f"XRPC error: {error} (status {status})")
        self.status = status
        self.error = error
        self.message = message


class InvalidInput(AtClientError, ValueError):
    """Malformed identifier input, rejected before any network call."""


class InvalidIdentifier(InvalidInput):
    pass


class InvalidHandle(InvalidInput):
    pass


class InvalidUri(InvalidInput):
    pass


class InvalidId(InvalidInput):
    pass


class ResolutionHop(str, Enum):
    """Which discovery step failed."""

    handle = "handle"
    did_document = "did_document"
    protected_resource = "protected_resource"
    authorization_server = "authorization_server"


class ResolutionError(AtClientError):
    def __init__(self, hop: ResolutionHop, message: str):
        super().__init__(f"{hop.value} resolution failed: {message}")
        self.hop = hop


class AuthError(AtClientError):
    """Missing or invalid session material."""


class StateMismatch(AuthError):
    """The callback state does not match a stored pending authorization."""


class SubjectMismatch(AuthError):
    """The token response was issued for a different account than was resolved."""


class SessionExpired(AuthError):
    """The access token expired and there is no refresh token. Log in again."""


class TokenExchangeError(AuthError):
    """The authorization-code exchange was rejected by the token endpoint."""

    def __init__(self, status: int, body: str, message: Optional[str] = None):
        super().__init__(message or f"token exchange failed: {status} - {body}")
        self.status = status
        self.body = body


class RefreshError(AuthError):
    """The refresh-token exchange failed. The credential cannot be renewed."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class SigningError(AtClientError):
    """DPoP key material is malformed or the proof could not be signed."""
