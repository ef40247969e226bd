"""
JWT and DPoP utilities for AT Protocol authentication.

Provides helper functions for creating DPoP (Demonstrating Proof of Possession) JWTs
as specified in RFC 9449, shared by the token endpoint exchange and by
DPoP-bound sessions talking to a PDS.
"""

import base64
import hashlib
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from jwcrypto import jwk, jwt
from jwcrypto.common import JWException
from ulid import ULID

from social.graze.atclient.errors import SigningError

logger = logging.getLogger(__name__)

DPOP_JWT_TYPE = "dpop+jwt"
DPOP_ALGORITHM = "ES256"


def generate_dpop_key() -> Tuple[jwk.JWK, Dict[str, Any]]:
    """A fresh ES256 (P-256) key with a ULID ``kid``, and its public JWK dict.

    One key is generated per login and kept for the life of the session.
    """
    dpop_key = jwk.JWK.generate(
        kty="EC", crv="P-256", kid=str(ULID()), alg=DPOP_ALGORITHM
    )
    public_key_dict = dpop_key.export_public(as_dict=True)
    return dpop_key, public_key_dict


def load_dpop_key(jwk_dict: Dict[str, Any]) -> jwk.JWK:
    """Rebuild a private DPoP key from its exported JWK dictionary.

    Raises:
        SigningError: If the dictionary is not a private P-256 key
    """
    try:
        dpop_key = jwk.JWK(**jwk_dict)
    except (JWException, ValueError, TypeError) as e:
        raise SigningError(f"malformed DPoP key: {e}") from e

    if not dpop_key.has_private:
        raise SigningError("DPoP key has no private component")
    if dpop_key.get("kty") != "EC" or dpop_key.get("crv") != "P-256":
        raise SigningError("DPoP key must be an EC P-256 key")
    return dpop_key


def access_token_hash(access_token: str) -> str:
    """Base64url (unpadded) SHA-256 of an access token, the DPoP ``ath`` claim."""
    digest = hashlib.sha256(access_token.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def create_dpop_header(public_key_dict: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "alg": DPOP_ALGORITHM,
        "jwk": public_key_dict,
        "typ": DPOP_JWT_TYPE,
    }


def create_dpop_claims(
    http_method: str,
    http_uri: str,
    issued_at: Optional[datetime] = None,
    nonce: Optional[str] = None,
    access_token: Optional[str] = None,
) -> Dict[str, Any]:
    """Create DPoP JWT claims for request binding.

    Binds the proof to one HTTP method and exact target URI. ``nonce`` echoes
    a server-issued ``DPoP-Nonce``; ``access_token`` adds the ``ath`` claim so
    the proof only works with that token.

    Args:
        http_method: HTTP method (e.g., "POST", "GET")
        http_uri: Target HTTP URI for the request
        issued_at: Token issuance time (defaults to current UTC time)
        nonce: Optional server-issued nonce
        access_token: Optional access token the proof is bound to

    Returns:
        Dict[str, Any]: DPoP JWT claims ready for use with jwcrypto
    """
    if issued_at is None:
        issued_at = datetime.now(timezone.utc)

    claims = {
        "jti": secrets.token_urlsafe(32),
        "htm": http_method.upper(),
        "htu": http_uri,
        "iat": int(issued_at.timestamp()),
    }

    if nonce is not None:
        claims["nonce"] = nonce

    if access_token is not None:
        claims["ath"] = access_token_hash(access_token)

    return claims


def create_dpop_jwt(
    dpop_key: jwk.JWK,
    http_method: str,
    http_uri: str,
    public_key_dict: Optional[Dict[str, Any]] = None,
    issued_at: Optional[datetime] = None,
    nonce: Optional[str] = None,
    access_token: Optional[str] = None,
) -> str:
    """Create a complete DPoP JWT for request authentication.

    Args:
        dpop_key: Private key for signing the JWT
        http_method: HTTP method for request binding
        http_uri: Target URI for request binding
        public_key_dict: Public key dictionary (extracted from dpop_key if None)
        issued_at: Token issuance time (defaults to current UTC time)
        nonce: Optional server-issued nonce
        access_token: Optional access token to bind via ``ath``

    Returns:
        str: Serialized DPoP JWT ready for use as the ``DPoP`` header value

    Raises:
        SigningError: If the key cannot sign ES256 proofs

    Usage:
        ```python
        dpop_key, public_key = generate_dpop_key()
        headers["DPoP"] = create_dpop_jwt(
            dpop_key,
            "POST",
            "https://auth.example.com/oauth/token",
        )
        ```
    """
    if not dpop_key.has_private:
        raise SigningError("DPoP key has no private component")

    try:
        if public_key_dict is None:
            public_key_dict = dpop_key.export_public(as_dict=True)

        header = create_dpop_header(public_key_dict)
        claims = create_dpop_claims(
            http_method, http_uri, issued_at, nonce, access_token
        )

        dpop_jwt = jwt.JWT(header=header, claims=claims)
        dpop_jwt.make_signed_token(dpop_key)
        serialized = dpop_jwt.serialize()
    except (JWException, ValueError, TypeError) as e:
        raise SigningError(f"unable to sign DPoP proof: {e}") from e

    logger.debug(
        "DPoP proof: htm=%s htu=%s nonce=%s ath=%s",
        claims["htm"],
        claims["htu"],
        claims.get("nonce"),
        "ath" in claims,
    )
    return serialized
