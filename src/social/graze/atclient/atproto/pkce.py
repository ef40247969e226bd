import base64
import hashlib
import secrets
from typing import Tuple

PKCE_CHALLENGE_METHOD = "S256"


def generate_pkce_verifier() -> Tuple[str, str]:
    """
    Generate PKCE (Proof Key for Code Exchange) verifier and challenge.

    This implements the PKCE extension to OAuth 2.0 (RFC 7636) to prevent
    authorization code interception attacks. It creates a cryptographically
    random verifier and its corresponding S256 challenge.

    Returns:
        Tuple[str, str]: A tuple containing (pkce_verifier, pkce_challenge)
        - pkce_verifier: The secret verifier that will be sent in the token request
        - pkce_challenge: The challenge derived from the verifier, sent in the authorization request
    """
    pkce_verifier = secrets.token_urlsafe(32)
    return (pkce_verifier, pkce_challenge(pkce_verifier))


def pkce_challenge(pkce_verifier: str) -> str:
    hashed = hashlib.sha256(pkce_verifier.encode("ascii")).digest()
    encoded = base64.urlsafe_b64encode(hashed)
    return encoded.decode("ascii").rstrip("=")
