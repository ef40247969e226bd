"""Per-request authorization for XRPC calls.

A ``Session`` knows which account it acts for, where that account's PDS lives,
and how to authorize one specific request. ``BearerSession`` sends a static
bearer token (app passwords, tests). ``DpopSession`` sends a DPoP-bound access
token with a fresh proof for every request.
"""

from typing import Dict, Optional, Protocol, runtime_checkable

from social.graze.atclient.atproto.jwt import create_dpop_jwt
from social.graze.atclient.model.oauth import SessionCredential


@runtime_checkable
class Session(Protocol):
    @property
    def did(self) -> str: ...

    @property
    def pds_url(self) -> str: ...

    async def get_auth_headers(
        self, method: str, url: str, nonce: Optional[str] = None
    ) -> Dict[str, str]:
        """Headers that authorize ``method`` on the exact ``url``.

        ``nonce`` is the server-issued DPoP nonce when retrying after a
        nonce challenge.
        """
        ...


class BearerSession:
    def __init__(self, did: str, pds_url: str, access_token: str) -> None:
        self._did = did
        self._pds_url = pds_url
        self._access_token = access_token

    @property
    def did(self) -> str:
        return self._did

    @property
    def pds_url(self) -> str:
        return self._pds_url

    async def get_auth_headers(
        self, method: str, url: str, nonce: Optional[str] = None
    ) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}


class DpopSession:
    """DPoP-bound session backed by a ``SessionCredential``.

    The access token is read from the credential on every call, so a refresh
    applied to the credential is picked up by the next request.
    """

    def __init__(self, credential: SessionCredential) -> None:
        self._credential = credential
        self._dpop_key = credential.dpop_key()
        self._dpop_public_key = self._dpop_key.export_public(as_dict=True)

    @property
    def did(self) -> str:
        return self._credential.did

    @property
    def pds_url(self) -> str:
        return self._credential.pds

    @property
    def credential(self) -> SessionCredential:
        return self._credential

    async def get_auth_headers(
        self, method: str, url: str, nonce: Optional[str] = None
    ) -> Dict[str, str]:
        access_token = self._credential.access_token
        dpop_proof = create_dpop_jwt(
            self._dpop_key,
            method,
            url,
            public_key_dict=self._dpop_public_key,
            nonce=nonce,
            access_token=access_token,
        )
        return {
            "Authorization": f"DPoP {access_token}",
            "DPoP": dpop_proof,
        }
