"""XRPC transport over a ``Session``.

Every call targets ``<pds>/xrpc/<nsid>`` and takes its authorization headers
from the session. Only JSON POST requests take part in the nonce challenge:
a 401 carrying ``DPoP-Nonce`` is retried exactly once with that nonce. GET,
binary upload and the no-response POST are sent once.

Non-success responses raise ``XrpcError``. When the body is the standard
``{"error": ..., "message": ...}`` object its code is kept, otherwise the
error is ``"Unknown"`` and the raw body becomes the message.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Type, TypeVar
from urllib.parse import urlencode

from aiohttp import ClientSession, hdrs
from pydantic import BaseModel, TypeAdapter, ValidationError

from social.graze.atclient.atproto.chain import (
    ChainMiddlewareClient,
    ChainResponse,
    SessionAuthMiddleware,
)
from social.graze.atclient.atproto.session import Session
from social.graze.atclient.errors import XrpcError
from social.graze.atclient.model.repo import XrpcErrorBody

OutputT = TypeVar("OutputT")

UNKNOWN_ERROR = "Unknown"

logger = logging.getLogger(__name__)


def encode_params(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Query parameters as XRPC expects them.

    ``None`` values are dropped and booleans are rendered lowercase.
    """
    encoded: Dict[str, Any] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = value
    return encoded


def decode_error(chain_response: ChainResponse) -> XrpcError:
    if isinstance(chain_response.body, dict):
        try:
            error_body = XrpcErrorBody.model_validate(chain_response.body)
            return XrpcError(
                chain_response.status, error_body.error, error_body.message
            )
        except ValidationError:
            pass
    return XrpcError(chain_response.status, UNKNOWN_ERROR, chain_response.body_text())


def decode_output(chain_response: ChainResponse, output_type: Type[OutputT]) -> OutputT:
    if not chain_response.ok:
        raise decode_error(chain_response)

    try:
        return TypeAdapter(output_type).validate_python(chain_response.body)
    except ValidationError as e:
        logger.debug("response did not match %s: %s", output_type, e)
        raise XrpcError(
            chain_response.status, UNKNOWN_ERROR, chain_response.body_text()
        ) from e


class XrpcClient:
    def __init__(self, session: Session, http_session: ClientSession) -> None:
        self._session = session
        middleware = [SessionAuthMiddleware(session)]
        self._retrying_client = ChainMiddlewareClient(
            client_session=http_session,
            logger=logger,
            middleware=middleware,
            attempt_max=2,
        )
        self._single_client = ChainMiddlewareClient(
            client_session=http_session,
            logger=logger,
            middleware=middleware,
            attempt_max=1,
        )

    @property
    def session(self) -> Session:
        return self._session

    def build_url(self, nsid: str, params: Optional[Mapping[str, Any]] = None) -> str:
        url = f"{self._session.pds_url.rstrip('/')}/xrpc/{nsid}"
        query = encode_params(params)
        if query:
            url = f"{url}?{urlencode(query, doseq=True)}"
        return url

    async def get(
        self,
        nsid: str,
        params: Optional[Mapping[str, Any]] = None,
        output_type: Type[OutputT] = Dict[str, Any],  # type: ignore[assignment]
    ) -> OutputT:
        url = self.build_url(nsid, params)
        async with self._single_client.get(url) as (_, chain_response):
            return decode_output(chain_response, output_type)

    async def post(
        self,
        nsid: str,
        body: Any,
        output_type: Type[OutputT] = Dict[str, Any],  # type: ignore[assignment]
    ) -> OutputT:
        url = self.build_url(nsid)
        async with self._retrying_client.post(url, json=_json_body(body)) as (
            _,
            chain_response,
        ):
            if not chain_response.ok:
                logger.debug(
                    "XRPC POST %s failed with status %s", nsid, chain_response.status
                )
            return decode_output(chain_response, output_type)

    async def post_bytes(
        self,
        nsid: str,
        data: bytes,
        content_type: str,
        output_type: Type[OutputT] = Dict[str, Any],  # type: ignore[assignment]
    ) -> OutputT:
        url = self.build_url(nsid)
        async with self._single_client.post(
            url, data=data, headers={hdrs.CONTENT_TYPE: content_type}
        ) as (_, chain_response):
            return decode_output(chain_response, output_type)

    async def post_no_response(self, nsid: str, body: Any) -> None:
        url = self.build_url(nsid)
        async with self._single_client.post(url, json=_json_body(body)) as (
            _,
            chain_response,
        ):
            if not chain_response.ok:
                raise decode_error(chain_response)


def _json_body(body: Any) -> Any:
    if isinstance(body, BaseModel):
        to_wire = getattr(body, "to_wire", None)
        if to_wire is not None:
            return to_wire()
        return body.model_dump(by_alias=True, exclude_none=True, mode="json")
    return body
