"""Middleware chain for authenticated requests.

Requests flow through a list of middleware before reaching the aiohttp client.
Each middleware may decorate the request on the way in and inspect the
response on the way out. Every link returns ``(client_response,
chain_response, retry)``; a non-``None`` ``retry`` is a replacement
``ChainRequest`` that ``ChainMiddlewareContext`` sends next, as long as
attempts remain.

The DPoP middleware use this to absorb nonce challenges: when the server
answers with the challenge status and a ``DPoP-Nonce`` header, the request is
rebuilt once with that nonce. A request that already carries a nonce is never
retried, so each call makes at most two round trips.
"""

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass, field, replace
import json
import logging
from types import TracebackType
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generator,
    Optional,
    Sequence,
    Tuple,
)

from aiohttp import ClientError, ClientResponse, ClientSession, hdrs
from aiohttp.typedefs import StrOrURL
from jwcrypto import jwk
from multidict import CIMultiDictProxy

from social.graze.atclient.atproto.jwt import create_dpop_jwt
from social.graze.atclient.atproto.session import Session
from social.graze.atclient.errors import TransportError

RequestFunc = Callable[..., Awaitable[ClientResponse]]

DPOP_NONCE_HEADER = "DPoP-Nonce"

logger = logging.getLogger(__name__)


@dataclass
class ChainRequest:
    method: str
    url: StrOrURL
    headers: Dict[str, str] = field(default_factory=dict)
    kwargs: Dict[str, Any] = field(default_factory=dict)
    nonce: Optional[str] = None

    def with_nonce(self, nonce: str) -> "ChainRequest":
        """A copy to resend with ``nonce``; the body kwargs are shared."""
        return replace(self, headers=dict(self.headers), nonce=nonce)


async def _read_body(response: ClientResponse) -> Any:
    content_type = response.headers.get(hdrs.CONTENT_TYPE, "")

    if content_type.startswith("application/json"):
        text = await response.text()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            # mislabelled bodies are kept as text
            return text
    elif content_type.startswith("text/"):
        return await response.text()
    return await response.read()


@dataclass
class ChainResponse:
    status: int
    headers: CIMultiDictProxy[str]
    body: str | bytes | dict[str, Any] | list[Any] | None = None

    @staticmethod
    async def from_aiohttp_response(response: ClientResponse) -> "ChainResponse":
        return ChainResponse(
            status=response.status,
            headers=response.headers,
            body=await _read_body(response),
        )

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def body_text(self) -> str:
        if self.body is None:
            return ""
        elif isinstance(self.body, str):
            return self.body
        elif isinstance(self.body, bytes):
            return self.body.decode("utf-8", errors="replace")
        return json.dumps(self.body)


ChainResult = Tuple[ClientResponse, ChainResponse, Optional[ChainRequest]]

NextChainCallbackType = Callable[[ChainRequest], Awaitable[ChainResult]]


class RequestMiddlewareBase(ABC):
    @abstractmethod
    async def handle(
        self, next: NextChainCallbackType, request: ChainRequest
    ) -> ChainResult:
        pass

    def handle_gen(self, next: NextChainCallbackType) -> NextChainCallbackType:
        async def next_invoke(request: ChainRequest) -> ChainResult:
            return await self.handle(next, request)

        return next_invoke


class NonceChallengeMiddleware(RequestMiddlewareBase):
    """Attach DPoP headers and retry once on a nonce challenge.

    The challenge is a response with ``challenge_status`` that carries a
    ``DPoP-Nonce`` header. Any other response, including the challenge status
    without the header, is passed through untouched.
    """

    def __init__(self, challenge_status: int) -> None:
        super().__init__()
        self._challenge_status = challenge_status

    @abstractmethod
    async def auth_headers(
        self, request: ChainRequest, nonce: Optional[str]
    ) -> Dict[str, str]:
        pass

    def _challenge_nonce(self, chain_response: ChainResponse) -> Optional[str]:
        if chain_response.status != self._challenge_status:
            return None
        return chain_response.headers.get(DPOP_NONCE_HEADER) or None

    async def handle(
        self, next: NextChainCallbackType, request: ChainRequest
    ) -> ChainResult:
        request.headers.update(await self.auth_headers(request, request.nonce))

        client_response, chain_response, retry = await next(request)
        if retry is not None or request.nonce is not None:
            return client_response, chain_response, retry

        nonce = self._challenge_nonce(chain_response)
        if nonce is None:
            return client_response, chain_response, None

        logger.debug(
            "nonce challenge from %s %s (status %s), retrying",
            request.method,
            request.url,
            chain_response.status,
        )
        return client_response, chain_response, request.with_nonce(nonce)


class GenerateDpopMiddleware(NonceChallengeMiddleware):
    """DPoP proofs for token endpoint requests.

    Token endpoints signal a required nonce with a 400 response. The proofs
    are not bound to an access token.
    """

    def __init__(self, dpop_key: jwk.JWK, challenge_status: int = 400) -> None:
        super().__init__(challenge_status)
        self._dpop_key = dpop_key
        self._dpop_public_key = dpop_key.export_public(as_dict=True)

    async def auth_headers(
        self, request: ChainRequest, nonce: Optional[str]
    ) -> Dict[str, str]:
        proof = create_dpop_jwt(
            self._dpop_key,
            request.method,
            str(request.url),
            public_key_dict=self._dpop_public_key,
            nonce=nonce,
        )
        return {"DPoP": proof}


class SessionAuthMiddleware(NonceChallengeMiddleware):
    """Authorization headers from a ``Session`` for resource (PDS) requests.

    Resource servers signal a required nonce with a 401 response.
    """

    def __init__(self, session: Session, challenge_status: int = 401) -> None:
        super().__init__(challenge_status)
        self._session = session

    async def auth_headers(
        self, request: ChainRequest, nonce: Optional[str]
    ) -> Dict[str, str]:
        return await self._session.get_auth_headers(
            request.method, str(request.url), nonce
        )


class EndOfLineChainMiddleware:
    """Last link of the chain: sends the request with the aiohttp client."""

    def __init__(self, request_func: RequestFunc, logger: logging.Logger) -> None:
        self._request_func = request_func
        self._logger = logger

    async def handle(self, request: ChainRequest) -> ChainResult:
        self._logger.debug("sending %s %s", request.method, request.url)

        try:
            response = await self._request_func(
                request.method.lower(),
                request.url,
                headers=request.headers,
                **request.kwargs,
            )
            chain_response = await ChainResponse.from_aiohttp_response(response)
        except (ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"{request.method} {request.url} failed: {e!r}"
            ) from e

        return response, chain_response, None


class ChainMiddlewareContext:
    """One logical request, awaitable or usable with ``async with``.

    Runs the chain up to ``attempt_max`` times, following the retry requests
    the middleware hand back. Superseded responses are closed as soon as they
    are replaced. The final one is closed on exit, or as soon as an awaited
    context returns; its ``ChainResponse`` body has been read by then.
    """

    def __init__(
        self,
        chain_callback: NextChainCallbackType,
        chain_request: ChainRequest,
        logger: logging.Logger,
        attempt_max: int = 2,
    ) -> None:
        self._chain_callback = chain_callback
        self._chain_request = chain_request
        self._logger = logger
        self._attempt_max = attempt_max

        self.client_response: ClientResponse | None = None

    def _release(self) -> None:
        if self.client_response is not None and not self.client_response.closed:
            self.client_response.close()

    async def _do_request(self) -> Tuple[ClientResponse, ChainResponse]:
        chain_request = self._chain_request
        attempt = 0

        while True:
            attempt += 1
            self._logger.debug(
                "attempt %d of %d: %s %s",
                attempt,
                self._attempt_max,
                chain_request.method,
                chain_request.url,
            )

            client_response, chain_response, retry = await self._chain_callback(
                chain_request
            )
            self._release()
            self.client_response = client_response

            if retry is None or attempt >= self._attempt_max:
                return client_response, chain_response
            chain_request = retry

    async def _request_and_release(self) -> Tuple[ClientResponse, ChainResponse]:
        try:
            return await self._do_request()
        finally:
            self._release()

    def __await__(self) -> Generator[Any, None, Tuple[ClientResponse, ChainResponse]]:
        return self._request_and_release().__await__()

    async def __aenter__(self) -> Tuple[ClientResponse, ChainResponse]:
        return await self._do_request()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._release()


class ChainMiddlewareClient:
    """Sends requests through ``middleware`` using a shared ``ClientSession``.

    The session belongs to the caller and is never closed here.
    """

    def __init__(
        self,
        client_session: ClientSession,
        logger: logging.Logger | None = None,
        middleware: Sequence[RequestMiddlewareBase] = (),
        attempt_max: int = 2,
    ) -> None:
        self._client = client_session
        self._logger = logger or logging.getLogger("atclient_chain")
        self._middleware = middleware
        self._attempt_max = attempt_max

    def get(self, url: StrOrURL, **kwargs: Any) -> ChainMiddlewareContext:
        return self._make_request(hdrs.METH_GET, url, **kwargs)

    def post(self, url: StrOrURL, **kwargs: Any) -> ChainMiddlewareContext:
        return self._make_request(hdrs.METH_POST, url, **kwargs)

    def _make_request(
        self, method: str, url: StrOrURL, **kwargs: Any
    ) -> ChainMiddlewareContext:
        chain_request = ChainRequest(
            method=method,
            url=url,
            headers=dict(kwargs.pop("headers", None) or {}),
            kwargs=kwargs,
        )

        chain_callback: NextChainCallbackType = EndOfLineChainMiddleware(
            request_func=self._client.request, logger=self._logger
        ).handle
        for mw in reversed(self._middleware):
            chain_callback = mw.handle_gen(chain_callback)

        return ChainMiddlewareContext(
            chain_callback=chain_callback,
            chain_request=chain_request,
            logger=self._logger,
            attempt_max=self._attempt_max,
        )
