from aiohttp import ClientSession

from social.graze.atclient.atproto.repo import RepoClient
from social.graze.atclient.atproto.session import Session
from social.graze.atclient.atproto.xrpc import XrpcClient


class Agent:
    """Entry point for API calls made on behalf of one account.

    Works with any ``Session``: a ``BearerSession`` for app passwords or a
    ``DpopSession`` from the OAuth flow. The HTTP session is shared and is not
    closed by the agent.

    Usage:
        ```python
        agent = Agent(BearerSession(did, pds, token), http_session)
        record = await agent.repo.get_record(agent.did, "app.example.post", rkey)
        ```
    """

    def __init__(self, session: Session, http_session: ClientSession) -> None:
        self._session = session
        self._xrpc = XrpcClient(session, http_session)
        self._repo = RepoClient(self._xrpc)

    @property
    def did(self) -> str:
        return self._session.did

    @property
    def pds_url(self) -> str:
        return self._session.pds_url

    @property
    def session(self) -> Session:
        return self._session

    @property
    def xrpc(self) -> XrpcClient:
        return self._xrpc

    @property
    def repo(self) -> RepoClient:
        return self._repo
