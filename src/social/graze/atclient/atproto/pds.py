"""OAuth discovery against a PDS and its authorization server."""

import asyncio
import logging
from typing import Optional

from aiohttp import ClientError, ClientSession
from pydantic import ValidationError

from social.graze.atclient.errors import ResolutionError, ResolutionHop
from social.graze.atclient.model.oauth import (
    AuthorizationServerMetadata,
    ProtectedResourceMetadata,
)

logger = logging.getLogger(__name__)


async def oauth_protected_resource(
    session: ClientSession, pds: str
) -> Optional[ProtectedResourceMetadata]:
    async with session.get(
        f"{pds.rstrip('/')}/.well-known/oauth-protected-resource"
    ) as resp:
        if resp.status != 200:
            return None
        return ProtectedResourceMetadata.model_validate(
            await resp.json(content_type=None)
        )


async def oauth_authorization_server(
    session: ClientSession, authorization_server: str
) -> Optional[AuthorizationServerMetadata]:
    async with session.get(
        f"{authorization_server.rstrip('/')}/.well-known/oauth-authorization-server"
    ) as resp:
        if resp.status != 200:
            return None
        return AuthorizationServerMetadata.model_validate(
            await resp.json(content_type=None)
        )


async def discover_authorization_server(
    session: ClientSession, pds: str
) -> AuthorizationServerMetadata:
    """Find the authorization server that protects ``pds``.

    Reads the PDS protected-resource metadata, takes its first authorization
    server and fetches that server's metadata document.

    Raises:
        ResolutionError: With ``hop`` set to ``protected_resource`` or
            ``authorization_server`` depending on which fetch failed
    """
    try:
        protected_resource = await oauth_protected_resource(session, pds)
    except (ClientError, asyncio.TimeoutError, ValidationError, ValueError) as e:
        raise ResolutionError(ResolutionHop.protected_resource, f"{pds}: {e}") from e
    if protected_resource is None:
        raise ResolutionError(
            ResolutionHop.protected_resource, f"no protected resource metadata at {pds}"
        )

    first_authorization_server = next(
        iter(protected_resource.authorization_servers), None
    )
    if first_authorization_server is None:
        raise ResolutionError(
            ResolutionHop.protected_resource,
            f"no authorization server declared by {pds}",
        )

    try:
        authorization_server = await oauth_authorization_server(
            session, first_authorization_server
        )
    except (ClientError, asyncio.TimeoutError, ValidationError, ValueError) as e:
        raise ResolutionError(
            ResolutionHop.authorization_server, f"{first_authorization_server}: {e}"
        ) from e
    if authorization_server is None:
        raise ResolutionError(
            ResolutionHop.authorization_server,
            f"no authorization server metadata at {first_authorization_server}",
        )

    logger.debug(
        "authorization server for %s is %s", pds, authorization_server.issuer
    )
    return authorization_server
