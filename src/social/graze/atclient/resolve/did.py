"""DID document retrieval and PDS lookup.

Supports did:plc (PLC directory) and did:web (the domain's ``did.json``).
"""

import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import unquote

from aiohttp import ClientError, ClientSession

from social.graze.atclient.errors import ResolutionError, ResolutionHop
from social.graze.atclient.model.identifiers import AT_URI_PREFIX, Did

PDS_SERVICE_TYPE = "AtprotoPersonalDataServer"

logger = logging.getLogger(__name__)


def did_document_url(did: str, plc_hostname: str = "plc.directory") -> str:
    """Location of the DID document for ``did``.

    A bare did:web domain maps to ``https://<domain>/.well-known/did.json``;
    further colon-separated segments become path segments.

    Raises:
        InvalidIdentifier: If ``did`` is not a DID
        ResolutionError: If the DID method is not supported
    """
    parsed = Did(did)
    if parsed.method == "plc":
        return f"https://{plc_hostname}/{parsed.value}"
    elif parsed.method == "web":
        parts = [unquote(part) for part in parsed.identifier.split(":")]
        if len(parts) == 1:
            parts.append(".well-known")
        return "https://{inner}/did.json".format(inner="/".join(parts))
    raise ResolutionError(
        ResolutionHop.did_document, f"unsupported DID method: {parsed.method}"
    )


def handle_predicate(value: str) -> bool:
    """Check if an ``alsoKnownAs`` entry is an ``at://`` handle reference."""
    return value is not None and value.startswith(AT_URI_PREFIX)


def pds_predicate(value: Dict[str, Any]) -> bool:
    """Check if a service entry is an AT Protocol PDS with an endpoint."""
    return (
        isinstance(value, dict)
        and value.get("type", None) == PDS_SERVICE_TYPE
        and "serviceEndpoint" in value
    )


def pds_from_document(document: Dict[str, Any]) -> Optional[str]:
    pds = next(filter(pds_predicate, document.get("service") or []), None)
    if pds is None:
        return None
    return pds.get("serviceEndpoint")


def handle_from_document(document: Dict[str, Any]) -> Optional[str]:
    handle = next(filter(handle_predicate, document.get("alsoKnownAs") or []), None)
    if handle is None:
        return None
    return handle.removeprefix(AT_URI_PREFIX)


async def fetch_did_document(
    session: ClientSession, did: str, plc_hostname: str = "plc.directory"
) -> Dict[str, Any]:
    """Fetch and decode the DID document for ``did``.

    Raises:
        ResolutionError: With ``hop`` set to ``did_document``
    """
    url = did_document_url(did, plc_hostname)
    try:
        async with session.get(url) as resp:
            if resp.status != 200:
                raise ResolutionError(
                    ResolutionHop.did_document,
                    f"{url} returned status {resp.status}",
                )
            body = await resp.json(content_type=None)
    except (ClientError, asyncio.TimeoutError, ValueError) as e:
        raise ResolutionError(ResolutionHop.did_document, f"{url}: {e}") from e

    if not isinstance(body, dict):
        raise ResolutionError(
            ResolutionHop.did_document, f"{url} did not return a JSON object"
        )
    return body


async def resolve_pds(
    session: ClientSession, did: str, plc_hostname: str = "plc.directory"
) -> str:
    """Resolve ``did`` to the endpoint of its PDS.

    Raises:
        ResolutionError: If the document cannot be fetched or declares no PDS
    """
    document = await fetch_did_document(session, did, plc_hostname)
    pds = pds_from_document(document)
    if pds is None:
        raise ResolutionError(
            ResolutionHop.did_document, f"no PDS service declared for {did}"
        )
    logger.debug("resolved %s to PDS %s", did, pds)
    return pds
