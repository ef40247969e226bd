"""AT Protocol handle and subject resolution utilities.

Resolves AT Protocol handles to DIDs using the HTTPS well-known endpoint on the
handle's domain, falling back to the public API, and resolves subjects
(handles or DIDs) to their DID, handle and PDS endpoint.
"""

from enum import IntEnum
import logging
from typing import Optional
from urllib.parse import urlencode

from aiohttp import ClientSession
from pydantic import BaseModel
import sentry_sdk

from social.graze.atclient.errors import (
    InvalidIdentifier,
    ResolutionError,
    ResolutionHop,
)
from social.graze.atclient.model.identifiers import (
    AT_URI_PREFIX,
    DID_PREFIX,
    Did,
    Handle,
)
from social.graze.atclient.resolve.did import (
    fetch_did_document,
    handle_from_document,
    pds_from_document,
)

logger = logging.getLogger(__name__)


class SubjectType(IntEnum):
    """AT Protocol subject type enumeration.

    Identifies whether a subject is a DID or handle requiring resolution.
    """

    did_method_plc = 1
    did_method_web = 2
    hostname = 3


class ParsedSubject(BaseModel):
    """Parsed AT Protocol subject input.

    Contains the classified subject type and normalized subject string.
    """

    subject_type: SubjectType
    subject: str


class ResolvedSubject(BaseModel):
    """Resolved AT Protocol subject with all identifiers.

    Contains DID, handle, and PDS endpoint for a fully resolved subject. The
    handle is ``None`` for a DID whose document declares none.
    """

    did: str
    handle: Optional[str] = None
    pds: str


def parse_input(subject: str) -> ParsedSubject:
    """Parse and classify AT Protocol subject input.

    Normalizes input by removing ``at://`` and ``@`` prefixes and classifies
    it as a DID or handle.

    Args:
        subject: Raw subject string (handle, DID, or prefixed)

    Returns:
        ParsedSubject with type and normalized string

    Raises:
        InvalidIdentifier: For a malformed DID or an unsupported DID method
        InvalidHandle: For a malformed handle
    """
    subject = subject.strip()
    subject = subject.removeprefix(AT_URI_PREFIX)
    subject = subject.removeprefix("@")

    if subject.startswith(DID_PREFIX):
        did = Did(subject)
        if did.method == "plc":
            return ParsedSubject(subject_type=SubjectType.did_method_plc, subject=subject)
        elif did.method == "web":
            return ParsedSubject(subject_type=SubjectType.did_method_web, subject=subject)
        raise InvalidIdentifier(f"unsupported DID method: {did.method}")

    handle = Handle(subject)
    return ParsedSubject(subject_type=SubjectType.hostname, subject=str(handle))


def _did_or_none(value: str) -> Optional[str]:
    # a malformed answer counts as a failed lookup
    try:
        return str(Did(value))
    except InvalidIdentifier:
        logger.debug("ignoring malformed DID %r", value)
        return None


async def resolve_handle_http(session: ClientSession, handle: str) -> Optional[str]:
    """Resolve AT Protocol handle to DID using HTTPS well-known endpoint.

    Fetches DID from https://{handle}/.well-known/atproto-did endpoint.

    Args:
        session: HTTP client session
        handle: AT Protocol handle to resolve

    Returns:
        DID string if found, None if resolution fails
    """
    try:
        async with session.get(f"https://{handle}/.well-known/atproto-did") as resp:
            if resp.status != 200:
                return None
            return _did_or_none((await resp.text()).strip())
    except Exception as e:
        sentry_sdk.capture_exception(e)
        return None


async def resolve_handle_api(
    session: ClientSession, handle: str, public_api_hostname: str
) -> Optional[str]:
    """Resolve AT Protocol handle to DID using the public API.

    Calls ``com.atproto.identity.resolveHandle`` on ``public_api_hostname``.

    Returns:
        DID string if found, None if resolution fails
    """
    query = urlencode({"handle": handle})
    url = f"https://{public_api_hostname}/xrpc/com.atproto.identity.resolveHandle?{query}"
    try:
        async with session.get(url) as resp:
            if resp.status != 200:
                return None
            body = await resp.json(content_type=None)
            did = body.get("did") if isinstance(body, dict) else None
            return _did_or_none(did) if isinstance(did, str) else None
    except Exception as e:
        sentry_sdk.capture_exception(e)
        return None


async def resolve_handle(
    session: ClientSession,
    handle: str,
    public_api_hostname: str = "public.api.bsky.app",
) -> str:
    """Resolve AT Protocol handle to DID.

    Tries the handle's own domain first and the public API second.

    Raises:
        ResolutionError: If neither method returns a DID
    """
    did = await resolve_handle_http(session, handle)
    if did is None:
        logger.debug("well-known lookup failed for %s, trying public API", handle)
        did = await resolve_handle_api(session, handle, public_api_hostname)
    if did is None:
        raise ResolutionError(ResolutionHop.handle, f"unable to resolve {handle}")
    return did


async def resolve_subject(
    session: ClientSession,
    subject: str,
    plc_hostname: str = "plc.directory",
    public_api_hostname: str = "public.api.bsky.app",
) -> ResolvedSubject:
    """Resolve AT Protocol subject (handle or DID) to complete information.

    Parses input, resolves handle to DID if needed, then reads the DID
    document for the PDS endpoint and declared handle.

    Args:
        session: HTTP client session
        subject: Handle or DID to resolve
        plc_hostname: PLC directory hostname
        public_api_hostname: Public API hostname for handle fallback

    Returns:
        ResolvedSubject for the account

    Raises:
        InvalidInput: If the subject is malformed (no network call is made)
        ResolutionError: If any resolution step fails
    """
    parsed_subject = parse_input(subject)

    handle: Optional[str] = None
    if parsed_subject.subject_type == SubjectType.hostname:
        handle = parsed_subject.subject
        did = await resolve_handle(session, handle, public_api_hostname)
    else:
        did = parsed_subject.subject

    document = await fetch_did_document(session, did, plc_hostname)

    pds = pds_from_document(document)
    if pds is None:
        raise ResolutionError(
            ResolutionHop.did_document, f"no PDS service declared for {did}"
        )

    if handle is None:
        handle = handle_from_document(document)

    return ResolvedSubject(did=did, handle=handle, pds=pds)
