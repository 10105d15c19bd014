"""Capability tokens: creation, encoding, matching and per-run reuse.

A capability token is a signed nostr event of kind 24242 carrying the action
it authorizes (`t` tag), an expiration, and the blobs (`x` tags) or servers
(`server` tags) it is scoped to. Signing itself is delegated to a caller
supplied Signer.
"""

import base64
import logging
import time
from typing import Iterable, List, Optional, Sequence, Union

from ..constants import AUTH_EVENT_KIND, AUTH_SCHEME, DEFAULT_AUTH_EXPIRATION
from ..digest_cache import DigestCache
from ..models import EventTemplate, SignedEvent, UploadPayload
from ..options import Signer
from ..urls import are_servers_equal, is_sha256

logger = logging.getLogger(__name__)

AUTH_TYPES = ("upload", "media", "get", "list", "delete")

BlobRef = Union[str, UploadPayload]


def now() -> int:
    return int(time.time())


def one_hour() -> int:
    return now() + DEFAULT_AUTH_EXPIRATION


def encode_authorization_header(event: SignedEvent) -> str:
    """Encode a token as an Authorization header value."""
    encoded = base64.b64encode(event.to_json().encode("utf-8")).decode("ascii")
    return f"{AUTH_SCHEME} {encoded}"


def decode_authorization_header(value: str) -> SignedEvent:
    """Decode an Authorization header value back into a token.

    Raises:
        ValueError: If the header is not a Nostr token
    """
    scheme, _, encoded = value.partition(" ")
    if scheme != AUTH_SCHEME or not encoded:
        raise ValueError(f"Not a {AUTH_SCHEME} authorization header")
    return SignedEvent.model_validate_json(base64.b64decode(encoded))


def _unique(values: Iterable[str]) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


async def _resolve_hashes(blobs: Sequence[BlobRef], cache: Optional[DigestCache]) -> List[str]:
    cache = cache or DigestCache()
    hashes = []
    for blob in blobs:
        if isinstance(blob, str):
            hashes.append(blob)
        else:
            info = await cache.get_or_compute(blob)
            hashes.append(info.sha256)
    return hashes


async def create_auth_event(
    signer: Signer,
    auth_type: str,
    blobs: Union[BlobRef, Sequence[BlobRef], None] = None,
    servers: Union[str, Sequence[str], None] = None,
    message: Optional[str] = None,
    expiration: Optional[int] = None,
    digest_cache: Optional[DigestCache] = None,
) -> SignedEvent:
    """Create and sign a capability token.

    Args:
        signer: Async callable that signs the draft
        auth_type: One of upload, media, get, list, delete
        blobs: Hashes or payloads the token is scoped to (`x` tags)
        servers: Server URLs the token is scoped to (`server` tags)
        message: Human readable explanation of the token's use
        expiration: Unix expiration time (defaults to one hour from now)
        digest_cache: Cache used to hash payloads in `blobs`

    Returns:
        Signed token; duplicate hashes and servers are dropped
    """
    if auth_type not in AUTH_TYPES:
        raise ValueError(f"Unknown auth type {auth_type!r}")

    tags = [
        ["t", auth_type],
        ["expiration", str(expiration if expiration is not None else one_hour())],
    ]
    for sha256 in _unique(await _resolve_hashes(_as_list(blobs), digest_cache)):
        tags.append(["x", sha256])
    for server in _unique(_as_list(servers)):
        tags.append(["server", server])

    draft = EventTemplate(
        kind=AUTH_EVENT_KIND,
        created_at=now(),
        content=message if message is not None else f"{auth_type.capitalize()} Blob",
        tags=tags,
    )
    return await signer(draft)


async def create_upload_auth(signer: Signer, blobs, message: str = "Upload Blob", expiration: Optional[int] = None):
    return await create_auth_event(signer, "upload", blobs=blobs, message=message, expiration=expiration)


async def create_media_auth(signer: Signer, blobs, message: str = "Upload Media", expiration: Optional[int] = None):
    return await create_auth_event(signer, "media", blobs=blobs, message=message, expiration=expiration)


async def create_mirror_auth(signer: Signer, blobs, message: str = "Mirror Blob", expiration: Optional[int] = None):
    """Mirror requests are authorized with upload tokens."""
    return await create_auth_event(signer, "upload", blobs=blobs, message=message, expiration=expiration)


async def create_download_auth(
    signer: Signer,
    server_or_hash: Union[BlobRef, Sequence[BlobRef]],
    message: str = "Download Blob",
    expiration: Optional[int] = None,
) -> SignedEvent:
    """Create a `get` token scoped to hashes, payloads and/or server URLs.

    Strings that are neither a sha256 nor an http(s) URL are ignored.
    """
    blobs: List[BlobRef] = []
    servers: List[str] = []
    for item in _as_list(server_or_hash):
        if isinstance(item, str):
            if is_sha256(item):
                blobs.append(item)
            elif item.startswith(("http://", "https://")):
                servers.append(item)
            else:
                logger.debug(f"Ignoring invalid download auth scope: {item!r}")
        else:
            blobs.append(item)
    return await create_auth_event(
        signer, "get", blobs=blobs, servers=servers, message=message, expiration=expiration
    )


async def create_list_auth(signer: Signer, message: str = "List Blobs", expiration: Optional[int] = None):
    return await create_auth_event(signer, "list", message=message, expiration=expiration)


async def create_delete_auth(signer: Signer, hashes, message: str = "Delete Blob", expiration: Optional[int] = None):
    return await create_auth_event(signer, "delete", blobs=hashes, message=message, expiration=expiration)


def does_auth_match(auth: SignedEvent, server: str, sha256: Optional[str], auth_type: str) -> bool:
    """Check if a token can authorize a request.

    The token's type must equal `auth_type`, it must not be expired, and one
    of its `x` tags must equal `sha256` or one of its `server` tags must name
    the same host as `server`.
    """
    if auth.auth_type != auth_type or auth.is_expired():
        return False

    for tag in auth.tags:
        if len(tag) < 2:
            continue
        if tag[0] == "x" and sha256 and tag[1] == sha256:
            return True
        if tag[0] == "server" and are_servers_equal(tag[1], server):
            return True
    return False


class AuthCache:
    """Tokens obtained during one orchestration run, reused across servers."""

    def __init__(self, events: Optional[Iterable[SignedEvent]] = None):
        self._events: List[SignedEvent] = list(events or [])

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events)

    def add(self, event: SignedEvent) -> None:
        if event not in self._events:
            self._events.append(event)

    def find(self, server: str, sha256: Optional[str], auth_type: str) -> Optional[SignedEvent]:
        """Return the first cached token covering the request, or None."""
        for event in self._events:
            if does_auth_match(event, server, sha256, auth_type):
                return event
        return None


__all__ = [
    "AuthCache",
    "create_auth_event",
    "create_delete_auth",
    "create_download_auth",
    "create_list_auth",
    "create_media_auth",
    "create_mirror_auth",
    "create_upload_auth",
    "decode_authorization_header",
    "does_auth_match",
    "encode_authorization_header",
]
