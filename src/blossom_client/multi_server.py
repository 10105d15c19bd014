"""Upload one blob to many servers with partial-failure tolerance.

The first server that accepts the content (through /media or /upload)
holds the canonical blob. Every later server is asked to mirror it, and
falls back to a full upload when mirroring fails, except in media mode,
where a raw upload would store a second, unprocessed variant of the blob.

    media? --yes--> /media on first (or any) server --ok--> canonical
       |                     | no server accepted
       |                     +-- fallback? --no--> MediaUploadFailedError
       no                    | yes
       v                     v
    for each remaining server:
        canonical? --yes--> /mirror --ok--> done
           |                   | failed: media mode -> skip server
           no                  v
           +---------------> /upload --ok--> done (canonical if first)

A server's failure is reported to the progress sink once, even when it
fails both the media and the raw phase, and never aborts the run.
Cancellation aborts the whole run.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional

import httpx

from .actions.base import open_http
from .actions.media import upload_media
from .actions.mirror import mirror_blob
from .actions.upload import upload_blob
from .auth import AuthCache
from .digest_cache import DigestCache
from .errors import CancellationError, MediaUnsupportedError, MediaUploadFailedError
from .models import BlobDescriptor, PaymentRequest, SignedEvent, UploadPayload
from .options import ActionOptions, MultiServerOptions, NullProgress
from .urls import normalize_server

logger = logging.getLogger(__name__)


class ServerState(str, Enum):
    """Per-server progress within one run."""
    NOT_STARTED = "not_started"
    MEDIA_ATTEMPTED = "media_attempted"
    MIRROR_ATTEMPTED = "mirror_attempted"
    UPLOAD_ATTEMPTED = "upload_attempted"
    DONE = "done"
    ERRORED = "errored"


def _unique_servers(servers: Iterable[str]) -> List[str]:
    """Drop servers sharing an origin, keeping the first spelling."""
    seen = set()
    unique = []
    for server in servers:
        try:
            key = normalize_server(server)
        except ValueError:
            # Left for the upload to reject and report
            key = server
        if key not in seen:
            seen.add(key)
            unique.append(server)
    return unique


class MultiServerUpload:
    """One orchestration run. Not reusable and not shared between runs."""

    def __init__(
        self,
        servers: Iterable[str],
        payload: UploadPayload,
        options: Optional[MultiServerOptions] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize run.

        Args:
            servers: Servers in priority order (later spellings of the same origin are dropped)
            payload: Content to store
            options: Policy and collaborators
            http: Client to use (a temporary one is created if omitted)
        """
        self.servers: List[str] = _unique_servers(servers)
        self.payload = payload
        self.options = options or MultiServerOptions()
        self.http = http
        self.progress = self.options.progress or NullProgress()

        preset = self.options.auth if isinstance(self.options.auth, SignedEvent) else None
        self.auth_cache = AuthCache([preset] if preset else [])
        self.digests = DigestCache(self.options.hash_provider)

        self.results: Dict[str, BlobDescriptor] = {}
        self.errors: Dict[str, Exception] = {}
        self.states: Dict[str, ServerState] = {server: ServerState.NOT_STARTED for server in self.servers}
        self.canonical: Optional[BlobDescriptor] = None
        self.canonical_server: Optional[str] = None

    async def _resolve_auth(self, server: str, sha256: Optional[str], action: str, blob) -> SignedEvent:
        # Resolvers always see the original payload, also for mirror requests
        return await self.options.auth_resolver(server, sha256, action, self.payload)

    async def _resolve_payment(self, server: str, sha256: Optional[str], blob, request: PaymentRequest):
        return await self.options.payment_resolver(server, sha256, self.payload, request)

    def _action_options(self, timeout: Optional[float]) -> ActionOptions:
        auth = self.options.auth if isinstance(self.options.auth, bool) else None
        return ActionOptions(
            cancel=self.options.cancel,
            auth=auth,
            timeout=timeout,
            auth_resolver=self._resolve_auth if self.options.auth_resolver else None,
            payment_resolver=self._resolve_payment if self.options.payment_resolver else None,
            hash_provider=self.digests.get_or_compute,
            auth_cache=self.auth_cache,
        )

    def _check_cancelled(self) -> None:
        if self.options.cancel is not None:
            self.options.cancel.raise_if_cancelled()

    def _record(self, server: str, descriptor: BlobDescriptor) -> None:
        self.results[server] = descriptor
        self.states[server] = ServerState.DONE
        if self.canonical is None:
            self.canonical = descriptor
            self.canonical_server = server
            logger.debug(f"Canonical blob {descriptor.sha256[:12]}... from {server}")
        self.progress.on_upload(server, descriptor.sha256, self.payload)

    def _report(self, server: str, sha256: str, error: Exception) -> None:
        """Record a failure; each server reaches the progress sink at most once."""
        self.states[server] = ServerState.ERRORED
        logger.warning(f"Upload to {server} failed: {error}")
        if server in self.errors:
            return
        self.errors[server] = error
        self.progress.on_error(server, sha256, self.payload, error)

    async def _media_phase(self, http: httpx.AsyncClient, sha256: str) -> None:
        candidates = self.servers if self.options.media_policy == "any" else self.servers[:1]

        for server in candidates:
            self._check_cancelled()
            self.states[server] = ServerState.MEDIA_ATTEMPTED
            self.progress.on_start(server, sha256, self.payload)
            try:
                descriptor = await upload_media(
                    server, self.payload, self._action_options(self.options.timeout), http
                )
            except CancellationError:
                raise
            except MediaUnsupportedError:
                logger.info(f"{server} has no /media endpoint")
                continue
            except Exception as e:
                self._report(server, sha256, e)
                continue

            self._record(server, descriptor)
            return

        if not self.options.media_fallback:
            raise MediaUploadFailedError(candidates)
        logger.info("No server accepted the media upload, falling back to raw upload")

    async def _store_on(self, http: httpx.AsyncClient, server: str, sha256: str) -> None:
        """Mirror the canonical blob to a server, or upload the payload."""
        descriptor: Optional[BlobDescriptor] = None

        if self.canonical is not None:
            self.states[server] = ServerState.MIRROR_ATTEMPTED
            self.progress.on_start(server, self.canonical.sha256, self.payload)
            try:
                descriptor = await mirror_blob(
                    server, self.canonical, self._action_options(self.options.mirror_timeout), http
                )
            except CancellationError:
                raise
            except Exception as e:
                if self.options.is_media:
                    # Never store the raw variant next to a processed one
                    raise
                logger.info(f"Mirror to {server} failed ({e}), uploading instead")

        if descriptor is None:
            self.states[server] = ServerState.UPLOAD_ATTEMPTED
            self.progress.on_start(server, sha256, self.payload)
            timeout = self.options.timeout if self.options.timeout is not None else self.options.mirror_timeout
            descriptor = await upload_blob(server, self.payload, self._action_options(timeout), http)

        self._record(server, descriptor)

    async def run(self) -> Dict[str, BlobDescriptor]:
        """Store the payload on every server that accepts it.

        Returns:
            Mapping server -> descriptor, in server order; failed servers are absent

        Raises:
            MediaUploadFailedError: Media mode found no /media server and fallback is off
            CancellationError: The run was cancelled (partial results are discarded)
        """
        self._check_cancelled()
        info = await self.digests.get_or_compute(self.payload)

        async with open_http(self.http) as http:
            if self.options.is_media and self.servers:
                await self._media_phase(http, info.sha256)

            for server in self.servers:
                if server in self.results:
                    continue
                self._check_cancelled()
                try:
                    await self._store_on(http, server, info.sha256)
                except CancellationError:
                    raise
                except Exception as e:
                    self._report(server, info.sha256, e)

        # Preserve server list order regardless of which phase stored each blob
        return {server: self.results[server] for server in self.servers if server in self.results}


async def multi_server_upload(
    servers: Iterable[str],
    payload: UploadPayload,
    options: Optional[MultiServerOptions] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> Dict[str, BlobDescriptor]:
    """Upload a blob to multiple servers.

    See MultiServerUpload for the policy. Example:
        >>> results = await multi_server_upload(
        ...     ["https://cdn.example.com", "https://blobs.example.org"],
        ...     Path("photo.jpg"),
        ...     MultiServerOptions(auth_resolver=resolver),
        ... )
    """
    return await MultiServerUpload(servers, payload, options, http).run()
