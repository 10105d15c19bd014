"""Client bound to a single server.

Wraps the protocol actions with a shared HTTP connection pool and, when a
signer is given, answers authorization challenges by signing tokens scoped
to the request's blob (or to the server, for list requests).
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import httpx

from . import actions
from .auth import AuthCache, create_auth_event
from .cancel import CancelToken
from .models import BlobDescriptor, SignedEvent, UploadPayload
from .options import ActionOptions, AuthOverride, PaymentResolver, Signer
from .urls import normalize_server

logger = logging.getLogger(__name__)


class BlossomClient:
    """Protocol client for one server."""

    def __init__(
        self,
        server: str,
        signer: Optional[Signer] = None,
        http: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        payment_resolver: Optional[PaymentResolver] = None,
    ):
        """Initialize client.

        Args:
            server: Server URL (normalized to its origin)
            signer: Signs capability tokens on demand; without one, only
                preset tokens can answer authorization challenges
            http: Client to use; a private one is created and closed by close()
            timeout: Per-request timeout in seconds
            payment_resolver: Answers payment challenges
        """
        self.server = normalize_server(server)
        self.signer = signer
        self.timeout = timeout
        self.payment_resolver = payment_resolver
        self.auth_cache = AuthCache()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(follow_redirects=True, timeout=None)

    async def __aenter__(self) -> "BlossomClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def _sign(self, server: str, sha256: Optional[str], action: str, blob) -> SignedEvent:
        if sha256:
            return await create_auth_event(self.signer, action, blobs=[sha256])
        return await create_auth_event(self.signer, action, servers=[server])

    def _options(self, auth: AuthOverride = None, cancel: Optional[CancelToken] = None) -> ActionOptions:
        return ActionOptions(
            cancel=cancel,
            auth=auth,
            timeout=self.timeout,
            auth_resolver=self._sign if self.signer else None,
            payment_resolver=self.payment_resolver,
            auth_cache=self.auth_cache,
        )

    async def upload(self, payload: UploadPayload, auth: AuthOverride = None, cancel: Optional[CancelToken] = None) -> BlobDescriptor:
        return await actions.upload_blob(self.server, payload, self._options(auth, cancel), self.http)

    async def upload_media(self, payload: UploadPayload, auth: AuthOverride = None, cancel: Optional[CancelToken] = None) -> BlobDescriptor:
        return await actions.upload_media(self.server, payload, self._options(auth, cancel), self.http)

    async def check_upload(self, payload: UploadPayload) -> Dict[str, str]:
        return await actions.check_upload(self.server, payload, self._options(), self.http)

    async def mirror(self, blob: BlobDescriptor, auth: AuthOverride = None, cancel: Optional[CancelToken] = None) -> BlobDescriptor:
        return await actions.mirror_blob(self.server, blob, self._options(auth, cancel), self.http)

    async def download(self, sha256: str, auth: AuthOverride = None, cancel: Optional[CancelToken] = None) -> bytes:
        return await actions.download_blob(self.server, sha256, self._options(auth, cancel), self.http)

    async def download_to(self, sha256: str, dest: Path, auth: AuthOverride = None) -> Path:
        return await actions.download_to(self.server, sha256, dest, self._options(auth), self.http)

    async def has_blob(self, sha256: str) -> bool:
        return await actions.has_blob(self.server, sha256, self._options(), self.http)

    async def list(
        self,
        pubkey: str,
        since: Optional[int] = None,
        until: Optional[int] = None,
        auth: AuthOverride = None,
    ) -> List[BlobDescriptor]:
        return await actions.list_blobs(self.server, pubkey, since, until, self._options(auth), self.http)

    async def delete(self, sha256: str, auth: AuthOverride = None) -> bool:
        return await actions.delete_blob(self.server, sha256, self._options(auth), self.http)

    def __repr__(self) -> str:
        return f"BlossomClient({self.server!r})"
