"""Injected capability interfaces and option structs.

Callers pass their collaborators (signer, auth resolver, payment resolver,
progress sink, hash provider) once, through ActionOptions for a single
action or MultiServerOptions for an orchestration run.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from .cancel import CancelToken
from .constants import DEFAULT_MIRROR_TIMEOUT
from .models import BlobInfo, EventTemplate, PaymentRequest, SignedEvent, UploadPayload

logger = logging.getLogger(__name__)

# Signer(draft) -> SignedEvent
Signer = Callable[[EventTemplate], Awaitable[SignedEvent]]

# HashProvider(payload) -> BlobInfo
HashProvider = Callable[[UploadPayload], Awaitable[BlobInfo]]


class AuthResolver(Protocol):
    """Produces a capability token for a challenged request."""

    async def __call__(
        self, server: str, sha256: Optional[str], action: str, blob: Any
    ) -> SignedEvent:
        """
        Args:
            server: Server that issued the challenge
            sha256: Hash of the blob the request concerns (None for list)
            action: Token type needed (upload, media, get, list, delete)
            blob: Original payload or descriptor, if any
        """
        ...


class PaymentResolver(Protocol):
    """Produces a payment proof for a 402 challenge."""

    async def __call__(
        self, server: str, sha256: Optional[str], blob: Any, request: PaymentRequest
    ) -> Any:
        """
        Returns:
            Encoded token string, or a token mapping/model to be encoded
        """
        ...


class ProgressSink:
    """Observer for multi-server uploads. Methods are synchronous and must not raise."""

    def on_start(self, server: str, sha256: str, blob: Any) -> None:
        pass

    def on_upload(self, server: str, sha256: str, blob: Any) -> None:
        pass

    def on_error(self, server: str, sha256: str, blob: Any, error: Exception) -> None:
        pass


class NullProgress(ProgressSink):
    """Ignores all progress events."""
    pass


class LoggingProgress(ProgressSink):
    """Reports progress events to a logger."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def on_start(self, server, sha256, blob):
        self.log.info(f"Uploading {sha256[:12]}... to {server}")

    def on_upload(self, server, sha256, blob):
        self.log.info(f"Stored {sha256[:12]}... on {server}")

    def on_error(self, server, sha256, blob, error):
        self.log.warning(f"Failed to store {sha256[:12]}... on {server}: {error}")


# Preset auth: a token to attach, True to always authorize, False to refuse challenges
AuthOverride = Union[SignedEvent, bool, None]


@dataclass
class ActionOptions:
    """Options for a single protocol action."""

    cancel: Optional[CancelToken] = None
    auth: AuthOverride = None
    payment: Optional[Any] = None            # Preset payment proof sent up front
    timeout: Optional[float] = None          # Seconds, per request
    auth_resolver: Optional[AuthResolver] = None
    payment_resolver: Optional[PaymentResolver] = None
    hash_provider: Optional[HashProvider] = None
    auth_cache: Optional[Any] = None         # AuthCache shared across requests


@dataclass
class MultiServerOptions:
    """Policy and collaborators for one multi-server upload run.

    Attributes:
        is_media: Try the /media endpoint before raw uploads
        media_policy: "first" tries only the first server, "any" tries each in order
        media_fallback: Upload the raw blob when no server accepted the media upload
        mirror_timeout: Timeout (seconds) for mirror requests and the uploads that follow
        timeout: Timeout (seconds) for media uploads
    """

    is_media: bool = False
    media_policy: str = "first"
    media_fallback: bool = False
    mirror_timeout: Optional[float] = DEFAULT_MIRROR_TIMEOUT
    timeout: Optional[float] = None
    cancel: Optional[CancelToken] = None
    auth: AuthOverride = None
    auth_resolver: Optional[AuthResolver] = None
    payment_resolver: Optional[PaymentResolver] = None
    hash_provider: Optional[HashProvider] = None
    progress: ProgressSink = field(default_factory=NullProgress)

    def __post_init__(self):
        if self.media_policy not in ("first", "any"):
            raise ValueError(f"media_policy must be 'first' or 'any', got {self.media_policy!r}")
