"""Client for content-addressed blob servers (Blossom protocol)."""

from .auth import AuthCache, create_auth_event
from .cancel import CancelToken
from .client import BlossomClient
from .constants import CLIENT_VERSION
from .errors import (
    AuthorizationDisabledError,
    BlossomError,
    CancellationError,
    MediaUnsupportedError,
    MediaUploadFailedError,
    MissingHandlerError,
    PaymentRequestError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
)
from .models import Blob, BlobDescriptor, BlobInfo, EventTemplate, PaymentRequest, SignedEvent
from .multi_server import MultiServerUpload, multi_server_upload
from .options import ActionOptions, LoggingProgress, MultiServerOptions, ProgressSink

__version__ = CLIENT_VERSION

__all__ = [
    "ActionOptions",
    "AuthCache",
    "AuthorizationDisabledError",
    "Blob",
    "BlobDescriptor",
    "BlobInfo",
    "BlossomClient",
    "BlossomError",
    "CancelToken",
    "CancellationError",
    "EventTemplate",
    "LoggingProgress",
    "MediaUnsupportedError",
    "MediaUploadFailedError",
    "MissingHandlerError",
    "MultiServerOptions",
    "MultiServerUpload",
    "PaymentRequest",
    "PaymentRequestError",
    "ProgressSink",
    "ProtocolError",
    "RequestTimeoutError",
    "SignedEvent",
    "TransportError",
    "create_auth_event",
    "multi_server_upload",
]
