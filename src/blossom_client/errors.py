"""Custom exceptions for blossom-client.

This module defines typed exceptions so callers can tell a server that is
unreachable from one that refused a request, and a missing capability from
a failure.
"""

from typing import Any, Optional


class BlossomError(RuntimeError):
    """Base class for all blossom-client errors."""
    pass


# Transport Errors
class TransportError(BlossomError):
    """Network connectivity issue with a server."""

    def __init__(self, message: str, server: Optional[str] = None):
        self.server = server
        super().__init__(message)


class RequestTimeoutError(TransportError):
    """Request did not complete within its timeout."""
    pass


class CancellationError(BlossomError):
    """Request was aborted through its cancel token."""
    pass


# Protocol Errors
class ProtocolError(BlossomError):
    """Server answered with a non-success status."""

    def __init__(self, status: int, message: str, body: Any = None):
        self.status = status
        self.message = message
        self.body = body
        super().__init__(f"HTTP {status}: {message}" if message else f"HTTP {status}")


class PaymentRequestError(ProtocolError):
    """Payment challenge without a readable X-Cashu payment request."""

    def __init__(self, message: str):
        super().__init__(402, message)


# Handler Errors
class MissingHandlerError(BlossomError):
    """A challenge occurred but no handler was configured to answer it."""

    def __init__(self, challenge: str, server: Optional[str] = None):
        self.challenge = challenge
        self.server = server
        target = f" for {server}" if server else ""
        super().__init__(f"Missing {challenge} handler{target}")


class AuthorizationDisabledError(MissingHandlerError):
    """Server requested authorization but the caller disabled it."""

    def __init__(self, server: Optional[str] = None):
        self.challenge = "auth"
        self.server = server
        target = f" by {server}" if server else ""
        BlossomError.__init__(self, f"Authorization requested{target} but disabled")


# Media Errors
class MediaUnsupportedError(BlossomError):
    """Server has no /media endpoint (probe answered 404)."""

    def __init__(self, server: str):
        self.server = server
        super().__init__(f"/media endpoint not supported by {server}")


class MediaUploadFailedError(BlossomError):
    """No server accepted the media upload and raw fallback is disabled."""

    def __init__(self, servers: list):
        self.servers = servers
        tried = ", ".join(servers[:3])
        if len(servers) > 3:
            tried += f" and {len(servers) - 3} more"
        super().__init__(
            f"Failed to find a media processing endpoint (tried: {tried or 'no servers'}). "
            f"Enable media fallback to upload the raw blob instead."
        )


# Configuration Errors
class ConfigError(BlossomError):
    """Invalid client configuration."""
    pass


# Integrity Errors
class DigestMismatchError(BlossomError):
    """Downloaded content doesn't match the requested hash."""

    def __init__(self, source: str, expected: str, actual: str):
        self.source = source
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Digest verification failed for {source}\n"
            f"  Expected: {expected}\n"
            f"  Got:      {actual}\n"
            f"The blob may be corrupted or tampered with."
        )
