"""Hashing utilities for content-addressed uploads.

Computes the sha256, size and MIME type that identify an upload payload.
"""

import asyncio
import hashlib
import mimetypes
from pathlib import Path
from typing import Optional, Tuple

from .models import Blob, BlobInfo, UploadPayload

CHUNK_SIZE = 8192


def compute_file_digest(path: Path) -> str:
    """Compute SHA256 hash of file contents.

    Args:
        path: Path to file to hash

    Returns:
        Lowercase hex digest (no algorithm prefix)
    """
    sha256 = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def compute_bytes_digest(data: bytes) -> str:
    """Compute SHA256 hash of in-memory content."""
    return hashlib.sha256(data).hexdigest()


def unwrap_payload(payload: UploadPayload) -> Tuple[object, Optional[str]]:
    """Split a payload into its raw content and explicit MIME type."""
    if isinstance(payload, Blob):
        return payload.data, payload.type
    return payload, None


def guess_type(payload: UploadPayload) -> Optional[str]:
    """MIME type of a payload: explicit Blob.type, else guessed from a file suffix."""
    data, explicit = unwrap_payload(payload)
    if explicit:
        return explicit
    if isinstance(data, Path):
        guessed, _ = mimetypes.guess_type(data.name)
        return guessed
    return None


def compute_blob_info(payload: UploadPayload) -> BlobInfo:
    """Compute identity of an upload payload.

    Args:
        payload: bytes, a file path, or a Blob wrapping either

    Returns:
        BlobInfo with sha256, size and MIME type

    Raises:
        FileNotFoundError: If a file payload does not exist
        TypeError: If the payload type is not supported
    """
    data, _ = unwrap_payload(payload)
    if isinstance(data, Path):
        if not data.is_file():
            raise FileNotFoundError(f"File not found: {data}")
        return BlobInfo(
            sha256=compute_file_digest(data),
            size=data.stat().st_size,
            type=guess_type(payload),
        )
    if isinstance(data, (bytes, bytearray)):
        return BlobInfo(
            sha256=compute_bytes_digest(bytes(data)),
            size=len(data),
            type=guess_type(payload),
        )
    raise TypeError(f"Unsupported upload payload: {type(payload).__name__}")


async def default_hash_provider(payload: UploadPayload) -> BlobInfo:
    """HashProvider that hashes files off the event loop."""
    data, _ = unwrap_payload(payload)
    if isinstance(data, Path):
        return await asyncio.to_thread(compute_blob_info, payload)
    return compute_blob_info(payload)


def read_payload(payload: UploadPayload) -> bytes:
    """Load the full content of a payload for a request body."""
    data, _ = unwrap_payload(payload)
    if isinstance(data, Path):
        return data.read_bytes()
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    raise TypeError(f"Unsupported upload payload: {type(payload).__name__}")


__all__ = [
    "compute_blob_info",
    "compute_bytes_digest",
    "compute_file_digest",
    "default_hash_provider",
    "guess_type",
    "read_payload",
]
