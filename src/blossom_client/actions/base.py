"""Plumbing shared by the action executors."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from pydantic import ValidationError

from ..digest_cache import DigestCache
from ..errors import ProtocolError
from ..models import BlobDescriptor, BlobInfo, UploadPayload
from ..options import ActionOptions


@asynccontextmanager
async def open_http(http: Optional[httpx.AsyncClient] = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the caller's client, or a temporary one closed on exit."""
    if http is not None:
        yield http
        return
    # Timeouts are applied per request by run_cancellable
    async with httpx.AsyncClient(follow_redirects=True, timeout=None) as client:
        yield client


async def get_blob_info(payload: UploadPayload, options: ActionOptions) -> BlobInfo:
    """Identity of a payload through the configured HashProvider."""
    return await DigestCache(options.hash_provider).get_or_compute(payload)


def parse_descriptor(response: httpx.Response) -> BlobDescriptor:
    """Decode a blob descriptor from a successful response.

    Raises:
        ProtocolError: If the body is not a valid descriptor
    """
    try:
        return BlobDescriptor.model_validate_json(response.content)
    except ValidationError as e:
        raise ProtocolError(
            response.status_code,
            f"Invalid blob descriptor from {response.request.url}: {e.error_count()} validation error(s)",
            response.text,
        ) from e
