"""Retrieve blobs (GET /<sha256>) and check for their presence (HEAD)."""

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

import httpx

from ..challenge import ChallengeContext, ChallengeResolver, PreparedRequest, error_from_response
from ..errors import DigestMismatchError
from ..options import ActionOptions
from ..urls import endpoint_url
from .base import open_http

logger = logging.getLogger(__name__)


async def download_blob(
    server: str,
    sha256: str,
    options: Optional[ActionOptions] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> bytes:
    """Download a blob's content, handling auth and payment challenges.

    Returns:
        Raw blob bytes (not verified; see download_to)
    """
    options = options or ActionOptions()
    request = PreparedRequest("GET", endpoint_url(server, sha256))
    context = ChallengeContext(server=server, action="get", sha256=sha256)

    async with open_http(http) as client:
        response = await ChallengeResolver(client, options).send(request, context)
        return response.content


def _atomic_write(data: bytes, final_path: Path) -> None:
    """Write file atomically: temp file in the same directory, fsync, rename."""
    final_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmppath = tempfile.mkstemp(prefix=f".{final_path.name}.partial-", dir=final_path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmppath, final_path)
    except Exception:
        try:
            os.unlink(tmppath)
        except OSError:
            pass
        raise


async def download_to(
    server: str,
    sha256: str,
    dest: Path,
    options: Optional[ActionOptions] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> Path:
    """Download a blob to `dest`, verifying its hash before writing.

    Raises:
        DigestMismatchError: If the content does not hash to `sha256`
    """
    data = await download_blob(server, sha256, options, http)
    actual = hashlib.sha256(data).hexdigest()
    if actual != sha256:
        raise DigestMismatchError(endpoint_url(server, sha256), sha256, actual)

    _atomic_write(data, dest)
    logger.debug(f"Wrote {len(data)} bytes to {dest}")
    return dest


async def has_blob(
    server: str,
    sha256: str,
    options: Optional[ActionOptions] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> bool:
    """Check whether a server stores a blob (HEAD /<sha256>).

    Returns:
        True on 2xx, False on 404

    Raises:
        ProtocolError: On any other status
    """
    options = options or ActionOptions()
    request = PreparedRequest("HEAD", endpoint_url(server, sha256))
    context = ChallengeContext(server=server, action="get", sha256=sha256)

    async with open_http(http) as client:
        response = await ChallengeResolver(client, options).send(request, context, passthrough={404})
        if response.status_code == 404:
            return False
        if response.status_code >= 300:
            raise error_from_response(response)
        return True
