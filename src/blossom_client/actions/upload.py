"""Upload a blob to a server with PUT /upload, probing with HEAD first."""

import logging
from typing import Dict, Optional

import httpx

from ..challenge import ChallengeContext, ChallengeResolver, PreparedRequest, error_from_response, is_success
from ..constants import (
    CONTENT_LENGTH_HEADER,
    CONTENT_TYPE_HEADER,
    SHA256_HEADER,
    UPLOAD_PATH,
)
from ..errors import MediaUnsupportedError
from ..hashing import read_payload
from ..models import BlobDescriptor, BlobInfo, UploadPayload
from ..options import ActionOptions
from ..urls import endpoint_url
from .base import get_blob_info, open_http, parse_descriptor

logger = logging.getLogger(__name__)


def identifying_headers(info: BlobInfo) -> Dict[str, str]:
    """X-SHA-256, X-Content-Length and (when known) X-Content-Type."""
    headers = {
        SHA256_HEADER: info.sha256,
        CONTENT_LENGTH_HEADER: str(info.size),
    }
    if info.type:
        headers[CONTENT_TYPE_HEADER] = info.type
    return headers


async def put_content(
    server: str,
    path: str,
    auth_type: str,
    payload: UploadPayload,
    options: ActionOptions,
    http: httpx.AsyncClient,
) -> BlobDescriptor:
    """Probe an upload endpoint, resolve its challenge, then PUT the content.

    A 404 probe on /upload means the probe is unsupported and the content is
    PUT directly; on /media it means media is unsupported. A probe challenge
    is answered by sending the PUT with the credential attached.

    Raises:
        MediaUnsupportedError: If the /media probe answered 404
        ProtocolError: On a terminal status (5xx probes included)
    """
    info = await get_blob_info(payload, options)
    url = endpoint_url(server, path)

    put_headers = {SHA256_HEADER: info.sha256}
    if info.type:
        put_headers["Content-Type"] = info.type
    put = PreparedRequest("PUT", url, headers=put_headers, content=read_payload(payload))
    probe = PreparedRequest("HEAD", url, headers=identifying_headers(info))

    resolver = ChallengeResolver(http, options)
    context = ChallengeContext(server=server, action=auth_type, sha256=info.sha256, blob=payload)

    response = await resolver.send(probe, context, retry=put, passthrough={404})
    if response.status_code == 404:
        if auth_type == "media":
            raise MediaUnsupportedError(server)
        logger.debug(f"{server} does not support upload probes, uploading directly")
        response = await resolver.send(put, context)
    elif response.request.method == "HEAD":
        response = await resolver.send(put, context)

    return parse_descriptor(response)


async def upload_blob(
    server: str,
    payload: UploadPayload,
    options: Optional[ActionOptions] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> BlobDescriptor:
    """Upload a blob to a server, handling auth and payment challenges.

    Args:
        server: Server URL
        payload: bytes, file path, or Blob
        options: Collaborators, preset credentials, cancel token, timeout
        http: Client to use (a temporary one is created if omitted)

    Returns:
        BlobDescriptor reported by the server
    """
    options = options or ActionOptions()
    async with open_http(http) as client:
        return await put_content(server, UPLOAD_PATH, "upload", payload, options, client)


async def check_upload(
    server: str,
    payload: UploadPayload,
    options: Optional[ActionOptions] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> Dict[str, str]:
    """Ask a server whether it would accept an upload (HEAD /upload).

    Challenges are not answered; this only reports requirements.

    Returns:
        Response headers of an accepted probe

    Raises:
        ProtocolError: If the server would reject the upload
    """
    options = options or ActionOptions()
    info = await get_blob_info(payload, options)
    async with open_http(http) as client:
        resolver = ChallengeResolver(client, options)
        probe = PreparedRequest("HEAD", endpoint_url(server, UPLOAD_PATH), headers=identifying_headers(info))
        response = await resolver.dispatch(probe)
        if not is_success(response):
            raise error_from_response(response)
        return dict(response.headers)
