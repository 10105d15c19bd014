"""Ask a server to fetch a blob from another server's URL (PUT /mirror)."""

import json
from typing import Optional

import httpx

from ..challenge import ChallengeContext, ChallengeResolver, PreparedRequest
from ..constants import CONTENT_LENGTH_HEADER, CONTENT_TYPE_HEADER, MIRROR_PATH, SHA256_HEADER
from ..models import BlobDescriptor
from ..options import ActionOptions
from ..urls import endpoint_url
from .base import open_http, parse_descriptor


async def mirror_blob(
    server: str,
    blob: BlobDescriptor,
    options: Optional[ActionOptions] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> BlobDescriptor:
    """Mirror a blob to a server.

    Mirror requests are authorized with `upload` tokens.

    Args:
        server: Server that should store the blob
        blob: Descriptor of the blob on its source server
        options: Collaborators, preset credentials, cancel token, timeout
        http: Client to use (a temporary one is created if omitted)
    """
    options = options or ActionOptions()
    headers = {
        SHA256_HEADER: blob.sha256,
        CONTENT_LENGTH_HEADER: str(blob.size),
        "Content-Type": "application/json",
    }
    if blob.type:
        headers[CONTENT_TYPE_HEADER] = blob.type

    request = PreparedRequest(
        "PUT",
        endpoint_url(server, MIRROR_PATH),
        headers=headers,
        content=json.dumps({"url": blob.url}).encode("utf-8"),
    )
    context = ChallengeContext(server=server, action="upload", sha256=blob.sha256, blob=blob)

    async with open_http(http) as client:
        response = await ChallengeResolver(client, options).send(request, context)
        return parse_descriptor(response)
