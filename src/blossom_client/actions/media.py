"""Upload a blob to a server's /media endpoint for server-side processing."""

from typing import Optional

import httpx

from ..constants import MEDIA_PATH
from ..models import BlobDescriptor, UploadPayload
from ..options import ActionOptions
from .base import open_http
from .upload import put_content


async def upload_media(
    server: str,
    payload: UploadPayload,
    options: Optional[ActionOptions] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> BlobDescriptor:
    """Upload media to a server, handling auth and payment challenges.

    The returned descriptor describes the processed blob, whose hash usually
    differs from the payload's.

    Raises:
        MediaUnsupportedError: If the server has no /media endpoint
    """
    options = options or ActionOptions()
    async with open_http(http) as client:
        return await put_content(server, MEDIA_PATH, "media", payload, options, client)
