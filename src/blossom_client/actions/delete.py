"""Remove a blob from a server (DELETE /<sha256>)."""

from typing import Optional

import httpx

from ..challenge import ChallengeContext, ChallengeResolver, PreparedRequest
from ..options import ActionOptions
from ..urls import endpoint_url
from .base import open_http


async def delete_blob(
    server: str,
    sha256: str,
    options: Optional[ActionOptions] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> bool:
    """Delete a blob, handling auth and payment challenges.

    Returns:
        True once the server confirmed the deletion
    """
    options = options or ActionOptions()
    request = PreparedRequest("DELETE", endpoint_url(server, sha256))
    context = ChallengeContext(server=server, action="delete", sha256=sha256)

    async with open_http(http) as client:
        response = await ChallengeResolver(client, options).send(request, context)
        return response.is_success
