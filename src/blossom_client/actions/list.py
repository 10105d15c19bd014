"""Enumerate the blobs a server stores for a pubkey (GET /list/<pubkey>)."""

from typing import Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from ..challenge import ChallengeContext, ChallengeResolver, PreparedRequest
from ..constants import LIST_PATH
from ..errors import ProtocolError
from ..models import BlobDescriptor
from ..options import ActionOptions
from ..urls import endpoint_url
from .base import open_http

_descriptor_list = TypeAdapter(List[BlobDescriptor])


async def list_blobs(
    server: str,
    pubkey: str,
    since: Optional[int] = None,
    until: Optional[int] = None,
    options: Optional[ActionOptions] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> List[BlobDescriptor]:
    """List blobs uploaded by `pubkey`, optionally within a time range.

    Args:
        since: Only blobs uploaded at or after this unix time
        until: Only blobs uploaded at or before this unix time
    """
    options = options or ActionOptions()
    params: Dict[str, str] = {}
    if since is not None:
        params["since"] = str(since)
    if until is not None:
        params["until"] = str(until)

    request = PreparedRequest("GET", endpoint_url(server, LIST_PATH + pubkey), params=params or None)
    context = ChallengeContext(server=server, action="list")

    async with open_http(http) as client:
        response = await ChallengeResolver(client, options).send(request, context)
        try:
            return _descriptor_list.validate_json(response.content)
        except ValidationError as e:
            raise ProtocolError(
                response.status_code,
                f"Invalid blob list from {server}: {e.error_count()} validation error(s)",
                response.text,
            ) from e
