"""Server URL helpers."""

import re
import urllib.parse
from typing import List, Optional

from .constants import SERVER_LIST_EVENT_KIND

_SHA256_RE = re.compile(r"[0-9a-f]{64}", re.IGNORECASE)
_SHA256_EXACT_RE = re.compile(r"^[0-9a-f]{64}$")


def is_sha256(value: str) -> bool:
    """Check if a string is a lowercase 64 character hex digest."""
    return bool(_SHA256_EXACT_RE.match(value))


def normalize_server(server: str) -> str:
    """
    Normalize a server URL to its origin root:
    - Path, query and fragment dropped
    - Format: <scheme>://<host>[:<port>]/

    Raises:
        ValueError: If the URL has no scheme or host
    """
    parsed = urllib.parse.urlsplit(server.strip())
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid server URL: {server!r}")
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}/"


def server_hostname(server: str) -> str:
    """Hostname of a server URL (no scheme, port or path)."""
    hostname = urllib.parse.urlsplit(server.strip()).hostname
    if not hostname:
        raise ValueError(f"Invalid server URL: {server!r}")
    return hostname


def are_servers_equal(a: str, b: str) -> bool:
    """Check if two server URLs point at the same host.

    Scheme, port and path are ignored.
    """
    try:
        return server_hostname(a) == server_hostname(b)
    except ValueError:
        return False


def endpoint_url(server: str, path: str) -> str:
    """Build an absolute endpoint URL on a server's origin."""
    return urllib.parse.urljoin(normalize_server(server), path.lstrip("/"))


def get_hash_from_url(url: str) -> Optional[str]:
    """Return the last sha256 found in a URL path, or None."""
    path = urllib.parse.urlsplit(url).path
    hashes = _SHA256_RE.findall(path)
    return hashes[-1] if hashes else None


def get_servers_from_server_list_event(event) -> List[str]:
    """Return the ordered servers of a server list event (kind 10063).

    Invalid entries are skipped. Accepts a SignedEvent or a plain mapping.
    """
    kind = event.get("kind") if isinstance(event, dict) else getattr(event, "kind", None)
    tags = event.get("tags", []) if isinstance(event, dict) else getattr(event, "tags", [])
    if kind is not None and kind != SERVER_LIST_EVENT_KIND:
        raise ValueError(f"Expected server list event kind {SERVER_LIST_EVENT_KIND}, got {kind}")

    servers = []
    for tag in tags:
        if len(tag) > 1 and tag[0] == "server" and tag[1]:
            try:
                servers.append(normalize_server(tag[1]))
            except ValueError:
                continue
    return servers
