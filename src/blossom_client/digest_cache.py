"""Digest caching so a payload is hashed once per run."""

from pathlib import Path
from typing import Awaitable, Callable, Dict, Hashable, Optional, Tuple

from .hashing import default_hash_provider, unwrap_payload
from .models import BlobInfo, UploadPayload

HashProvider = Callable[[UploadPayload], Awaitable[BlobInfo]]


class DigestCache:
    """Cache payload identities computed by a HashProvider.

    File payloads are keyed on (path, size, mtime_ns, inode) so an edited file
    is rehashed. In-memory payloads are keyed on (id, len); the cache keeps a
    reference to each payload so an id is not reused while its entry lives.
    Payloads themselves are never modified.
    """

    def __init__(self, hash_provider: Optional[HashProvider] = None):
        """Initialize cache.

        Args:
            hash_provider: Async callable computing BlobInfo (defaults to sha256)
        """
        self.hash_provider = hash_provider or default_hash_provider
        self._entries: Dict[Hashable, Tuple[UploadPayload, BlobInfo]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _cache_key(payload: UploadPayload) -> Hashable:
        data, mime = unwrap_payload(payload)
        if isinstance(data, Path):
            stat = data.stat()
            return ("file", str(data.resolve()), stat.st_size, stat.st_mtime_ns, stat.st_ino, mime)
        return ("mem", id(payload), len(data))

    def lookup(self, payload: UploadPayload) -> Optional[BlobInfo]:
        """Return cached identity for a payload, or None."""
        entry = self._entries.get(self._cache_key(payload))
        return entry[1] if entry else None

    def store(self, payload: UploadPayload, info: BlobInfo) -> None:
        self._entries[self._cache_key(payload)] = (payload, info)

    async def get_or_compute(self, payload: UploadPayload) -> BlobInfo:
        """Get cached identity or compute it with the hash provider."""
        cached = self.lookup(payload)
        if cached:
            return cached

        info = await self.hash_provider(payload)
        self.store(payload, info)
        return info

    def clear(self) -> None:
        self._entries.clear()
