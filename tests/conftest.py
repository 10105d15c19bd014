"""Shared test fixtures and utilities."""

import pytest

from blossom_client.models import EventTemplate, SignedEvent
from tests.mock_servers import sign


@pytest.fixture
def signer():
    """Async signer that records every draft it signs."""
    drafts = []

    async def _sign(draft: EventTemplate) -> SignedEvent:
        drafts.append(draft)
        return sign(draft)

    _sign.drafts = drafts
    return _sign


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's environment out of config loading."""
    monkeypatch.delenv("BLOSSOM_SERVERS", raising=False)
    monkeypatch.delenv("BLOSSOM_TIMEOUT", raising=False)


@pytest.fixture
def write_file(tmp_path):
    """Factory fixture to write files relative to tmp_path."""
    def _write(path: str, content: bytes = b"test content"):
        file_path = tmp_path / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)
        return file_path
    return _write
