"""Tests for capability token creation and matching."""

import time

import pytest

from blossom_client.auth import (
    AuthCache,
    create_auth_event,
    create_download_auth,
    create_list_auth,
    create_mirror_auth,
    create_upload_auth,
    decode_authorization_header,
    does_auth_match,
    encode_authorization_header,
)
from tests.mock_servers import MODIFIED_HASH, UPLOAD_BLOB, UPLOAD_HASH, make_token


class TestCreateAuthEvent:
    """Token drafting."""

    @pytest.mark.asyncio
    async def test_upload_token_tags(self, signer):
        token = await create_upload_auth(signer, UPLOAD_HASH)

        assert token.kind == 24242
        assert token.auth_type == "upload"
        assert token.get_tag_values("x") == [UPLOAD_HASH]
        assert token.content == "Upload Blob"
        assert token.expiration > time.time()
        assert len(signer.drafts) == 1

    @pytest.mark.asyncio
    async def test_payload_is_hashed(self, signer):
        token = await create_upload_auth(signer, UPLOAD_BLOB)

        assert token.get_tag_values("x") == [UPLOAD_HASH]

    @pytest.mark.asyncio
    async def test_duplicates_dropped(self, signer):
        token = await create_auth_event(
            signer,
            "delete",
            blobs=[UPLOAD_HASH, UPLOAD_HASH, MODIFIED_HASH],
            servers=["https://a.com", "https://a.com"],
        )

        assert token.get_tag_values("x") == [UPLOAD_HASH, MODIFIED_HASH]
        assert token.get_tag_values("server") == ["https://a.com"]
        assert token.content == "Delete Blob"

    @pytest.mark.asyncio
    async def test_explicit_expiration_and_message(self, signer):
        token = await create_auth_event(signer, "list", message="List my blobs", expiration=1234)

        assert token.expiration == 1234
        assert token.content == "List my blobs"

    @pytest.mark.asyncio
    async def test_unknown_type(self, signer):
        with pytest.raises(ValueError, match="Unknown auth type"):
            await create_auth_event(signer, "mirror")

    @pytest.mark.asyncio
    async def test_mirror_token_is_upload_type(self, signer):
        token = await create_mirror_auth(signer, UPLOAD_HASH)

        assert token.auth_type == "upload"

    @pytest.mark.asyncio
    async def test_download_token_scopes(self, signer):
        """Hashes become x tags, URLs server tags, anything else is dropped."""
        token = await create_download_auth(signer, [UPLOAD_HASH, "https://cdn.example.com", "garbage"])

        assert token.auth_type == "get"
        assert token.get_tag_values("x") == [UPLOAD_HASH]
        assert token.get_tag_values("server") == ["https://cdn.example.com"]

    @pytest.mark.asyncio
    async def test_list_token_has_no_scope(self, signer):
        token = await create_list_auth(signer)

        assert token.get_tag_values("x") == []
        assert token.auth_type == "list"


class TestAuthorizationHeader:
    """Authorization: Nostr <base64 json>."""

    def test_header_format(self):
        token = make_token("get", [UPLOAD_HASH])
        header = encode_authorization_header(token)

        assert header.startswith("Nostr ")
        assert decode_authorization_header(header) == token

    def test_reject_other_scheme(self):
        with pytest.raises(ValueError):
            decode_authorization_header("Bearer abc")


class TestDoesAuthMatch:
    """Token applicability."""

    def test_matches_hash(self):
        token = make_token("upload", [UPLOAD_HASH])

        assert does_auth_match(token, "https://any.com", UPLOAD_HASH, "upload")
        assert not does_auth_match(token, "https://any.com", MODIFIED_HASH, "upload")

    def test_type_must_match_exactly(self):
        token = make_token("upload", [UPLOAD_HASH])

        assert not does_auth_match(token, "https://any.com", UPLOAD_HASH, "media")
        assert not does_auth_match(token, "https://any.com", UPLOAD_HASH, "get")

    def test_matches_server_hostname(self):
        """Server scope ignores scheme, port and path."""
        token = make_token("list", servers=["https://cdn.example.com/some/path"])

        assert does_auth_match(token, "http://cdn.example.com:8080/", None, "list")
        assert not does_auth_match(token, "https://other.example.com", None, "list")

    def test_expired_token(self):
        token = make_token("upload", [UPLOAD_HASH], expiration=int(time.time()) - 10)

        assert not does_auth_match(token, "https://any.com", UPLOAD_HASH, "upload")


class TestAuthCache:
    """Per-run token reuse."""

    def test_find(self):
        upload = make_token("upload", [UPLOAD_HASH])
        delete = make_token("delete", [UPLOAD_HASH])
        cache = AuthCache([upload, delete])

        assert cache.find("https://a.com", UPLOAD_HASH, "delete") == delete
        assert cache.find("https://a.com", MODIFIED_HASH, "upload") is None

    def test_add_ignores_duplicates(self):
        token = make_token("upload", [UPLOAD_HASH])
        cache = AuthCache()

        cache.add(token)
        cache.add(token)

        assert len(cache) == 1
