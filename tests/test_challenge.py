"""Tests for single-request challenge resolution."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from blossom_client.auth import AuthCache, decode_authorization_header
from blossom_client.cancel import CancelToken
from blossom_client.challenge import (
    ChallengeContext,
    ChallengeResolver,
    ChallengeState,
    PreparedRequest,
    error_from_response,
)
from blossom_client.errors import (
    AuthorizationDisabledError,
    CancellationError,
    MissingHandlerError,
    PaymentRequestError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
)
from blossom_client.options import ActionOptions
from tests.mock_servers import PAYMENT_REQUEST, UPLOAD_HASH, make_token

URL = f"https://cdn.example.com/{UPLOAD_HASH}"
CONTEXT = ChallengeContext(server="https://cdn.example.com", action="get", sha256=UPLOAD_HASH)


def scripted(*responses):
    """Transport answering with `responses` in order, recording requests."""
    sent = []
    queue = list(responses)

    def handler(request):
        sent.append(request)
        return queue.pop(0)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), sent


class TestChallengeResolver:
    """Challenge state machine."""

    @pytest.mark.asyncio
    async def test_success_without_challenge(self):
        http, sent = scripted(httpx.Response(200, content=b"data"))
        resolver = ChallengeResolver(http)

        response = await resolver.send(PreparedRequest("GET", URL), CONTEXT)

        assert response.content == b"data"
        assert resolver.state == ChallengeState.DONE
        assert len(sent) == 1
        assert "Authorization" not in sent[0].headers

    @pytest.mark.parametrize("status", [401, 403])
    @pytest.mark.asyncio
    async def test_auth_challenge_retried_with_token(self, status):
        token = make_token("get", [UPLOAD_HASH])
        http, sent = scripted(httpx.Response(status), httpx.Response(200))
        resolver_fn = AsyncMock(return_value=token)
        resolver = ChallengeResolver(http, ActionOptions(auth_resolver=resolver_fn))

        await resolver.send(PreparedRequest("GET", URL), CONTEXT)

        assert len(sent) == 2
        assert decode_authorization_header(sent[1].headers["Authorization"]) == token
        resolver_fn.assert_awaited_once_with("https://cdn.example.com", UPLOAD_HASH, "get", None)
        assert resolver.state == ChallengeState.DONE

    @pytest.mark.asyncio
    async def test_challenge_on_retry_is_terminal(self):
        """Retry depth is one: a second challenge fails the request."""
        http, sent = scripted(httpx.Response(401), httpx.Response(401, headers={"X-Reason": "bad token"}))
        resolver = ChallengeResolver(
            http, ActionOptions(auth_resolver=AsyncMock(return_value=make_token("get", [UPLOAD_HASH])))
        )

        with pytest.raises(ProtocolError) as exc_info:
            await resolver.send(PreparedRequest("GET", URL), CONTEXT)

        assert exc_info.value.status == 401
        assert exc_info.value.message == "bad token"
        assert len(sent) == 2
        assert resolver.state == ChallengeState.FAILED

    @pytest.mark.asyncio
    async def test_other_status_is_terminal(self):
        http, sent = scripted(httpx.Response(500, text="boom"))
        resolver = ChallengeResolver(http)

        with pytest.raises(ProtocolError, match="HTTP 500: boom"):
            await resolver.send(PreparedRequest("GET", URL), CONTEXT)

        assert len(sent) == 1

    @pytest.mark.asyncio
    async def test_missing_auth_handler(self):
        http, sent = scripted(httpx.Response(401))

        with pytest.raises(MissingHandlerError) as exc_info:
            await ChallengeResolver(http).send(PreparedRequest("GET", URL), CONTEXT)

        assert exc_info.value.challenge == "auth"
        assert len(sent) == 1

    @pytest.mark.asyncio
    async def test_auth_disabled(self):
        resolver_fn = AsyncMock()
        http, sent = scripted(httpx.Response(401))
        resolver = ChallengeResolver(http, ActionOptions(auth=False, auth_resolver=resolver_fn))

        with pytest.raises(AuthorizationDisabledError):
            await resolver.send(PreparedRequest("GET", URL), CONTEXT)

        resolver_fn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_preset_token_attached_up_front(self):
        token = make_token("get", [UPLOAD_HASH])
        http, sent = scripted(httpx.Response(200))

        await ChallengeResolver(http, ActionOptions(auth=token)).send(PreparedRequest("GET", URL), CONTEXT)

        assert decode_authorization_header(sent[0].headers["Authorization"]) == token

    @pytest.mark.asyncio
    async def test_cached_token_preferred_over_resolver(self):
        token = make_token("get", [UPLOAD_HASH])
        resolver_fn = AsyncMock()
        http, sent = scripted(httpx.Response(401), httpx.Response(200))
        options = ActionOptions(auth_resolver=resolver_fn, auth_cache=AuthCache([token]))

        await ChallengeResolver(http, options).send(PreparedRequest("GET", URL), CONTEXT)

        resolver_fn.assert_not_awaited()
        assert decode_authorization_header(sent[1].headers["Authorization"]) == token

    @pytest.mark.asyncio
    async def test_resolved_token_added_to_cache(self):
        token = make_token("get", [UPLOAD_HASH])
        cache = AuthCache()
        http, _ = scripted(httpx.Response(401), httpx.Response(200))
        options = ActionOptions(auth_resolver=AsyncMock(return_value=token), auth_cache=cache)

        await ChallengeResolver(http, options).send(PreparedRequest("GET", URL), CONTEXT)

        assert list(cache) == [token]

    @pytest.mark.asyncio
    async def test_retry_request_replaces_original(self):
        """A challenged probe is answered with the follow-up request."""
        http, sent = scripted(httpx.Response(401), httpx.Response(200))
        options = ActionOptions(auth_resolver=AsyncMock(return_value=make_token("upload", [UPLOAD_HASH])))
        probe = PreparedRequest("HEAD", "https://cdn.example.com/upload")
        put = PreparedRequest("PUT", "https://cdn.example.com/upload", content=b"payload")

        await ChallengeResolver(http, options).send(probe, CONTEXT, retry=put)

        assert [r.method for r in sent] == ["HEAD", "PUT"]
        assert sent[1].content == b"payload"
        assert "Authorization" in sent[1].headers

    @pytest.mark.asyncio
    async def test_passthrough_status_returned(self):
        http, _ = scripted(httpx.Response(404))

        response = await ChallengeResolver(http).send(PreparedRequest("HEAD", URL), CONTEXT, passthrough={404})

        assert response.status_code == 404


class TestPaymentChallenge:
    """402 handling."""

    @pytest.mark.asyncio
    async def test_payment_retried_with_token(self):
        header = "creqA" + PAYMENT_REQUEST.encode()
        http, sent = scripted(httpx.Response(402, headers={"X-Cashu": header}), httpx.Response(200))
        resolver_fn = AsyncMock(return_value="cashuAtoken")

        await ChallengeResolver(http, ActionOptions(payment_resolver=resolver_fn)).send(
            PreparedRequest("GET", URL), CONTEXT
        )

        assert sent[1].headers["X-Cashu"] == "cashuAtoken"
        request = resolver_fn.call_args.args[3]
        assert request.amount == 1
        assert request.unit == "sat"
        assert request.mints == ["https://mint.example.com"]

    @pytest.mark.asyncio
    async def test_missing_payment_handler(self):
        http, _ = scripted(httpx.Response(402, headers={"X-Cashu": PAYMENT_REQUEST.encode()}))

        with pytest.raises(MissingHandlerError) as exc_info:
            await ChallengeResolver(http).send(PreparedRequest("GET", URL), CONTEXT)

        assert exc_info.value.challenge == "payment"

    @pytest.mark.asyncio
    async def test_missing_payment_header(self):
        http, _ = scripted(httpx.Response(402))
        options = ActionOptions(payment_resolver=AsyncMock())

        with pytest.raises(PaymentRequestError) as exc_info:
            await ChallengeResolver(http, options).send(PreparedRequest("GET", URL), CONTEXT)

        assert exc_info.value.status == 402

    @pytest.mark.asyncio
    async def test_invalid_payment_header(self):
        http, _ = scripted(httpx.Response(402, headers={"X-Cashu": "not base64 json!"}))
        options = ActionOptions(payment_resolver=AsyncMock())

        with pytest.raises(PaymentRequestError):
            await ChallengeResolver(http, options).send(PreparedRequest("GET", URL), CONTEXT)

    @pytest.mark.asyncio
    async def test_preset_payment_sent_up_front(self):
        http, sent = scripted(httpx.Response(200))

        await ChallengeResolver(http, ActionOptions(payment="cashuApreset")).send(PreparedRequest("GET", URL), CONTEXT)

        assert sent[0].headers["X-Cashu"] == "cashuApreset"


class TestDispatch:
    """Transport failures, timeouts and cancellation."""

    @pytest.mark.asyncio
    async def test_connect_error_mapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        with pytest.raises(TransportError):
            await ChallengeResolver(http).dispatch(PreparedRequest("GET", URL))

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        with pytest.raises(RequestTimeoutError):
            await ChallengeResolver(http, ActionOptions(timeout=0.05)).dispatch(PreparedRequest("GET", URL))

    @pytest.mark.asyncio
    async def test_cancel_aborts_in_flight_request(self):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        cancel = CancelToken()
        asyncio.get_running_loop().call_later(0.05, cancel.cancel, "stop")

        with pytest.raises(CancellationError, match="stop"):
            await ChallengeResolver(http, ActionOptions(cancel=cancel)).dispatch(PreparedRequest("GET", URL))


class TestErrorFromResponse:
    """Message precedence for terminal responses."""

    def _response(self, status, **kwargs):
        return httpx.Response(status, request=httpx.Request("GET", URL), **kwargs)

    def test_reason_header_wins(self):
        response = self._response(400, headers={"X-Reason": "header"}, json={"message": "body"})
        assert error_from_response(response).message == "header"

    def test_json_message(self):
        error = error_from_response(self._response(400, json={"message": "body"}))
        assert error.message == "body"
        assert error.body == {"message": "body"}

    def test_raw_text(self):
        assert error_from_response(self._response(400, text="plain text\n")).message == "plain text"

    def test_reason_phrase(self):
        error = error_from_response(self._response(404))
        assert error.message == "Not Found"
        assert str(error) == "HTTP 404: Not Found"
