"""Single-request challenge resolution shared by every protocol action.

A request is sent once. If the server answers with an authorization
challenge (401 or 403) or a payment challenge (402) the resolver obtains a
credential through the injected collaborators, attaches it and sends the
request one more time. Any other non-success status, or a challenge on the
retried request, is terminal.

    INITIAL --(2xx)--------------------------------> DONE
    INITIAL --(401/403/402)--> RETRYING --(2xx)----> DONE
    INITIAL --(other)--------------------------------> FAILED
    RETRYING --(non-2xx)------------------------------> FAILED
"""

import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Collection, Dict, Optional

import httpx

from .auth import AuthCache, encode_authorization_header
from .cancel import run_cancellable
from .constants import (
    AUTH_CHALLENGE_STATUSES,
    AUTHORIZATION_HEADER,
    CASHU_HEADER,
    PAYMENT_CHALLENGE_STATUS,
    REASON_HEADER,
)
from .errors import (
    AuthorizationDisabledError,
    MissingHandlerError,
    PaymentRequestError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
)
from .models import PaymentRequest, SignedEvent, encode_payment_token
from .options import ActionOptions

logger = logging.getLogger(__name__)


class ChallengeState(str, Enum):
    """Progress of one request through challenge resolution."""
    INITIAL = "initial"
    RETRYING = "retrying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PreparedRequest:
    """An HTTP request ready to be sent (and re-sent with a credential)."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    content: Optional[bytes] = None
    params: Optional[Dict[str, str]] = None

    def with_header(self, name: str, value: str) -> "PreparedRequest":
        return replace(self, headers={**self.headers, name: value})


@dataclass
class ChallengeContext:
    """What the collaborators need to know about the challenged request."""
    server: str
    action: str                   # Token type: upload, media, get, list, delete
    sha256: Optional[str] = None
    blob: Any = None


def error_from_response(response: httpx.Response) -> ProtocolError:
    """Build a ProtocolError from a non-success response.

    Message precedence: X-Reason header, JSON body `message`, raw text,
    HTTP reason phrase.
    """
    body: Any = None
    message = response.headers.get(REASON_HEADER)
    text = response.text if response.content else ""
    if text:
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = text
    if not message and isinstance(body, dict) and isinstance(body.get("message"), str):
        message = body["message"]
    if not message:
        message = text.strip() or response.reason_phrase
    return ProtocolError(response.status_code, message, body)


def is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


class ChallengeResolver:
    """Sends requests for one action and answers at most one challenge each."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        options: Optional[ActionOptions] = None,
        auth_cache: Optional[AuthCache] = None,
    ):
        """Initialize resolver.

        Args:
            http: Client used for all requests
            options: Collaborators, preset credentials, cancel token and timeout
            auth_cache: Tokens to reuse; defaults to options.auth_cache
        """
        self.http = http
        self.options = options or ActionOptions()
        self.auth_cache = auth_cache if auth_cache is not None else self.options.auth_cache
        self.state = ChallengeState.INITIAL

    async def dispatch(self, request: PreparedRequest) -> httpx.Response:
        """Send a request once, honoring cancellation and timeout.

        Raises:
            CancellationError: If the cancel token fired
            RequestTimeoutError: If the timeout elapsed first
            TransportError: On connectivity failure
        """
        logger.debug(f"{request.method} {request.url}")
        http_request = self.http.build_request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.content,
            params=request.params,
        )
        try:
            response = await run_cancellable(
                self.http.send(http_request),
                cancel=self.options.cancel,
                timeout=self.options.timeout,
                timeout_message=f"{request.method} {request.url} timed out after {self.options.timeout}s",
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"{request.method} {request.url} timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransportError(f"Cannot connect to {request.url}: {e}") from e
        logger.debug(f"{request.method} {request.url} -> {response.status_code}")
        return response

    async def send(
        self,
        request: PreparedRequest,
        context: ChallengeContext,
        retry: Optional[PreparedRequest] = None,
        passthrough: Collection[int] = (),
    ) -> httpx.Response:
        """Send a request, resolving one challenge if the server issues it.

        Args:
            request: Initial request
            context: Challenge details handed to the resolvers
            retry: Request to send with the credential instead of `request`
                (an upload probe is answered with the upload itself)
            passthrough: Statuses of the initial response returned as-is

        Returns:
            The successful (or passthrough) response

        Raises:
            ProtocolError: Terminal non-success status
            MissingHandlerError: Challenge without a configured handler
        """
        self.state = ChallengeState.INITIAL
        request = await self._with_preset_credentials(request, context)
        response = await self.dispatch(request)

        if is_success(response) or response.status_code in passthrough:
            self.state = ChallengeState.DONE
            return response

        status = response.status_code
        if status not in AUTH_CHALLENGE_STATUSES and status != PAYMENT_CHALLENGE_STATUS:
            self.state = ChallengeState.FAILED
            raise error_from_response(response)

        follow_up = await self._with_preset_credentials(retry, context) if retry is not None else request
        try:
            if status == PAYMENT_CHALLENGE_STATUS:
                follow_up = await self._answer_payment(follow_up, response, context)
            else:
                follow_up = await self._answer_auth(follow_up, context)
        except Exception:
            self.state = ChallengeState.FAILED
            raise

        self.state = ChallengeState.RETRYING
        response = await self.dispatch(follow_up)
        if not is_success(response):
            self.state = ChallengeState.FAILED
            raise error_from_response(response)

        self.state = ChallengeState.DONE
        return response

    async def _with_preset_credentials(self, request: PreparedRequest, context: ChallengeContext) -> PreparedRequest:
        """Attach caller-preset token and payment proof up front.

        With `auth=True` a token is obtained before the first request.
        """
        if isinstance(self.options.auth, SignedEvent) or self.options.auth is True:
            auth = await self.get_auth(context)
            request = request.with_header(AUTHORIZATION_HEADER, encode_authorization_header(auth))
        if self.options.payment is not None:
            request = request.with_header(CASHU_HEADER, encode_payment_token(self.options.payment))
        return request

    async def get_auth(self, context: ChallengeContext) -> SignedEvent:
        """Token for a request: preset, cached, or freshly resolved.

        Raises:
            AuthorizationDisabledError: If auth was disabled by the caller
            MissingHandlerError: If no token is available and no resolver is set
        """
        preset = self.options.auth
        if preset is False:
            raise AuthorizationDisabledError(context.server)
        if isinstance(preset, SignedEvent):
            return preset

        if self.auth_cache is not None:
            cached = self.auth_cache.find(context.server, context.sha256, context.action)
            if cached is not None:
                logger.debug(f"Reusing cached {context.action} token for {context.server}")
                return cached

        if self.options.auth_resolver is None:
            raise MissingHandlerError("auth", context.server)

        auth = await self.options.auth_resolver(context.server, context.sha256, context.action, context.blob)
        if self.auth_cache is not None:
            self.auth_cache.add(auth)
        return auth

    async def _answer_auth(self, request: PreparedRequest, context: ChallengeContext) -> PreparedRequest:
        auth = await self.get_auth(context)
        logger.debug(f"Answering auth challenge from {context.server} with {context.action} token")
        return request.with_header(AUTHORIZATION_HEADER, encode_authorization_header(auth))

    async def _answer_payment(
        self, request: PreparedRequest, response: httpx.Response, context: ChallengeContext
    ) -> PreparedRequest:
        if self.options.payment_resolver is None:
            raise MissingHandlerError("payment", context.server)

        header = response.headers.get(CASHU_HEADER)
        if not header:
            raise PaymentRequestError(f"Payment required by {context.server} but no {CASHU_HEADER} header sent")
        try:
            requirement = PaymentRequest.decode(header)
        except ValueError as e:
            raise PaymentRequestError(f"Invalid payment request from {context.server}: {e}") from e

        proof = await self.options.payment_resolver(context.server, context.sha256, context.blob, requirement)
        logger.debug(f"Answering payment challenge from {context.server} ({requirement.amount} {requirement.unit})")
        return request.with_header(CASHU_HEADER, encode_payment_token(proof))
