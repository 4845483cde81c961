"""
Chat Adapter Service Module

Single entry point for the playground routes: selects the provider variant,
enforces credential presence, drives mapper -> transport -> normalizer and
exposes the normalized event stream.
"""

import logging
from typing import AsyncGenerator, AsyncIterator, Mapping, Optional

import anyio

from ai_playground.common.cancellation import CancellationToken
from ai_playground.common.errors import (
    ErrorKind,
    TransportFailureError,
    UnauthorizedError,
    UnsupportedProviderError,
    UpstreamRejectedError,
)
from ai_playground.common.http_client import UpstreamResponse, UpstreamTransport
from ai_playground.common.sanitizer import redact_text
from ai_playground.common.utils import generate_trace_id
from ai_playground.config import Settings, get_settings
from ai_playground.domain.chat import (
    ErrorEvent,
    NormalizedEvent,
    NormalizedRequest,
    ThinkingDelta,
)
from ai_playground.providers.base import (
    ProviderVariant,
    StreamNormalizer,
    extract_error_message,
)
from ai_playground.providers.registry import get_provider_variant

logger = logging.getLogger(__name__)


class ChatStream:
    """
    Normalized Event Stream

    Forward-only, single-consumer stream of normalized events ending in
    exactly one ``Done`` or ``ErrorEvent``. Closing it (explicitly, or by
    abandoning iteration) cancels the request token, which closes the
    upstream connection.
    """

    def __init__(
        self,
        variant: ProviderVariant,
        request: NormalizedRequest,
        response: UpstreamResponse,
        normalizer: StreamNormalizer,
        cancel_token: CancellationToken,
        trace_id: str,
    ):
        self.provider = variant.name
        self.model = request.model
        self.trace_id = trace_id
        self.status_code = response.status_code
        self._response = response
        self._normalizer = normalizer
        self._cancel_token = cancel_token
        self._thinking_allowed = variant.supports_thinking and request.thinking_enabled
        self._consumed = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[NormalizedEvent]:
        if self._consumed:
            raise RuntimeError("ChatStream can only be consumed once")
        self._consumed = True
        return self._iterate()

    async def aclose(self) -> None:
        """Tear down the upstream connection; safe to call more than once"""
        if self._closed:
            return
        self._closed = True
        # Client disconnect arrives as cancellation, the upstream close must still run
        with anyio.CancelScope(shield=True):
            await self._cancel_token.cancel()

    async def _iterate(self) -> AsyncGenerator[NormalizedEvent, None]:
        text_chars = 0
        result: Optional[str] = None
        events = self._events()
        try:
            async for event in events:
                if isinstance(event, ThinkingDelta) and not self._thinking_allowed:
                    continue
                if event.type == "text_delta":
                    text_chars += len(event.text)
                if event.is_terminal:
                    result = event.kind.value if isinstance(event, ErrorEvent) else event.finish_reason
                yield event
        finally:
            await self.aclose()
            await events.aclose()
            if result is None:
                logger.info(
                    "Chat stream closed before completion: trace_id=%s provider=%s "
                    "first_byte_ms=%s total_ms=%s",
                    self.trace_id,
                    self.provider,
                    self._response.first_byte_delay_ms,
                    self._response.total_time_ms,
                )
            else:
                logger.info(
                    "Chat stream finished: trace_id=%s provider=%s result=%s text_chars=%d "
                    "first_byte_ms=%s total_ms=%s",
                    self.trace_id,
                    self.provider,
                    result,
                    text_chars,
                    self._response.first_byte_delay_ms,
                    self._response.total_time_ms,
                )

    async def _events(self) -> AsyncGenerator[NormalizedEvent, None]:
        normalizer = self._normalizer
        try:
            async for chunk in self._response.aiter_bytes():
                for event in normalizer.feed(chunk):
                    if self._cancel_token.cancelled:
                        return
                    yield event
                if normalizer.terminated or self._cancel_token.cancelled:
                    return
        except TransportFailureError as e:
            if self._cancel_token.cancelled:
                return
            logger.warning(
                "Upstream stream failed: trace_id=%s provider=%s error=%s",
                self.trace_id,
                self.provider,
                e.message,
            )
            yield ErrorEvent(
                kind=ErrorKind.TRANSPORT_FAILURE,
                message=e.message,
                http_status=e.status_code,
            )
            return

        if self._cancel_token.cancelled:
            return
        for event in normalizer.finish():
            yield event


class ChatAdapter:
    """
    Chat Adapter Facade

    One upstream call per ``run``, no retries. Fails fast (raises) for
    missing credentials, unknown providers, request validation, transport
    failures before headers and non-2xx upstream answers; everything after
    that is delivered inside the stream.
    """

    def __init__(
        self,
        transport: Optional[UpstreamTransport] = None,
        settings: Optional[Settings] = None,
        providers: Optional[Mapping[str, ProviderVariant]] = None,
    ):
        """
        Initialize adapter

        Args:
            transport: Upstream transport, defaults to an httpx-backed one
            settings: Application settings, defaults to configuration
            providers: Provider dispatch table, defaults to the registry
        """
        self.settings = settings or get_settings()
        self.transport = transport or UpstreamTransport(settings=self.settings)
        self.providers = providers

    def _resolve_variant(self, provider: str) -> ProviderVariant:
        if self.providers is None:
            return get_provider_variant(provider)
        try:
            return self.providers[provider]
        except KeyError:
            raise UnsupportedProviderError(provider) from None

    async def run(
        self,
        request: NormalizedRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ChatStream:
        """
        Start a chat completion

        Args:
            request: Normalized chat request
            cancel_token: Request-scoped cancellation, created when omitted

        Returns:
            ChatStream: Normalized event stream, upstream headers already received

        Raises:
            UnauthorizedError: No credential supplied
            UnsupportedProviderError: Unknown provider
            ValidationError: Request cannot be expressed for this provider
            TransportFailureError: Upstream unreachable or timed out before headers
            UpstreamRejectedError: Upstream answered with a non-2xx status
        """
        if not request.credential_value:
            raise UnauthorizedError()

        variant = self._resolve_variant(request.provider)
        upstream_request = variant.build_request(request, self.settings)
        token = cancel_token or CancellationToken()
        trace_id = generate_trace_id()

        logger.info(
            "Chat request: trace_id=%s provider=%s model=%s messages=%d thinking=%s",
            trace_id,
            variant.name,
            request.model,
            len(request.messages),
            request.thinking_enabled,
        )

        try:
            response = await self.transport.send(upstream_request, token)
        except TransportFailureError as e:
            logger.warning(
                "Upstream call failed: trace_id=%s provider=%s error=%s",
                trace_id,
                variant.name,
                e.message,
            )
            raise
        token.on_cancel(response.aclose)

        if not response.is_success:
            try:
                body = await response.aread()
            finally:
                await token.cancel()
            # Upstreams sometimes quote the rejected key back
            message = redact_text(extract_error_message(body, response.status_code))
            logger.warning(
                "Upstream rejected request: trace_id=%s provider=%s status=%s error=%s",
                trace_id,
                variant.name,
                response.status_code,
                message,
            )
            raise UpstreamRejectedError(
                message=message,
                status_code=response.status_code,
                details={"provider": variant.name, "trace_id": trace_id},
            )

        normalizer = variant.create_normalizer(self.settings, response.status_code)
        return ChatStream(
            variant=variant,
            request=request,
            response=response,
            normalizer=normalizer,
            cancel_token=token,
            trace_id=trace_id,
        )
