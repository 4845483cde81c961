"""
Anthropic Messages Provider

Maps normalized requests onto ``POST /v1/messages`` and rewrites the
Messages SSE stream (message_start / content_block_delta / message_delta /
message_stop / error) into normalized events.
"""

import logging
from typing import Any, Optional

from ai_playground.common.errors import ValidationError
from ai_playground.common.http_client import UpstreamRequest
from ai_playground.common.stream_decoders import SSEDecoder
from ai_playground.config import Settings
from ai_playground.domain.chat import (
    NormalizedEvent,
    NormalizedRequest,
    TextDelta,
    ThinkingDelta,
)
from ai_playground.providers.base import ProviderVariant, StreamNormalizer

logger = logging.getLogger(__name__)


def build_request(request: NormalizedRequest, settings: Settings) -> UpstreamRequest:
    """
    Build the Messages API call

    System turns are lifted into the top-level ``system`` field. The
    upstream requires ``max_tokens``, so a default is applied when the
    caller omits it; with thinking enabled it must also exceed the budget.
    """
    system_parts: list[str] = []
    messages: list[dict[str, str]] = []
    for message in request.messages:
        if message.role == "system":
            system_parts.append(message.content)
            continue
        messages.append({"role": message.role, "content": message.content})

    if not messages:
        raise ValidationError("At least one user or assistant message is required")

    max_tokens = request.max_tokens or settings.ANTHROPIC_DEFAULT_MAX_TOKENS
    body: dict[str, Any] = {
        "model": request.model,
        "messages": messages,
        "max_tokens": max_tokens,
        "stream": True,
    }

    if system_parts:
        body["system"] = "\n\n".join(system_parts)

    if request.thinking_enabled:
        budget = request.thinking_budget_tokens or settings.ANTHROPIC_DEFAULT_THINKING_BUDGET
        if max_tokens <= budget:
            if request.max_tokens is not None:
                raise ValidationError(
                    f"Max Tokens ({request.max_tokens}) must be greater than Thinking Budget ({budget})"
                )
            body["max_tokens"] = budget + settings.ANTHROPIC_DEFAULT_MAX_TOKENS
        body["thinking"] = {"type": "enabled", "budget_tokens": budget}
        # Extended thinking only accepts the default temperature
        if request.temperature is not None:
            logger.debug("Dropping temperature=%s for thinking request", request.temperature)
    elif request.temperature is not None:
        body["temperature"] = request.temperature

    return UpstreamRequest(
        url=f"{settings.ANTHROPIC_BASE_URL.rstrip('/')}/messages",
        method="POST",
        headers={
            "x-api-key": request.credential_value,
            "anthropic-version": settings.ANTHROPIC_VERSION,
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        },
        body=body,
    )


class AnthropicStreamNormalizer(StreamNormalizer):
    """
    Messages stream normalizer

    Deltas are incremental and emitted as-is. ``message_stop`` is the
    explicit finish signal; an ``error`` event inside a 200 stream becomes
    the terminal error.
    """

    def __init__(self, max_frame_bytes: int, http_status: int = 200) -> None:
        super().__init__(max_frame_bytes, http_status)
        self._decoder = SSEDecoder(max_frame_bytes)

    def _feed(self, chunk: bytes, events: list[NormalizedEvent]) -> None:
        for message in self._decoder.feed(chunk):
            events.extend(self._handle(message.event, message.data))

    def _flush(self, events: list[NormalizedEvent]) -> None:
        for message in self._decoder.close():
            events.extend(self._handle(message.event, message.data))

    def _handle(self, event_name: Optional[str], data: str) -> list[NormalizedEvent]:
        payload = self._load_json(data)
        event_type = payload.get("type") or event_name

        if event_type == "message_start":
            usage = self._object(self._object(payload, "message"), "usage")
            if isinstance(usage.get("input_tokens"), int):
                self._input_tokens = usage["input_tokens"]
            return []

        if event_type == "content_block_start":
            block = self._object(payload, "content_block")
            if block.get("type") == "text":
                text = self._string(block, "text")
                return [TextDelta(text=text)] if text else []
            if block.get("type") == "thinking":
                thinking = self._string(block, "thinking")
                return [ThinkingDelta(text=thinking)] if thinking else []
            return []

        if event_type == "content_block_delta":
            delta = self._object(payload, "delta")
            delta_type = delta.get("type")
            if delta_type == "text_delta" or (delta_type is None and "text" in delta):
                text = self._string(delta, "text")
                return [TextDelta(text=text)] if text else []
            if delta_type == "thinking_delta":
                thinking = self._string(delta, "thinking")
                return [ThinkingDelta(text=thinking)] if thinking else []
            # signature_delta, input_json_delta
            return []

        if event_type == "message_delta":
            stop_reason = self._string(self._object(payload, "delta"), "stop_reason")
            if stop_reason:
                self._finish_reason = stop_reason
            usage = self._object(payload, "usage")
            if isinstance(usage.get("output_tokens"), int):
                self._output_tokens = usage["output_tokens"]
            return []

        if event_type == "message_stop":
            return [self._done()]

        if event_type == "error":
            error = payload.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            error_type = error.get("type") if isinstance(error, dict) else None
            logger.warning("Anthropic stream error: type=%s message=%s", error_type, message)
            return [self._stream_error(str(message or "Anthropic stream error"))]

        # ping, content_block_stop
        return []


def create_normalizer(settings: Settings, http_status: int) -> StreamNormalizer:
    return AnthropicStreamNormalizer(settings.STREAM_MAX_FRAME_BYTES, http_status)


ANTHROPIC = ProviderVariant(
    name="anthropic",
    supports_thinking=True,
    build_request=build_request,
    create_normalizer=create_normalizer,
)
