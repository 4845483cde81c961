"""
OpenAI-Compatible Provider (via OpenRouter)

Maps normalized requests onto ``POST /chat/completions`` of the routing
proxy and rewrites the Chat Completions SSE stream into normalized events.
"""

import logging
from typing import Any

from ai_playground.common.errors import MalformedFrameError
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

DONE_SENTINEL = "[DONE]"


def build_request(request: NormalizedRequest, settings: Settings) -> UpstreamRequest:
    """
    Build the Chat Completions call

    ``temperature`` and ``max_tokens`` are omitted entirely when not
    supplied; the upstream rejects explicit nulls.
    """
    body: dict[str, Any] = {
        "model": request.model,
        "messages": [
            {"role": message.role, "content": message.content}
            for message in request.messages
        ],
        "stream": True,
    }

    if request.temperature is not None:
        body["temperature"] = request.temperature
    if request.max_tokens is not None:
        body["max_tokens"] = request.max_tokens

    if request.thinking_enabled:
        reasoning: dict[str, Any] = {"enabled": True}
        if request.thinking_budget_tokens is not None:
            reasoning["max_tokens"] = request.thinking_budget_tokens
        body["reasoning"] = reasoning

    return UpstreamRequest(
        url=f"{settings.OPENROUTER_BASE_URL.rstrip('/')}/chat/completions",
        method="POST",
        headers={
            "Authorization": f"Bearer {request.credential_value}",
            # Attribution headers required by the routing proxy
            "HTTP-Referer": settings.OPENROUTER_REFERER,
            "X-Title": settings.OPENROUTER_TITLE,
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        },
        body=body,
    )


class OpenAIStreamNormalizer(StreamNormalizer):
    """
    Chat Completions stream normalizer

    ``choices[0].delta.content`` is incremental text. ``delta.reasoning``
    (OpenRouter) and ``delta.reasoning_content`` are thinking text.
    ``data: [DONE]`` is the finish signal; ``finish_reason`` only records the
    reason. A payload carrying ``error`` terminates the stream with an error
    even though the HTTP status was 200.
    """

    def __init__(self, max_frame_bytes: int, http_status: int = 200) -> None:
        super().__init__(max_frame_bytes, http_status)
        self._decoder = SSEDecoder(max_frame_bytes)

    def _feed(self, chunk: bytes, events: list[NormalizedEvent]) -> None:
        for message in self._decoder.feed(chunk):
            events.extend(self._handle(message.data))

    def _flush(self, events: list[NormalizedEvent]) -> None:
        for message in self._decoder.close():
            events.extend(self._handle(message.data))

    def _handle(self, data: str) -> list[NormalizedEvent]:
        if data.strip() == DONE_SENTINEL:
            return [self._done()]

        payload = self._load_json(data)

        error = payload.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message") or str(error)
                code = error.get("code")
            else:
                message = str(error)
                code = None
            logger.warning("OpenAI-compatible stream error: code=%s message=%s", code, message)
            http_status = code if isinstance(code, int) and 400 <= code < 600 else None
            return [self._stream_error(message, http_status)]

        usage = payload.get("usage")
        if isinstance(usage, dict):
            if isinstance(usage.get("prompt_tokens"), int):
                self._input_tokens = usage["prompt_tokens"]
            if isinstance(usage.get("completion_tokens"), int):
                self._output_tokens = usage["completion_tokens"]

        choices = self._list(payload, "choices")
        if not choices:
            return []
        choice = choices[0]
        if not isinstance(choice, dict):
            raise MalformedFrameError(f"Expected object for choice, got {type(choice).__name__}")

        events: list[NormalizedEvent] = []
        delta = self._object(choice, "delta")
        reasoning = self._string(delta, "reasoning") or self._string(delta, "reasoning_content")
        if reasoning:
            events.append(ThinkingDelta(text=reasoning))
        content = self._string(delta, "content")
        if content:
            events.append(TextDelta(text=content))

        finish_reason = self._string(choice, "finish_reason")
        if finish_reason:
            self._finish_reason = finish_reason
        return events


def create_normalizer(settings: Settings, http_status: int) -> StreamNormalizer:
    return OpenAIStreamNormalizer(settings.STREAM_MAX_FRAME_BYTES, http_status)


OPENAI_COMPATIBLE = ProviderVariant(
    name="openai_compatible",
    supports_thinking=True,
    build_request=build_request,
    create_normalizer=create_normalizer,
)
