"""
Google Gemini Native Provider

Maps normalized requests onto ``models/{model}:streamGenerateContent`` and
rewrites the streamed GenerateContentResponse objects into normalized
events.

The stream is a piecewise JSON array, not SSE, and depending on the model
each object carries either the new text or the whole text so far. Text is
diffed against what has already been emitted so consumers always receive
deltas.
"""

import logging
from typing import Any, Optional

from ai_playground.common.errors import MalformedFrameError, ValidationError
from ai_playground.common.http_client import UpstreamRequest
from ai_playground.common.stream_decoders import JSONObjectStreamDecoder
from ai_playground.config import Settings
from ai_playground.domain.chat import NormalizedEvent, NormalizedRequest, TextDelta
from ai_playground.providers.base import ProviderVariant, StreamNormalizer

logger = logging.getLogger(__name__)

_ROLE_MAP = {"user": "user", "assistant": "model"}


def _strip_model_prefix(model: str) -> str:
    return model[len("models/"):] if model.startswith("models/") else model


def build_request(request: NormalizedRequest, settings: Settings) -> UpstreamRequest:
    """
    Build the streamGenerateContent call

    The model is encoded in the URL path. System turns go to
    ``systemInstruction``; ``assistant`` turns are sent with role ``model``.
    """
    system_parts: list[str] = []
    contents: list[dict[str, Any]] = []
    for message in request.messages:
        if message.role == "system":
            system_parts.append(message.content)
            continue
        contents.append({
            "role": _ROLE_MAP[message.role],
            "parts": [{"text": message.content}],
        })

    if not contents:
        raise ValidationError("At least one user or assistant message is required")

    body: dict[str, Any] = {"contents": contents}

    if system_parts:
        body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}

    generation_config: dict[str, Any] = {}
    if request.temperature is not None:
        generation_config["temperature"] = request.temperature
    if request.max_tokens is not None:
        generation_config["maxOutputTokens"] = request.max_tokens
    if request.thinking_enabled:
        # -1 lets the model pick its own budget
        generation_config["thinkingConfig"] = {
            "thinkingBudget": request.thinking_budget_tokens or -1,
        }
    if generation_config:
        body["generationConfig"] = generation_config

    model = _strip_model_prefix(request.model)
    return UpstreamRequest(
        url=f"{settings.GEMINI_BASE_URL.rstrip('/')}/models/{model}:streamGenerateContent",
        method="POST",
        headers={
            "x-goog-api-key": request.credential_value,
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
        body=body,
    )


class GeminiStreamNormalizer(StreamNormalizer):
    """
    GenerateContent stream normalizer

    There is no explicit end marker: ``finishReason`` is recorded and
    ``Done`` is produced when the upstream closes. Objects carrying
    ``error`` (or a blocked prompt) terminate the stream with an error.
    """

    def __init__(self, max_frame_bytes: int, http_status: int = 200) -> None:
        super().__init__(max_frame_bytes, http_status)
        self._decoder = JSONObjectStreamDecoder(max_frame_bytes)
        self._emitted = ""
        # None until the first chunk that proves the upstream style
        self._incremental: Optional[bool] = None

    def _feed(self, chunk: bytes, events: list[NormalizedEvent]) -> None:
        for obj in self._decoder.feed(chunk):
            events.extend(self._handle(obj))

    def _flush(self, events: list[NormalizedEvent]) -> None:
        for obj in self._decoder.close():
            events.extend(self._handle(obj))

    def _handle(self, obj: dict[str, Any]) -> list[NormalizedEvent]:
        error = obj.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message") or error.get("status") or str(error)
                code = error.get("code")
            else:
                message = str(error)
                code = None
            logger.warning("Gemini stream error: code=%s message=%s", code, message)
            http_status = code if isinstance(code, int) and 400 <= code < 600 else None
            return [self._stream_error(message, http_status)]

        usage = obj.get("usageMetadata")
        if isinstance(usage, dict):
            if isinstance(usage.get("promptTokenCount"), int):
                self._input_tokens = usage["promptTokenCount"]
            if isinstance(usage.get("candidatesTokenCount"), int):
                self._output_tokens = usage["candidatesTokenCount"]

        feedback = obj.get("promptFeedback")
        if isinstance(feedback, dict) and feedback.get("blockReason"):
            return [self._stream_error(f"Prompt blocked: {feedback['blockReason']}")]

        candidates = self._list(obj, "candidates")
        if not candidates:
            return []
        candidate = candidates[0]
        if not isinstance(candidate, dict):
            raise MalformedFrameError(f"Expected object for candidate, got {type(candidate).__name__}")

        events: list[NormalizedEvent] = []
        text = self._delta(self._candidate_text(candidate))
        if text:
            events.append(TextDelta(text=text))

        finish_reason = self._string(candidate, "finishReason")
        if finish_reason:
            self._finish_reason = finish_reason
        return events

    def _candidate_text(self, candidate: dict[str, Any]) -> str:
        texts: list[str] = []
        for part in self._list(self._object(candidate, "content"), "parts"):
            if not isinstance(part, dict):
                raise MalformedFrameError(f"Expected object for part, got {type(part).__name__}")
            text = self._string(part, "text")
            if text:
                texts.append(text)
        return "".join(texts)

    def _delta(self, text: str) -> str:
        """
        Turn a chunk's text into the suffix not yet emitted.

        A chunk that extends everything emitted so far is a cumulative
        snapshot. The first chunk that does not is proof of incremental
        chunking, after which text is passed through unchanged.
        """
        if not text:
            return ""
        if self._incremental is not True and self._emitted and text.startswith(self._emitted):
            self._incremental = False
            new_text = text[len(self._emitted):]
        else:
            if self._emitted and self._incremental is None:
                self._incremental = True
            new_text = text
        self._emitted += new_text
        return new_text


def create_normalizer(settings: Settings, http_status: int) -> StreamNormalizer:
    return GeminiStreamNormalizer(settings.STREAM_MAX_FRAME_BYTES, http_status)


GEMINI = ProviderVariant(
    name="gemini",
    supports_thinking=False,
    build_request=build_request,
    create_normalizer=create_normalizer,
)
