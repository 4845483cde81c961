"""
Provider Variant Base

A provider variant is the pair (request mapper, stream normalizer) plus its
capabilities. Variants are plain records dispatched by tag from the
registry; the only shared behaviour lives in StreamNormalizer, which owns the
terminal-event bookkeeping every provider needs.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

import pydantic

from ai_playground.common.errors import ErrorKind, MalformedFrameError
from ai_playground.common.http_client import UpstreamRequest
from ai_playground.config import Settings
from ai_playground.domain.chat import (
    UNKNOWN_FINISH_REASON,
    Done,
    ErrorEvent,
    NormalizedEvent,
    NormalizedRequest,
    Usage,
)

logger = logging.getLogger(__name__)

# Shape errors come from a well-formed JSON frame with unexpected field types
_FRAME_ERRORS = (
    MalformedFrameError,
    AttributeError,
    TypeError,
    KeyError,
    IndexError,
    pydantic.ValidationError,
)


class StreamNormalizer(ABC):
    """
    Per-call stream state machine

    Consumes raw upstream chunks and produces normalized events. Guarantees
    exactly one terminal event: anything after the first terminal is
    dropped, and ``finish()`` synthesizes ``Done`` when the upstream ended
    without one. Malformed units terminate the stream with an
    ``upstream_stream_error`` instead of raising.
    """

    def __init__(self, max_frame_bytes: int, http_status: int = 200) -> None:
        self.max_frame_bytes = max_frame_bytes
        self.http_status = http_status
        self._terminated = False
        self._finish_reason: Optional[str] = None
        self._input_tokens: Optional[int] = None
        self._output_tokens: Optional[int] = None

    @property
    def terminated(self) -> bool:
        return self._terminated

    def feed(self, chunk: bytes) -> list[NormalizedEvent]:
        """Consume one upstream chunk"""
        if self._terminated:
            return []
        events: list[NormalizedEvent] = []
        try:
            self._feed(chunk, events)
        except _FRAME_ERRORS as e:
            events.append(self._malformed(e))
        return self._gate(events)

    def finish(self) -> list[NormalizedEvent]:
        """Signal upstream end of stream; always leaves the stream terminated"""
        if self._terminated:
            return []
        events: list[NormalizedEvent] = []
        try:
            self._flush(events)
        except _FRAME_ERRORS as e:
            events.append(self._malformed(e))
        events = self._gate(events)
        if not self._terminated:
            logger.debug("Upstream ended without terminal signal, synthesizing done")
            events.append(self._done())
            self._terminated = True
        return events

    @abstractmethod
    def _feed(self, chunk: bytes, events: list[NormalizedEvent]) -> None:
        """Provider-specific chunk handling, appends to ``events``"""

    def _flush(self, events: list[NormalizedEvent]) -> None:
        """Provider-specific end-of-stream handling, appends to ``events``"""

    def _gate(self, events: list[NormalizedEvent]) -> list[NormalizedEvent]:
        out: list[NormalizedEvent] = []
        for event in events:
            out.append(event)
            if event.is_terminal:
                self._terminated = True
                break
        return out

    def _done(self) -> Done:
        usage = None
        if self._input_tokens is not None or self._output_tokens is not None:
            usage = Usage(input_tokens=self._input_tokens, output_tokens=self._output_tokens)
        return Done(finish_reason=self._finish_reason or UNKNOWN_FINISH_REASON, usage=usage)

    def _stream_error(self, message: str, http_status: Optional[int] = None) -> ErrorEvent:
        return ErrorEvent(
            kind=ErrorKind.UPSTREAM_STREAM_ERROR,
            message=message,
            http_status=http_status or self.http_status,
        )

    def _malformed(self, exc: Exception) -> ErrorEvent:
        if not isinstance(exc, MalformedFrameError):
            logger.warning("Unexpected upstream frame shape: %s: %s", type(exc).__name__, exc)
            return self._stream_error("Malformed upstream frame: unexpected payload shape")
        logger.warning("Malformed upstream frame: %s", exc)
        return self._stream_error(f"Malformed upstream frame: {exc}")

    @staticmethod
    def _load_json(data: str) -> dict[str, Any]:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            raise MalformedFrameError(f"Invalid JSON payload: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedFrameError(f"Expected JSON object, got {type(payload).__name__}")
        return payload

    @staticmethod
    def _object(payload: dict[str, Any], key: str) -> dict[str, Any]:
        """Nested object under ``key``; absent or null reads as empty"""
        value = payload.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise MalformedFrameError(f"Expected object for {key!r}, got {type(value).__name__}")
        return value

    @staticmethod
    def _list(payload: dict[str, Any], key: str) -> list[Any]:
        """Array under ``key``; absent or null reads as empty"""
        value = payload.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise MalformedFrameError(f"Expected array for {key!r}, got {type(value).__name__}")
        return value

    @staticmethod
    def _string(payload: dict[str, Any], key: str) -> Optional[str]:
        """String under ``key``, None when absent or null"""
        value = payload.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise MalformedFrameError(f"Expected string for {key!r}, got {type(value).__name__}")
        return value


Mapper = Callable[[NormalizedRequest, Settings], UpstreamRequest]
NormalizerFactory = Callable[[Settings, int], StreamNormalizer]


@dataclass(frozen=True)
class ProviderVariant:
    """
    Provider Variant

    Everything the adapter needs to talk to one upstream family.
    """

    # Provider tag
    name: str
    # Whether the upstream has a reasoning channel distinct from answer text
    supports_thinking: bool
    # NormalizedRequest -> upstream request
    build_request: Mapper
    # (settings, upstream status) -> fresh normalizer for one call
    create_normalizer: NormalizerFactory


def extract_error_message(body: bytes, status_code: int) -> str:
    """
    Pull a human-readable message out of an upstream error body.

    Handles ``{"error": "..."}``, ``{"error": {"message": ...}}``, the
    list-wrapped Gemini form ``[{"error": {...}}]`` and ``{"message": ...}``;
    falls back to the raw text, then to the status code.
    """
    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return f"Upstream returned HTTP {status_code}"

    try:
        payload: Any = json.loads(text)
    except json.JSONDecodeError:
        return text

    if isinstance(payload, list) and payload:
        payload = payload[0]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str) and error:
            return error
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
            return json.dumps(error, ensure_ascii=False)
        message = payload.get("message")
        if isinstance(message, str) and message:
            return message
    return text
