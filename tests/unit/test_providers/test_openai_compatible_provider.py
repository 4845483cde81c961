"""
OpenAI-Compatible Provider Unit Tests
"""

import json

import pytest

from ai_playground.common.errors import ErrorKind
from ai_playground.domain.chat import (
    ChatMessage,
    Done,
    ErrorEvent,
    NormalizedRequest,
    TextDelta,
    ThinkingDelta,
)
from ai_playground.providers.openai_compatible import (
    OpenAIStreamNormalizer,
    build_request,
)


def _request(**overrides) -> NormalizedRequest:
    data = {
        "provider": "openai_compatible",
        "model": "openai/gpt-4o-mini",
        "messages": (
            ChatMessage(role="system", content="Be brief."),
            ChatMessage(role="user", content="Hello"),
        ),
        "credential": "sk-or-v1-test",
    }
    data.update(overrides)
    return NormalizedRequest(**data)


def _data(payload) -> bytes:
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {body}\n\n".encode()


def _delta(content=None, reasoning=None, finish_reason=None) -> bytes:
    delta = {}
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta["reasoning"] = reasoning
    return _data({
        "id": "gen-1",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    })


def _collect(chunks):
    normalizer = OpenAIStreamNormalizer(1024 * 1024)
    events = []
    for chunk in chunks:
        events.extend(normalizer.feed(chunk))
    events.extend(normalizer.finish())
    return events


class TestOpenAIBuildRequest:
    """Request Mapping Test"""

    def test_minimal_body_has_no_null_keys(self, settings):
        upstream = build_request(_request(), settings)

        assert upstream.body == {
            "model": "openai/gpt-4o-mini",
            "messages": [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Hello"},
            ],
            "stream": True,
        }
        assert None not in upstream.body.values()

    def test_optional_fields(self, settings):
        upstream = build_request(_request(temperature=0.7, max_tokens=50), settings)
        assert upstream.body["temperature"] == 0.7
        assert upstream.body["max_tokens"] == 50

    def test_headers(self, settings):
        upstream = build_request(_request(), settings)
        assert upstream.url == "https://openrouter.ai/api/v1/chat/completions"
        assert upstream.headers["Authorization"] == "Bearer sk-or-v1-test"
        assert upstream.headers["HTTP-Referer"] == settings.OPENROUTER_REFERER
        assert upstream.headers["X-Title"] == settings.OPENROUTER_TITLE

    def test_reasoning_when_thinking_enabled(self, settings):
        upstream = build_request(_request(thinking_enabled=True, thinking_budget_tokens=800), settings)
        assert upstream.body["reasoning"] == {"enabled": True, "max_tokens": 800}


class TestOpenAIStreamNormalizer:
    """Stream Normalization Test"""

    def test_well_formed_stream(self):
        chunks = [
            b": OPENROUTER PROCESSING\n\n",
            _delta(content=""),
            _delta(content="Hel"),
            _delta(content="lo"),
            _delta(finish_reason="stop"),
            _data({"choices": [], "usage": {"prompt_tokens": 9, "completion_tokens": 2}}),
            _data("[DONE]"),
        ]
        events = _collect(chunks)

        assert events[:2] == [TextDelta(text="Hel"), TextDelta(text="lo")]
        assert isinstance(events[2], Done)
        assert events[2].finish_reason == "stop"
        assert events[2].usage.input_tokens == 9
        assert len(events) == 3

    def test_reasoning_deltas(self):
        events = _collect([
            _delta(reasoning="Thinking..."),
            _delta(content="Answer"),
            _data("[DONE]"),
        ])

        assert events[0] == ThinkingDelta(text="Thinking...")
        assert events[1] == TextDelta(text="Answer")

    def test_missing_done_sentinel(self):
        events = _collect([_delta(content="Hi"), _delta(finish_reason="length")])

        assert isinstance(events[-1], Done)
        assert events[-1].finish_reason == "length"
        assert sum(1 for e in events if e.is_terminal) == 1

    def test_error_payload_mid_stream(self):
        events = _collect([
            _delta(content="Hi"),
            _data({"error": {"code": 502, "message": "Provider returned error"}}),
            _delta(content=" there"),
            _data("[DONE]"),
        ])

        assert events[0] == TextDelta(text="Hi")
        assert isinstance(events[1], ErrorEvent)
        assert events[1].kind == ErrorKind.UPSTREAM_STREAM_ERROR
        assert events[1].http_status == 502
        assert len(events) == 2

    def test_frame_split_across_chunks(self):
        raw = _delta(content="Hello") + _data("[DONE]")
        events = _collect([raw[:10], raw[10:33], raw[33:]])

        assert events == [TextDelta(text="Hello"), Done(finish_reason="unknown")]


class TestOpenAIWrongShapeChunks:
    """Wrong-Shape Chunk Test"""

    @pytest.mark.parametrize(
        "payload",
        [
            {"choices": {"delta": {"content": "x"}}},
            {"choices": ["x"]},
            {"choices": [{"delta": "x"}]},
            {"choices": [{"delta": {"content": 5}}]},
            {"choices": [{"delta": {"reasoning": {"text": "x"}}}]},
            {"choices": [{"delta": {}, "finish_reason": 3}]},
        ],
    )
    def test_wrong_shape_ends_with_stream_error(self, payload):
        events = _collect([_delta(content="Hi"), _data(payload), _delta(content="!"), _data("[DONE]")])

        assert events[0] == TextDelta(text="Hi")
        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].kind == ErrorKind.UPSTREAM_STREAM_ERROR
        assert len(events) == 2
