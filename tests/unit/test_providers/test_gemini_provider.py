"""
Gemini Provider Unit Tests
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
)
from ai_playground.providers.gemini import GeminiStreamNormalizer, build_request


def _request(**overrides) -> NormalizedRequest:
    data = {
        "provider": "gemini",
        "model": "gemini-2.0-flash",
        "messages": (ChatMessage(role="user", content="Hello"),),
        "credential": "AIza-test-key",
    }
    data.update(overrides)
    return NormalizedRequest(**data)


def _chunk(text=None, finish_reason=None, usage=None) -> dict:
    candidate: dict = {}
    if text is not None:
        candidate["content"] = {"role": "model", "parts": [{"text": text}]}
    if finish_reason:
        candidate["finishReason"] = finish_reason
    obj: dict = {"candidates": [candidate]}
    if usage:
        obj["usageMetadata"] = usage
    return obj


def _array_stream(objects) -> list[bytes]:
    """Chunks shaped like the streamGenerateContent JSON array"""
    chunks = []
    for i, obj in enumerate(objects):
        prefix = "[" if i == 0 else ",\r\n"
        chunks.append((prefix + json.dumps(obj)).encode())
    chunks.append(b"]")
    return chunks


def _collect(chunks):
    normalizer = GeminiStreamNormalizer(1024 * 1024)
    events = []
    for chunk in chunks:
        events.extend(normalizer.feed(chunk))
    events.extend(normalizer.finish())
    return events


def _text(events) -> str:
    return "".join(e.text for e in events if isinstance(e, TextDelta))


class TestGeminiBuildRequest:
    """Request Mapping Test"""

    def test_url_and_headers(self, settings):
        upstream = build_request(_request(model="models/gemini-2.0-flash"), settings)
        assert upstream.url == (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            "gemini-2.0-flash:streamGenerateContent"
        )
        assert upstream.headers["x-goog-api-key"] == "AIza-test-key"
        assert "AIza-test-key" not in upstream.url

    def test_role_mapping_and_system_instruction(self, settings):
        upstream = build_request(
            _request(messages=(
                ChatMessage(role="system", content="Be brief."),
                ChatMessage(role="user", content="Hi"),
                ChatMessage(role="assistant", content="Hello!"),
                ChatMessage(role="user", content="Again"),
            )),
            settings,
        )
        assert upstream.body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert [c["role"] for c in upstream.body["contents"]] == ["user", "model", "user"]

    def test_generation_config_only_when_set(self, settings):
        assert "generationConfig" not in build_request(_request(), settings).body

        upstream = build_request(_request(temperature=0.2, max_tokens=256), settings)
        assert upstream.body["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 256}


class TestGeminiStreamNormalizer:
    """Stream Normalization Test"""

    def test_snapshot_chunks_become_deltas(self):
        """Cumulative "H" then "Hi" yields "H", "i", then Done"""
        events = _collect(_array_stream([_chunk("H"), _chunk("Hi", finish_reason="STOP")]))

        assert events[0] == TextDelta(text="H")
        assert events[1] == TextDelta(text="i")
        assert isinstance(events[2], Done)
        assert events[2].finish_reason == "STOP"
        assert len(events) == 3

    def test_incremental_chunks_pass_through(self):
        objects = [_chunk("The quick"), _chunk(" brown fox"), _chunk(" jumps", finish_reason="STOP")]
        events = _collect(_array_stream(objects))

        assert _text(events) == "The quick brown fox jumps"
        assert isinstance(events[-1], Done)

    def test_incremental_mode_locks_in(self):
        """After a non-extending chunk, a chunk that repeats the prefix is still new text"""
        objects = [_chunk("ab"), _chunk("cd"), _chunk("abcdX")]
        events = _collect(_array_stream(objects))

        assert _text(events) == "abcdabcdX"

    def test_usage_reported_on_done(self):
        objects = [
            _chunk("Hi"),
            _chunk(finish_reason="STOP", usage={"promptTokenCount": 5, "candidatesTokenCount": 1}),
        ]
        events = _collect(_array_stream(objects))

        assert events[-1].usage.input_tokens == 5
        assert events[-1].usage.output_tokens == 1

    def test_object_split_mid_string(self):
        raw = b"".join(_array_stream([_chunk("Hello world"), _chunk("Hello world!")]))
        chunks = [raw[i:i + 5] for i in range(0, len(raw), 5)]
        events = _collect(chunks)

        assert _text(events) == "Hello world!"
        assert sum(1 for e in events if e.is_terminal) == 1

    def test_error_object_terminates(self):
        objects = [
            _chunk("partial"),
            {"error": {"code": 429, "message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}},
            _chunk("partial more"),
        ]
        events = _collect(_array_stream(objects))

        assert events[0] == TextDelta(text="partial")
        assert isinstance(events[1], ErrorEvent)
        assert events[1].message == "Resource exhausted"
        assert events[1].http_status == 429
        assert len(events) == 2

    def test_blocked_prompt_is_error(self):
        events = _collect(_array_stream([{"promptFeedback": {"blockReason": "SAFETY"}}]))

        assert len(events) == 1
        assert isinstance(events[0], ErrorEvent)
        assert events[0].kind == ErrorKind.UPSTREAM_STREAM_ERROR
        assert "SAFETY" in events[0].message

    def test_truncated_stream_ends_with_done(self):
        chunks = [b'[{"candidates": [{"content": {"parts": [{"text": "Hi"}]}}]}', b',\r\n{"candid']
        events = _collect(chunks)

        assert events == [TextDelta(text="Hi"), Done(finish_reason="unknown")]

    def test_malformed_object_is_stream_error(self):
        events = _collect([b'[{"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}, garbage'])

        assert events[0] == TextDelta(text="ok")
        assert isinstance(events[1], ErrorEvent)
        assert len(events) == 2


class TestGeminiWrongShapeObjects:
    """Wrong-Shape Object Test"""

    @pytest.mark.parametrize(
        "obj",
        [
            {"candidates": "none"},
            {"candidates": ["text"]},
            {"candidates": [{"content": "text"}]},
            {"candidates": [{"content": {"parts": {"text": "x"}}}]},
            {"candidates": [{"content": {"parts": ["x"]}}]},
            {"candidates": [{"content": {"parts": [{"text": 5}]}}]},
            {"candidates": [{"finishReason": 1}]},
        ],
    )
    def test_wrong_shape_ends_with_stream_error(self, obj):
        events = _collect(_array_stream([_chunk("Hi"), obj, _chunk("Hi there")]))

        assert events[0] == TextDelta(text="Hi")
        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].kind == ErrorKind.UPSTREAM_STREAM_ERROR
        assert len(events) == 2

    def test_missing_content_is_not_malformed(self):
        events = _collect(_array_stream([_chunk("Hi"), {"candidates": [{"finishReason": "STOP", "content": None}]}]))

        assert events == [TextDelta(text="Hi"), Done(finish_reason="STOP")]
