"""
Stream Framing

Splits raw upstream bytes into complete logical units. Upstream chunk
boundaries are arbitrary, so every decoder buffers until a unit is complete
and never hands out a partial one.

- SSEDecoder: ``text/event-stream`` framing (Anthropic, OpenAI-compatible)
- JSONObjectStreamDecoder: concatenated / array-wrapped / line-delimited JSON
  objects (Gemini ``streamGenerateContent``)
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterator, Optional

from ai_playground.common.errors import MalformedFrameError

if TYPE_CHECKING:
    from ai_playground.domain.chat import NormalizedEvent

logger = logging.getLogger(__name__)

_JSON_SEPARATORS = " \t\r\n,[]"
_SSE_DATA_PREFIX = "data:"


@dataclass(frozen=True)
class SSEMessage:
    """One dispatched SSE event"""

    data: str
    event: Optional[str] = None


class SSEDecoder:
    """
    SSE Decoder: Splits bytes stream into event blocks and extracts data fields.

    - Uses empty line (\\n\\n) as event boundary
    - Supports CRLF (\\r\\n)
    - Keeps ``event:`` names, ignores comments and other fields
    """

    def __init__(self, max_frame_bytes: int) -> None:
        self._buf = b""
        self._max_frame_bytes = max_frame_bytes

    def feed(self, chunk: bytes) -> Iterator[SSEMessage]:
        """
        Append bytes and yield the events completed by them.

        Raises:
            MalformedFrameError: an unterminated event grew past the frame bound
        """
        if not chunk:
            return

        data = (self._buf + chunk).replace(b"\r\n", b"\n")
        parts = data.split(b"\n\n")
        self._buf = parts.pop()  # Keep last incomplete event

        for block in parts:
            message = self._parse_block(block)
            if message is not None:
                yield message

        if len(self._buf) > self._max_frame_bytes:
            raise MalformedFrameError(
                f"SSE event exceeds {self._max_frame_bytes} bytes without terminator"
            )

    def close(self) -> Iterator[SSEMessage]:
        """
        Flush at end of stream.

        A trailing event whose last line is complete is still dispatched; a
        block cut in the middle of a line is dropped.
        """
        remainder, self._buf = self._buf, b""
        if not remainder.strip():
            return
        if not remainder.endswith(b"\n"):
            logger.warning("Dropping truncated SSE frame (%d bytes)", len(remainder))
            return
        message = self._parse_block(remainder)
        if message is not None:
            yield message

    @staticmethod
    def _parse_block(block: bytes) -> Optional[SSEMessage]:
        event_name: Optional[str] = None
        data_lines: list[str] = []
        for raw_line in block.split(b"\n"):
            if not raw_line or raw_line.startswith(b":"):
                continue
            line = raw_line.decode("utf-8", errors="replace")
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "data":
                data_lines.append(value)
            elif field == "event":
                event_name = value
        if not data_lines:
            return None
        return SSEMessage(data="\n".join(data_lines), event=event_name)


class JSONObjectStreamDecoder:
    """
    Extracts top-level JSON objects from a stream.

    Accepts the shapes Gemini produces for streamed generation: a JSON array
    delivered piecewise (``[{...},\\r\\n{...}]``), newline-delimited objects,
    and ``data:``-prefixed SSE lines. Separators between objects are skipped;
    any other stray character is a malformed frame.
    """

    def __init__(self, max_frame_bytes: int) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buf = ""
        self._max_frame_chars = max_frame_bytes
        # Brace scan of the leading object resumes where the last feed stopped
        self._scan_pos = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False

    @property
    def has_pending(self) -> bool:
        """Whether an incomplete object is still buffered"""
        return bool(self._buf.strip(_JSON_SEPARATORS))

    def feed(self, chunk: bytes) -> Iterator[dict[str, Any]]:
        """
        Append bytes and yield every object completed by them.

        Raises:
            MalformedFrameError: unparseable object, stray character, or an
                object that grew past the frame bound
        """
        if chunk:
            self._buf += self._decoder.decode(chunk)
        yield from self._drain()
        if len(self._buf) > self._max_frame_chars:
            raise MalformedFrameError(
                f"JSON object exceeds {self._max_frame_chars} characters without closing brace"
            )

    def close(self) -> Iterator[dict[str, Any]]:
        """Flush at end of stream; an unfinished object is dropped"""
        self._buf += self._decoder.decode(b"", final=True)
        yield from self._drain()
        if self.has_pending:
            logger.warning("Dropping truncated JSON object (%d chars)", len(self._buf))
        self._buf = ""
        self._reset_scan()

    def _drain(self) -> Iterator[dict[str, Any]]:
        while True:
            if not self._scan_pos:
                self._buf = buf = self._buf.lstrip(_JSON_SEPARATORS)
                if not buf:
                    return
                if buf[0] != "{":
                    rest = buf[:len(_SSE_DATA_PREFIX)]
                    if rest == _SSE_DATA_PREFIX:
                        self._buf = buf[len(_SSE_DATA_PREFIX):]
                        continue
                    if _SSE_DATA_PREFIX.startswith(rest):
                        # Prefix split across chunks
                        return
                    raise MalformedFrameError(f"Unexpected character {buf[0]!r} in JSON stream")

            end = self._scan_object()
            if end is None:
                return

            text, self._buf = self._buf[:end], self._buf[end:]
            try:
                obj = json.loads(text)
            except json.JSONDecodeError as e:
                raise MalformedFrameError(f"Invalid JSON object: {e}") from e
            if isinstance(obj, dict):
                yield obj

    def _scan_object(self) -> Optional[int]:
        """Index just past the brace closing the leading object, None if not yet buffered"""
        buf = self._buf
        depth, in_string, escaped = self._depth, self._in_string, self._escaped
        for i in range(self._scan_pos, len(buf)):
            ch = buf[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    self._reset_scan()
                    return i + 1
        self._scan_pos = len(buf)
        self._depth, self._in_string, self._escaped = depth, in_string, escaped
        return None

    def _reset_scan(self) -> None:
        self._scan_pos = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False


def encode_sse_event(event: "NormalizedEvent") -> bytes:
    """Serialize one normalized event as a single SSE ``data:`` frame"""
    return f"data: {event.to_json()}\n\n".encode("utf-8")
