"""
AI Playground API

Streams normalized chat events from the selected provider as SSE.
"""

import json
from typing import AsyncGenerator, Optional

import pydantic
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from ai_playground.api.deps import BearerCredential, ChatAdapterDep
from ai_playground.common.cancellation import CancellationToken
from ai_playground.common.errors import UnauthorizedError, ValidationError
from ai_playground.common.stream_decoders import encode_sse_event
from ai_playground.domain.chat import ChatCompletionBody
from ai_playground.services.chat_adapter import ChatAdapter, ChatStream

router = APIRouter(prefix="/api", tags=["Playground"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _parse_body(request: Request) -> ChatCompletionBody:
    """
    Parse and validate the inbound JSON body

    Raises:
        ValidationError: Body is not JSON or does not match the chat schema
    """
    raw = await request.body()
    try:
        payload = json.loads(raw or b"null")
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    try:
        return ChatCompletionBody.model_validate(payload)
    except pydantic.ValidationError as e:
        errors = [
            {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationError("Invalid chat request", details={"errors": errors})


async def _event_stream(stream: ChatStream) -> AsyncGenerator[bytes, None]:
    try:
        async for event in stream:
            yield encode_sse_event(event)
    finally:
        await stream.aclose()


async def _start_stream(
    adapter: ChatAdapter,
    provider: Optional[str],
    credential: Optional[str],
    request: Request,
) -> StreamingResponse:
    if not credential:
        raise UnauthorizedError()

    body = await _parse_body(request)
    provider = provider or body.provider
    if not provider:
        raise ValidationError("provider is required")

    stream = await adapter.run(
        body.to_normalized(provider, credential),
        cancel_token=CancellationToken(),
    )
    return StreamingResponse(
        _event_stream(stream),
        media_type="text/event-stream",
        headers={
            **SSE_HEADERS,
            "X-Trace-ID": stream.trace_id,
            "X-Provider": stream.provider,
        },
    )


@router.post("/ai-playground/{provider}")
async def playground_chat(
    provider: str,
    request: Request,
    credential: BearerCredential,
    adapter: ChatAdapterDep,
):
    """
    Playground Chat (per provider)

    ``provider`` is one of ``anthropic``, ``gemini`` or ``openrouter``.
    Errors before the first event are returned as ``{"error": "..."}`` with
    the matching HTTP status; once streaming starts they arrive as events.
    """
    return await _start_stream(adapter, provider, credential, request)


@router.post("/console/chat")
async def console_chat(
    request: Request,
    credential: BearerCredential,
    adapter: ChatAdapterDep,
):
    """
    Console Chat

    Same stream as the playground route, provider taken from the body.
    """
    return await _start_stream(adapter, None, credential, request)
