"""
Test Configuration Module
"""

from typing import AsyncIterator, Optional, Sequence

import pytest

from ai_playground.common.cancellation import CancellationToken
from ai_playground.common.errors import TransportFailureError
from ai_playground.common.http_client import UpstreamRequest, UpstreamResponse
from ai_playground.config import Settings


class FakeUpstreamResponse(UpstreamResponse):
    """Scripted upstream response; counts closes"""

    def __init__(
        self,
        status_code: int = 200,
        chunks: Sequence[bytes] = (),
        body: bytes = b"",
        fail_after: Optional[int] = None,
    ):
        self.status_code = status_code
        self.headers = {}
        self.chunks = list(chunks)
        self.body = body
        self.fail_after = fail_after
        self.aclose_calls = 0
        self.chunks_sent = 0
        self._closed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise TransportFailureError("Upstream stream interrupted: connection reset")
            if self._closed:
                raise TransportFailureError("Upstream stream interrupted: stream closed")
            self.chunks_sent += 1
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise TransportFailureError("Upstream stream interrupted: connection reset")

    async def aread(self) -> bytes:
        await self.aclose()
        return self.body

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.aclose_calls += 1


class FakeTransport:
    """Stands in for UpstreamTransport; records every send"""

    def __init__(self, response: Optional[FakeUpstreamResponse] = None, error: Optional[Exception] = None):
        self.response = response or FakeUpstreamResponse()
        self.error = error
        self.requests: list[UpstreamRequest] = []

    @property
    def send_calls(self) -> int:
        return len(self.requests)

    async def send(
        self,
        request: UpstreamRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> UpstreamResponse:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file"""
    return Settings(_env_file=None)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_response():
    """Factory for scripted upstream responses"""
    return FakeUpstreamResponse


@pytest.fixture
def make_transport():
    """Factory for fake transports"""
    return FakeTransport
