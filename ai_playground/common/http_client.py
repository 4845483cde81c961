"""
Upstream Transport Module

Issues the HTTP call to a provider endpoint and hands back the raw response
handle. Nothing is normalized here: non-2xx statuses and bodies are
surfaced verbatim, connection-level failures become TransportFailureError.

Timeouts are explicit: a bound on the wait for the first byte (response
headers and first body chunk) and a bound on the whole exchange.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

import httpx

from ai_playground.common.cancellation import CancellationToken
from ai_playground.common.errors import TransportFailureError
from ai_playground.common.sanitizer import sanitize_headers
from ai_playground.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class UpstreamRequest:
    """
    Upstream Request Data Class

    Built by a provider mapper, consumed only by the transport.
    """

    # Full request URL
    url: str
    # HTTP method
    method: str = "POST"
    # Request headers, credential included
    headers: dict[str, str] = field(default_factory=dict)
    # JSON request body
    body: dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"UpstreamRequest(method={self.method!r}, url={self.url!r}, "
            f"headers={sanitize_headers(self.headers)!r})"
        )


class UpstreamResponse(ABC):
    """
    Raw upstream response handle

    Holds status, headers and the unread body stream. ``aclose()`` releases
    the connection and is safe to call more than once.
    """

    status_code: int
    headers: dict[str, str]
    # Set by implementations that time the exchange
    first_byte_delay_ms: Optional[int] = None
    total_time_ms: Optional[int] = None

    @property
    def is_success(self) -> bool:
        """Whether the response status is 2xx"""
        return 200 <= self.status_code < 300

    @abstractmethod
    def aiter_bytes(self) -> AsyncIterator[bytes]:
        """
        Iterate over body chunks as they arrive

        Raises:
            TransportFailureError: read error or deadline expiry
        """

    @abstractmethod
    async def aread(self) -> bytes:
        """Read the full body, then close"""

    @abstractmethod
    async def aclose(self) -> None:
        """Close the upstream connection"""


class HttpxUpstreamResponse(UpstreamResponse):
    """UpstreamResponse backed by a streaming httpx response"""

    def __init__(
        self,
        response: httpx.Response,
        client: httpx.AsyncClient,
        first_byte_timeout: float,
        deadline: float,
        started: float,
    ):
        self.status_code = response.status_code
        self.headers = dict(response.headers)
        self._response = response
        self._client = client
        self._first_byte_timeout = first_byte_timeout
        self._deadline = deadline
        self._started = started
        self._closed = False

    def _remaining(self, first: bool) -> float:
        remaining = self._deadline - time.monotonic()
        if first:
            remaining = min(remaining, self._first_byte_timeout)
        return remaining

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        iterator = self._response.aiter_bytes().__aiter__()
        first = True
        while not self._closed:
            timeout = self._remaining(first)
            if timeout <= 0:
                raise TransportFailureError("Upstream stream exceeded its time budget")
            try:
                chunk = await asyncio.wait_for(iterator.__anext__(), timeout=timeout)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError:
                phase = "first byte" if first else "stream completion"
                raise TransportFailureError(f"Upstream timed out waiting for {phase}")
            except httpx.TimeoutException as e:
                raise TransportFailureError(f"Request timeout: {str(e)}")
            except (httpx.HTTPError, httpx.StreamError) as e:
                raise TransportFailureError(f"Upstream stream interrupted: {str(e)}")

            if first:
                self.first_byte_delay_ms = int((time.monotonic() - self._started) * 1000)
                first = False
            if chunk:
                yield chunk

    async def aread(self) -> bytes:
        try:
            timeout = self._remaining(first=True)
            if timeout <= 0:
                raise TransportFailureError("Upstream exceeded its time budget")
            return await asyncio.wait_for(self._response.aread(), timeout=timeout)
        except asyncio.TimeoutError:
            raise TransportFailureError("Upstream timed out reading error body")
        except httpx.HTTPError as e:
            raise TransportFailureError(f"Request error: {str(e)}")
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.total_time_ms = int((time.monotonic() - self._started) * 1000)
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()
        logger.debug(
            "Upstream connection closed: status=%s total_time_ms=%s",
            self.status_code,
            self.total_time_ms,
        )


def _pick(value: Optional[float], default: float) -> float:
    return default if value is None else value


class UpstreamTransport:
    """
    Asynchronous upstream transport

    Opens one httpx client per call; no connection state is shared between
    requests. Never retries.
    """

    def __init__(
        self,
        connect_timeout: Optional[float] = None,
        first_byte_timeout: Optional[float] = None,
        total_timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize transport

        Args:
            connect_timeout: TCP/TLS connect bound (seconds)
            first_byte_timeout: Bound on headers + first chunk (seconds)
            total_timeout: Bound on the whole exchange (seconds)
            settings: Source of the timeouts not given explicitly, defaults to configuration
        """
        settings = settings or get_settings()
        self.connect_timeout = _pick(connect_timeout, settings.HTTP_CONNECT_TIMEOUT)
        self.first_byte_timeout = _pick(first_byte_timeout, settings.HTTP_FIRST_BYTE_TIMEOUT)
        self.total_timeout = _pick(total_timeout, settings.HTTP_TOTAL_TIMEOUT)

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.total_timeout, connect=self.connect_timeout),
        )

    async def send(
        self,
        request: UpstreamRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> UpstreamResponse:
        """
        Send request and return once response headers arrive

        Args:
            request: Upstream request built by a provider mapper
            cancel_token: Request cancellation; a cancelled token aborts the send

        Returns:
            UpstreamResponse: Raw response handle with unread body

        Raises:
            TransportFailureError: DNS, TLS, connect or first-byte timeout failure
        """
        if cancel_token is not None and cancel_token.cancelled:
            raise TransportFailureError("Request cancelled before upstream call")

        logger.debug(
            "Upstream Request: method=%s url=%s headers=%s body=%s",
            request.method,
            request.url,
            sanitize_headers(request.headers),
            json.dumps(request.body, ensure_ascii=False),
        )

        started = time.monotonic()
        client = self._create_client()
        try:
            http_request = client.build_request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                json=request.body,
            )
            response = await asyncio.wait_for(
                client.send(http_request, stream=True),
                timeout=min(self.first_byte_timeout, self.total_timeout),
            )
        except asyncio.TimeoutError:
            await client.aclose()
            raise TransportFailureError("Upstream timed out waiting for response headers")
        except httpx.TimeoutException as e:
            await client.aclose()
            raise TransportFailureError(f"Request timeout: {str(e)}")
        except httpx.RequestError as e:
            await client.aclose()
            raise TransportFailureError(f"Request error: {str(e)}")
        except BaseException:
            await client.aclose()
            raise

        handle = HttpxUpstreamResponse(
            response,
            client,
            first_byte_timeout=self.first_byte_timeout,
            deadline=started + self.total_timeout,
            started=started,
        )
        if cancel_token is not None and cancel_token.cancelled:
            await handle.aclose()
            raise TransportFailureError("Request cancelled before upstream call")

        logger.debug(
            "Upstream Response: status=%s url=%s",
            handle.status_code,
            request.url,
        )
        return handle
