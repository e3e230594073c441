"""HTTP client for the streaming chat-completions API.

Sends one request per attempt with bearer authentication and exposes the
response body as an async iterator of raw lines. HTTP statuses and
aiohttp failures are mapped onto the retryable/fatal taxonomy:

- 429 -> RateLimitedError, 5xx -> ServerError (retryable)
- other 4xx -> UnexpectedStatusError (fatal)
- connect failures -> ConnectError, body cut short -> UnfinishedStreamError
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
import structlog

from pretackler.models.config import FaultKind, ModelSettings
from pretackler.utils.exceptions import (
    ConnectError,
    RateLimitedError,
    ServerError,
    UnexpectedStatusError,
    UnfinishedStreamError,
)

logger = structlog.get_logger()

ERROR_BODY_LIMIT = 500


def encode_body(body: Dict[str, Any]) -> bytes:
    return json.dumps(body, ensure_ascii=False).encode("utf-8")


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class FaultInjector:
    """Local acceptance-test faults applied before any request is sent.

    - "429" / "5xx": every attempt fails with that status
    - "idle": the stream emits one event and then stalls for stall_seconds
    """

    def __init__(self, kind: FaultKind, stall_seconds: float = 60.0):
        self.kind = FaultKind(kind)
        self.stall_seconds = stall_seconds

    def raise_for_status_fault(self) -> None:
        if self.kind == FaultKind.RATE_LIMIT:
            raise RateLimitedError("injected fault: HTTP 429")
        if self.kind == FaultKind.SERVER_ERROR:
            raise ServerError("injected fault: HTTP 503", status=503)

    async def stalled_lines(self) -> AsyncIterator[bytes]:
        yield b'data: {"choices":[{"delta":{"content":""}}]}\n'
        await asyncio.sleep(self.stall_seconds)


class GenerationClient:
    """Streaming client sharing one aiohttp session across workers."""

    def __init__(
        self,
        settings: ModelSettings,
        api_key: str,
        connect_timeout: float = 15.0,
        session: Optional[aiohttp.ClientSession] = None,
        fault: Optional[FaultInjector] = None,
    ):
        self.settings = settings
        self._api_key = api_key
        self.connect_timeout = connect_timeout
        self.fault = fault
        self._session = session
        self._owns_session = session is None
        self.requests_sent = 0

    async def __aenter__(self) -> "GenerationClient":
        if self._session is None:
            timeout = aiohttp.ClientTimeout(
                total=None,
                sock_connect=self.connect_timeout or None,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    @asynccontextmanager
    async def open_stream(self, payload: bytes) -> AsyncIterator[AsyncIterator[bytes]]:
        """Send one request and yield its body as raw lines.

        Args:
            payload: Encoded JSON request body
        """
        if self.fault is not None:
            self.fault.raise_for_status_fault()
            if self.fault.kind == FaultKind.IDLE:
                yield self.fault.stalled_lines()
                return

        if self._session is None:
            raise RuntimeError("GenerationClient used outside its async context")

        headers_received = False
        self.requests_sent += 1
        try:
            async with self._session.post(
                self.settings.endpoint, data=payload, headers=self._headers()
            ) as response:
                headers_received = True
                await self._raise_for_status(response)
                yield response.content
        except aiohttp.ClientPayloadError as e:
            raise UnfinishedStreamError(f"stream body truncated: {e}") from e
        except (aiohttp.ClientConnectionError, aiohttp.ServerTimeoutError) as e:
            if headers_received:
                raise UnfinishedStreamError(f"connection lost mid-stream: {e}") from e
            raise ConnectError(f"cannot reach {self.settings.endpoint}: {e}") from e

    async def _raise_for_status(self, response: aiohttp.ClientResponse) -> None:
        status = response.status
        if 200 <= status < 300:
            logger.debug("api_response_ok", status=status)
            return

        try:
            body = (await response.text())[:ERROR_BODY_LIMIT]
        except (aiohttp.ClientError, UnicodeDecodeError):
            body = "<unreadable error body>"

        logger.debug("api_response_error", status=status, body=body)

        if status == 429:
            raise RateLimitedError(
                f"HTTP 429: {body}",
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if status >= 500:
            raise ServerError(f"HTTP {status}: {body}", status=status)
        raise UnexpectedStatusError(f"HTTP {status}: {body}", status=status)
