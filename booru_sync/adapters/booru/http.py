"""Rate-limit aware HTTP wrapper shared by all booru clients."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import httpx

from booru_sync.adapters.booru.errors import (
    BooruClientError,
    BooruHTTPError,
    BooruTransportError,
)
from booru_sync.core.backoff import backoff_delay
from booru_sync.core.time_utils import epoch_seconds

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping
    from typing import Self

logger = logging.getLogger(__name__)

ResponseType = Literal["json", "text", "bytes"]

DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_SAFETY_MARGIN_SEC = 5.0
DEFAULT_MAX_RATE_LIMIT_RETRIES = 3

# Reset values below this are relative ("seconds from now"), above are epoch seconds.
_EPOCH_THRESHOLD = 1_000_000_000

_REMAINING_HEADERS = ("X-RateLimit-Remaining", "RateLimit-Remaining")
_RESET_HEADERS = ("X-RateLimit-Reset", "RateLimit-Reset")


@dataclass(frozen=True)
class RequestResult:
    """Uniform outcome of one request.

    Either ``status``/``body``/``headers`` are set (the server answered, with any
    status), or ``error`` is true and ``timed_out`` tells a timeout apart from
    other transport failures.
    """

    status: int | None = None
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    error: bool = False
    timed_out: bool = False
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return not self.error and self.status == 200

    @property
    def server_message(self) -> str | None:
        if isinstance(self.body, dict):
            message = self.body.get("error")
            return str(message) if message else None
        return None

    def unwrap(self, url: str) -> Any:
        """Return the body of a 200 response or raise the matching client error."""
        if self.timed_out:
            raise BooruTransportError(f"Request to {url} timed out", timed_out=True)
        if self.error:
            raise BooruTransportError(f"Request to {url} failed: {self.error_message}")
        if self.status != 200:
            raise BooruHTTPError(
                f"Unexpected status code {self.status} from {url}",
                status_code=self.status or 0,
                server_message=self.server_message,
            )
        return self.body


class RateLimitedClient:
    """Async HTTP client that never raises on HTTP status and honours rate limits.

    When a response says no requests are left, the reset time is stored and the
    *next* call waits for it (plus a safety margin) before going out. A 429 is
    retried after waiting, up to ``max_rate_limit_retries`` times.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        user_agent: str | None = None,
        rate_limit_aware: bool = True,
        safety_margin: float = DEFAULT_SAFETY_MARGIN_SEC,
        max_rate_limit_retries: int = DEFAULT_MAX_RATE_LIMIT_RETRIES,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = epoch_seconds,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.rate_limit_aware = rate_limit_aware
        self.safety_margin = safety_margin
        self.max_rate_limit_retries = max_rate_limit_retries
        self.reset_at: float | None = None
        self._transport = transport
        self._clock = clock
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        headers = {"User-Agent": self.user_agent} if self.user_agent else None
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise BooruClientError("HTTP client not initialized. Use async context manager.")
        return self._client

    async def request(
        self,
        url: str,
        method: str = "GET",
        response_type: ResponseType = "json",
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> RequestResult:
        attempt = 0
        while True:
            await self._wait_for_reset()
            result = await self._send(url, method, response_type, headers, body, params)
            if result.status != 429 or attempt >= self.max_rate_limit_retries:
                if result.status == 429:
                    logger.warning(
                        "booru_rate_limit_retries_exhausted",
                        extra={"url": url, "attempts": attempt + 1},
                    )
                return result

            if self.reset_at is None:
                self.reset_at = self._clock() + self._retry_delay(result.headers, attempt)
            attempt += 1
            logger.warning(
                "booru_rate_limited",
                extra={
                    "url": url,
                    "attempt": attempt,
                    "max_retries": self.max_rate_limit_retries,
                    "reset_at": self.reset_at,
                },
            )

    async def _wait_for_reset(self) -> None:
        while self.reset_at is not None:
            reset_at = self.reset_at
            wait = reset_at - self._clock() + self.safety_margin
            if wait > 0:
                logger.info("booru_rate_limit_wait", extra={"wait_seconds": round(wait, 2)})
                await self._sleep(wait)
            # Concurrent callers keep waiting until the deadline they saw has passed.
            if self.reset_at == reset_at:
                self.reset_at = None

    async def _send(
        self,
        url: str,
        method: str,
        response_type: ResponseType,
        headers: Mapping[str, str] | None,
        body: Any,
        params: Mapping[str, Any] | None,
    ) -> RequestResult:
        try:
            response = await self.client.request(
                method,
                url,
                headers=dict(headers) if headers else None,
                json=body,
                params=params,
            )
        except httpx.TimeoutException:
            logger.warning("booru_request_timeout", extra={"url": url, "method": method})
            return RequestResult(error=True, timed_out=True)
        except httpx.HTTPError as exc:
            logger.warning(
                "booru_request_failed",
                extra={"url": url, "method": method, "error": str(exc)},
            )
            return RequestResult(error=True, error_message=str(exc))

        if self.rate_limit_aware:
            self._record_rate_limit(response.headers)

        return RequestResult(
            status=response.status_code,
            body=_decode_body(response, response_type),
            headers=dict(response.headers),
        )

    def _record_rate_limit(self, headers: httpx.Headers) -> None:
        remaining = _first_header(headers, _REMAINING_HEADERS)
        reset = _first_header(headers, _RESET_HEADERS)
        if remaining is None or reset is None:
            return
        try:
            remaining_count = int(float(remaining))
            reset_value = float(reset)
        except ValueError:
            logger.debug(
                "booru_rate_limit_headers_invalid",
                extra={"remaining": remaining, "reset": reset},
            )
            return
        if remaining_count > 0:
            return
        if reset_value < _EPOCH_THRESHOLD:
            reset_value += self._clock()
        self.reset_at = reset_value
        logger.info("booru_rate_limit_exhausted", extra={"reset_at": reset_value})

    def _retry_delay(self, headers: Mapping[str, str], attempt: int) -> float:
        retry_after = _first_header(httpx.Headers(headers), ("Retry-After",))
        if retry_after is not None:
            try:
                return max(0.0, float(retry_after))
            except ValueError:
                pass
        return backoff_delay(attempt)


def _first_header(headers: httpx.Headers, names: tuple[str, ...]) -> str | None:
    for name in names:
        value = headers.get(name)
        if value is not None:
            return value
    return None


def _decode_body(response: httpx.Response, response_type: ResponseType) -> Any:
    if response_type == "bytes":
        return response.content
    if response_type == "text":
        return response.text
    try:
        return response.json()
    except ValueError:
        # Error pages are often HTML; keep the text so callers can still log it.
        return {"error": response.text}
