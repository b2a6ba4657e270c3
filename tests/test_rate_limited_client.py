"""Tests for the rate-limit aware HTTP wrapper.

Covers:
- Waiting for an exhausted rate limit (epoch and relative reset values)
- Concurrent requests all holding back until the reset
- 429 retries with Retry-After and the retry cap
- Timeouts and transport failures reported without raising
- Error bodies that are not JSON
"""

from __future__ import annotations

import asyncio
import json
import unittest

import httpx

from booru_sync.adapters.booru.errors import (
    BooruClientError,
    BooruHTTPError,
    BooruTransportError,
)
from booru_sync.adapters.booru.http import RateLimitedClient, RequestResult

NOW = 1_700_000_000.0
URL = "https://derpibooru.org/api/v1/json/search/images"


def respond(status: int, **kwargs) -> tuple[int, dict]:
    """Recipe for a fresh ``httpx.Response`` per request."""
    return status, kwargs


class FakeTime:
    """Clock and sleep pair; sleeping advances the clock."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class YieldingFakeTime(FakeTime):
    """Lets other tasks run before the clock moves, like a real sleep."""

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        await asyncio.sleep(0)
        self.now += seconds


class RateLimitedClientTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.time = FakeTime()
        self.requests: list[httpx.Request] = []
        self.dispatched_at: list[float] = []
        # The last entry repeats once the others are used up.
        self.responses: list[tuple[int, dict] | Exception] = []

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.dispatched_at.append(self.time.now)
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        status, kwargs = outcome
        return httpx.Response(status, **kwargs)

    def make_client(self, **kwargs) -> RateLimitedClient:
        return RateLimitedClient(
            transport=httpx.MockTransport(self._handler),
            clock=self.time.clock,
            sleep=self.time.sleep,
            user_agent="BooruSync/test",
            **kwargs,
        )


class TestRateLimitWaits(RateLimitedClientTestCase):
    async def test_waits_until_reset_plus_margin(self):
        self.responses = [
            respond(
                200,
                json={"images": []},
                headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(NOW + 10)},
            ),
            respond(200, json={"images": []}),
        ]
        async with self.make_client(safety_margin=5) as client:
            first = await client.request(URL)
            assert self.time.sleeps == []
            second = await client.request(URL)

        assert first.ok and second.ok
        assert self.time.sleeps == [15.0]
        assert client.reset_at is None

    async def test_relative_reset_is_seconds_from_now(self):
        self.responses = [
            respond(200, json={}, headers={"RateLimit-Remaining": "0", "RateLimit-Reset": "10"}),
            respond(200, json={}),
        ]
        async with self.make_client(safety_margin=5) as client:
            await client.request(URL)
            assert client.reset_at == NOW + 10
            await client.request(URL)

        assert self.time.sleeps == [15.0]

    async def test_concurrent_requests_all_wait_for_reset(self):
        self.time = YieldingFakeTime()
        self.responses = [
            respond(200, json={}, headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1"}),
            respond(200, json={}),
        ]
        async with self.make_client(safety_margin=0) as client:
            await client.request(URL)
            results = await asyncio.gather(client.request(URL), client.request(URL))

        assert all(result.ok for result in results)
        assert self.dispatched_at[0] == NOW
        assert len(self.dispatched_at) == 3
        assert all(at >= NOW + 1 for at in self.dispatched_at[1:])
        assert client.reset_at is None

    async def test_remaining_requests_do_not_wait(self):
        self.responses = [
            respond(
                200,
                json={},
                headers={"X-RateLimit-Remaining": "3", "X-RateLimit-Reset": str(NOW + 10)},
            ),
        ]
        async with self.make_client() as client:
            await client.request(URL)
            await client.request(URL)

        assert self.time.sleeps == []

    async def test_past_reset_does_not_wait(self):
        self.responses = [
            respond(
                200,
                json={},
                headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(NOW - 100)},
            ),
        ]
        async with self.make_client(safety_margin=5) as client:
            await client.request(URL)
            await client.request(URL)

        assert self.time.sleeps == []

    async def test_headers_ignored_when_not_rate_limit_aware(self):
        self.responses = [
            respond(
                200,
                json={},
                headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(NOW + 10)},
            ),
        ]
        async with self.make_client(rate_limit_aware=False) as client:
            await client.request(URL)
            await client.request(URL)

        assert client.reset_at is None
        assert self.time.sleeps == []


class TestTooManyRequests(RateLimitedClientTestCase):
    async def test_retries_after_retry_after(self):
        self.responses = [
            respond(429, json={"error": "slow down"}, headers={"Retry-After": "2"}),
            respond(200, json={"images": [1]}),
        ]
        async with self.make_client(safety_margin=1) as client:
            result = await client.request(URL)

        assert result.status == 200
        assert result.body == {"images": [1]}
        assert len(self.requests) == 2
        assert self.time.sleeps == [3.0]

    async def test_retry_prefers_rate_limit_reset(self):
        self.responses = [
            respond(
                429,
                json={},
                headers={
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(NOW + 20),
                    "Retry-After": "2",
                },
            ),
            respond(200, json={}),
        ]
        async with self.make_client(safety_margin=0) as client:
            await client.request(URL)

        assert self.time.sleeps == [20.0]

    async def test_gives_up_after_max_retries(self):
        self.responses = [respond(429, json={}, headers={"Retry-After": "1"})]
        async with self.make_client(max_rate_limit_retries=2, safety_margin=0) as client:
            result = await client.request(URL)

        assert result.status == 429
        assert not result.ok
        assert len(self.requests) == 3
        assert self.time.sleeps == [1.0, 1.0]

    async def test_zero_retries_returns_first_429(self):
        self.responses = [respond(429, json={})]
        async with self.make_client(max_rate_limit_retries=0) as client:
            result = await client.request(URL)

        assert result.status == 429
        assert len(self.requests) == 1


class TestFailures(RateLimitedClientTestCase):
    async def test_timeout_is_reported(self):
        self.responses = [httpx.ReadTimeout("timed out")]
        async with self.make_client() as client:
            result = await client.request(URL)

        assert result.error is True
        assert result.timed_out is True
        with self.assertRaises(BooruTransportError) as ctx:
            result.unwrap(URL)
        assert ctx.exception.timed_out is True

    async def test_connect_error_is_reported(self):
        self.responses = [httpx.ConnectError("connection refused")]
        async with self.make_client() as client:
            result = await client.request(URL)

        assert result.error is True
        assert result.timed_out is False
        assert "connection refused" in (result.error_message or "")
        with self.assertRaises(BooruTransportError) as ctx:
            result.unwrap(URL)
        assert ctx.exception.timed_out is False

    async def test_http_error_status_does_not_raise(self):
        self.responses = [respond(404, json={"error": "Not found"})]
        async with self.make_client() as client:
            result = await client.request(URL)

        assert result.status == 404
        assert result.server_message == "Not found"
        with self.assertRaises(BooruHTTPError) as ctx:
            result.unwrap(URL)
        assert ctx.exception.status_code == 404
        assert ctx.exception.server_message == "Not found"

    async def test_non_json_body_becomes_error_text(self):
        self.responses = [respond(500, text="<html>Oops</html>")]
        async with self.make_client() as client:
            result = await client.request(URL)

        assert result.body == {"error": "<html>Oops</html>"}
        assert result.server_message == "<html>Oops</html>"

    async def test_request_outside_context_raises(self):
        client = self.make_client()
        with self.assertRaises(BooruClientError):
            await client.request(URL)


class TestRequestShape(RateLimitedClientTestCase):
    async def test_sends_params_body_and_user_agent(self):
        self.responses = [respond(200, json={})]
        async with self.make_client() as client:
            await client.request(
                URL,
                method="PUT",
                headers={"x-csrf-token": "tok"},
                body={"_method": "PUT"},
                params={"q": "my:faves", "page": 2},
            )

        request = self.requests[0]
        assert request.method == "PUT"
        assert request.url.params["q"] == "my:faves"
        assert request.url.params["page"] == "2"
        assert request.headers["x-csrf-token"] == "tok"
        assert request.headers["User-Agent"] == "BooruSync/test"
        assert json.loads(request.content) == {"_method": "PUT"}

    async def test_text_and_bytes_responses(self):
        self.responses = [respond(200, content=b"\x89PNG")]
        async with self.make_client() as client:
            raw = await client.request(URL, response_type="bytes")
            text = await client.request(URL, response_type="text")

        assert raw.body == b"\x89PNG"
        assert isinstance(text.body, str)


class TestRequestResult(unittest.TestCase):
    def test_ok_requires_200(self):
        assert RequestResult(status=200).ok
        assert not RequestResult(status=201).ok
        assert not RequestResult(error=True).ok

    def test_server_message_only_from_dict_bodies(self):
        assert RequestResult(status=500, body="plain").server_message is None
        assert RequestResult(status=500, body={"error": ""}).server_message is None


if __name__ == "__main__":
    unittest.main()
