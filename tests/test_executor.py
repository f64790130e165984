"""Tests for the retrying request executor."""

import logging
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from open_completions.errors import ApiError, RateLimitedError, TransportError
from open_completions.llm.backoff import RetryPolicy
from open_completions.llm.executor import RetryingExecutor

_URL = "/chat/completions"
_BODY = b'{"model": "m"}'


def _scripted_client(*steps):
    """AsyncClient whose transport replays *steps* in order.

    Each step is an ``httpx.Response`` or an exception type from httpx that
    is raised with the outgoing request attached.
    """
    remaining = list(steps)
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        step = remaining.pop(0)
        if isinstance(step, type) and issubclass(step, Exception):
            raise step("boom", request=request)
        return step

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://test",
    )
    return client, requests


def _ok(body: bytes = b'{"ok": true}') -> httpx.Response:
    return httpx.Response(200, content=body)


def _executor(client, **policy) -> tuple[RetryingExecutor, AsyncMock]:
    sleep = AsyncMock()
    policy.setdefault("max_retries", 3)
    return RetryingExecutor(client, RetryPolicy(**policy), sleep=sleep), sleep


class TestRetries:
    async def test_success_first_try(self):
        client, requests = _scripted_client(_ok())
        executor, sleep = _executor(client)
        resp = await executor.execute(_URL, None, _BODY)
        assert resp.json() == {"ok": True}
        assert len(requests) == 1
        assert requests[0].method == "POST"
        assert requests[0].content == _BODY
        sleep.assert_not_called()

    async def test_5xx_then_success_sleeps_once_per_failure(self):
        client, requests = _scripted_client(
            httpx.Response(500), httpx.Response(502), httpx.Response(503), _ok(),
        )
        executor, sleep = _executor(client, base_delay=1.0, max_delay=30.0)
        resp = await executor.execute(_URL, None, _BODY)
        assert resp.status_code == 200
        assert len(requests) == 4
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]

    async def test_retry_after_stretches_delay(self):
        client, _ = _scripted_client(
            httpx.Response(429, headers={"retry-after": "5"}), _ok(),
        )
        executor, sleep = _executor(client, base_delay=1.0)
        await executor.execute(_URL, None, _BODY)
        sleep.assert_awaited_once()
        assert sleep.await_args.args[0] >= 5.0

    async def test_retry_after_shorter_than_backoff_is_ignored(self):
        client, _ = _scripted_client(
            httpx.Response(429, headers={"retry-after": "1"}), _ok(),
        )
        executor, sleep = _executor(client, base_delay=4.0)
        await executor.execute(_URL, None, _BODY)
        sleep.assert_awaited_once_with(4.0)

    async def test_retry_after_disabled(self):
        client, _ = _scripted_client(
            httpx.Response(429, headers={"retry-after": "5"}), _ok(),
        )
        executor, sleep = _executor(client, base_delay=1.0, respect_retry_after=False)
        await executor.execute(_URL, None, _BODY)
        sleep.assert_awaited_once_with(1.0)

    async def test_429_exhausted_raises_rate_limited(self):
        headers = {
            "retry-after": "2",
            "x-ratelimit-reset-requests": "1s",
            "x-ratelimit-reset-tokens": "6m0s",
        }
        client, requests = _scripted_client(
            *[httpx.Response(429, headers=headers) for _ in range(3)],
        )
        executor, sleep = _executor(client, max_retries=2)
        with pytest.raises(RateLimitedError) as exc_info:
            await executor.execute(_URL, None, _BODY)
        assert len(requests) == 3
        assert sleep.await_count == 2
        assert exc_info.value.retry_after == 2.0
        assert exc_info.value.reset_at == "1s"

    async def test_4xx_not_retried(self):
        client, requests = _scripted_client(
            httpx.Response(400, text='{"error": "bad model"}'),
        )
        executor, sleep = _executor(client)
        with pytest.raises(ApiError) as exc_info:
            await executor.execute(_URL, None, _BODY)
        assert exc_info.value.status == 400
        assert "bad model" in exc_info.value.body
        assert len(requests) == 1
        sleep.assert_not_called()

    async def test_5xx_exhausted_raises_api_error(self):
        client, requests = _scripted_client(
            *[httpx.Response(503, text="overloaded") for _ in range(4)],
        )
        executor, sleep = _executor(client, max_retries=3)
        with pytest.raises(ApiError) as exc_info:
            await executor.execute(_URL, None, _BODY)
        assert exc_info.value.status == 503
        assert exc_info.value.body == "overloaded"
        assert len(requests) == 4
        assert sleep.await_count == 3

    async def test_zero_retries(self):
        client, requests = _scripted_client(httpx.Response(500))
        executor, sleep = _executor(client, max_retries=0)
        with pytest.raises(ApiError):
            await executor.execute(_URL, None, _BODY)
        assert len(requests) == 1
        sleep.assert_not_called()

    async def test_connect_error_retried(self):
        client, requests = _scripted_client(httpx.ConnectError, _ok())
        executor, sleep = _executor(client)
        resp = await executor.execute(_URL, None, _BODY)
        assert resp.status_code == 200
        assert len(requests) == 2
        sleep.assert_awaited_once_with(1.0)

    async def test_timeout_exhausted_raises_transport_error(self):
        client, requests = _scripted_client(*[httpx.ReadTimeout] * 3)
        executor, sleep = _executor(client, max_retries=2)
        with pytest.raises(TransportError) as exc_info:
            await executor.execute(_URL, None, _BODY)
        assert isinstance(exc_info.value.original_error, httpx.ReadTimeout)
        assert len(requests) == 3
        assert sleep.await_count == 2

    async def test_retry_logged(self, caplog):
        client, _ = _scripted_client(httpx.Response(500), _ok())
        executor, _ = _executor(client)
        with caplog.at_level(logging.WARNING, logger="open_completions.llm.executor"):
            await executor.execute(_URL, None, _BODY)
        assert "API returned 500 (attempt 1/4)" in caplog.text


class TestRateLimitSink:
    async def test_sink_sees_failed_responses(self):
        client, _ = _scripted_client(
            httpx.Response(429, headers={"x-ratelimit-remaining-requests": "0"}),
            _ok(),
        )
        sink = MagicMock()
        executor = RetryingExecutor(client, RetryPolicy(), sink, sleep=AsyncMock())
        await executor.execute(_URL, None, _BODY)
        sink.low_headroom.assert_called_once()
        assert sink.low_headroom.call_args.args[0].remaining_requests == 0


class TestStream:
    async def test_stream_yields_unread_body(self):
        client, _ = _scripted_client(_ok(b"data: 1\n\n"))
        executor, _ = _executor(client)
        async with executor.stream(_URL, {"Accept": "text/event-stream"}, _BODY) as resp:
            chunks = [c async for c in resp.aiter_bytes()]
        assert b"".join(chunks) == b"data: 1\n\n"

    async def test_stream_sends_extra_headers(self):
        client, requests = _scripted_client(_ok())
        executor, _ = _executor(client)
        async with executor.stream(_URL, {"Accept": "text/event-stream"}, _BODY):
            pass
        assert requests[0].headers["accept"] == "text/event-stream"

    async def test_stream_retries_before_first_byte(self):
        client, requests = _scripted_client(httpx.Response(502), _ok(b"x"))
        executor, sleep = _executor(client)
        async with executor.stream(_URL, None, _BODY) as resp:
            assert resp.status_code == 200
        assert len(requests) == 2
        assert sleep.await_count == 1
