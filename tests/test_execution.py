"""Test retry handling and the quota probe."""
import asyncio

import httpx
import pytest

from execution.quota_probe import QuotaProbe
from execution.retry_handler import RetryHandler


def test_call_retries_then_succeeds():
    """Test that a transient failure is retried."""
    attempts = []
    waits = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("reset")
        return "ok"

    handler = RetryHandler(max_retries=3, multiplier=2, retry_on=(ConnectionError,), sleep=waits.append)

    assert handler.call(flaky) == "ok"
    assert len(attempts) == 3
    assert len(waits) == 2
    assert waits[1] >= waits[0]


def test_call_reraises_last_error():
    """Test that the original error surfaces once attempts run out."""
    handler = RetryHandler(max_retries=2, retry_on=(ValueError,), sleep=lambda seconds: None)

    def always_fails():
        raise ValueError("still broken")

    with pytest.raises(ValueError, match="still broken"):
        handler.call(always_fails)


def test_other_errors_not_retried():
    """Test that only listed error types are retried."""
    attempts = []

    def fails():
        attempts.append(1)
        raise KeyError("no")

    handler = RetryHandler(max_retries=3, retry_on=(ValueError,), sleep=lambda seconds: None)

    with pytest.raises(KeyError):
        handler.call(fails)
    assert len(attempts) == 1


def test_async_retry():
    """Test the coroutine variant."""
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise httpx.ConnectError("refused")
        return 42

    async def no_wait(seconds):
        return None

    handler = RetryHandler(max_retries=2, retry_on=(httpx.ConnectError,), async_sleep=no_wait)

    assert asyncio.run(handler.execute_with_retry(flaky)) == 42
    assert len(attempts) == 2


def test_quota_probe_reports_statuses_and_headers():
    """Test that concurrent probes collect status codes and rate-limit headers."""
    seen = []

    def handler(request):
        seen.append(request)
        if len(seen) == 2:
            return httpx.Response(429, json={"error": {"type": "rate_limit_error"}})
        return httpx.Response(
            200,
            json={"content": [{"type": "text", "text": "ok"}]},
            headers={
                "anthropic-ratelimit-requests-remaining": "49",
                "request-id": "req_1",
            }
        )

    probe = QuotaProbe(
        api_key="test-key",
        base_url="https://api.test",
        model="test-model",
        concurrency=3,
        transport=httpx.MockTransport(handler)
    )

    report = asyncio.run(probe.run())

    assert len(seen) == 3
    assert seen[0].headers["x-api-key"] == "test-key"
    assert seen[0].url.path == "/v1/messages"
    assert report.status_counts == {"200": 2, "429": 1}
    assert report.rate_limited == 1
    ok = [r for r in report.results if r.status_code == 200]
    assert ok[0].rate_limit_headers == {"anthropic-ratelimit-requests-remaining": "49"}
    assert any("Rate limited" in hint for hint in report.hints())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
