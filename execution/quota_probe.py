"""Concurrent diagnostic probes against the generation API's rate limits."""
import asyncio
from typing import Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from utils.logger import setup_logger
from execution.retry_handler import RetryHandler
import config

logger = setup_logger(__name__)

RATE_LIMIT_PREFIX = "anthropic-ratelimit-"
API_VERSION = "2023-06-01"

STATUS_HINTS = {
    401: "Authentication failed: the API key is invalid or revoked",
    403: "Permission denied: the key cannot use this model",
    404: "Model not found: check ANTHROPIC_MODEL",
    429: "Rate limited: wait before sending more requests",
    529: "Provider overloaded: try again later",
}


class ProbeResult(BaseModel):
    index: int
    status_code: Optional[int] = None
    error: Optional[str] = None
    rate_limit_headers: Dict[str, str] = Field(default_factory=dict)


class QuotaReport(BaseModel):
    results: List[ProbeResult] = Field(default_factory=list)

    @property
    def status_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for result in self.results:
            key = str(result.status_code) if result.status_code is not None else "error"
            counts[key] = counts.get(key, 0) + 1
        return counts

    @property
    def rate_limited(self) -> int:
        return sum(1 for result in self.results if result.status_code == 429)

    def hints(self) -> List[str]:
        codes = sorted({result.status_code for result in self.results if result.status_code is not None})
        hints = [STATUS_HINTS[code] for code in codes if code in STATUS_HINTS]
        if any(code >= 500 for code in codes):
            hints.append("Server error: the provider is having issues")
        return hints


class QuotaProbe:
    """Sends a few tiny requests at once and reports what the API says back."""

    def __init__(
        self,
        api_key: Optional[str] = config.ANTHROPIC_API_KEY,
        base_url: str = config.ANTHROPIC_BASE_URL,
        model: str = config.ANTHROPIC_MODEL,
        concurrency: int = config.PROBE_CONCURRENCY,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.concurrency = concurrency
        self.transport = transport
        self.retry_handler = RetryHandler(
            max_retries=2,
            retry_on=(httpx.NetworkError, httpx.TimeoutException)
        )

    async def _probe(self, client: httpx.AsyncClient, index: int) -> ProbeResult:
        payload = {
            "model": self.model,
            "max_tokens": 5,
            "messages": [{"role": "user", "content": "Say 'ok'"}],
        }
        try:
            response = await self.retry_handler.execute_with_retry(client.post, "/v1/messages", json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Probe {index} could not reach the API: {e}")
            return ProbeResult(index=index, error=str(e))

        headers = {
            key: value for key, value in response.headers.items()
            if key.lower().startswith(RATE_LIMIT_PREFIX)
        }
        logger.debug(f"Probe {index}: HTTP {response.status_code}")
        return ProbeResult(index=index, status_code=response.status_code, rate_limit_headers=headers)

    async def run(self) -> QuotaReport:
        headers = {
            "x-api-key": self.api_key or "",
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=config.HTTP_TIMEOUT,
            transport=self.transport
        ) as client:
            results = await asyncio.gather(*(self._probe(client, index) for index in range(1, self.concurrency + 1)))

        report = QuotaReport(results=list(results))
        logger.info(f"Quota probe finished: {report.status_counts}")
        return report


def probe_quota(concurrency: int = config.PROBE_CONCURRENCY) -> QuotaReport:
    return asyncio.run(QuotaProbe(concurrency=concurrency).run())
