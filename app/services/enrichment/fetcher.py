"""Single-URL fetcher with bounded timeout, retries, and backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Final

import httpx

logger = logging.getLogger(__name__)

HEADERS: Final[dict[str, str]] = {
    "User-Agent": "Mozilla/5.0 (compatible; VCScout/1.0; company enrichment)",
    "Accept": "text/html,application/xhtml+xml,*/*",
    "Accept-Language": "en-US,en;q=0.9",
}
PERMANENT_STATUSES: Final[frozenset[int]] = frozenset({404, 410})


@dataclass(frozen=True)
class FetchOutcome:
    """Result of fetching one URL. ``response`` is None when unavailable."""

    url: str
    response: httpx.Response | None
    status_code: int | None
    attempts: int
    error_code: str | None = None
    permanent: bool = False

    @property
    def ok(self) -> bool:
        return self.response is not None


def backoff_schedule(
    *,
    max_attempts: int,
    base_delay: float,
    factor: float = 2.0,
    max_delay: float = 2.0,
) -> Iterator[tuple[int, float]]:
    """Yield (attempt, delay_seconds) pairs; the delay grows per attempt."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if base_delay < 0:
        raise ValueError("base_delay must be >= 0")
    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        yield attempt, min(delay, max_delay)
        delay *= factor


class ResilientFetcher:
    """Fetch pages over a shared ``httpx.AsyncClient`` without ever raising.

    Each attempt runs under its own wall-clock timeout. 404/410 stop
    immediately; other statuses and transport errors are retried.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        max_attempts: int = 3,
        timeout_seconds: float = 7.0,
        backoff_base_seconds: float = 0.3,
        backoff_max_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._client = http_client
        self._max_attempts = max_attempts
        self._timeout = timeout_seconds
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._sleep = sleep

    async def fetch(self, url: str) -> FetchOutcome:
        status: int | None = None
        error_code: str | None = None
        for attempt, delay in backoff_schedule(
            max_attempts=self._max_attempts,
            base_delay=self._backoff_base,
            max_delay=self._backoff_max,
        ):
            try:
                response = await asyncio.wait_for(
                    self._client.get(url, headers=HEADERS, follow_redirects=True),
                    timeout=self._timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                status = None
                error_code = "504_FETCH_TIMEOUT"
                logger.warning(
                    "scrape.fetch_timeout",
                    extra={"url": url, "attempt": attempt, "timeout_s": self._timeout},
                )
            except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
                status = None
                error_code = "520_FETCH_ERROR"
                logger.warning(
                    "scrape.fetch_error",
                    extra={"url": url, "attempt": attempt, "error": str(exc)[:200]},
                )
            else:
                status = response.status_code
                if response.is_success:
                    return FetchOutcome(url=url, response=response, status_code=status, attempts=attempt)
                if status in PERMANENT_STATUSES:
                    logger.info("scrape.fetch_missing", extra={"url": url, "status": status})
                    return FetchOutcome(
                        url=url,
                        response=None,
                        status_code=status,
                        attempts=attempt,
                        error_code="404_NOT_FOUND" if status == 404 else "410_GONE",
                        permanent=True,
                    )
                error_code = f"{status}_HTTP_STATUS"
                logger.warning(
                    "scrape.http_error",
                    extra={"url": url, "status": status, "attempt": attempt},
                )

            if attempt < self._max_attempts:
                await self._sleep(delay)

        return FetchOutcome(
            url=url,
            response=None,
            status_code=status,
            attempts=self._max_attempts,
            error_code=error_code,
        )
