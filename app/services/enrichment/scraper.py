"""Concurrent scrape of every candidate page for one company."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Final

from app.observability.metrics import metrics
from app.services.enrichment.candidates import build_page_list
from app.services.enrichment.extractor import MAX_CHARS_PER_PAGE, MIN_CHARS_PER_PAGE, PageText, extract_page
from app.services.enrichment.fetcher import ResilientFetcher

logger = logging.getLogger(__name__)

MAX_TOTAL_CHARS: Final = 10_000
CHUNK_SEPARATOR: Final = "\n\n"


@dataclass(frozen=True)
class ScrapeAggregate:
    """Text gathered from a company's site, ready for extraction."""

    scraped_text: str = ""
    successful_urls: list[str] = field(default_factory=list)
    attempted_urls: list[str] = field(default_factory=list)

    @classmethod
    def empty(cls, attempted_urls: list[str] | None = None) -> "ScrapeAggregate":
        return cls(scraped_text="", successful_urls=[], attempted_urls=list(attempted_urls or []))


def aggregate_pages(
    attempted_urls: list[str],
    pages: list[PageText | None],
    *,
    max_total_chars: int = MAX_TOTAL_CHARS,
) -> ScrapeAggregate:
    """Join usable pages in candidate order until the character budget is spent."""
    chunks: list[str] = []
    successful: list[str] = []
    total_chars = 0
    for page in pages:
        if page is None:
            continue
        if total_chars >= max_total_chars:
            break
        chunks.append(f"--- {page.url} ---\n{page.text}")
        successful.append(page.url)
        total_chars += len(page.text)
    return ScrapeAggregate(
        scraped_text=CHUNK_SEPARATOR.join(chunks)[:max_total_chars],
        successful_urls=successful,
        attempted_urls=list(attempted_urls),
    )


class ScrapeOrchestrator:
    """Fetch and extract all candidate pages concurrently, settling every task."""

    def __init__(
        self,
        fetcher: ResilientFetcher,
        *,
        max_chars_per_page: int = MAX_CHARS_PER_PAGE,
        min_chars_per_page: int = MIN_CHARS_PER_PAGE,
        max_total_chars: int = MAX_TOTAL_CHARS,
    ) -> None:
        self._fetcher = fetcher
        self._max_chars_per_page = max_chars_per_page
        self._min_chars_per_page = min_chars_per_page
        self._max_total_chars = max_total_chars

    async def scrape(self, website: str) -> ScrapeAggregate:
        start = time.perf_counter()
        pages = build_page_list(website)
        outcomes = await asyncio.gather(
            *(self._scrape_page(url) for url in pages),
            return_exceptions=True,
        )

        usable: list[PageText | None] = []
        for url, outcome in zip(pages, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "scrape.page_unhandled_exception",
                    extra={"url": url, "error": type(outcome).__name__},
                )
                usable.append(None)
                continue
            usable.append(outcome)

        aggregate = aggregate_pages(pages, usable, max_total_chars=self._max_total_chars)
        duration_ms = (time.perf_counter() - start) * 1000
        metrics.gauge("scrape.pages_succeeded", len(aggregate.successful_urls))
        metrics.timing("scrape.latency_ms", duration_ms)
        logger.info(
            "scrape.complete",
            extra={
                "website": website,
                "pages_attempted": len(aggregate.attempted_urls),
                "pages_succeeded": len(aggregate.successful_urls),
                "chars": len(aggregate.scraped_text),
                "duration_ms": f"{duration_ms:.2f}",
            },
        )
        return aggregate

    async def _scrape_page(self, url: str) -> PageText | None:
        outcome = await self._fetcher.fetch(url)
        if outcome.response is None:
            return None
        return extract_page(
            url,
            outcome.response,
            max_chars=self._max_chars_per_page,
            min_chars=self._min_chars_per_page,
        )
