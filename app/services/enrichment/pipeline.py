"""Enrichment entry point: throttle, validate, scrape, extract."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from app.config import settings
from app.models.company import CompanyRecord
from app.models.enrichment import EnrichmentProfile
from app.observability.metrics import metrics
from app.services.enrichment.candidates import build_page_list
from app.services.enrichment.errors import ConfigurationError, EnrichmentError, InvalidRequest, ThrottleExceeded
from app.services.enrichment.extraction import ExtractionClient
from app.services.enrichment.fetcher import ResilientFetcher
from app.services.enrichment.scraper import ScrapeAggregate, ScrapeOrchestrator
from app.services.enrichment.throttle import RequestThrottle

logger = logging.getLogger(__name__)

ScraperFactory = Callable[[httpx.AsyncClient], ScrapeOrchestrator]


@dataclass(frozen=True)
class EnrichmentResult:
    """Successful enrichment plus the caller's remaining throttle budget."""

    profile: EnrichmentProfile
    remaining: int


def parse_company_payload(payload: Any) -> CompanyRecord:
    """Validate the inbound body; accepts ``{"company": {...}}`` or a bare record."""
    if not isinstance(payload, Mapping):
        raise InvalidRequest("Invalid JSON body.")
    company = payload.get("company", payload)
    if not isinstance(company, Mapping):
        raise InvalidRequest("Invalid JSON body.")
    missing = [name for name in ("name", "website") if not company.get(name)]
    if missing:
        raise InvalidRequest(f"Missing required fields: {', '.join(missing)}.")
    try:
        return CompanyRecord.model_validate(dict(company))
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise InvalidRequest(f"Invalid company fields: {', '.join(fields) or 'payload'}.") from exc


def _default_scraper(http_client: httpx.AsyncClient) -> ScrapeOrchestrator:
    fetcher = ResilientFetcher(
        http_client,
        max_attempts=settings.scrape_max_attempts,
        timeout_seconds=settings.scrape_fetch_timeout_seconds,
        backoff_base_seconds=settings.scrape_backoff_base_seconds,
        backoff_max_seconds=settings.scrape_backoff_max_seconds,
    )
    return ScrapeOrchestrator(
        fetcher,
        max_chars_per_page=settings.scrape_max_chars_per_page,
        min_chars_per_page=settings.scrape_min_chars_per_page,
        max_total_chars=settings.scrape_max_total_chars,
    )


def _default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.scrape_fetch_timeout_seconds))


class EnrichmentPipeline:
    """Sequences throttle, payload validation, scrape, and LLM extraction."""

    def __init__(
        self,
        *,
        throttle: RequestThrottle,
        extraction_client: ExtractionClient,
        scraper_factory: ScraperFactory = _default_scraper,
        api_key_present: Callable[[], bool] = lambda: settings.llm_configured,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._throttle = throttle
        self._extraction = extraction_client
        self._scraper_factory = scraper_factory
        self._api_key_present = api_key_present
        self._http_client_factory = http_client_factory or _default_http_client

    async def enrich(self, payload: Any, *, client_identity: str) -> EnrichmentResult:
        start = time.perf_counter()
        metrics.increment("enrichment.requests")
        try:
            result = await self._run(payload, client_identity=client_identity)
        except EnrichmentError as exc:
            metrics.increment("enrichment.errors", tags={"code": exc.code})
            raise
        finally:
            metrics.timing("enrichment.latency_ms", (time.perf_counter() - start) * 1000)
        metrics.gauge("enrichment.pages_succeeded", result.profile.scrape_stats.pages_succeeded)
        return result

    async def _run(self, payload: Any, *, client_identity: str) -> EnrichmentResult:
        if not self._api_key_present():
            logger.error("enrichment.config_missing", extra={"setting": "OPENAI_API_KEY"})
            raise ConfigurationError("Server misconfiguration: OPENAI_API_KEY is not set.")

        self._throttle.prune()
        decision = self._throttle.check(client_identity)
        if not decision.allowed:
            metrics.increment("enrichment.throttled")
            raise ThrottleExceeded(decision.reset_in_ms)

        company = parse_company_payload(payload)
        aggregate = await self.scrape(company)
        logger.info(
            "enrichment.scrape_complete",
            extra={
                "company": company.name,
                "pages_succeeded": len(aggregate.successful_urls),
                "pages_attempted": len(aggregate.attempted_urls),
                "chars": len(aggregate.scraped_text),
            },
        )

        try:
            profile = await self._extraction.extract(company, aggregate)
        except EnrichmentError:
            raise
        except Exception as exc:
            logger.exception("enrichment.extract_failed", extra={"company": company.name})
            raise EnrichmentError(f"LLM extraction failed: {exc}") from exc
        logger.info(
            "enrichment.completed",
            extra={
                "company": company.name,
                "had_real_content": profile.scrape_stats.had_real_content,
                "remaining": decision.remaining,
            },
        )
        return EnrichmentResult(profile=profile, remaining=decision.remaining)

    async def scrape(self, company: CompanyRecord) -> ScrapeAggregate:
        """Run the scrape; any unexpected failure degrades to an empty aggregate."""
        try:
            async with self._http_client_factory() as http_client:
                return await self._scraper_factory(http_client).scrape(company.website)
        except Exception as exc:  # noqa: BLE001 - scraping is best-effort
            logger.exception(
                "enrichment.scrape_failed",
                extra={"company": company.name, "error": type(exc).__name__},
            )
            return ScrapeAggregate.empty(build_page_list(company.website))


_PIPELINE_INSTANCE: EnrichmentPipeline | None = None


def get_enrichment_pipeline() -> EnrichmentPipeline:
    """Singleton accessor used by API routes."""
    global _PIPELINE_INSTANCE  # noqa: PLW0603
    if _PIPELINE_INSTANCE is None:
        _PIPELINE_INSTANCE = EnrichmentPipeline(
            throttle=RequestThrottle(
                capacity=settings.enrich_rate_limit_max_requests,
                window_seconds=settings.enrich_rate_limit_window_seconds,
            ),
            extraction_client=ExtractionClient(min_content_chars=settings.enrichment_min_content_chars),
        )
    return _PIPELINE_INSTANCE
