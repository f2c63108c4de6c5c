"""Structured enrichment output returned to the dashboard."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    """Wire format is camelCase; attributes stay snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScrapeStats(_CamelModel):
    """What the scrape step actually managed to fetch."""

    pages_attempted: int = 0
    pages_succeeded: int = 0
    chars_scraped: int = 0
    had_real_content: bool = False


class EnrichmentProfile(_CamelModel):
    """LLM-derived company profile plus scrape provenance."""

    summary: str
    what_they_do: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    signals: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)
    is_cached: bool = False
    scrape_stats: ScrapeStats = Field(default_factory=ScrapeStats)
