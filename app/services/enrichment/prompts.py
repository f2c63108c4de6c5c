"""Prompt construction for the extraction step. Pure functions, no I/O."""

from __future__ import annotations

import json

from app.models.company import CompanyRecord
from app.services.enrichment.scraper import ScrapeAggregate

MIN_CONTENT_CHARS = 100

SYSTEM_PROMPT = (
    "You are a VC research analyst. You answer with a single JSON object and nothing else: "
    "no markdown fences, no commentary."
)


def has_real_content(aggregate: ScrapeAggregate, *, min_chars: int = MIN_CONTENT_CHARS) -> bool:
    return len(aggregate.scraped_text) > min_chars


def _tags(company: CompanyRecord) -> str:
    return ", ".join(company.tags) if company.tags else "None listed"


def _or_unknown(value: object) -> str:
    if value is None or value == "":
        return "Unknown"
    return str(value)


def build_prompt(has_content: bool, company: CompanyRecord, aggregate: ScrapeAggregate) -> str:
    """Return the user prompt for real-content or metadata-only extraction."""
    if has_content:
        return _real_content_prompt(company, aggregate)
    return _metadata_only_prompt(company)


def _real_content_prompt(company: CompanyRecord, aggregate: ScrapeAggregate) -> str:
    sources = json.dumps(aggregate.successful_urls)
    return (
        f"I scraped {len(aggregate.successful_urls)} pages from {company.name}'s website. "
        "Extract a structured enrichment profile from this REAL content. Derive every field "
        "from the scraped text, not from assumptions.\n\n"
        "Company metadata:\n"
        f"- Name: {company.name}\n"
        f"- Website: {company.website}\n"
        f"- Sector: {_or_unknown(company.sector)}\n"
        f"- Stage: {_or_unknown(company.stage)}\n"
        f"- Tags: {_tags(company)}\n\n"
        "Real scraped content:\n"
        f"{aggregate.scraped_text}\n\n"
        "Return ONLY a valid JSON object, no markdown fences, no explanation:\n"
        "{\n"
        '  "summary": "2 crisp sentences: what they build based on the scraped text, and who buys it",\n'
        '  "whatTheyDo": [\n'
        '    "Core product capability from the scraped text",\n'
        '    "Primary differentiator mentioned on the site",\n'
        '    "Customer segment or use case mentioned explicitly",\n'
        '    "GTM motion inferred from the site (PLG / sales-led / channel)",\n'
        '    "Integration or ecosystem angle visible on the site"\n'
        "  ],\n"
        '  "keywords": ["kw1", "kw2", "kw3", "kw4", "kw5", "kw6", "kw7", "kw8"],\n'
        '  "signals": [\n'
        '    "Careers: number of open roles and departments (from scraped data)",\n'
        '    "Blog: recency and topic of the last post (from scraped data)",\n'
        '    "Changelog: shipping cadence (from scraped data)",\n'
        '    "Homepage: social proof, logos, or traction metrics (from scraped data)"\n'
        "  ],\n"
        f'  "sources": {sources}\n'
        "}"
    )


def _metadata_only_prompt(company: CompanyRecord) -> str:
    return (
        f"I could not scrape {company.name}'s website; every page was blocked or unreachable. "
        "Use only the metadata below to infer the best profile you can, and flag clearly in "
        "signals that the results are inferred rather than observed.\n\n"
        f"Company: {company.name}\n"
        f"Website: {company.website}\n"
        f"Description: {_or_unknown(company.description)}\n"
        f"Sector: {_or_unknown(company.sector)}\n"
        f"Stage: {_or_unknown(company.stage)}\n"
        f"Tags: {_tags(company)}\n"
        f"Founded: {_or_unknown(company.founded)}\n\n"
        "Return ONLY a valid JSON object, no markdown fences, no explanation:\n"
        "{\n"
        '  "summary": "2 crisp sentences based on the available metadata only",\n'
        '  "whatTheyDo": [\n'
        '    "Core product capability inferred from the description",\n'
        '    "Likely differentiator based on sector and tags",\n'
        '    "Target customer segment inferred from metadata",\n'
        '    "GTM motion typical for this stage and sector",\n'
        '    "Ecosystem angle common in this space"\n'
        "  ],\n"
        '  "keywords": ["kw1", "kw2", "kw3", "kw4", "kw5", "kw6", "kw7", "kw8"],\n'
        '  "signals": [\n'
        f'    "Warning: {company.website} was not accessible; signals are inferred, not scraped",\n'
        f'    "Stage signal ({_or_unknown(company.stage)}): typical velocity for this stage",\n'
        f'    "Sector signal ({_or_unknown(company.sector)}): competitive dynamics inferred",\n'
        '    "Re-run enrichment when the site becomes accessible for real signals"\n'
        "  ],\n"
        '  "sources": []\n'
        "}"
    )
