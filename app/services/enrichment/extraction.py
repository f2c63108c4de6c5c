"""LLM extraction step: scraped text or metadata in, EnrichmentProfile out."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

from pydantic import ValidationError

from app.config import settings
from app.models.company import CompanyRecord
from app.models.enrichment import EnrichmentProfile, ScrapeStats
from app.services.enrichment.errors import (
    ConfigurationError,
    ExtractionParseError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimited,
)
from app.services.enrichment.prompts import MIN_CONTENT_CHARS, SYSTEM_PROMPT, build_prompt, has_real_content
from app.services.enrichment.scraper import ScrapeAggregate

try:  # pragma: no cover - import guard for optional dependency
    from openai import APIStatusError, AsyncOpenAI, OpenAIError
except Exception:  # pragma: no cover - openai not installed in some environments
    AsyncOpenAI = None  # type: ignore[assignment]
    APIStatusError = None  # type: ignore[assignment]
    OpenAIError = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

AUTH_STATUSES = {401, 403}
_LEADING_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*")
_TRAILING_FENCE_RE = re.compile(r"\s*```$")
UNREACHABLE_MARKER = "was not accessible"


class CompletionClient(Protocol):
    """Minimal contract for a single-shot LLM completion."""

    async def complete(self, *, system_prompt: str, user_prompt: str) -> str:
        ...


class OpenAICompletionClient:
    """Chat Completions backend using the official OpenAI SDK.

    ``base_url`` lets a deployment point at any OpenAI-compatible endpoint.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        temperature: float = 0.3,
        max_output_tokens: int = 1024,
        base_url: str | None = None,
        timeout: float = 20.0,
        max_retries: int = 0,
    ) -> None:
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for enrichment.")
        if AsyncOpenAI is None:  # pragma: no cover - import guard
            raise ImportError("openai package is not installed.")
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        self._model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens

    @classmethod
    def from_settings(cls) -> "OpenAICompletionClient":
        return cls(
            settings.openai_api_key or "",
            model=settings.enrichment_model,
            temperature=settings.enrichment_temperature,
            max_output_tokens=settings.enrichment_max_output_tokens,
            base_url=settings.openai_base_url,
            timeout=settings.enrichment_llm_timeout_seconds,
            max_retries=settings.enrichment_llm_max_retries,
        )

    async def complete(self, *, system_prompt: str, user_prompt: str) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                temperature=self._temperature,
                max_tokens=self._max_output_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except APIStatusError as exc:
            raise _map_status_error(exc.status_code, getattr(exc, "message", str(exc))) from exc
        except OpenAIError as exc:
            raise ProviderError(f"LLM request failed: {exc}") from exc
        return _extract_response_text(response)


def _map_status_error(status_code: int, detail: str) -> ProviderError:
    logger.error("enrichment.provider_status", extra={"status": status_code, "detail": detail[:200]})
    if status_code in AUTH_STATUSES:
        return ProviderAuthError()
    if status_code == 429:
        return ProviderRateLimited()
    return ProviderError(f"LLM provider error: {status_code}")


def _extract_response_text(response: Any) -> str:
    """Pull the model's text out of a chat completion envelope."""
    choices = getattr(response, "choices", None) or []
    if choices:
        content = getattr(choices[0].message, "content", "")
        if isinstance(content, list):
            content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
        if isinstance(content, str) and content.strip():
            return content.strip()
    raise ProviderError("LLM provider returned an empty response. Try again.")


def strip_code_fences(raw_text: str) -> str:
    candidate = raw_text.strip()
    candidate = _LEADING_FENCE_RE.sub("", candidate)
    candidate = _TRAILING_FENCE_RE.sub("", candidate)
    return candidate.strip()


def parse_json_payload(raw_text: str) -> dict[str, Any]:
    """Decode model output, tolerating code fences and surrounding prose.

    Strict parse first; if that fails, the first balanced JSON object found
    in the text is used.
    """
    candidate = strip_code_fences(raw_text)
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError:
        return _first_embedded_object(candidate)
    if not isinstance(payload, dict):
        raise ExtractionParseError("Model response was not a JSON object. Try again.")
    return payload


def _first_embedded_object(text: str) -> dict[str, Any]:
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            payload, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict):
            return payload
        start = text.find("{", start + 1)
    raise ExtractionParseError()


class ExtractionClient:
    """Builds the prompt, calls the LLM, and assembles the profile."""

    def __init__(
        self,
        completion_client: CompletionClient | None = None,
        *,
        min_content_chars: int = MIN_CONTENT_CHARS,
    ) -> None:
        self._client = completion_client
        self._min_content_chars = min_content_chars

    async def extract(self, company: CompanyRecord, aggregate: ScrapeAggregate) -> EnrichmentProfile:
        real_content = has_real_content(aggregate, min_chars=self._min_content_chars)
        prompt = build_prompt(real_content, company, aggregate)
        logger.info(
            "enrichment.extract_start",
            extra={
                "company": company.name,
                "mode": "real_content" if real_content else "metadata_only",
                "prompt_chars": len(prompt),
            },
        )
        raw_text = await self._ensure_client().complete(system_prompt=SYSTEM_PROMPT, user_prompt=prompt)
        try:
            payload = parse_json_payload(raw_text)
        except ExtractionParseError:
            logger.error(
                "enrichment.parse_error",
                extra={"company": company.name, "raw_preview": raw_text[:200]},
            )
            raise
        return _build_profile(payload, company=company, aggregate=aggregate, real_content=real_content)

    def _ensure_client(self) -> CompletionClient:
        if self._client is None:
            self._client = OpenAICompletionClient.from_settings()
        return self._client


def _scraped_sources(claimed: Any, successful_urls: list[str]) -> list[str]:
    """Keep only model-cited URLs that were actually scraped."""
    if isinstance(claimed, list):
        kept = [url for url in claimed if url in successful_urls]
        if kept:
            return list(dict.fromkeys(kept))
    return list(successful_urls)


def _build_profile(
    payload: dict[str, Any],
    *,
    company: CompanyRecord,
    aggregate: ScrapeAggregate,
    real_content: bool,
) -> EnrichmentProfile:
    fields = {
        key: value
        for key, value in payload.items()
        if key not in {"timestamp", "isCached", "is_cached", "scrapeStats", "scrape_stats"}
    }
    if real_content:
        fields["sources"] = _scraped_sources(fields.get("sources"), aggregate.successful_urls)
    else:
        fields["sources"] = []
    stats = ScrapeStats(
        pages_attempted=len(aggregate.attempted_urls),
        pages_succeeded=len(aggregate.successful_urls),
        chars_scraped=len(aggregate.scraped_text),
        had_real_content=real_content,
    )
    try:
        profile = EnrichmentProfile.model_validate({**fields, "isCached": False, "scrapeStats": stats})
    except ValidationError as exc:
        logger.error("enrichment.profile_invalid", extra={"company": company.name, "errors": exc.error_count()})
        raise ExtractionParseError("Model response was missing required profile fields. Try again.") from exc

    if not real_content and not any(UNREACHABLE_MARKER in signal for signal in profile.signals):
        profile.signals.insert(
            0,
            f"Warning: {company.website} {UNREACHABLE_MARKER}; signals are inferred, not scraped",
        )
    return profile
