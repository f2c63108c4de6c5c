from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from app.models.company import CompanyRecord
from app.services.enrichment.errors import (
    ExtractionParseError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimited,
)
from app.services.enrichment.extraction import (
    UNREACHABLE_MARKER,
    ExtractionClient,
    _extract_response_text,
    _map_status_error,
    parse_json_payload,
    strip_code_fences,
)
from app.services.enrichment.prompts import SYSTEM_PROMPT, build_prompt, has_real_content
from app.services.enrichment.scraper import ScrapeAggregate
from tests.helpers.enrichment_stubs import PROFILE_PAYLOAD, StubCompletionClient

COMPANY = CompanyRecord(
    name="Acme Robotics",
    website="https://acme.example",
    description="Warehouse automation for mid-market 3PLs.",
    sector="Robotics",
    stage="Seed",
    founded=2021,
    tags=["automation", "logistics"],
)
PAGES = [
    "https://acme.example",
    "https://acme.example/about",
    "https://acme.example/blog",
]


def _rich_aggregate() -> ScrapeAggregate:
    text = "--- https://acme.example/about ---\n" + "Acme builds autonomous picking robots. " * 10
    return ScrapeAggregate(
        scraped_text=text,
        successful_urls=["https://acme.example/about"],
        attempted_urls=PAGES,
    )


def test_content_threshold_is_strictly_greater_than_minimum():
    assert has_real_content(ScrapeAggregate(scraped_text="x" * 100)) is False
    assert has_real_content(ScrapeAggregate(scraped_text="x" * 101)) is True
    assert has_real_content(ScrapeAggregate(scraped_text="x" * 20), min_chars=10) is True


def test_real_content_prompt_embeds_text_and_sources():
    aggregate = _rich_aggregate()

    prompt = build_prompt(True, COMPANY, aggregate)

    assert aggregate.scraped_text in prompt
    assert "REAL content" in prompt
    assert '"sources": ["https://acme.example/about"]' in prompt
    assert "Tags: automation, logistics" in prompt
    assert "Founded" not in prompt


def test_metadata_only_prompt_carries_description_and_warning():
    prompt = build_prompt(False, COMPANY, ScrapeAggregate.empty(PAGES))

    assert "Description: Warehouse automation for mid-market 3PLs." in prompt
    assert "Founded: 2021" in prompt
    assert f"{COMPANY.website} was not accessible" in prompt
    assert '"sources": []' in prompt


def test_metadata_only_prompt_marks_missing_fields_unknown():
    sparse = CompanyRecord(name="Ghost Co", website="https://ghost.example")

    prompt = build_prompt(False, sparse, ScrapeAggregate.empty())

    assert "Sector: Unknown" in prompt
    assert "Founded: Unknown" in prompt
    assert "Tags: None listed" in prompt


def test_strip_code_fences_handles_language_tag():
    fenced = '```json\n{"summary": "x"}\n```'

    assert strip_code_fences(fenced) == '{"summary": "x"}'


def test_parse_json_payload_accepts_fenced_json():
    payload = parse_json_payload("```json\n" + json.dumps(PROFILE_PAYLOAD) + "\n```")

    assert payload == PROFILE_PAYLOAD


def test_parse_json_payload_falls_back_to_brace_span():
    raw = 'Sure, here is the profile: {"summary": "Acme builds robots."} Hope that helps!'

    assert parse_json_payload(raw) == {"summary": "Acme builds robots."}


def test_parse_json_payload_ignores_braces_after_the_object():
    raw = 'Here is the profile: {"summary": "Acme builds robots."} Note: replace {company} as needed.'

    assert parse_json_payload(raw) == {"summary": "Acme builds robots."}


def test_parse_json_payload_takes_first_of_several_objects():
    assert parse_json_payload('{"summary": "a"}\n{"summary": "b"}') == {"summary": "a"}


def test_parse_json_payload_skips_stray_brace_before_the_object():
    raw = 'Template {name} filled: {"summary": "Acme", "keywords": ["a{b}"]}'

    assert parse_json_payload(raw) == {"summary": "Acme", "keywords": ["a{b}"]}


@pytest.mark.parametrize("raw", ["no json here", "{broken", '["a", "b"]', "   "])
def test_parse_json_payload_rejects_unusable_output(raw):
    with pytest.raises(ExtractionParseError) as excinfo:
        parse_json_payload(raw)

    assert excinfo.value.code == "502_EXTRACTION_PARSE"


@pytest.mark.asyncio
async def test_extract_with_real_content_builds_profile():
    stub = StubCompletionClient()
    aggregate = _rich_aggregate()

    profile = await ExtractionClient(stub).extract(COMPANY, aggregate)

    assert stub.system_prompts == [SYSTEM_PROMPT]
    assert aggregate.scraped_text in stub.prompts[0]
    assert profile.summary == PROFILE_PAYLOAD["summary"]
    assert profile.what_they_do == PROFILE_PAYLOAD["whatTheyDo"]
    assert profile.sources == ["https://acme.example/about"]
    assert profile.is_cached is False
    assert profile.scrape_stats.pages_attempted == 3
    assert profile.scrape_stats.pages_succeeded == 1
    assert profile.scrape_stats.chars_scraped == len(aggregate.scraped_text)
    assert profile.scrape_stats.had_real_content is True
    assert profile.timestamp.tzinfo is not None


@pytest.mark.asyncio
async def test_extract_defaults_sources_to_successful_urls():
    payload = {key: value for key, value in PROFILE_PAYLOAD.items() if key != "sources"}
    stub = StubCompletionClient([json.dumps(payload)])

    profile = await ExtractionClient(stub).extract(COMPANY, _rich_aggregate())

    assert profile.sources == ["https://acme.example/about"]


@pytest.mark.asyncio
async def test_metadata_only_mode_forces_empty_sources_and_warning():
    payload = dict(PROFILE_PAYLOAD, sources=["https://acme.example/made-up"])
    stub = StubCompletionClient([json.dumps(payload)])

    profile = await ExtractionClient(stub).extract(COMPANY, ScrapeAggregate.empty(PAGES))

    assert "was not accessible" in stub.prompts[0]
    assert profile.sources == []
    assert profile.scrape_stats.had_real_content is False
    assert profile.scrape_stats.pages_succeeded == 0
    assert profile.scrape_stats.chars_scraped == 0
    assert UNREACHABLE_MARKER in profile.signals[0]
    assert profile.signals[1:] == PROFILE_PAYLOAD["signals"]


@pytest.mark.asyncio
async def test_metadata_only_mode_keeps_model_warning_without_duplicating():
    warning = f"Warning: {COMPANY.website} was not accessible; signals are inferred, not scraped"
    payload = dict(PROFILE_PAYLOAD, signals=[warning, "Stage signal (Seed): early"])
    stub = StubCompletionClient([json.dumps(payload)])

    profile = await ExtractionClient(stub).extract(COMPANY, ScrapeAggregate.empty(PAGES))

    assert profile.signals == [warning, "Stage signal (Seed): early"]


@pytest.mark.asyncio
async def test_model_cannot_override_server_owned_fields():
    payload = dict(PROFILE_PAYLOAD, isCached=True, scrapeStats={"pagesAttempted": 99})
    stub = StubCompletionClient([json.dumps(payload)])

    profile = await ExtractionClient(stub).extract(COMPANY, _rich_aggregate())

    assert profile.is_cached is False
    assert profile.scrape_stats.pages_attempted == 3


@pytest.mark.asyncio
async def test_garbage_output_raises_parse_error():
    stub = StubCompletionClient(["I'm sorry, I can't help with that."])

    with pytest.raises(ExtractionParseError):
        await ExtractionClient(stub).extract(COMPANY, _rich_aggregate())


@pytest.mark.asyncio
async def test_missing_summary_raises_parse_error():
    stub = StubCompletionClient([json.dumps({"keywords": ["robots"]})])

    with pytest.raises(ExtractionParseError) as excinfo:
        await ExtractionClient(stub).extract(COMPANY, _rich_aggregate())

    assert "missing required profile fields" in str(excinfo.value)


@pytest.mark.parametrize(
    ("status_code", "expected"),
    [
        (401, ProviderAuthError),
        (403, ProviderAuthError),
        (429, ProviderRateLimited),
        (500, ProviderError),
        (400, ProviderError),
    ],
)
def test_status_errors_map_to_typed_provider_errors(status_code, expected):
    error = _map_status_error(status_code, "upstream said no")

    assert type(error) is expected


def test_generic_provider_error_names_the_status():
    error = _map_status_error(503, "overloaded")

    assert error.code == "502_PROVIDER_ERROR"
    assert "503" in str(error)


def test_extract_response_text_reads_first_choice():
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="  {\"a\": 1}  "))])

    assert _extract_response_text(response) == '{"a": 1}'


@pytest.mark.parametrize(
    "response",
    [
        SimpleNamespace(choices=[]),
        SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=None))]),
        SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="   "))]),
    ],
)
def test_empty_completion_is_a_provider_error(response):
    with pytest.raises(ProviderError) as excinfo:
        _extract_response_text(response)

    assert "empty response" in str(excinfo.value)
