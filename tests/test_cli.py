from __future__ import annotations

import json

from app import cli
from app.services.enrichment.errors import ConfigurationError
from app.services.enrichment.scraper import ScrapeAggregate


class _FakePipeline:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.scraped: list[str] = []

    async def scrape(self, company):
        self.scraped.append(company.website)
        return ScrapeAggregate(
            scraped_text="--- https://acme.example ---\nhello",
            successful_urls=["https://acme.example"],
            attempted_urls=["https://acme.example", "https://acme.example/about"],
        )

    async def enrich(self, payload, *, client_identity):
        raise self.error


def test_parse_args_builds_company_payload():
    args = cli.parse_args(
        ["--name", "Acme", "--website", "https://acme.example", "--founded", "2021", "--tags", "ai, robotics"]
    )

    payload = cli._payload(args)

    assert payload["company"]["name"] == "Acme"
    assert payload["company"]["founded"] == 2021
    assert payload["company"]["tags"] == "ai, robotics"
    assert args.scrape_only is False


def test_scrape_only_prints_aggregate(monkeypatch, capsys):
    fake = _FakePipeline()
    monkeypatch.setattr(cli, "get_enrichment_pipeline", lambda: fake)

    assert cli.main(["--name", "Acme", "--website", "https://acme.example/", "--scrape-only"]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["successful_urls"] == ["https://acme.example"]
    assert len(output["attempted_urls"]) == 2
    assert fake.scraped == ["https://acme.example/"]


def test_enrichment_errors_exit_non_zero(monkeypatch, capsys):
    fake = _FakePipeline(ConfigurationError("Server misconfiguration: OPENAI_API_KEY is not set."))
    monkeypatch.setattr(cli, "get_enrichment_pipeline", lambda: fake)

    exit_code = cli.main(["--name", "Acme", "--website", "https://acme.example"])

    assert exit_code == 1
    assert capsys.readouterr().out == ""


def test_scrape_only_with_blank_name_exits_non_zero(monkeypatch, capsys):
    fake = _FakePipeline()
    monkeypatch.setattr(cli, "get_enrichment_pipeline", lambda: fake)

    exit_code = cli.main(["--name", " ", "--website", "https://acme.example", "--scrape-only"])

    assert exit_code == 1
    assert fake.scraped == []
    assert capsys.readouterr().out == ""
