"""Run one enrichment from the command line and print the profile as JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from dataclasses import asdict

from app.config import settings
from app.services.enrichment.errors import EnrichmentError
from app.services.enrichment.pipeline import get_enrichment_pipeline, parse_company_payload

logger = logging.getLogger("app.cli")

CLI_IDENTITY = "cli"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Enrich a company profile from its website.")
    parser.add_argument("--name", required=True, help="Company name.")
    parser.add_argument("--website", required=True, help="Company website, e.g. https://acme.dev")
    parser.add_argument("--description", default="", help="Free-text description used as fallback.")
    parser.add_argument("--sector", default="")
    parser.add_argument("--stage", default="")
    parser.add_argument("--founded", type=int, default=None)
    parser.add_argument("--tags", default="", help="Comma-separated tags.")
    parser.add_argument(
        "--scrape-only",
        action="store_true",
        help="Print the scrape aggregate and skip the LLM call.",
    )
    return parser.parse_args(argv)


def _payload(args: argparse.Namespace) -> dict[str, object]:
    return {
        "company": {
            "name": args.name,
            "website": args.website,
            "description": args.description,
            "sector": args.sector,
            "stage": args.stage,
            "founded": args.founded,
            "tags": args.tags,
        }
    }


async def _run_async(args: argparse.Namespace) -> dict[str, object]:
    pipeline = get_enrichment_pipeline()
    if args.scrape_only:
        company = parse_company_payload(_payload(args))
        return asdict(await pipeline.scrape(company))
    result = await pipeline.enrich(_payload(args), client_identity=CLI_IDENTITY)
    return {"result": result.profile.model_dump(mode="json", by_alias=True)}


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    args = parse_args(argv)
    try:
        output = asyncio.run(_run_async(args))
    except EnrichmentError as exc:
        logger.error("Enrichment failed (%s): %s", exc.code, exc)
        return 1
    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
