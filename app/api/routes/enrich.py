"""API endpoint for on-demand company enrichment."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.services.enrichment.errors import EnrichmentError, ThrottleExceeded
from app.services.enrichment.pipeline import EnrichmentPipeline, get_enrichment_pipeline
from app.services.enrichment.throttle import resolve_client_identity

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/enrich")
async def enrich_company(
    request: Request,
    pipeline: EnrichmentPipeline = Depends(get_enrichment_pipeline),
) -> JSONResponse:
    """Scrape a company's site and return an LLM-derived profile."""
    identity = resolve_client_identity(request.headers)
    try:
        body = await _read_json(request)
        result = await pipeline.enrich(body, client_identity=identity)
    except EnrichmentError as exc:
        logger.error("enrichment.api_error", extra={"code": exc.code, "identity": identity})
        return _error_response(exc)

    return JSONResponse(
        {"result": result.profile.model_dump(mode="json", by_alias=True)},
        headers={"X-RateLimit-Remaining": str(result.remaining)},
    )


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def _error_response(exc: EnrichmentError) -> JSONResponse:
    content: dict[str, Any] = {"error": str(exc), "code": exc.code}
    headers: dict[str, str] = {}
    if isinstance(exc, ThrottleExceeded):
        content["retryAfterMs"] = exc.retry_after_ms
        headers = {
            "Retry-After": str(exc.retry_after_seconds),
            "X-RateLimit-Remaining": "0",
        }
    return JSONResponse(content, status_code=_map_error_code(exc.code), headers=headers)


def _map_error_code(code: str) -> int:
    if code == "400_INVALID_REQUEST":
        return status.HTTP_400_BAD_REQUEST
    if code in {"429_THROTTLED", "429_PROVIDER_RATE_LIMIT"}:
        return status.HTTP_429_TOO_MANY_REQUESTS
    if code in {"401_PROVIDER_AUTH", "502_PROVIDER_ERROR", "502_EXTRACTION_PARSE"}:
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR
