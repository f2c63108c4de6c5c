"""Shared error classes for the enrichment pipeline."""

from __future__ import annotations


class EnrichmentError(RuntimeError):
    """Base exception for caller-visible enrichment failures."""

    def __init__(self, message: str, code: str = "500_ENRICHMENT_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ConfigurationError(EnrichmentError):
    """Raised when a required credential is not configured."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="500_CONFIG_MISSING")


class ThrottleExceeded(EnrichmentError):
    """Raised when a client has used up its request budget for the window."""

    def __init__(self, retry_after_ms: int) -> None:
        seconds = max(1, -(-retry_after_ms // 1000))
        super().__init__(f"Rate limit exceeded. Try again in {seconds}s.", code="429_THROTTLED")
        self.retry_after_ms = retry_after_ms
        self.retry_after_seconds = seconds


class InvalidRequest(EnrichmentError):
    """Raised when the incoming company payload is malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="400_INVALID_REQUEST")


class ProviderError(EnrichmentError):
    """Raised when the LLM provider fails."""

    def __init__(self, message: str, code: str = "502_PROVIDER_ERROR") -> None:
        super().__init__(message, code=code)


class ProviderAuthError(ProviderError):
    """Raised when the provider rejects the configured credentials."""

    def __init__(self, message: str = "LLM provider rejected the API key. Check OPENAI_API_KEY.") -> None:
        super().__init__(message, code="401_PROVIDER_AUTH")


class ProviderRateLimited(ProviderError):
    """Raised when the provider responds with HTTP 429."""

    def __init__(self, message: str = "LLM provider rate limit hit. Wait a moment and try again.") -> None:
        super().__init__(message, code="429_PROVIDER_RATE_LIMIT")


class ExtractionParseError(EnrichmentError):
    """Raised when model output cannot be read as a profile object."""

    def __init__(self, message: str = "Could not parse the model response as JSON. Try again.") -> None:
        super().__init__(message, code="502_EXTRACTION_PARSE")
