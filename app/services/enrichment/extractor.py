"""Turn fetched HTML into bounded plain text and discard unusable pages."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Final

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

MAX_CHARS_PER_PAGE: Final = 3_000
MIN_CHARS_PER_PAGE: Final = 50

DROPPED_TAGS: Final[tuple[str, ...]] = ("script", "style")
BLOCK_TAGS: Final[tuple[str, ...]] = (
    "p",
    "div",
    "section",
    "article",
    "li",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "header",
    "footer",
    "nav",
)
_HSPACE_RE = re.compile(r"[ \t]+")
_LINE_EDGE_RE = re.compile(r" ?\n ?")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class PageText:
    """Usable text scraped from one candidate URL."""

    url: str
    text: str


def html_to_text(html: str, *, max_chars: int = MAX_CHARS_PER_PAGE) -> str:
    """Convert *html* to readable plain text capped at *max_chars*.

    Entities are decoded once by the parser, so ``&amp;lt;`` yields ``&lt;``.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(list(DROPPED_TAGS)):
        tag.decompose()
    for tag in soup.find_all(list(BLOCK_TAGS)):
        tag.append("\n")
    text = soup.get_text(separator=" ")
    text = text.replace("\xa0", " ").replace("\r\n", "\n").replace("\r", "\n")
    text = _HSPACE_RE.sub(" ", text)
    text = _LINE_EDGE_RE.sub("\n", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()[:max_chars]


def is_blocked_page(text: str) -> bool:
    """Detect bot-protection interstitials served instead of real content."""
    lowered = text.lower()
    return (
        ("checking your browser" in lowered and "cloudflare" in lowered)
        or "just a moment" in lowered
        or "enable javascript and cookies" in lowered
        or ("403 forbidden" in lowered and len(text) < 500)
    )


def is_html_response(response: httpx.Response) -> bool:
    return "text/html" in response.headers.get("content-type", "").lower()


def extract_page(
    url: str,
    response: httpx.Response,
    *,
    max_chars: int = MAX_CHARS_PER_PAGE,
    min_chars: int = MIN_CHARS_PER_PAGE,
) -> PageText | None:
    """Return the cleaned text of *response*, or None when it is not usable."""
    if not is_html_response(response):
        logger.info(
            "scrape.skip_non_html",
            extra={"url": url, "content_type": response.headers.get("content-type", "")},
        )
        return None
    text = html_to_text(response.text, max_chars=max_chars)
    if len(text) < min_chars:
        logger.info("scrape.skip_thin_page", extra={"url": url, "chars": len(text)})
        return None
    if is_blocked_page(text):
        logger.info("scrape.skip_blocked_page", extra={"url": url})
        return None
    return PageText(url=url, text=text)
