"""Candidate page list for a company website."""

from __future__ import annotations

from typing import Final

CANDIDATE_PATHS: Final[tuple[str, ...]] = (
    "",
    "/about",
    "/about-us",
    "/product",
    "/blog",
    "/careers",
    "/jobs",
    "/changelog",
    "/updates",
)


def build_page_list(website: str) -> list[str]:
    """Return the fixed, ordered list of pages worth probing on *website*.

    Exactly one trailing slash is stripped. The input is not validated;
    malformed URLs simply fail later when fetched.
    """
    base = website[:-1] if website.endswith("/") else website
    return [f"{base}{path}" for path in CANDIDATE_PATHS]
