import httpx
import pytest

from app.services.enrichment.extractor import (
    MAX_CHARS_PER_PAGE,
    extract_page,
    html_to_text,
    is_blocked_page,
)
from tests.helpers.enrichment_stubs import html_page

PAGE_URL = "https://acme.example/about"


def test_html_to_text_drops_scripts_and_styles():
    html = (
        "<html><head><style>.hero { color: blue; }</style></head>"
        "<body><script type='text/javascript'>var secret = 1;</script>"
        "<p>Visible copy</p></body></html>"
    )

    text = html_to_text(html)

    assert text == "Visible copy"


def test_html_to_text_keeps_block_structure_as_newlines():
    html = "<h1>Acme</h1><p>We build robots.</p><ul><li>Fast</li><li>Cheap</li></ul>"

    text = html_to_text(html)

    assert text.splitlines() == ["Acme", "We build robots.", "Fast", "Cheap"]


def test_html_to_text_decodes_common_entities():
    html = "<p>R&amp;D &lt;fast&gt; &quot;quoted&quot; it&#039;s&nbsp;here</p>"

    assert html_to_text(html) == "R&D <fast> \"quoted\" it's here"


def test_html_to_text_does_not_double_decode_ampersand_entities():
    assert html_to_text("<p>&amp;lt;tag&amp;gt;</p>") == "&lt;tag&gt;"


def test_html_to_text_drops_comments_and_handles_uppercase_tags():
    html = "<DIV>Intro</DIV><!-- tracking pixel --><SCRIPT>alert(1)</SCRIPT><P>Body</P>"

    assert html_to_text(html) == "Intro\nBody"


def test_html_to_text_collapses_whitespace_and_blank_lines():
    html = "<div>one   \t two</div>\n\n\n\n<div>three</div>"

    assert html_to_text(html) == "one two\n\nthree"


def test_plain_text_passes_through_apart_from_whitespace():
    plain = "Acme builds robots for warehouses.\nThey sell to 3PL operators."

    assert html_to_text(plain) == plain
    assert html_to_text(f"  {plain}  ") == plain


def test_html_to_text_truncates_to_page_ceiling():
    text = html_to_text("<p>" + "x" * (MAX_CHARS_PER_PAGE * 2) + "</p>")

    assert len(text) == MAX_CHARS_PER_PAGE
    assert len(html_to_text("y" * 500, max_chars=100)) == 100


@pytest.mark.parametrize(
    "text",
    [
        "Checking your browser before accessing acme.example. Cloudflare Ray ID: 123",
        "Just a moment...",
        "Please enable JavaScript and cookies to continue",
        "403 Forbidden nginx",
    ],
)
def test_block_pages_are_detected(text):
    assert is_blocked_page(text) is True


def test_long_page_mentioning_403_forbidden_is_not_blocked():
    text = "Our docs explain how to handle a 403 Forbidden response. " + "More content. " * 50

    assert len(text) >= 500
    assert is_blocked_page(text) is False


def test_checking_browser_without_cloudflare_is_not_blocked():
    assert is_blocked_page("We are checking your browser compatibility list.") is False


def test_extract_page_returns_clean_text_for_html():
    body = "Acme builds autonomous picking robots for mid-market warehouses and 3PLs."
    response = httpx.Response(200, html=html_page(body))

    page = extract_page(PAGE_URL, response)

    assert page is not None
    assert page.url == PAGE_URL
    assert body in page.text
    assert "tracking" not in page.text


def test_extract_page_rejects_non_html_content():
    response = httpx.Response(200, json={"text": "x" * 200})

    assert extract_page(PAGE_URL, response) is None


def test_extract_page_rejects_thin_pages():
    response = httpx.Response(200, html=html_page("Coming soon"))

    assert extract_page(PAGE_URL, response) is None


def test_extract_page_rejects_bot_interstitials():
    response = httpx.Response(
        200,
        html=html_page("Just a moment... we need to verify you are human before continuing."),
    )

    assert extract_page(PAGE_URL, response) is None
