"""Fetch a web page and extract its readable text."""
from __future__ import annotations

import logging
from typing import List

import httpx
from bs4 import BeautifulSoup, Tag

from ..core.config import settings

logger = logging.getLogger(__name__)

CONTENT_SELECTORS = (
    "article",
    "main",
    "div[role='main']",
    "div.content",
    "div.post-content",
    "div.entry-content",
    "body",
)
TEXT_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6", "p", "li", "span")
HTML_TYPES = {"text/html", "application/xhtml+xml"}


class ScrapeError(Exception):
    """The page could not be fetched or is not HTML."""


def extract_text(html: str) -> str:
    """Return the text of headings, paragraphs, list items and spans, one per line.

    Only the first matching content block is searched; elements nested inside
    another text element are covered by their parent and skipped.
    """

    soup = BeautifulSoup(html, "html.parser")
    root: Tag = soup
    for selector in CONTENT_SELECTORS:
        block = soup.select_one(selector)
        if block is not None:
            logger.debug("Using content block %s", selector)
            root = block
            break

    parts: List[str] = []
    for element in root.find_all(TEXT_TAGS):
        if _nested_in_text_tag(element, root):
            continue
        text = " ".join(element.get_text(" ", strip=True).split())
        if text:
            parts.append(text)
    return "\n".join(parts)


def _nested_in_text_tag(element: Tag, root: Tag) -> bool:
    for parent in element.parents:
        if parent is root:
            return False
        if parent.name in TEXT_TAGS:
            return True
    return False


async def scrape_url(url: str, *, client: httpx.AsyncClient | None = None) -> str:
    """Download ``url`` and return its extracted text (possibly empty)."""

    headers = {"User-Agent": settings.SCRAPER_USER_AGENT, "Accept": "text/html"}
    timeout = httpx.Timeout(settings.SCRAPER_TIMEOUT, connect=min(settings.SCRAPER_TIMEOUT, 10.0))

    try:
        if client is None:
            async with httpx.AsyncClient(
                timeout=timeout, headers=headers, follow_redirects=True
            ) as owned_client:
                response = await owned_client.get(url)
        else:
            response = await client.get(url, headers=headers)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise ScrapeError(f"failed to fetch {url}: {exc}") from exc

    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type and content_type not in HTML_TYPES:
        raise ScrapeError(f"unsupported content type {content_type!r} at {url}")

    text = extract_text(response.text)
    if not text:
        logger.warning("No text extracted from %s", url)
    else:
        logger.info("Extracted %d characters from %s", len(text), url)
    return text
