"""Fetches regulatory documents so the parsing flow works from real text."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

USER_AGENT = "RegQ-Assistant/1.0"

# eCFR renders the regulation body inside one of these containers
_CONTENT_SELECTORS = ("div#content", "div.section", "main", "article")


@dataclass
class FetchedDocument:
    """Result of fetching a document URL."""
    url: str
    title: Optional[str]
    content: str
    success: bool
    error: Optional[str] = None


def extract_text(html: str) -> tuple[Optional[str], str]:
    """Return the page title and its main text with scripts and navigation removed."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "header", "footer", "noscript"]):
        tag.decompose()

    title = soup.title.get_text(strip=True) if soup.title else None

    body = None
    for selector in _CONTENT_SELECTORS:
        body = soup.select_one(selector)
        if body is not None:
            break
    if body is None:
        body = soup.body or soup

    text = body.get_text("\n", strip=True)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return title or None, text


class DocumentFetcher:
    def __init__(self, timeout: float = 20.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._timeout = timeout
        self._transport = transport

    async def fetch(self, url: str) -> FetchedDocument:
        """
        Fetch a URL and extract its main text.

        Network and HTTP errors are reported in the result instead of raised.
        """
        logger.info("Fetching document %s", url)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Failed to fetch %s: %s", url, e)
            return FetchedDocument(url=url, title=None, content="", success=False, error=str(e))

        title, content = extract_text(resp.text)
        if not content:
            return FetchedDocument(url=url, title=title, content="", success=False, error="empty document")
        return FetchedDocument(url=url, title=title, content=content, success=True)
