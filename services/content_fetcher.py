"""
Page text extraction for search results.

Features:
- Browser-like request headers, optional user-agent rotation via fake-useragent
- Bounded per-request timeout
- Script/style stripping and whitespace collapsing with BeautifulSoup
- Per-URL failure isolation: a failed page yields None and never aborts the batch
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Dict, Iterable, List, Optional

import aiohttp
from bs4 import BeautifulSoup
from fake_useragent import UserAgent

from core.config import Settings, get_settings
from schemas.api import ScrapedContent

logger = logging.getLogger("content_fetcher")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

_STRIP_TAGS = ("script", "style", "noscript", "template", "svg", "iframe")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_WS_RE = re.compile(r"\s+")


def extract_text(html: str, max_chars: int = 2000, max_sentences: int = 20) -> str:
    """Visible text of an HTML document, whitespace collapsed, truncated by sentences then characters."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_STRIP_TAGS):
        tag.decompose()
    root = soup.body or soup
    text = _WS_RE.sub(" ", root.get_text(separator=" ")).strip()
    if not text:
        return ""

    if max_sentences > 0:
        sentences = _SENTENCE_RE.split(text)
        text = " ".join(sentences[:max_sentences])
    if max_chars > 0 and len(text) > max_chars:
        text = text[:max_chars].rstrip()
    return text


class ContentFetcher:
    """Fetches pages and reduces them to plain text."""

    def __init__(
        self,
        timeout: int = 10,
        max_chars: int = 2000,
        max_sentences: int = 20,
        rotate_user_agent: bool = False,
    ):
        self.timeout = timeout
        self.max_chars = max_chars
        self.max_sentences = max_sentences
        self.user_agent = UserAgent() if rotate_user_agent else None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContentFetcher":
        return cls(
            timeout=settings.fetch_timeout,
            max_chars=settings.fetch_max_chars,
            max_sentences=settings.fetch_max_sentences,
            rotate_user_agent=settings.rotate_user_agent,
        )

    def get_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "Connection": "keep-alive",
        }
        headers["User-Agent"] = self.user_agent.random if self.user_agent else DEFAULT_USER_AGENT
        return headers

    async def _get(self, session: aiohttp.ClientSession, url: str) -> Optional[ScrapedContent]:
        try:
            async with session.get(url, headers=self.get_headers()) as response:
                if response.status != 200:
                    logger.warning(f"HTTP {response.status} for {url}", extra={"url": url})
                    return None
                content_type = response.headers.get("Content-Type", "")
                if content_type and "html" not in content_type and "text" not in content_type:
                    logger.info(f"Skipping non-HTML content ({content_type}) at {url}", extra={"url": url})
                    return None
                html = await response.text(errors="replace")
            text = extract_text(html, self.max_chars, self.max_sentences)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out fetching {url}", extra={"url": url})
            return None
        except Exception as e:
            logger.warning(f"Error fetching {url}: {e}", extra={"url": url, "error_type": type(e).__name__})
            return None

        if not text:
            return None
        logger.debug(f"Extracted {len(text)} chars from {url}")
        return ScrapedContent(source_url=url, text=text)

    async def fetch(self, url: str) -> Optional[ScrapedContent]:
        """Fetch one page; returns None on any failure."""
        results = await self.fetch_many([url])
        return results.get(url)

    async def fetch_many(self, urls: Iterable[str]) -> Dict[str, Optional[ScrapedContent]]:
        """Fetch pages concurrently. Every requested url is present in the result, failures map to None."""
        unique: List[str] = list(dict.fromkeys(u for u in urls if u))
        if not unique:
            return {}
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                contents = await asyncio.gather(*(self._get(session, url) for url in unique))
        except Exception as e:
            logger.error(f"Content fetching failed for batch: {e}")
            return {url: None for url in unique}
        fetched = sum(1 for c in contents if c is not None)
        logger.info(f"Fetched content for {fetched}/{len(unique)} sources", extra={"count": fetched})
        return dict(zip(unique, contents))


def get_content_fetcher() -> ContentFetcher:
    """FastAPI dependency (overridden in tests)."""
    return ContentFetcher.from_settings(get_settings())
