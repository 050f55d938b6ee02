"""
Search collection for a topic.

Providers:
- Google Custom Search JSON API (needs engine id + API key)
- DuckDuckGo HTML endpoint, parsed with BeautifulSoup
- A curated mock list used when no search credentials are configured

The collector expands the topic with course-oriented keywords for live providers, merges and
de-duplicates by url, optionally scores results with a static authenticity heuristic, and never
fails the request: provider errors are reported as a fallback outcome.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from urllib.parse import parse_qs, quote, urlparse

import aiohttp
from bs4 import BeautifulSoup

from core.config import Settings, get_settings
from schemas.api import SearchResult
from services.content_fetcher import DEFAULT_USER_AGENT

logger = logging.getLogger("search_collector")

TRUSTED_SUFFIXES = (".edu", ".org", ".gov")
DEVELOPER_DOMAINS = ("github.com", "stackoverflow.com")


class SearchProviderError(Exception):
    pass


class SearchProvider(ABC):
    name: str = ""
    # Live providers get keyword-expanded queries; the mock list does not
    live: bool = True

    @abstractmethod
    async def search(self, query: str, limit: int) -> List[SearchResult]:
        """Return up to `limit` results for a query. Raise SearchProviderError on failure."""


class GoogleCustomSearchProvider(SearchProvider):
    name = "google"
    endpoint = "https://www.googleapis.com/customsearch/v1"

    def __init__(self, api_key: str, engine_id: str, timeout: int = 10):
        self.api_key = api_key
        self.engine_id = engine_id
        self.timeout = timeout

    async def search(self, query: str, limit: int) -> List[SearchResult]:
        params = {"key": self.api_key, "cx": self.engine_id, "q": query, "num": str(min(max(limit, 1), 10))}
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.endpoint, params=params) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise SearchProviderError(f"Google search error {response.status}: {error_text[:200]}")
                    payload = await response.json(content_type=None)
        except SearchProviderError:
            raise
        except Exception as e:
            raise SearchProviderError(f"Google search failed: {e}") from e

        results = []
        for item in payload.get("items", [])[:limit]:
            url = item.get("link")
            if not url:
                continue
            results.append(SearchResult(
                title=item.get("title", url),
                url=url,
                snippet=item.get("snippet", ""),
                domain=item.get("displayLink", ""),
            ))
        return results


def _unwrap_duckduckgo_url(href: str) -> str:
    """DuckDuckGo wraps result links as //duckduckgo.com/l/?uddg=<target>."""
    if href.startswith("//"):
        href = "https:" + href
    parsed = urlparse(href)
    if "duckduckgo.com" in parsed.netloc and parsed.path.startswith("/l/"):
        target = parse_qs(parsed.query).get("uddg")
        if target:
            return target[0]
    return href


def parse_duckduckgo_html(html: str, limit: int) -> List[SearchResult]:
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for block in soup.select(".result"):
        if "result--ad" in (block.get("class") or []):
            continue
        anchor = block.select_one("a.result__a")
        if anchor is None or not anchor.get("href"):
            continue
        url = _unwrap_duckduckgo_url(anchor["href"])
        if not url.startswith("http"):
            continue
        snippet_el = block.select_one(".result__snippet")
        results.append(SearchResult(
            title=anchor.get_text(" ", strip=True),
            url=url,
            snippet=snippet_el.get_text(" ", strip=True) if snippet_el else "",
        ))
        if len(results) >= limit:
            break
    return results


class DuckDuckGoProvider(SearchProvider):
    name = "duckduckgo"
    endpoint = "https://html.duckduckgo.com/html/"

    def __init__(self, timeout: int = 10):
        self.timeout = timeout

    async def search(self, query: str, limit: int) -> List[SearchResult]:
        headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept": "text/html"}
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.endpoint, params={"q": query}, headers=headers) as response:
                    if response.status != 200:
                        raise SearchProviderError(f"DuckDuckGo returned HTTP {response.status}")
                    html = await response.text()
        except SearchProviderError:
            raise
        except Exception as e:
            raise SearchProviderError(f"DuckDuckGo search failed: {e}") from e
        return parse_duckduckgo_html(html, limit)


class MockSearchProvider(SearchProvider):
    """Curated resource list, no network access."""

    name = "mock"
    live = False

    async def search(self, query: str, limit: int) -> List[SearchResult]:
        slug = quote(query.strip().lower().replace(" ", "-"))
        curated = [
            SearchResult(
                title=f"{query} - Complete Tutorial",
                url=f"https://example.com/{slug}-tutorial",
                snippet=f"Learn {query} from beginner to advanced with practical examples and exercises.",
            ),
            SearchResult(
                title=f"{query} Documentation",
                url=f"https://docs.example.com/{slug}",
                snippet=f"Official documentation and API reference for {query}.",
            ),
            SearchResult(
                title=f"{query} Video Course",
                url=f"https://youtube.com/watch?v={slug}-course",
                snippet=f"Video course covering {query} with practical demonstrations.",
            ),
            SearchResult(
                title=f"{query} Practice Exercises",
                url=f"https://practice.example.com/{slug}",
                snippet=f"Hands-on exercises to practice {query} concepts.",
            ),
        ]
        return curated[:limit]


def create_search_provider(settings: Settings) -> SearchProvider:
    name = settings.search_provider
    if name == "auto":
        name = "google" if settings.google_search_configured else "mock"
    if name == "google":
        if not settings.google_search_configured:
            logger.warning("Google search selected but credentials are missing; using DuckDuckGo")
            return DuckDuckGoProvider(timeout=settings.search_timeout)
        return GoogleCustomSearchProvider(
            api_key=settings.google_search_api_key,
            engine_id=settings.google_search_engine_id,
            timeout=settings.search_timeout,
        )
    if name == "duckduckgo":
        return DuckDuckGoProvider(timeout=settings.search_timeout)
    if name != "mock":
        logger.warning(f"Unknown search provider {name!r}; using the curated mock list")
    return MockSearchProvider()


def score_result(result: SearchResult, topic: str) -> float:
    """Static authenticity heuristic: trusted suffix > developer site > keyword match."""
    score = 0.0
    domain = result.domain.lower()
    if domain.endswith(TRUSTED_SUFFIXES):
        score += 3.0
    elif any(domain == d or domain.endswith("." + d) for d in DEVELOPER_DOMAINS):
        score += 2.0
    keyword = topic.lower().strip()
    if keyword and keyword in result.title.lower():
        score += 0.5
    if keyword and keyword in result.snippet.lower():
        score += 0.5
    return score


def build_fallback_content(topic: str) -> str:
    """Deterministic generic outline used when no search results are available."""
    return (
        f"Learning path for {topic}\n\n"
        f"1. Introduction to {topic}: what it is, where it is used and the core vocabulary.\n"
        f"2. Fundamentals of {topic}: the essential concepts, explained with simple examples.\n"
        f"3. Practical {topic}: guided exercises and a small hands-on project.\n"
        f"4. Going further with {topic}: advanced topics, best practices and community resources.\n\n"
        f"Search results are currently unavailable; this is a generic outline for {topic}."
    )


def build_results_content(results: Sequence[SearchResult]) -> str:
    blocks = []
    for i, result in enumerate(results, start=1):
        blocks.append(f"Source {i}: {result.title}\n{result.url}\n{result.snippet}".strip())
    return "\n\n".join(blocks)


@dataclass
class SearchOutcome:
    results: List[SearchResult] = field(default_factory=list)
    candidates: List[SearchResult] = field(default_factory=list)
    fallback: bool = False
    error: Optional[str] = None
    provider: str = ""

    @property
    def count(self) -> int:
        return len(self.results)


class SearchCollector:
    """Runs provider queries for a topic and shapes them into a small ranked list."""

    def __init__(
        self,
        provider: SearchProvider,
        max_results: int = 8,
        top_n: int = 5,
        query_suffixes: Sequence[str] = ("tutorial", "course curriculum"),
    ):
        self.provider = provider
        self.max_results = max(1, max_results)
        self.top_n = max(1, top_n)
        self.query_suffixes = list(query_suffixes)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SearchCollector":
        return cls(
            provider=create_search_provider(settings),
            max_results=min(max(settings.search_max_results, 5), 8),
            top_n=settings.search_top_n,
            query_suffixes=settings.search_query_suffixes,
        )

    def build_queries(self, topic: str) -> List[str]:
        queries = [topic]
        if self.provider.live:
            queries.extend(f"{topic} {suffix}" for suffix in self.query_suffixes)
        return queries

    async def collect(self, topic: str, evaluate_authenticity: bool = False) -> SearchOutcome:
        merged: Dict[str, SearchResult] = {}
        try:
            for query in self.build_queries(topic):
                for result in await self.provider.search(query, self.max_results):
                    merged.setdefault(result.dedupe_key, result)
                if len(merged) >= self.max_results:
                    break
        except Exception as e:
            logger.warning(
                f"Search provider {self.provider.name} failed: {e}",
                extra={"topic": topic, "provider": self.provider.name, "error_type": type(e).__name__},
            )
            return SearchOutcome(fallback=True, error=str(e), provider=self.provider.name)

        results = list(merged.values())[:self.max_results]
        if not results:
            logger.warning("Search returned no results", extra={"topic": topic, "provider": self.provider.name})
            return SearchOutcome(fallback=True, error="No search results found", provider=self.provider.name)

        candidates: List[SearchResult] = []
        if evaluate_authenticity:
            for result in results:
                result.score = score_result(result, topic)
            results.sort(key=lambda r: r.score or 0.0, reverse=True)
            candidates = list(results)
            results = results[:self.top_n]

        logger.info(
            f"Collected {len(results)} search results",
            extra={"topic": topic, "provider": self.provider.name, "count": len(results)},
        )
        return SearchOutcome(results=results, candidates=candidates, provider=self.provider.name)


def get_search_collector() -> SearchCollector:
    """FastAPI dependency (overridden in tests)."""
    return SearchCollector.from_settings(get_settings())
