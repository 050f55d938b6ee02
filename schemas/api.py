"""
API contract schemas for the scrape and AI processing endpoints.

Notes:
- Request and response bodies use camelCase on the wire (the React client predates this backend),
  Python code uses snake_case attributes via the alias generator.
- `topic` is optional at the schema level so that a missing topic yields the same 400 message
  as an empty one instead of a generic validation error.
- Search results and scraped content are ephemeral; only urls and the outline are persisted.
"""
from __future__ import annotations

from typing import List, Literal, Optional
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .course import CourseOutline

LLMProviderName = Literal["gemini", "groq", "openai"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def domain_of(url: str) -> str:
    host = urlparse(url).netloc.lower()
    if ":" in host:
        host = host.split(":", 1)[0]
    return host[4:] if host.startswith("www.") else host


class SearchResult(_CamelModel):
    title: str
    url: str
    snippet: str = ""
    domain: str = ""
    score: Optional[float] = None
    content: Optional[str] = None
    scraped: bool = False

    def model_post_init(self, __context) -> None:
        if not self.domain and self.url:
            self.domain = domain_of(self.url)

    @property
    def dedupe_key(self) -> str:
        parsed = urlparse(self.url.strip())
        path = parsed.path.rstrip("/")
        key = f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}"
        if parsed.query:
            key += f"?{parsed.query}"
        return key


class AuthenticSource(SearchResult):
    reason: str = ""


class ScrapedContent(_CamelModel):
    source_url: str
    text: str


class ScrapeRequest(_CamelModel):
    topic: Optional[str] = None
    evaluate_authenticity: bool = False
    api_key: Optional[str] = None
    provider: Optional[LLMProviderName] = None
    generate_course: Optional[bool] = None

    @field_validator("topic", "api_key")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        cleaned = v.strip()
        return cleaned or None


class ResourceInput(_CamelModel):
    title: str = ""
    url: str = Field(default="", validation_alias=AliasChoices("url", "link"))
    snippet: str = ""

    def to_search_result(self) -> SearchResult:
        return SearchResult(title=self.title or self.url, url=self.url, snippet=self.snippet)


class AIProcessRequest(_CamelModel):
    topic: Optional[str] = None
    resources: Optional[List[ResourceInput]] = None
    api_key: Optional[str] = None
    provider: Optional[LLMProviderName] = None

    @field_validator("topic", "api_key")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        cleaned = v.strip()
        return cleaned or None


class ScrapeResponse(_CamelModel):
    topic: str
    content: str
    links: List[SearchResult] = Field(default_factory=list)
    count: int = 0
    search_results: Optional[List[SearchResult]] = None
    most_authentic_source: Optional[AuthenticSource] = None
    course_structure: Optional[CourseOutline] = None
    fallback: bool = False
    ai_error: Optional[str] = None
    provider: Optional[str] = None


class AIProcessResponse(_CamelModel):
    topic: str
    course_structure: CourseOutline
    resources_processed: int
    generated_at: str
    ai_error: Optional[str] = None
