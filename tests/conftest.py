from typing import Any, Callable, Dict, List, Optional, Union

import pytest
from sqlalchemy.orm import sessionmaker

from core.config import Settings
from database import Base, create_db_engine
from repository import CourseRepository
from schemas.course import StoredCourse
from services.llm_providers import LLMError
from services.rate_limiter import MinIntervalRateLimiter

Reply = Union[str, Exception]


class FakeLLM:
    """Scripted LLM: replies are consumed in order, the last one repeats."""

    name = "fake"

    def __init__(self, replies: Union[List[Reply], Callable[[str], Reply]]):
        self._replies = replies
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if callable(self._replies):
            reply = self._replies(prompt)
        else:
            index = min(len(self.prompts) - 1, len(self._replies) - 1)
            reply = self._replies[index]
        if isinstance(reply, Exception):
            raise reply
        return reply


class RecordingLimiter(MinIntervalRateLimiter):
    """Counts acquisitions without sleeping."""

    def __init__(self):
        super().__init__(0)
        self.calls = 0

    async def acquire(self) -> float:
        self.calls += 1
        return 0.0


class InMemoryCourseStore:
    def __init__(self):
        self.courses: Dict[str, StoredCourse] = {}
        self.writes = 0

    def get_by_topic(self, topic: str) -> Optional[StoredCourse]:
        return self.courses.get(topic)

    def upsert_by_topic(self, topic: str, links: List[str], outline: Optional[Dict[str, Any]]) -> StoredCourse:
        self.writes += 1
        existing = self.courses.get(topic)
        course = StoredCourse(
            topic=topic,
            links=list(links),
            outline=outline,
            created_at=existing.created_at if existing else "2024-01-01T00:00:00+00:00",
        )
        self.courses[topic] = course
        return course


class FailingSearchProvider:
    name = "broken"
    live = True

    async def search(self, query: str, limit: int):
        raise ConnectionError("search backend unreachable")


class StubFetcher:
    """Content fetcher double: returns canned text for known urls, None otherwise."""

    def __init__(self, pages: Optional[Dict[str, str]] = None):
        self.pages = pages or {}
        self.requested: List[str] = []

    async def fetch_many(self, urls):
        from schemas.api import ScrapedContent

        out = {}
        for url in urls:
            self.requested.append(url)
            text = self.pages.get(url)
            out[url] = ScrapedContent(source_url=url, text=text) if text else None
        return out


SYLLABUS_JSON = """{
    "courseTitle": "Python Programming Fundamentals",
    "description": "Learn Python from scratch.",
    "learningObjectives": ["Write Python scripts", "Use core data structures"],
    "prerequisites": ["Basic computer skills"],
    "moduleTopics": [
        {"title": "Getting Started", "description": "Install Python and run code"},
        {"title": "Data Structures", "description": "Lists, dicts and sets"}
    ]
}"""

DETAIL_JSON = """Here is the module:
```json
{
    "overview": "An overview of the module.",
    "objectives": ["Objective one"],
    "keyConcepts": ["Concept A", "Concept B"],
    "learningSections": [{"title": "Section 1", "content": "Body text"}],
    "estimatedTime": "2 hours"
}
```"""

EXERCISES_JSON = """{
    "exercises": [{"title": "Write a script", "description": "Print hello world", "difficulty": "beginner"}],
    "quiz": [{"question": "What is a list?", "options": ["A", "B"], "answer": "A", "explanation": "Because"}]
}"""


def scripted_course_reply(prompt: str) -> str:
    if "syllabus" in prompt:
        return SYLLABUS_JSON
    if "practice material" in prompt:
        return EXERCISES_JSON
    if "Pick the single most authoritative" in prompt:
        return '{"mostAuthenticSource": 2, "reason": "Official documentation"}'
    return DETAIL_JSON


@pytest.fixture
def settings() -> Settings:
    return Settings(
        search_provider="mock",
        llm_call_interval_ms=0,
        max_modules=3,
        enable_persistence=True,
        database_url="sqlite://",
    )


@pytest.fixture
def db_session():
    engine = create_db_engine("sqlite://")
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def sql_repository(db_session) -> CourseRepository:
    return CourseRepository(db_session)


@pytest.fixture
def network_error() -> LLMError:
    return LLMError("gemini API call failed: Cannot connect to host")
