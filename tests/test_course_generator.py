import logging

import pytest

from schemas.api import SearchResult
from schemas.course import CourseModule, CourseOutline
from services.course_generator import (
    CourseGenerator,
    build_fallback_outline,
    build_source_context,
    heuristic_most_authentic,
)
from services.response_normalizer import Tier
from tests.conftest import FakeLLM, RecordingLimiter, scripted_course_reply

OUTLINE_KEYS = {"courseTitle", "description", "learningObjectives", "prerequisites", "modules"}


def _sources():
    return [
        SearchResult(title="Python Docs", url="https://docs.python.org/3/", snippet="Official docs", content="Python is a language."),
        SearchResult(title="Real Python", url="https://realpython.com/", snippet="Tutorials"),
    ]


@pytest.mark.asyncio
async def test_full_chain_with_json_replies():
    llm = FakeLLM(scripted_course_reply)
    limiter = RecordingLimiter()
    generator = CourseGenerator(llm, rate_limiter=limiter, max_modules=5)

    result = await generator.generate("python", _sources())
    outline = result.outline

    assert outline.course_title == "Python Programming Fundamentals"
    assert [m.title for m in outline.modules] == ["Getting Started", "Data Structures"]
    module = outline.modules[0]
    assert module.key_concepts == ["Concept A", "Concept B"]
    assert module.learning_sections[0].content == "Body text"
    assert module.exercises[0].title == "Write a script"
    assert module.quiz[0].answer == "A"
    assert module.estimated_time == "2 hours"
    # syllabus + (detail + exercises) per module, all paced
    assert len(llm.prompts) == 5
    assert limiter.calls == 5
    assert not result.used_fallback
    assert Tier.EMBEDDED in result.tiers


@pytest.mark.asyncio
async def test_source_text_is_folded_into_prompts():
    llm = FakeLLM(scripted_course_reply)
    await CourseGenerator(llm, rate_limiter=RecordingLimiter()).generate("python", _sources())
    assert "Python is a language." in llm.prompts[0]
    assert "Tutorials" in llm.prompts[0]


@pytest.mark.asyncio
async def test_network_error_mid_chain_still_returns_complete_outline(network_error):
    replies = [
        '{"courseTitle": "Go Course", "moduleTopics": ["Basics", "Concurrency"]}',
        network_error,
    ]
    llm = FakeLLM(replies)
    result = await CourseGenerator(llm, rate_limiter=RecordingLimiter()).generate("go")

    document = result.outline.to_document()
    assert OUTLINE_KEYS <= set(document)
    assert result.used_fallback
    assert result.error_message and "Cannot connect" in result.error_message
    assert [m["title"] for m in document["modules"]] == ["Basics", "Concurrency"]
    # canned content fills the failed stages
    assert document["modules"][0]["learningSections"]
    assert document["modules"][0]["exercises"]


@pytest.mark.asyncio
async def test_total_outage_uses_canned_syllabus(network_error):
    llm = FakeLLM([network_error])
    result = await CourseGenerator(llm, rate_limiter=RecordingLimiter(), max_modules=3).generate("Docker")

    assert result.outline.course_title == "Learning Docker"
    assert len(result.outline.modules) == 3
    assert all(t == Tier.CANNED for t in result.tiers)


@pytest.mark.asyncio
async def test_prose_syllabus_is_parsed_heuristically():
    def reply(prompt):
        if "syllabus" in prompt:
            return "Course Title: SQL Basics\n\nModule 1: Selecting Data\nModule 2: Joins\n"
        return "Not JSON at all."

    result = await CourseGenerator(FakeLLM(reply), rate_limiter=RecordingLimiter()).generate("sql")
    assert result.outline.course_title == "SQL Basics"
    assert [m.title for m in result.outline.modules] == ["Selecting Data", "Joins"]
    assert result.tiers[0] == Tier.HEURISTIC


@pytest.mark.asyncio
async def test_module_count_is_capped():
    topics = ", ".join(f'"Module {i}"' for i in range(10))
    llm = FakeLLM([f'{{"courseTitle": "Big", "moduleTopics": [{topics}]}}', "{}"])
    result = await CourseGenerator(llm, rate_limiter=RecordingLimiter(), max_modules=2).generate("big")
    assert len(result.outline.modules) == 2


@pytest.mark.asyncio
async def test_pick_most_authentic_uses_llm_choice():
    generator = CourseGenerator(FakeLLM(scripted_course_reply), rate_limiter=RecordingLimiter())
    chosen = await generator.pick_most_authentic("python", _sources())
    assert chosen.url == "https://realpython.com/"
    assert chosen.reason == "Official documentation"


@pytest.mark.asyncio
async def test_pick_most_authentic_falls_back_to_first_source(network_error):
    generator = CourseGenerator(FakeLLM([network_error]), rate_limiter=RecordingLimiter())
    chosen = await generator.pick_most_authentic("python", _sources())
    assert chosen.url == "https://docs.python.org/3/"


def test_fallback_outline_has_canonical_shape():
    outline = build_fallback_outline("Kotlin")
    document = outline.to_document()
    assert OUTLINE_KEYS <= set(document)
    assert document["courseTitle"] == "Learning Kotlin"
    module_keys = {"title", "description", "objectives", "keyConcepts", "learningSections", "exercises", "quiz", "estimatedTime"}
    assert module_keys <= set(document["modules"][0])


def test_source_context_prefers_page_text_and_is_capped():
    context = build_source_context(_sources(), max_chars=60)
    assert context.startswith("Source 1: Python Docs")
    assert len(context) == 60


def test_heuristic_most_authentic_picks_highest_score():
    sources = _sources()
    sources[0].score, sources[1].score = 1.0, 3.0
    assert heuristic_most_authentic(sources).url == "https://realpython.com/"
    assert heuristic_most_authentic([]) is None


def test_lenient_module_validation():
    module = CourseModule.model_validate({
        "title": "Loops",
        "objectives": "Use for loops\nUse while loops",
        "keyConcepts": [{"name": "iteration"}, "range"],
        "learningSections": ["Loops repeat code."],
        "exercises": ["Sum numbers 1..10"],
        "quiz": ["What does break do?"],
        "estimatedTime": 2,
    })
    assert module.objectives == ["Use for loops", "Use while loops"]
    assert module.key_concepts == ["iteration", "range"]
    assert module.learning_sections[0].title == "Section 1"
    assert module.exercises[0].description == "Sum numbers 1..10"
    assert module.quiz[0].question == "What does break do?"
    assert module.estimated_time == "2 hours"
    assert CourseOutline.model_validate({"modules": None}).modules == []


@pytest.mark.asyncio
async def test_generation_logs_at_info_with_module_title(caplog):
    caplog.set_level(logging.INFO)
    result = await CourseGenerator(FakeLLM(scripted_course_reply), rate_limiter=RecordingLimiter()).generate("python")

    assert not result.errors
    titles = [r.module_title for r in caplog.records if hasattr(r, "module_title")]
    assert titles == ["Getting Started", "Data Structures"]
