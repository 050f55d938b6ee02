"""
Course Generator - runs the prompt chain (syllabus, module detail, exercises/quiz).

Every LLM response goes through services.response_normalizer, so a failed call or an
unparseable answer degrades to heuristic or canned content instead of failing the request.
Calls are sequential and paced by a MinIntervalRateLimiter.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from schemas.api import AuthenticSource, SearchResult
from schemas.course import CourseModule, CourseOutline, as_string_list
from services import prompts
from services.llm_providers import LLMProvider
from services.rate_limiter import MinIntervalRateLimiter
from services.response_normalizer import (
    Parser,
    Tier,
    make_source_choice_parser,
    normalize,
    parse_exercises_text,
    parse_module_detail_text,
    parse_syllabus_text,
)

logger = logging.getLogger("course_generator")


def fallback_module_topics(topic: str) -> List[Dict[str, str]]:
    return [
        {"title": f"Introduction to {topic}", "description": f"What {topic} is, why it matters and the core vocabulary."},
        {"title": f"Core Concepts of {topic}", "description": f"The essential building blocks of {topic}."},
        {"title": f"Practical {topic}", "description": f"Applying {topic} through guided, hands-on work."},
        {"title": f"Advanced {topic} and Next Steps", "description": f"Deeper topics, best practices and where to go next."},
    ]


def fallback_syllabus(topic: str) -> Dict[str, Any]:
    return {
        "courseTitle": f"Learning {topic}",
        "description": f"A structured introduction to {topic}, from fundamentals to practical application.",
        "learningObjectives": [
            f"Explain the fundamental concepts of {topic}",
            f"Apply {topic} to simple practical problems",
            f"Identify resources for continued learning in {topic}",
        ],
        "prerequisites": ["Curiosity and basic computer literacy"],
        "moduleTopics": fallback_module_topics(topic),
    }


def fallback_module_detail(module_title: str) -> Dict[str, Any]:
    return {
        "overview": f"This module covers {module_title}.",
        "objectives": [f"Understand the main ideas of {module_title}", f"Practice {module_title} with examples"],
        "keyConcepts": [module_title],
        "learningSections": [
            {"title": "Overview", "content": f"An introduction to {module_title} and how it fits into the course."},
            {"title": "Key Ideas", "content": f"The central concepts of {module_title}, explained step by step."},
            {"title": "Worked Example", "content": f"A short walkthrough applying {module_title}."},
        ],
        "estimatedTime": "1-2 hours",
    }


def fallback_exercises(module_title: str) -> Dict[str, Any]:
    return {
        "exercises": [
            {
                "title": f"Summarize {module_title}",
                "description": f"Write a short summary of the key ideas in {module_title} in your own words.",
                "difficulty": "beginner",
            },
            {
                "title": f"Apply {module_title}",
                "description": f"Complete a small practical task that uses {module_title}.",
                "difficulty": "intermediate",
            },
        ],
        "quiz": [
            {
                "question": f"Which statement best describes the purpose of {module_title}?",
                "options": [],
                "answer": "",
                "explanation": "Review the module overview to check your answer.",
            }
        ],
    }


def _module_topics(syllabus: Dict[str, Any]) -> List[Dict[str, str]]:
    raw = syllabus.get("moduleTopics") or syllabus.get("modules") or []
    if isinstance(raw, (str, dict)):
        raw = [raw]
    topics = []
    for item in raw:
        if isinstance(item, dict):
            title = item.get("title") or item.get("name") or ""
            description = item.get("description") or ""
        else:
            title, description = str(item), ""
        if title and str(title).strip():
            topics.append({"title": str(title).strip(), "description": str(description)})
    return topics


def build_module(topic: Dict[str, str], detail: Dict[str, Any], practice: Dict[str, Any]) -> CourseModule:
    sections = detail.get("learningSections") or []
    if not isinstance(sections, list):
        sections = [sections]
    data = {
        "title": topic["title"],
        "description": topic.get("description") or detail.get("overview", ""),
        "objectives": detail.get("objectives"),
        "keyConcepts": detail.get("keyConcepts") or [s.get("title", "") for s in sections if isinstance(s, dict)],
        "learningSections": sections,
        "exercises": practice.get("exercises"),
        "quiz": practice.get("quiz"),
        "estimatedTime": detail.get("estimatedTime"),
    }
    return CourseModule.model_validate(data)


def build_fallback_outline(topic: str) -> CourseOutline:
    """Complete canned outline, built without any LLM call."""
    syllabus = fallback_syllabus(topic)
    modules = [
        build_module(t, fallback_module_detail(t["title"]), fallback_exercises(t["title"]))
        for t in syllabus["moduleTopics"]
    ]
    return CourseOutline.model_validate({**syllabus, "modules": [m.model_dump(by_alias=True) for m in modules]})


def build_source_context(sources: Sequence[SearchResult], max_chars: int) -> str:
    """Aggregate source text for prompts, preferring fetched page text over snippets."""
    parts = []
    for i, source in enumerate(sources, start=1):
        body = source.content or source.snippet or ""
        parts.append(f"Source {i}: {source.title} ({source.url})\n{body}".strip())
    context = "\n\n".join(parts)
    return context[:max_chars] if max_chars > 0 else context


@dataclass
class GenerationResult:
    outline: CourseOutline
    errors: List[str] = field(default_factory=list)
    tiers: List[Tier] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return bool(self.errors) or any(t == Tier.CANNED for t in self.tiers)

    @property
    def error_message(self) -> Optional[str]:
        return "; ".join(self.errors) if self.errors else None


class CourseGenerator:
    """Generates a complete course outline from a topic and its collected sources."""

    def __init__(
        self,
        llm: LLMProvider,
        rate_limiter: Optional[MinIntervalRateLimiter] = None,
        max_modules: int = 5,
        context_chars: int = 6000,
    ):
        self.llm = llm
        self.rate_limiter = rate_limiter or MinIntervalRateLimiter(0.6)
        self.max_modules = max(1, max_modules)
        self.context_chars = context_chars

    async def _ask(
        self,
        prompt: str,
        label: str,
        heuristic: Parser,
        fallback,
        result: GenerationResult,
    ) -> Dict[str, Any]:
        await self.rate_limiter.acquire()
        text = ""
        try:
            text = await self.llm.generate(prompt)
        except Exception as e:
            logger.error(f"LLM call for {label} failed: {e}", extra={"provider": self.llm.name, "error_type": type(e).__name__})
            result.errors.append(f"{label}: {e}")
        normalized = normalize(text, heuristic=heuristic, fallback=fallback, label=label)
        result.tiers.append(normalized.tier)
        return normalized.data

    async def generate(self, topic: str, sources: Sequence[SearchResult] = ()) -> GenerationResult:
        """Run the full chain. Never raises on LLM or parsing failures."""
        result = GenerationResult(outline=CourseOutline())
        context = build_source_context(sources, self.context_chars)

        logger.info("Generating syllabus", extra={"topic": topic, "provider": self.llm.name})
        syllabus = await self._ask(
            prompts.build_syllabus_prompt(topic, context, self.max_modules),
            "syllabus",
            parse_syllabus_text,
            lambda: fallback_syllabus(topic),
            result,
        )
        module_topics = _module_topics(syllabus) or fallback_module_topics(topic)
        module_topics = module_topics[:self.max_modules]
        course_title = str(syllabus.get("courseTitle") or f"Learning {topic}")

        modules = []
        for index, module_topic in enumerate(module_topics, start=1):
            title = module_topic["title"]
            logger.info(f"Generating module {index}/{len(module_topics)}: {title}", extra={"module_title": title})
            detail = await self._ask(
                prompts.build_module_detail_prompt(topic, course_title, module_topic, context),
                f"module {index} detail",
                parse_module_detail_text,
                lambda: fallback_module_detail(title),
                result,
            )
            practice = await self._ask(
                prompts.build_exercises_prompt(topic, title, detail),
                f"module {index} exercises",
                parse_exercises_text,
                lambda: fallback_exercises(title),
                result,
            )
            modules.append(build_module(module_topic, detail, practice))

        defaults = fallback_syllabus(topic)
        result.outline = CourseOutline(
            course_title=course_title,
            description=str(syllabus.get("description") or defaults["description"]),
            learning_objectives=as_string_list(syllabus.get("learningObjectives")) or defaults["learningObjectives"],
            prerequisites=as_string_list(syllabus.get("prerequisites")),
            modules=modules,
        )
        logger.info(
            f"Course generated with {len(modules)} modules",
            extra={"topic": topic, "count": len(modules), "fallback": result.used_fallback},
        )
        return result

    async def pick_most_authentic(
        self,
        topic: str,
        sources: Sequence[SearchResult],
        result: Optional[GenerationResult] = None,
    ) -> Optional[AuthenticSource]:
        """Ask the LLM for the most authoritative source; falls back to the best heuristic score."""
        if not sources:
            return None
        prompt = prompts.build_authenticity_prompt(topic, [s.model_dump() for s in sources])
        result = result or GenerationResult(outline=CourseOutline())
        data = await self._ask(
            prompt,
            "authenticity",
            make_source_choice_parser(len(sources)),
            lambda: {"mostAuthenticSource": 1, "reason": "Highest heuristic authenticity score"},
            result,
        )
        try:
            index = int(data.get("mostAuthenticSource", 1))
        except (TypeError, ValueError):
            index = 1
        if not 1 <= index <= len(sources):
            index = 1
        chosen = sources[index - 1]
        return AuthenticSource(**chosen.model_dump(), reason=str(data.get("reason", "")))


def heuristic_most_authentic(sources: Sequence[SearchResult]) -> Optional[AuthenticSource]:
    """Highest-scored source without asking an LLM (sources are expected to be sorted by score)."""
    if not sources:
        return None
    best = max(sources, key=lambda s: s.score or 0.0)
    return AuthenticSource(**best.model_dump(), reason="Highest heuristic authenticity score")
