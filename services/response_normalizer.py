"""
Normalization of free-text LLM responses into JSON-shaped dictionaries.

Tiers are tried in order and the first one that yields a dict wins:
1. strict JSON parse of the whole response
2. first balanced {...} span embedded in prose or markdown fences
3. a stage-specific heuristic text parser
4. a stage-specific canned fallback, which always succeeds

`normalize` never raises and never returns None; callers can rely on getting a dict.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger("response_normalizer")

Parser = Callable[[str], Optional[Dict[str, Any]]]
FallbackFactory = Callable[[], Dict[str, Any]]

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*")


class Tier(IntEnum):
    STRICT = 1
    EMBEDDED = 2
    HEURISTIC = 3
    CANNED = 4


@dataclass
class NormalizedResponse:
    data: Dict[str, Any]
    tier: Tier

    @property
    def degraded(self) -> bool:
        return self.tier >= Tier.HEURISTIC


def parse_strict(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _balanced_spans(text: str) -> Iterator[str]:
    """Yield every {...} span whose braces balance, skipping braces inside JSON strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    yield text[start:i + 1]
                    break
        start = text.find("{", start + 1)


def parse_embedded(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    cleaned = _FENCE_RE.sub("", text).strip()
    for span in _balanced_spans(cleaned):
        parsed = parse_strict(span)
        if parsed is not None:
            return parsed
    return None


def normalize(
    text: Optional[str],
    heuristic: Optional[Parser] = None,
    fallback: Optional[FallbackFactory] = None,
    label: str = "response",
) -> NormalizedResponse:
    """Run the tiers in order and return the first structure produced."""
    tiers: List[Tuple[Tier, Parser]] = [(Tier.STRICT, parse_strict), (Tier.EMBEDDED, parse_embedded)]
    if heuristic is not None:
        tiers.append((Tier.HEURISTIC, heuristic))

    for tier, parser in tiers:
        try:
            data = parser(text or "")
        except Exception as e:
            logger.warning(f"{label}: tier {tier.name.lower()} parser failed: {e}")
            continue
        if isinstance(data, dict):
            if tier > Tier.STRICT:
                logger.info(f"{label}: normalized at tier {tier.name.lower()}", extra={"tier": int(tier)})
            return NormalizedResponse(data=data, tier=tier)

    logger.warning(f"{label}: no parseable structure, using canned fallback", extra={"tier": int(Tier.CANNED)})
    data: Dict[str, Any] = {}
    if fallback is not None:
        try:
            data = fallback()
        except Exception as e:
            logger.error(f"{label}: canned fallback failed: {e}")
    return NormalizedResponse(data=data if isinstance(data, dict) else {}, tier=Tier.CANNED)


# Heuristic text parsers, one per prompt stage

_MODULE_RE = re.compile(
    r"^\s*(?:[#*]+\s*)?(?:module|week|unit|chapter)\s+(\d+)\s*[:.)\-–—]\s*(.+?)\s*\**\s*$",
    re.IGNORECASE | re.MULTILINE,
)
_TITLE_RE = re.compile(r"^\s*(?:[#*]+\s*)?(?:course\s+)?title\s*[:\-]\s*(.+?)\s*\**\s*$", re.IGNORECASE | re.MULTILINE)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+?)\s*$", re.MULTILINE)
_HEADING_RE = re.compile(r"^\s*(?:#{1,6}\s+(.+?)|\*\*(.+?)\*\*:?)\s*$", re.MULTILINE)
_EXERCISE_RE = re.compile(r"^\s*(?:[#*]+\s*)?exercise\s*(\d+)\s*[:.)\-]\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)
_QUESTION_RE = re.compile(r"^\s*(?:[#*]+\s*)?(?:q|question)\s*(\d+)\s*[:.)\-]\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)
_OPTION_RE = re.compile(r"^\s*\(?([a-dA-D])[.)]\s+(.+?)\s*$", re.MULTILINE)
_ANSWER_RE = re.compile(r"^\s*(?:correct\s+)?answer\s*[:\-]\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)
_SOURCE_RE = re.compile(r"source\s*#?\s*(\d+)", re.IGNORECASE)
_TIME_RE = re.compile(r"(\d+(?:\.\d+)?\s*(?:-\s*\d+\s*)?(?:hours?|hrs?|minutes?|mins?|weeks?|days?))", re.IGNORECASE)


def _paragraphs(text: str) -> List[str]:
    return [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]


def parse_syllabus_text(text: str) -> Optional[Dict[str, Any]]:
    """Best-guess syllabus from prose containing 'Module N: title' style markers."""
    modules = []
    seen = set()
    for _, title in _MODULE_RE.findall(text):
        title = title.strip(" *")
        if title and title.lower() not in seen:
            seen.add(title.lower())
            modules.append({"title": title, "description": ""})
    if not modules:
        return None

    title_match = _TITLE_RE.search(text)
    first_module = _MODULE_RE.search(text)
    preamble = text[:first_module.start()] if first_module else ""
    description = next((p for p in _paragraphs(preamble) if not _TITLE_RE.match(p)), "")
    return {
        "courseTitle": title_match.group(1).strip(" *") if title_match else "",
        "description": description,
        "learningObjectives": [],
        "prerequisites": [],
        "moduleTopics": modules,
    }


def parse_module_detail_text(text: str) -> Optional[Dict[str, Any]]:
    """Best-guess module detail: first paragraph as overview, bullets as objectives, headings as sections."""
    paragraphs = _paragraphs(text)
    if not paragraphs:
        return None

    sections = []
    headings = list(_HEADING_RE.finditer(text))
    for i, match in enumerate(headings):
        end = headings[i + 1].start() if i + 1 < len(headings) else len(text)
        body = text[match.end():end].strip()
        sections.append({"title": (match.group(1) or match.group(2)).strip(), "content": body})
    if not sections:
        sections = [{"title": f"Part {i}", "content": p} for i, p in enumerate(paragraphs[:4], start=1)]

    time_match = _TIME_RE.search(text)
    return {
        "overview": paragraphs[0],
        "objectives": _BULLET_RE.findall(text)[:6],
        "keyConcepts": [s["title"] for s in sections if not s["title"].startswith("Part ")][:6],
        "learningSections": sections,
        "estimatedTime": time_match.group(1) if time_match else "",
    }


def parse_exercises_text(text: str) -> Optional[Dict[str, Any]]:
    """Best-guess exercises and quiz from 'Exercise N:' and 'Q1:' markers."""
    exercises = [
        {"title": f"Exercise {num}", "description": body, "difficulty": "beginner"}
        for num, body in _EXERCISE_RE.findall(text)
    ]

    quiz = []
    questions = list(_QUESTION_RE.finditer(text))
    for i, match in enumerate(questions):
        end = questions[i + 1].start() if i + 1 < len(questions) else len(text)
        block = text[match.end():end]
        answer = _ANSWER_RE.search(block)
        quiz.append({
            "question": match.group(2),
            "options": [opt for _, opt in _OPTION_RE.findall(block)],
            "answer": answer.group(1) if answer else "",
            "explanation": "",
        })

    if not exercises and not quiz:
        return None
    return {"exercises": exercises, "quiz": quiz}


def make_source_choice_parser(source_count: int) -> Parser:
    """Heuristic parser for the authenticity prompt: picks the first in-range 'Source N' mention."""

    def _parse(text: str) -> Optional[Dict[str, Any]]:
        for match in _SOURCE_RE.finditer(text):
            index = int(match.group(1))
            if 1 <= index <= source_count:
                sentence_end = text.find(".", match.end())
                reason = text[match.start():sentence_end + 1 if sentence_end != -1 else len(text)]
                return {"mostAuthenticSource": index, "reason": reason.strip()}
        return None

    return _parse
