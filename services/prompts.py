"""
Prompt templates for the course generation chain.

Each template asks for one JSON object of a fixed shape. Models frequently wrap the JSON in
prose or markdown anyway; services.response_normalizer copes with that.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List

SYLLABUS_PROMPT = """You are an expert instructional designer. Design a course syllabus for the topic "{topic}".

Use the following material collected from the web as reference:
{context}

Return ONLY valid JSON in this exact format:
{{
    "courseTitle": "A clear course title",
    "description": "Two or three sentences describing the course",
    "learningObjectives": ["objective 1", "objective 2"],
    "prerequisites": ["prerequisite 1"],
    "moduleTopics": [
        {{"title": "Module title", "description": "What this module covers"}}
    ]
}}

Plan between 3 and {max_modules} modules in a logical, progressive order.
Do not include any explanations outside the JSON."""

MODULE_DETAIL_PROMPT = """You are an expert teacher writing one module of the course "{course_title}" about "{topic}".

Module title: {module_title}
Module description: {module_description}

Reference material:
{context}

Return ONLY valid JSON in this exact format:
{{
    "overview": "A short paragraph introducing the module",
    "objectives": ["what the learner will be able to do"],
    "keyConcepts": ["concept 1", "concept 2"],
    "learningSections": [
        {{"title": "Section title", "content": "Explanatory text with examples"}}
    ],
    "estimatedTime": "2 hours"
}}

Write 3 to 5 learning sections. Do not include any explanations outside the JSON."""

EXERCISES_PROMPT = """You are creating practice material for the module "{module_title}" of a course about "{topic}".

Module summary:
{module_summary}

Return ONLY valid JSON in this exact format:
{{
    "exercises": [
        {{"title": "Exercise title", "description": "What the learner has to do", "difficulty": "beginner"}}
    ],
    "quiz": [
        {{
            "question": "Question text",
            "options": ["option A", "option B", "option C", "option D"],
            "answer": "option A",
            "explanation": "Why this answer is correct"
        }}
    ]
}}

Write 2 or 3 exercises and 3 to 5 quiz questions. Do not include any explanations outside the JSON."""

AUTHENTICITY_PROMPT = """You are evaluating web sources about "{topic}" for a learner.
Pick the single most authoritative and trustworthy source from the numbered list below.

{sources}

Return ONLY valid JSON in this exact format:
{{"mostAuthenticSource": 1, "reason": "One sentence explaining the choice"}}

The value of mostAuthenticSource must be the number of the chosen source."""


def build_syllabus_prompt(topic: str, context: str, max_modules: int) -> str:
    return SYLLABUS_PROMPT.format(
        topic=topic,
        context=context or "No reference material was available; rely on general knowledge.",
        max_modules=max(3, max_modules),
    )


def build_module_detail_prompt(topic: str, course_title: str, module: Dict[str, Any], context: str) -> str:
    return MODULE_DETAIL_PROMPT.format(
        topic=topic,
        course_title=course_title or topic,
        module_title=module.get("title", ""),
        module_description=module.get("description", "") or "Not specified",
        context=context or "No reference material was available; rely on general knowledge.",
    )


def build_exercises_prompt(topic: str, module_title: str, detail: Dict[str, Any]) -> str:
    summary = {
        "overview": detail.get("overview", ""),
        "objectives": detail.get("objectives", []),
        "keyConcepts": detail.get("keyConcepts", []),
    }
    return EXERCISES_PROMPT.format(
        topic=topic,
        module_title=module_title,
        module_summary=json.dumps(summary, ensure_ascii=False, indent=2),
    )


def build_authenticity_prompt(topic: str, sources: List[Dict[str, str]]) -> str:
    lines = []
    for i, source in enumerate(sources, start=1):
        lines.append(f"Source {i}: {source.get('title', '')}\nURL: {source.get('url', '')}\nSnippet: {source.get('snippet', '')}")
    return AUTHENTICITY_PROMPT.format(topic=topic, sources="\n\n".join(lines))
