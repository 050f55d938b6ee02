"""
Course outline schema: the one canonical shape returned to clients and stored per topic.

Design choices:
- Python attributes are snake_case, the wire format is camelCase (alias generator).
- Validation is deliberately lenient. LLM output drifts between calls, so list fields accept
  a single string or a list of objects, and items accept bare strings.
- Every field has a default so a partially parsed response still yields a complete outline.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_TEXT_KEYS = ("title", "text", "name", "content", "description", "question")


def _item_text(item: Any) -> str:
    if isinstance(item, dict):
        for key in _TEXT_KEYS:
            value = item.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        values = [str(v) for v in item.values() if v]
        return values[0] if values else ""
    if item is None:
        return ""
    return str(item).strip()


def as_string_list(value: Any) -> List[str]:
    """Coerce whatever an LLM returned for a list-of-strings field into a clean list."""
    if value is None:
        return []
    if isinstance(value, str):
        lines = [line.strip(" -*\t") for line in value.splitlines()]
        return [line for line in lines if line]
    if isinstance(value, (list, tuple)):
        return [text for text in (_item_text(v) for v in value) if text]
    text = _item_text(value)
    return [text] if text else []


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # null from an LLM means "use the default"
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class LearningSection(_CamelModel):
    title: str = ""
    content: str = ""


class Exercise(_CamelModel):
    title: str = ""
    description: str = ""
    difficulty: str = "beginner"


class QuizQuestion(_CamelModel):
    question: str = ""
    options: List[str] = Field(default_factory=list)
    answer: str = ""
    explanation: str = ""

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, v: Any) -> List[str]:
        return as_string_list(v)

    @field_validator("answer", mode="before")
    @classmethod
    def _coerce_answer(cls, v: Any) -> str:
        return "" if v is None else str(v)


class CourseModule(_CamelModel):
    title: str = ""
    description: str = ""
    objectives: List[str] = Field(default_factory=list)
    key_concepts: List[str] = Field(default_factory=list)
    learning_sections: List[LearningSection] = Field(default_factory=list)
    exercises: List[Exercise] = Field(default_factory=list)
    quiz: List[QuizQuestion] = Field(default_factory=list)
    estimated_time: str = ""

    @field_validator("objectives", "key_concepts", mode="before")
    @classmethod
    def _coerce_strings(cls, v: Any) -> List[str]:
        return as_string_list(v)

    @field_validator("learning_sections", mode="before")
    @classmethod
    def _coerce_sections(cls, v: Any) -> List[Any]:
        out = []
        for i, item in enumerate(_as_list(v), start=1):
            if isinstance(item, dict):
                out.append(item)
            elif item:
                out.append({"title": f"Section {i}", "content": str(item)})
        return out

    @field_validator("exercises", mode="before")
    @classmethod
    def _coerce_exercises(cls, v: Any) -> List[Any]:
        out = []
        for i, item in enumerate(_as_list(v), start=1):
            if isinstance(item, dict):
                out.append(item)
            elif item:
                out.append({"title": f"Exercise {i}", "description": str(item)})
        return out

    @field_validator("quiz", mode="before")
    @classmethod
    def _coerce_quiz(cls, v: Any) -> List[Any]:
        return [item if isinstance(item, dict) else {"question": str(item)} for item in _as_list(v) if item]

    @field_validator("estimated_time", mode="before")
    @classmethod
    def _coerce_estimated_time(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, (int, float)):
            return f"{v:g} hours"
        return str(v)


class CourseOutline(_CamelModel):
    course_title: str = ""
    description: str = ""
    learning_objectives: List[str] = Field(default_factory=list)
    prerequisites: List[str] = Field(default_factory=list)
    modules: List[CourseModule] = Field(default_factory=list)

    @field_validator("learning_objectives", "prerequisites", mode="before")
    @classmethod
    def _coerce_strings(cls, v: Any) -> List[str]:
        return as_string_list(v)

    @field_validator("modules", mode="before")
    @classmethod
    def _coerce_modules(cls, v: Any) -> List[Any]:
        return [m if isinstance(m, (dict, CourseModule)) else {"title": str(m)} for m in _as_list(v) if m]

    def to_document(self) -> Dict[str, Any]:
        """Serialized camelCase form, as sent to clients and stored."""
        return self.model_dump(by_alias=True)


class StoredCourse(_CamelModel):
    topic: str
    links: List[str] = Field(default_factory=list)
    outline: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
