"""
Wire models for the study API.

The API speaks camelCase JSON. Incoming questions are normalised the way
the generation service itself does it: unknown types fall back to
short-answer, unknown difficulties to medium, a missing concept to
"general", and a missing id gets a generated one.
"""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.selftest.models import (
    AttemptRecord,
    Question,
    QuestionDifficulty,
    QuestionType,
    TestConfiguration,
)


class ApiModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ========================================
# Questions
# ========================================


class QuestionPayload(ApiModel):
    """A question as produced by the generation service."""

    id: str = Field(default_factory=lambda: f"q_{uuid.uuid4().hex[:12]}")
    question: str = "Question text not available"
    type: QuestionType = QuestionType.SHORT_ANSWER
    options: list[str] | None = None
    correct_answer: str = ""
    explanation: str = ""
    difficulty: QuestionDifficulty = QuestionDifficulty.MEDIUM
    concept_tested: str = "general"
    document_source: str | None = None
    document_reference: str | None = None
    requires_vocal_explanation: bool = False
    approach_choices: list[str] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return f"q_{uuid.uuid4().hex[:12]}"
        return str(value)

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, value: Any) -> Any:
        value = getattr(value, "value", value)
        valid = {t.value for t in QuestionType}
        return value if value in valid else QuestionType.SHORT_ANSWER

    @field_validator("difficulty", mode="before")
    @classmethod
    def _known_difficulty(cls, value: Any) -> Any:
        value = getattr(value, "value", value)
        valid = {d.value for d in QuestionDifficulty}
        return value if value in valid else QuestionDifficulty.MEDIUM

    @field_validator("question", "concept_tested", mode="before")
    @classmethod
    def _non_empty(cls, value: Any, info) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "general" if info.field_name == "concept_tested" else "Question text not available"
        return value

    @field_validator("correct_answer", "explanation", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "True" if value else "False"
        return str(value)

    def to_domain(self) -> Question:
        return Question(
            id=self.id,
            prompt=self.question,
            question_type=self.type,
            correct_answer=self.correct_answer,
            explanation=self.explanation,
            difficulty=self.difficulty,
            concept_tested=self.concept_tested,
            options=tuple(self.options or ()),
            document_source=self.document_source or self.document_reference,
            requires_vocal_explanation=self.requires_vocal_explanation,
            approach_choices=tuple(self.approach_choices or ()),
        )

    @classmethod
    def from_domain(cls, question: Question) -> QuestionPayload:
        return cls(
            id=question.id,
            question=question.prompt,
            type=question.question_type,
            options=list(question.options) or None,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
            difficulty=question.difficulty,
            concept_tested=question.concept_tested,
            document_source=question.document_source,
            requires_vocal_explanation=question.requires_vocal_explanation,
            approach_choices=list(question.approach_choices) or None,
        )


class QuestionSetPayload(ApiModel):
    questions: list[QuestionPayload] = Field(default_factory=list)


# ========================================
# Requests
# ========================================


class ConfigPayload(ApiModel):
    selected_topics: list[str]
    difficulty: str
    question_count: int
    time_limit: int
    include_vocal_explanations: bool
    focus_areas: list[str]
    test_mode: str

    @classmethod
    def from_domain(cls, config: TestConfiguration) -> ConfigPayload:
        return cls(
            selected_topics=list(config.selected_topics),
            difficulty=config.difficulty.value,
            question_count=config.question_count,
            time_limit=config.time_limit_minutes,
            include_vocal_explanations=config.include_vocal_explanations,
            focus_areas=list(config.focus_areas),
            test_mode=config.test_mode.value,
        )


class UserAnswerPayload(ApiModel):
    question_id: str
    answer: str = ""
    vocal_explanation: str | None = None
    time_spent: int = 0
    confidence: int | None = None

    @classmethod
    def from_domain(cls, record: AttemptRecord) -> UserAnswerPayload:
        return cls(
            question_id=record.question_id,
            answer=record.answer,
            vocal_explanation=record.vocal_explanation,
            time_spent=record.time_spent_ms,
            confidence=record.confidence,
        )


class DocumentPayload(ApiModel):
    id: str
    title: str = ""
    content: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value)


# ========================================
# Responses
# ========================================


class AnswerResultPayload(ApiModel):
    question_id: str
    is_correct: bool = False
    explanation: str = ""
    correct_answer: str | None = None
    adaptive_feedback: str = ""
    should_reveal_answer: bool = False
    concept_mastery: float | None = None


class AnswerEvaluationPayload(ApiModel):
    results: list[AnswerResultPayload] = Field(default_factory=list)


class QuestionResultPayload(ApiModel):
    question_id: str
    is_correct: bool = False
    concept_mastery: float | None = None
    explanation: str = ""


class ReadinessPayload(ApiModel):
    message: str | None = None
    recommendations: list[str] = Field(default_factory=list)


class SelfTestEvaluationPayload(ApiModel):
    question_results: list[QuestionResultPayload] = Field(default_factory=list)
    readiness_assessment: ReadinessPayload | None = None
    next_steps: list[str] = Field(default_factory=list)

    @field_validator("next_steps", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value
