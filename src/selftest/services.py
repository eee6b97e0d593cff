"""
Boundaries to the external services the engine consumes.

The engine only knows these protocols and value types; the HTTP binding
lives in src.integrations.study_api_client and offline stand-ins in
src.selftest.local_services / src.selftest.question_bank.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from src.selftest.escalation import FeedbackTier
from src.selftest.models import AttemptRecord, Question, TestConfiguration


@dataclass(frozen=True)
class DocumentContext:
    """A learner document passed to question generation as context."""

    id: str
    title: str
    content: str = ""


@dataclass(frozen=True)
class GenerationRequest:
    config: TestConfiguration
    documents: tuple[DocumentContext, ...] = ()
    weak_areas: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnswerEvaluationRequest:
    question: Question
    answer: str
    attempt_number: int


@dataclass(frozen=True)
class AnswerFeedback:
    """Service verdict for one adaptive-flow submission."""

    question_id: str
    is_correct: bool
    adaptive_feedback: str
    should_reveal_answer: bool
    tier: FeedbackTier
    attempt_number: int
    explanation: str = ""
    correct_answer: str | None = None  # Only populated once revealed
    concept_mastery: float | None = None

    @property
    def allows_advance(self) -> bool:
        return self.should_reveal_answer or self.is_correct


@dataclass(frozen=True)
class SelfTestEvaluationRequest:
    questions: tuple[Question, ...]
    attempts: tuple[AttemptRecord, ...]
    config: TestConfiguration
    total_time_ms: int


@dataclass(frozen=True)
class QuestionScore:
    question_id: str
    is_correct: bool
    concept_mastery: float | None = None
    explanation: str = ""


@dataclass(frozen=True)
class SelfTestEvaluation:
    """Externally scored self-test, before client-side aggregation."""

    scores: dict[str, QuestionScore] = field(default_factory=dict)
    recommendations: tuple[str, ...] = ()
    readiness_message: str | None = None


class QuestionGenerator(Protocol):
    async def generate_self_test(self, request: GenerationRequest) -> list[Question]: ...


class AnswerEvaluator(Protocol):
    async def evaluate_answer(self, request: AnswerEvaluationRequest) -> AnswerFeedback: ...


class SelfTestEvaluator(Protocol):
    async def evaluate_self_test(self, request: SelfTestEvaluationRequest) -> SelfTestEvaluation: ...
