"""
Core data model for self-assessment sessions.

Design:
- Enums mirror the values exchanged with the study API (kebab-case strings).
- TestConfiguration: what the learner asks for, checked before a session starts
- Question: immutable once fetched for a session
- AttemptRecord: the learner's current answer to one question
- SessionState: everything the state machine owns while a session is alive
- TestResult: produced once at the results phase, immutable thereafter
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

QUESTION_COUNTS: tuple[int, ...] = (5, 10, 20)


class Phase(str, Enum):
    """Phase of the test session state machine."""

    SETUP = "setup"
    TESTING = "testing"
    RESULTS = "results"


class TestMode(str, Enum):
    """How the question set is targeted."""

    __test__ = False  # not a pytest class

    COMPREHENSIVE = "comprehensive"  # All selected topics
    WEAK_AREAS = "weak-areas"  # Known problem areas, topics optional
    CUSTOM = "custom"  # Specific topics and focus areas


class TestDifficulty(str, Enum):
    """Difficulty requested for a whole test."""

    __test__ = False

    EASY = "easy"
    MIXED = "mixed"
    HARD = "hard"


class QuestionDifficulty(str, Enum):
    """Difficulty of a single generated question."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionType(str, Enum):
    """Question formats produced by the generation service."""

    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_ANSWER = "short-answer"
    EXPLANATION = "explanation"
    APPROACH_SELECTION = "approach-selection"

    @property
    def is_closed(self) -> bool:
        """True for formats answered by picking one of a fixed set of options."""
        return self in (
            QuestionType.MULTIPLE_CHOICE,
            QuestionType.TRUE_FALSE,
            QuestionType.APPROACH_SELECTION,
        )


class ReadinessBand(str, Enum):
    """Qualitative readiness derived from the overall score."""

    EXCELLENT = "Excellent"
    GOOD = "Good"
    NEEDS_IMPROVEMENT = "Needs Improvement"

    @classmethod
    def from_score(cls, score: float, excellent: float = 0.8, good: float = 0.6) -> ReadinessBand:
        """
        Convert a 0-1 overall score to a band.

        Args:
            score: Overall score between 0 and 1
            excellent: Lowest score reported as Excellent
            good: Lowest score reported as Good

        Returns:
            Corresponding ReadinessBand
        """
        if score >= excellent:
            return cls.EXCELLENT
        elif score >= good:
            return cls.GOOD
        else:
            return cls.NEEDS_IMPROVEMENT

    @property
    def default_message(self) -> str:
        return {
            ReadinessBand.EXCELLENT: "You're ready to move on to advanced material or sit the exam.",
            ReadinessBand.GOOD: "Solid foundation. A focused review of your weak areas should close the gaps.",
            ReadinessBand.NEEDS_IMPROVEMENT: "Revisit the core concepts before testing yourself again.",
        }[self]

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            ReadinessBand.EXCELLENT: "green",
            ReadinessBand.GOOD: "yellow",
            ReadinessBand.NEEDS_IMPROVEMENT: "red",
        }[self]


@dataclass
class TestConfiguration:
    """A learner's proposed self-test."""

    __test__ = False

    selected_topics: list[str] = field(default_factory=list)
    difficulty: TestDifficulty = TestDifficulty.MIXED
    question_count: int = 10
    time_limit_minutes: int = 0  # 0 = unlimited
    include_vocal_explanations: bool = True
    focus_areas: list[str] = field(default_factory=list)
    test_mode: TestMode = TestMode.COMPREHENSIVE

    def __post_init__(self):
        self.difficulty = TestDifficulty(self.difficulty)
        self.test_mode = TestMode(self.test_mode)
        if self.question_count not in QUESTION_COUNTS:
            raise ValueError(
                f"question_count must be one of {QUESTION_COUNTS}, got {self.question_count}"
            )
        if self.time_limit_minutes < 0:
            raise ValueError("time_limit_minutes cannot be negative")
        # Topics behave as a set but keep the learner's selection order
        self.selected_topics = list(dict.fromkeys(t.strip() for t in self.selected_topics if t.strip()))
        self.focus_areas = list(dict.fromkeys(a.strip() for a in self.focus_areas if a.strip()))

    @property
    def is_timed(self) -> bool:
        return self.time_limit_minutes > 0

    @property
    def time_limit_seconds(self) -> int:
        return self.time_limit_minutes * 60


@dataclass(frozen=True)
class Question:
    """A single question in a session's fixed question list."""

    id: str
    prompt: str
    question_type: QuestionType
    correct_answer: str
    explanation: str = ""
    difficulty: QuestionDifficulty = QuestionDifficulty.MEDIUM
    concept_tested: str = "general"
    options: tuple[str, ...] = ()
    document_source: str | None = None
    requires_vocal_explanation: bool = False
    approach_choices: tuple[str, ...] = ()

    @property
    def choices(self) -> tuple[str, ...]:
        """Options the learner picks from, if this is a closed question."""
        if self.question_type == QuestionType.APPROACH_SELECTION and self.approach_choices:
            return self.approach_choices
        if self.question_type == QuestionType.TRUE_FALSE and not self.options:
            return ("True", "False")
        return self.options


@dataclass
class AttemptRecord:
    """The learner's current submission for one question."""

    question_id: str
    answer: str = ""
    vocal_explanation: str | None = None
    time_spent_ms: int = 0
    confidence: int | None = None  # 1-5 self rating

    def __post_init__(self):
        if self.confidence is not None and not 1 <= self.confidence <= 5:
            raise ValueError("confidence must be between 1 and 5")

    @property
    def has_answer(self) -> bool:
        return bool(self.answer.strip())

    @property
    def has_vocal_explanation(self) -> bool:
        return bool(self.vocal_explanation and self.vocal_explanation.strip())


@dataclass
class SessionState:
    """Mutable state owned by a running test session."""

    phase: Phase = Phase.SETUP
    questions: tuple[Question, ...] = ()
    current_index: int = 0
    attempts: dict[str, AttemptRecord] = field(default_factory=dict)
    started_at: datetime | None = None
    remaining_seconds: int | None = None  # Only set for timed sessions
    timed_out: bool = False

    @property
    def current_question(self) -> Question | None:
        if not self.questions:
            return None
        return self.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return bool(self.questions) and self.current_index == len(self.questions) - 1


@dataclass(frozen=True)
class QuestionOutcome:
    """Scored result for one question."""

    question_id: str
    concept_tested: str
    user_answer: str
    is_correct: bool
    confidence: int | None
    time_spent_ms: int
    concept_mastery: float
    explanation: str = ""

    @property
    def calibration_gap(self) -> float:
        """Confidence (scaled to 0-1) minus correctness; positive = over-confident."""
        confidence = (self.confidence or 0) / 5
        return confidence - (1.0 if self.is_correct else 0.0)


@dataclass(frozen=True)
class ConceptScore:
    """Aggregate mastery for one concept."""

    concept: str
    score: float
    question_count: int
    suggestion: str = ""


@dataclass(frozen=True)
class TestResult:
    """Immutable outcome of a completed self-test."""

    __test__ = False

    outcomes: tuple[QuestionOutcome, ...]
    overall_score: float
    correct_answers: int
    total_questions: int
    average_confidence: float
    total_time_ms: int
    weak_areas: tuple[ConceptScore, ...]
    strong_areas: tuple[ConceptScore, ...]
    recommendations: tuple[str, ...]
    readiness: ReadinessBand
    readiness_message: str
    timed_out: bool = False

    @property
    def total_time_minutes(self) -> float:
        return self.total_time_ms / 1000 / 60

    @property
    def score_percentage(self) -> int:
        return round(self.overall_score * 100)
