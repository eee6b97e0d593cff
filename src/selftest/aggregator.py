"""
Mastery Aggregator: turns a scored self-test into a TestResult.

Input is the session's question list, the final attempt records and the
per-question scores returned by the evaluation service. Everything else
(overall score, confidence, concept mastery, weak/strong areas, readiness)
is computed here, client-side.

Formulas:
- overall score = correct / total
- average confidence = sum(confidence) / total, missing confidence counted as 0
- concept mastery = mean of per-question mastery for questions testing that concept
- weak area: concept mastery < weak threshold; strong area: >= weak threshold
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from loguru import logger

from config import get_settings
from src.selftest.models import (
    AttemptRecord,
    ConceptScore,
    Question,
    QuestionOutcome,
    ReadinessBand,
    TestResult,
)
from src.selftest.services import SelfTestEvaluation

# Confidence (scaled 0-1) minus correctness above this counts as over-confident
OVERCONFIDENCE_GAP = 0.6


class MasteryAggregator:
    """Pure transform from scored answers to an immutable TestResult."""

    def __init__(
        self,
        weak_threshold: float | None = None,
        excellent_threshold: float | None = None,
        good_threshold: float | None = None,
    ):
        settings = get_settings()
        self.weak_threshold = (
            weak_threshold if weak_threshold is not None else settings.weak_area_threshold
        )
        self.excellent_threshold = (
            excellent_threshold if excellent_threshold is not None else settings.excellent_threshold
        )
        self.good_threshold = (
            good_threshold if good_threshold is not None else settings.good_threshold
        )

    def aggregate(
        self,
        questions: Sequence[Question],
        attempts: Mapping[str, AttemptRecord],
        evaluation: SelfTestEvaluation,
        total_time_ms: int,
        timed_out: bool = False,
    ) -> TestResult:
        """
        Build the TestResult for a finished session.

        Args:
            questions: The session's ordered questions
            attempts: Final attempt records keyed by question id (may be partial)
            evaluation: Per-question scores from the evaluation service
            total_time_ms: Wall time of the whole session
            timed_out: Whether the countdown forced the submission

        Returns:
            Immutable TestResult
        """
        outcomes = tuple(self._score_question(q, attempts.get(q.id), evaluation) for q in questions)

        total = len(outcomes)
        correct = sum(1 for o in outcomes if o.is_correct)
        overall = correct / total if total else 0.0
        average_confidence = (
            sum(o.confidence or 0 for o in outcomes) / total if total else 0.0
        )

        concepts = self.concept_mastery(outcomes)
        weak = tuple(
            ConceptScore(name, score, count, self._suggestion(name, score, outcomes))
            for name, (score, count) in concepts.items()
            if score < self.weak_threshold
        )
        strong = tuple(
            ConceptScore(name, score, count)
            for name, (score, count) in concepts.items()
            if score >= self.weak_threshold
        )

        readiness = ReadinessBand.from_score(
            overall, excellent=self.excellent_threshold, good=self.good_threshold
        )
        recommendations = evaluation.recommendations or self.recommend(
            weak, outcomes, timed_out=timed_out
        )

        logger.debug(
            f"Aggregated self-test: {correct}/{total} correct, "
            f"{len(weak)} weak / {len(strong)} strong concepts"
        )

        return TestResult(
            outcomes=outcomes,
            overall_score=overall,
            correct_answers=correct,
            total_questions=total,
            average_confidence=average_confidence,
            total_time_ms=total_time_ms,
            weak_areas=weak,
            strong_areas=strong,
            recommendations=tuple(recommendations),
            readiness=readiness,
            readiness_message=evaluation.readiness_message or readiness.default_message,
            timed_out=timed_out,
        )

    @staticmethod
    def _score_question(
        question: Question,
        record: AttemptRecord | None,
        evaluation: SelfTestEvaluation,
    ) -> QuestionOutcome:
        score = evaluation.scores.get(question.id)
        is_correct = score.is_correct if score else False
        if score is not None and score.concept_mastery is not None:
            mastery = score.concept_mastery
        else:
            mastery = 1.0 if is_correct else 0.0

        return QuestionOutcome(
            question_id=question.id,
            concept_tested=question.concept_tested,
            user_answer=record.answer if record else "",
            is_correct=is_correct,
            confidence=record.confidence if record else None,
            time_spent_ms=record.time_spent_ms if record else 0,
            concept_mastery=mastery,
            explanation=(score.explanation if score and score.explanation else question.explanation),
        )

    @staticmethod
    def concept_mastery(outcomes: Sequence[QuestionOutcome]) -> dict[str, tuple[float, int]]:
        """Mean mastery and question count per concept, in first-seen order."""
        grouped: dict[str, list[float]] = {}
        for outcome in outcomes:
            grouped.setdefault(outcome.concept_tested, []).append(outcome.concept_mastery)
        return {name: (sum(values) / len(values), len(values)) for name, values in grouped.items()}

    @staticmethod
    def _suggestion(concept: str, score: float, outcomes: Sequence[QuestionOutcome]) -> str:
        related = [o for o in outcomes if o.concept_tested == concept]
        missed = sum(1 for o in related if not o.is_correct)
        if missed == len(related):
            return f"Start again from the fundamentals of {concept}; none of its questions were answered correctly."
        return (
            f"Review {concept}: {missed} of {len(related)} questions missed "
            f"({score:.0%} mastery). Re-read the explanations, then retest this concept."
        )

    def recommend(
        self,
        weak: Sequence[ConceptScore],
        outcomes: Sequence[QuestionOutcome],
        timed_out: bool = False,
    ) -> list[str]:
        """Next-step recommendations when the evaluation service supplied none."""
        recommendations = []

        for area in sorted(weak, key=lambda a: a.score):
            recommendations.append(f"Focus your next study session on {area.concept}.")

        overconfident = sorted(
            {o.concept_tested for o in outcomes if o.calibration_gap >= OVERCONFIDENCE_GAP}
        )
        if overconfident:
            recommendations.append(
                "You were confident but wrong on " + ", ".join(overconfident)
                + ". Explain these concepts aloud to check your understanding."
            )

        unanswered = sum(1 for o in outcomes if not o.user_answer.strip())
        if timed_out and unanswered:
            recommendations.append(
                f"Time ran out with {unanswered} question(s) unanswered. "
                "Practise with a longer limit, then tighten it."
            )

        if not recommendations:
            recommendations.append("Try a harder test or a new topic to keep stretching yourself.")
        return recommendations
