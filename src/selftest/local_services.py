"""
Offline evaluators.

Score answers in-process with the same rules the study API applies, so the
adaptive flow and full self-tests run without a server.
"""

from __future__ import annotations

import random

from loguru import logger

from src.selftest.escalation import compose_feedback, escalate
from src.selftest.services import (
    AnswerEvaluationRequest,
    AnswerFeedback,
    QuestionScore,
    SelfTestEvaluation,
    SelfTestEvaluationRequest,
)
from src.selftest.scoring import is_answer_correct


class LocalAnswerEvaluator:
    """AnswerEvaluator backed by local scoring and the escalation policy."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    async def evaluate_answer(self, request: AnswerEvaluationRequest) -> AnswerFeedback:
        question = request.question
        correct = is_answer_correct(question, request.answer)
        decision = escalate(request.attempt_number, correct)

        logger.debug(
            f"Local evaluation {question.id} attempt {request.attempt_number}: "
            f"{'correct' if correct else 'incorrect'} -> {decision.tier.value}"
        )

        return AnswerFeedback(
            question_id=question.id,
            is_correct=correct,
            adaptive_feedback=compose_feedback(decision, question, self._rng),
            should_reveal_answer=decision.should_reveal_answer,
            tier=decision.tier,
            attempt_number=request.attempt_number,
            explanation=question.explanation,
            correct_answer=question.correct_answer if decision.should_reveal_answer else None,
            # Fewer attempts to a correct answer means stronger mastery
            concept_mastery=1.0 / request.attempt_number if correct else 0.0,
        )


class LocalSelfTestEvaluator:
    """SelfTestEvaluator that scores every answer locally."""

    async def evaluate_self_test(self, request: SelfTestEvaluationRequest) -> SelfTestEvaluation:
        answers = {a.question_id: a.answer for a in request.attempts}
        scores = {
            q.id: QuestionScore(
                question_id=q.id,
                is_correct=is_answer_correct(q, answers.get(q.id, "")),
                explanation=q.explanation,
            )
            for q in request.questions
        }
        logger.debug(
            f"Local self-test evaluation: "
            f"{sum(s.is_correct for s in scores.values())}/{len(scores)} correct"
        )
        return SelfTestEvaluation(scores=scores)
