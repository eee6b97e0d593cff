"""
Adaptive Practice: single-question flow with escalating feedback.

Each submission increments the attempt counter *before* the evaluation
request goes out, so a failed request never under-counts attempts when the
learner retries. The learner can move on once the answer was correct or
the service revealed it; otherwise the same question is retried.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from src.selftest.attempt_tracker import AttemptTracker
from src.selftest.exceptions import (
    CannotAdvanceError,
    EvaluationError,
    GenerationError,
    InvalidPhaseError,
    RequestPendingError,
)
from src.selftest.models import Question
from src.selftest.services import AnswerEvaluationRequest, AnswerEvaluator, AnswerFeedback


class AdaptivePractice:
    """Walks a question set one question at a time."""

    def __init__(self, evaluator: AnswerEvaluator, questions: Sequence[Question] | None = None):
        self._evaluator = evaluator
        self.tracker = AttemptTracker()
        self.questions: tuple[Question, ...] = ()
        self.current_index = 0
        self.feedback: AnswerFeedback | None = None
        self.history: dict[str, list[AnswerFeedback]] = {}
        self.is_evaluating = False
        self._generation = 0
        if questions is not None:
            self.load_questions(questions)

    def load_questions(self, questions: Sequence[Question]) -> None:
        """Start over with a fresh question set; attempt counts restart."""
        if not questions:
            raise GenerationError("No practice questions to load")
        self._generation += 1
        self.questions = tuple(questions)
        self.current_index = 0
        self.feedback = None
        self.history = {}
        self.is_evaluating = False
        self.tracker.reset()
        logger.debug(f"Loaded {len(self.questions)} practice questions")

    @property
    def current_question(self) -> Question | None:
        if self.current_index >= len(self.questions):
            return None
        return self.questions[self.current_index]

    @property
    def is_complete(self) -> bool:
        return bool(self.questions) and self.current_question is None

    @property
    def can_advance(self) -> bool:
        return self.feedback is not None and self.feedback.allows_advance

    async def submit_answer(self, answer: str) -> AnswerFeedback | None:
        """
        Evaluate an answer to the current question.

        Returns:
            The service's feedback, or None if a new question set was loaded
            while the request was in flight

        Raises:
            RequestPendingError: an evaluation is already in flight
            EvaluationError: the evaluation service failed (the attempt still counts)
        """
        question = self.current_question
        if question is None:
            raise InvalidPhaseError("No question to answer")
        if self.is_evaluating:
            raise RequestPendingError("An answer is already being evaluated")
        if self.can_advance:
            raise InvalidPhaseError("This question is finished; advance to the next one")

        attempt = self.tracker.record(question.id)
        generation = self._generation
        self.is_evaluating = True
        try:
            feedback = await self._evaluator.evaluate_answer(
                AnswerEvaluationRequest(question=question, answer=answer, attempt_number=attempt)
            )
        except EvaluationError as exc:
            if generation == self._generation:
                self.is_evaluating = False
                logger.warning(f"Evaluation failed for {question.id} (attempt {attempt}): {exc}")
                raise
            return None

        if generation != self._generation:
            logger.debug(f"Discarding feedback for {question.id}: question set changed")
            return None

        self.is_evaluating = False
        self.feedback = feedback
        self.history.setdefault(question.id, []).append(feedback)
        return feedback

    def advance(self) -> Question | None:
        """Move to the next question; returns it, or None when the set is done."""
        if not self.can_advance:
            raise CannotAdvanceError("Answer correctly or wait for the answer to be revealed")
        self.current_index += 1
        self.feedback = None
        return self.current_question

    def attempt_summary(self) -> dict[str, dict]:
        """Attempts and final correctness per question answered so far."""
        summary = {}
        for question in self.questions:
            feedbacks = self.history.get(question.id)
            if not feedbacks:
                continue
            summary[question.id] = {
                "attempts": self.tracker.count(question.id),
                "correct": feedbacks[-1].is_correct,
                "revealed": feedbacks[-1].should_reveal_answer,
            }
        return summary
