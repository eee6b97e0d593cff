"""
Unit tests for the adaptive single-question practice flow.
"""

import asyncio
import random

import pytest

from src.selftest.adaptive import AdaptivePractice
from src.selftest.escalation import ENCOURAGEMENT, FeedbackTier
from src.selftest.exceptions import (
    CannotAdvanceError,
    EvaluationError,
    GenerationError,
    InvalidPhaseError,
    RequestPendingError,
)
from src.selftest.local_services import LocalAnswerEvaluator


class FlakyEvaluator(LocalAnswerEvaluator):
    """Local evaluation that fails on demand and can be held open."""

    def __init__(self):
        super().__init__(rng=random.Random(0))
        self.fail_next = False
        self.gate: asyncio.Event | None = None
        self.attempt_numbers = []

    async def evaluate_answer(self, request):
        self.attempt_numbers.append(request.attempt_number)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next:
            self.fail_next = False
            raise EvaluationError("evaluation service unavailable")
        return await super().evaluate_answer(request)


@pytest.fixture
def flaky():
    return FlakyEvaluator()


@pytest.fixture
def practice(flaky, sample_questions):
    return AdaptivePractice(flaky, sample_questions[:3])


class TestEscalatingFeedback:
    @pytest.mark.asyncio
    async def test_three_wrong_answers_reveal(self, practice):
        first = await practice.submit_answer("Physical")
        assert first.tier is FeedbackTier.ENCOURAGEMENT
        assert first.adaptive_feedback == ENCOURAGEMENT
        assert not practice.can_advance

        second = await practice.submit_answer("Transport")
        assert second.tier is FeedbackTier.HINT
        assert second.correct_answer is None
        assert not practice.can_advance

        third = await practice.submit_answer("Data Link")
        assert third.tier is FeedbackTier.FULL_EXPLANATION
        assert third.should_reveal_answer
        assert third.correct_answer == "Network"
        assert "Network" in third.adaptive_feedback
        assert practice.can_advance

    @pytest.mark.asyncio
    async def test_correct_answer_allows_advance(self, practice):
        feedback = await practice.submit_answer("network")
        assert feedback.is_correct
        assert feedback.tier is FeedbackTier.CONFIRMATION
        assert feedback.concept_mastery == 1.0
        assert practice.advance() is practice.questions[1]

    @pytest.mark.asyncio
    async def test_cannot_advance_before_feedback_allows(self, practice):
        with pytest.raises(CannotAdvanceError):
            practice.advance()
        await practice.submit_answer("wrong")
        with pytest.raises(CannotAdvanceError):
            practice.advance()

    @pytest.mark.asyncio
    async def test_finished_question_takes_no_more_answers(self, practice):
        await practice.submit_answer("Network")
        with pytest.raises(InvalidPhaseError):
            await practice.submit_answer("Network")


class TestAttemptCounting:
    @pytest.mark.asyncio
    async def test_failed_request_still_counts(self, practice, flaky):
        flaky.fail_next = True
        with pytest.raises(EvaluationError):
            await practice.submit_answer("Physical")
        assert not practice.is_evaluating

        feedback = await practice.submit_answer("Physical")

        assert flaky.attempt_numbers == [1, 2]
        assert feedback.tier is FeedbackTier.HINT
        assert practice.tracker.count("q1") == 2

    @pytest.mark.asyncio
    async def test_single_evaluation_in_flight(self, practice, flaky):
        flaky.gate = asyncio.Event()
        pending = asyncio.create_task(practice.submit_answer("Physical"))
        await asyncio.sleep(0)

        with pytest.raises(RequestPendingError):
            await practice.submit_answer("Transport")

        flaky.gate.set()
        await pending
        assert flaky.attempt_numbers == [1]

    @pytest.mark.asyncio
    async def test_loading_new_questions_resets_attempts(self, practice, sample_questions):
        await practice.submit_answer("Physical")
        practice.load_questions(sample_questions)
        assert practice.tracker.count("q1") == 0
        feedback = await practice.submit_answer("Physical")
        assert feedback.attempt_number == 1

    @pytest.mark.asyncio
    async def test_stale_feedback_discarded(self, practice, flaky, sample_questions):
        flaky.gate = asyncio.Event()
        pending = asyncio.create_task(practice.submit_answer("Network"))
        await asyncio.sleep(0)

        practice.load_questions(sample_questions[3:])
        flaky.gate.set()

        assert await pending is None
        assert practice.feedback is None
        assert practice.history == {}


class TestCompletion:
    @pytest.mark.asyncio
    async def test_walks_to_completion_with_summary(self, practice):
        await practice.submit_answer("Network")
        practice.advance()
        await practice.submit_answer("false")
        await practice.submit_answer("false")
        await practice.submit_answer("false")
        practice.advance()
        await practice.submit_answer("254 usable hosts")
        assert practice.advance() is None
        assert practice.is_complete

        summary = practice.attempt_summary()
        assert summary["q1"] == {"attempts": 1, "correct": True, "revealed": False}
        assert summary["q2"] == {"attempts": 3, "correct": False, "revealed": True}
        assert summary["q3"]["correct"] is True

    @pytest.mark.asyncio
    async def test_no_question_to_answer(self, flaky):
        practice = AdaptivePractice(flaky)
        assert not practice.is_complete
        with pytest.raises(InvalidPhaseError):
            await practice.submit_answer("anything")

    def test_empty_question_set_rejected(self, flaky):
        with pytest.raises(GenerationError):
            AdaptivePractice(flaky, [])

    def test_loading_empty_set_keeps_current_questions(self, practice):
        with pytest.raises(GenerationError):
            practice.load_questions([])
        assert [q.id for q in practice.questions] == ["q1", "q2", "q3"]
        assert practice.current_question.id == "q1"
