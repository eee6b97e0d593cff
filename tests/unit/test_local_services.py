"""
Unit tests for the offline evaluators.
"""

import pytest

from src.selftest.escalation import FeedbackTier
from src.selftest.local_services import LocalAnswerEvaluator, LocalSelfTestEvaluator
from src.selftest.models import AttemptRecord
from src.selftest.services import AnswerEvaluationRequest, SelfTestEvaluationRequest


class TestLocalAnswerEvaluator:
    @pytest.mark.asyncio
    async def test_mastery_drops_with_attempts(self, sample_questions):
        evaluator = LocalAnswerEvaluator()
        question = sample_questions[0]

        first = await evaluator.evaluate_answer(AnswerEvaluationRequest(question, "Network", 1))
        second = await evaluator.evaluate_answer(AnswerEvaluationRequest(question, "Network", 2))
        wrong = await evaluator.evaluate_answer(AnswerEvaluationRequest(question, "RIP", 2))

        assert first.concept_mastery == 1.0
        assert second.concept_mastery == 0.5
        assert wrong.concept_mastery == 0.0
        assert wrong.tier is FeedbackTier.HINT

    @pytest.mark.asyncio
    async def test_answer_only_revealed_on_full_explanation(self, sample_questions):
        evaluator = LocalAnswerEvaluator()
        question = sample_questions[2]

        hint = await evaluator.evaluate_answer(AnswerEvaluationRequest(question, "100", 2))
        reveal = await evaluator.evaluate_answer(AnswerEvaluationRequest(question, "100", 3))

        assert hint.correct_answer is None
        assert reveal.correct_answer == "254 usable hosts"
        assert reveal.allows_advance


class TestLocalSelfTestEvaluator:
    @pytest.mark.asyncio
    async def test_scores_every_question(self, sample_questions, sample_config):
        attempts = (
            AttemptRecord("q1", answer="network"),
            AttemptRecord("q2", answer="False"),
        )
        request = SelfTestEvaluationRequest(tuple(sample_questions), attempts, sample_config, 1000)

        evaluation = await LocalSelfTestEvaluator().evaluate_self_test(request)

        assert set(evaluation.scores) == {"q1", "q2", "q3", "q4", "q5"}
        assert evaluation.scores["q1"].is_correct
        assert not evaluation.scores["q2"].is_correct
        assert not evaluation.scores["q5"].is_correct
        assert evaluation.recommendations == ()
