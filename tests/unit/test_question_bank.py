"""
Unit tests for the offline question bank.
"""

import json

import pytest

from src.selftest.exceptions import GenerationError
from src.selftest.models import QuestionType, TestConfiguration, TestDifficulty, TestMode
from src.selftest.question_bank import QuestionBank
from src.selftest.services import GenerationRequest


def _bank_entries():
    entries = []
    for concept, count in (("subnetting", 6), ("routing", 4), ("vlans", 3)):
        for i in range(count):
            entries.append(
                {
                    "id": f"{concept}-{i}",
                    "question": f"{concept} question {i}",
                    "type": "short-answer",
                    "correctAnswer": "answer",
                    "difficulty": "hard" if i % 2 else "easy",
                    "conceptTested": concept,
                    "requiresVocalExplanation": True,
                }
            )
    return entries


@pytest.fixture
def bank_file(tmp_path):
    path = tmp_path / "bank.json"
    path.write_text(json.dumps({"questions": _bank_entries()}), encoding="utf-8")
    return path


@pytest.fixture
def bank(bank_file):
    return QuestionBank.from_file(bank_file, seed=7)


def _request(**kwargs):
    return GenerationRequest(config=TestConfiguration(**kwargs))


class TestLoading:
    def test_loads_wrapped_questions(self, bank):
        assert len(bank.questions) == 13
        assert bank.topics == ["subnetting", "routing", "vlans"]

    def test_loads_bare_list_and_normalises(self, tmp_path):
        path = tmp_path / "bare.json"
        path.write_text(
            json.dumps([{"question": "What is a VLAN?", "type": "essay", "difficulty": "brutal"}]),
            encoding="utf-8",
        )
        question = QuestionBank.from_file(path).questions[0]
        assert question.id.startswith("q_")
        assert question.question_type is QuestionType.SHORT_ANSWER
        assert question.concept_tested == "general"

    def test_missing_file(self, tmp_path):
        with pytest.raises(GenerationError):
            QuestionBank.from_file(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(GenerationError):
            QuestionBank.from_file(path)


class TestSelection:
    @pytest.mark.asyncio
    async def test_filters_by_selected_topics(self, bank):
        questions = await bank.generate_self_test(
            _request(selected_topics=["routing", "vlans"], question_count=5)
        )
        assert len(questions) == 5
        assert {q.concept_tested for q in questions} <= {"routing", "vlans"}
        assert len({q.id for q in questions}) == 5

    @pytest.mark.asyncio
    async def test_difficulty_narrows_pool(self, bank):
        questions = await bank.generate_self_test(
            _request(selected_topics=["subnetting"], question_count=5, difficulty=TestDifficulty.HARD)
        )
        # Only three hard subnetting questions exist
        assert len(questions) == 3
        assert all(q.difficulty.value == "hard" for q in questions)

    @pytest.mark.asyncio
    async def test_weak_area_mode_uses_weak_areas(self, bank):
        request = GenerationRequest(
            config=TestConfiguration(test_mode=TestMode.WEAK_AREAS, question_count=5),
            weak_areas=("vlans",),
        )
        questions = await bank.generate_self_test(request)
        assert {q.concept_tested for q in questions} == {"vlans"}

    @pytest.mark.asyncio
    async def test_no_match_is_a_generation_error(self, bank):
        with pytest.raises(GenerationError):
            await bank.generate_self_test(_request(selected_topics=["ospf"], question_count=5))

    @pytest.mark.asyncio
    async def test_vocal_flags_cleared_when_disabled(self, bank):
        questions = await bank.generate_self_test(
            _request(selected_topics=["routing"], question_count=5, include_vocal_explanations=False)
        )
        assert not any(q.requires_vocal_explanation for q in questions)

    @pytest.mark.asyncio
    async def test_same_seed_same_sample(self, bank_file):
        request = _request(selected_topics=["subnetting", "routing"], question_count=5)
        first = await QuestionBank.from_file(bank_file, seed=3).generate_self_test(request)
        second = await QuestionBank.from_file(bank_file, seed=3).generate_self_test(request)
        assert [q.id for q in first] == [q.id for q in second]
