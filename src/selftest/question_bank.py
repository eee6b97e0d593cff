"""
Question Bank: offline QuestionGenerator backed by a JSON file.

The file holds either {"questions": [...]} or a bare list, in the same
schema the study API returns, and goes through the same normalisation.

Selection:
- comprehensive: questions whose concept or source matches a selected topic
- custom: selected topics plus focus areas
- weak-areas: the learner's weak areas plus focus areas (falls back to topics)
- difficulty narrows the pool unless the test is mixed
- question_count questions are sampled (all of them if the pool is smaller)
"""

from __future__ import annotations

import json
import random
from collections.abc import Iterable, Sequence
from dataclasses import replace
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from src.integrations.study_api_schemas import QuestionSetPayload
from src.selftest.exceptions import GenerationError
from src.selftest.models import (
    Question,
    QuestionDifficulty,
    TestConfiguration,
    TestDifficulty,
    TestMode,
)
from src.selftest.services import GenerationRequest


class QuestionBank:
    """In-memory question pool implementing QuestionGenerator."""

    def __init__(self, questions: Sequence[Question], seed: int | None = None):
        self.questions = tuple(questions)
        self._rng = random.Random(seed)

    @classmethod
    def from_file(cls, path: str | Path, seed: int | None = None) -> QuestionBank:
        """
        Load a bank from JSON.

        Raises:
            GenerationError: File missing, not JSON, or not a question set
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise GenerationError(f"Cannot read question bank {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise GenerationError(f"Question bank {path} is not valid JSON: {e}") from e

        if isinstance(data, list):
            data = {"questions": data}
        try:
            payload = QuestionSetPayload.model_validate(data)
        except ValidationError as e:
            raise GenerationError(f"Question bank {path} is malformed: {e}") from e

        bank = cls([q.to_domain() for q in payload.questions], seed=seed)
        logger.info(f"Loaded {len(bank.questions)} questions from {path}")
        return bank

    @property
    def topics(self) -> list[str]:
        """Distinct concepts in the bank, in file order."""
        return list(dict.fromkeys(q.concept_tested for q in self.questions))

    async def generate_self_test(self, request: GenerationRequest) -> list[Question]:
        config = request.config
        pool = self._filter_topics(config, request.weak_areas)
        pool = self._filter_difficulty(pool, config.difficulty)
        if not pool:
            raise GenerationError("No questions in the bank match this configuration")

        count = min(config.question_count, len(pool))
        if count < config.question_count:
            logger.warning(f"Bank has only {count} matching questions (asked for {config.question_count})")
        selected = self._rng.sample(pool, count)

        if not config.include_vocal_explanations:
            selected = [replace(q, requires_vocal_explanation=False) for q in selected]
        return selected

    def _filter_topics(self, config: TestConfiguration, weak_areas: Iterable[str]) -> list[Question]:
        if config.test_mode == TestMode.WEAK_AREAS:
            wanted = [*weak_areas, *config.focus_areas] or config.selected_topics
        elif config.test_mode == TestMode.CUSTOM:
            wanted = [*config.selected_topics, *config.focus_areas]
        else:
            wanted = config.selected_topics

        if not wanted:
            return list(self.questions)
        keys = {w.lower() for w in wanted}
        return [
            q for q in self.questions
            if q.concept_tested.lower() in keys
            or (q.document_source and q.document_source.lower() in keys)
        ]

    @staticmethod
    def _filter_difficulty(pool: list[Question], difficulty: TestDifficulty) -> list[Question]:
        if difficulty == TestDifficulty.MIXED:
            return pool
        target = QuestionDifficulty(difficulty.value)
        return [q for q in pool if q.difficulty == target]
