"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import get_settings  # noqa: E402
from src.selftest.exceptions import EvaluationError, GenerationError  # noqa: E402
from src.selftest.local_services import LocalSelfTestEvaluator  # noqa: E402
from src.selftest.models import (  # noqa: E402
    Question,
    QuestionDifficulty,
    QuestionType,
    TestConfiguration,
)
from src.selftest.timer import ManualScheduler  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full engine, in-process services)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached per process; start every test from the defaults."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


# =============================================================================
# Domain fixtures
# =============================================================================


def _make_question(
    qid: str,
    concept: str = "subnetting",
    question_type: QuestionType = QuestionType.SHORT_ANSWER,
    correct_answer: str = "answer",
    **kwargs,
) -> Question:
    return Question(
        id=qid,
        prompt=kwargs.pop("prompt", f"Prompt for {qid}?"),
        question_type=question_type,
        correct_answer=correct_answer,
        concept_tested=concept,
        **kwargs,
    )


@pytest.fixture
def make_question():
    """Factory for single questions."""
    return _make_question


@pytest.fixture
def sample_questions():
    """Five questions covering every answer format."""
    return [
        _make_question(
            "q1",
            concept="osi-model",
            question_type=QuestionType.MULTIPLE_CHOICE,
            prompt="Which OSI layer handles routing?",
            options=("Physical", "Data Link", "Network", "Transport"),
            correct_answer="Network",
            explanation="Routers forward packets at layer 3. That layer is the Network layer.",
        ),
        _make_question(
            "q2",
            concept="osi-model",
            question_type=QuestionType.TRUE_FALSE,
            prompt="Switches operate at layer 2.",
            correct_answer="True",
            difficulty=QuestionDifficulty.EASY,
        ),
        _make_question(
            "q3",
            concept="subnetting",
            prompt="How many usable hosts does a /24 network provide?",
            correct_answer="254 usable hosts",
            explanation="Two addresses are reserved for network and broadcast.",
        ),
        _make_question(
            "q4",
            concept="subnetting",
            question_type=QuestionType.EXPLANATION,
            prompt="Explain why subnetting reduces broadcast traffic.",
            correct_answer="smaller broadcast domains limit flooding",
            difficulty=QuestionDifficulty.HARD,
        ),
        _make_question(
            "q5",
            concept="routing",
            question_type=QuestionType.APPROACH_SELECTION,
            prompt="Which approach scales best for a large network?",
            approach_choices=("Static routes", "OSPF", "RIP"),
            correct_answer="OSPF",
        ),
    ]


@pytest.fixture
def sample_config():
    """Untimed five-question test without spoken explanations."""
    return TestConfiguration(
        selected_topics=["osi-model", "subnetting", "routing"],
        question_count=5,
        include_vocal_explanations=False,
    )


@pytest.fixture
def scheduler():
    """Deterministic scheduler; tests move time with advance()."""
    return ManualScheduler()


# =============================================================================
# In-process service fakes
# =============================================================================


class FakeGenerator:
    """QuestionGenerator returning a fixed list, optionally failing or held open."""

    def __init__(self, questions):
        self.questions = list(questions)
        self.requests = []
        self.error: str | None = None
        self.gate: asyncio.Event | None = None

    async def generate_self_test(self, request):
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise GenerationError(self.error)
        return list(self.questions)


class FakeEvaluator(LocalSelfTestEvaluator):
    """Local scoring with scripted failures and an optional gate."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.requests = []
        self.gate: asyncio.Event | None = None

    async def evaluate_self_test(self, request):
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            self.failures -= 1
            raise EvaluationError("evaluation service unavailable")
        return await super().evaluate_self_test(request)


@pytest.fixture
def generator(sample_questions):
    return FakeGenerator(sample_questions)


@pytest.fixture
def evaluator():
    return FakeEvaluator()
