"""
Adaptive Self-Assessment Engine.

Provides:
- Configuration validation for self-tests
- A timed test session state machine (setup -> testing -> results)
- Escalating feedback for single-question practice
- Client-side mastery aggregation and readiness banding
- Offline question bank and evaluators
"""

from src.selftest.adaptive import AdaptivePractice
from src.selftest.aggregator import MasteryAggregator
from src.selftest.attempt_tracker import AttemptTracker
from src.selftest.escalation import EscalationDecision, FeedbackTier, escalate
from src.selftest.exceptions import (
    CannotAdvanceError,
    ConfigurationRejected,
    EvaluationError,
    GenerationError,
    InvalidPhaseError,
    RequestPendingError,
    SelfTestError,
    ServiceError,
    TimeExpiredError,
)
from src.selftest.local_services import LocalAnswerEvaluator, LocalSelfTestEvaluator
from src.selftest.models import (
    AttemptRecord,
    Phase,
    Question,
    QuestionType,
    ReadinessBand,
    TestConfiguration,
    TestDifficulty,
    TestMode,
    TestResult,
)
from src.selftest.question_bank import QuestionBank
from src.selftest.session import SessionNotice, TestSession, can_advance
from src.selftest.timer import AsyncioScheduler, ManualScheduler
from src.selftest.validator import Ready, Rejected, validate_configuration

__all__ = [
    "AdaptivePractice",
    "AsyncioScheduler",
    "AttemptRecord",
    "AttemptTracker",
    "CannotAdvanceError",
    "ConfigurationRejected",
    "EscalationDecision",
    "EvaluationError",
    "FeedbackTier",
    "GenerationError",
    "InvalidPhaseError",
    "LocalAnswerEvaluator",
    "LocalSelfTestEvaluator",
    "ManualScheduler",
    "MasteryAggregator",
    "Phase",
    "Question",
    "QuestionBank",
    "QuestionType",
    "ReadinessBand",
    "Ready",
    "Rejected",
    "RequestPendingError",
    "SelfTestError",
    "ServiceError",
    "SessionNotice",
    "TestConfiguration",
    "TestDifficulty",
    "TestMode",
    "TestResult",
    "TestSession",
    "TimeExpiredError",
    "can_advance",
    "escalate",
    "validate_configuration",
]
