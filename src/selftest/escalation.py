"""
Escalation Policy: how much help a learner gets after each wrong answer.

Progressive feedback tiers, keyed only on the attempt number and correctness:
- Correct (any attempt): short confirmation
- Attempt 1 wrong: gentle encouragement to retry
- Attempt 2 wrong: encouragement plus a hint from the explanation
- Attempt 3+ wrong: full explanation with the correct answer revealed

The policy itself holds no state; attempt counts live in AttemptTracker.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from enum import Enum

from src.selftest.models import Question


class FeedbackTier(str, Enum):
    """Level of help given after a submission."""

    CONFIRMATION = "confirmation"  # Correct answer, short acknowledgement
    ENCOURAGEMENT = "encouragement"  # "Want to give it another shot?"
    HINT = "hint"  # Encouragement + nudge toward the key idea
    FULL_EXPLANATION = "full_explanation"  # Answer revealed with explanation


@dataclass(frozen=True)
class EscalationDecision:
    tier: FeedbackTier
    should_reveal_answer: bool


CONFIRMATIONS = ("Correct!", "Exactly right!", "Perfect!", "Great job!", "That's right!")

ENCOURAGEMENT = "Hmm, not quite. Want to give it another shot?"
HINT_LEAD = "Still not quite right. Think about the key concepts and try once more."

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def escalate(attempt_number: int, is_correct: bool) -> EscalationDecision:
    """
    Map an attempt to its feedback tier.

    Args:
        attempt_number: Submissions so far for this question, including this one
        is_correct: Whether this submission was correct

    Returns:
        EscalationDecision with the tier and whether to reveal the answer
    """
    if attempt_number < 1:
        raise ValueError(f"attempt_number starts at 1, got {attempt_number}")

    if is_correct:
        return EscalationDecision(FeedbackTier.CONFIRMATION, should_reveal_answer=False)
    if attempt_number == 1:
        return EscalationDecision(FeedbackTier.ENCOURAGEMENT, should_reveal_answer=False)
    if attempt_number == 2:
        return EscalationDecision(FeedbackTier.HINT, should_reveal_answer=False)
    return EscalationDecision(FeedbackTier.FULL_EXPLANATION, should_reveal_answer=True)


def _mentions(text: str, answer: str) -> bool:
    """Whole-word match, so short answers like "A" or "IP" don't hit inside other words."""
    answer = answer.strip()
    if not answer:
        return False
    return re.search(rf"(?<!\w){re.escape(answer)}(?!\w)", text, re.IGNORECASE) is not None


def derive_hint(question: Question) -> str:
    """First sentence of the explanation, or a nudge toward the concept if there is none."""
    explanation = question.explanation.strip()
    if explanation:
        first = _SENTENCE_END.split(explanation, maxsplit=1)[0]
        # Don't leak the answer through the hint
        if question.correct_answer and _mentions(first, question.correct_answer):
            return f"Think about how {question.concept_tested} applies here."
        return first
    return f"Think about how {question.concept_tested} applies here."


def compose_feedback(
    decision: EscalationDecision,
    question: Question,
    rng: random.Random | None = None,
) -> str:
    """Learner-facing text for a decision."""
    if decision.tier == FeedbackTier.CONFIRMATION:
        return (rng or random).choice(CONFIRMATIONS)
    if decision.tier == FeedbackTier.ENCOURAGEMENT:
        return ENCOURAGEMENT
    if decision.tier == FeedbackTier.HINT:
        return f"{HINT_LEAD} Hint: {derive_hint(question)}"
    explanation = question.explanation.strip().rstrip(".")
    if explanation:
        return (
            f"The correct answer is {question.correct_answer}. "
            f"Here's how it works: {explanation}. You were close!"
        )
    return f"The correct answer is {question.correct_answer}. You were close!"
