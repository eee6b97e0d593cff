"""
Local answer scoring.

Used when the evaluation service leaves a question unscored and by the
offline evaluators. Closed questions need an exact (case-insensitive)
match; free-text answers pass on keyword overlap with the canonical answer.
"""

from __future__ import annotations

import re

from src.selftest.models import Question

KEYWORD_MATCH_RATIO = 0.6
MIN_KEYWORD_LENGTH = 4

_WHITESPACE = re.compile(r"\s+")


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text.strip().lower())


def keyword_overlap(answer: str, canonical: str) -> float:
    """
    Share of the canonical answer's words matched by the learner's answer.

    Only canonical words of MIN_KEYWORD_LENGTH+ characters can match, but the
    ratio is taken over all canonical words, so short canonical answers made of
    stop words never pass on overlap alone.
    """
    user_words = _normalize(answer).split(" ")
    correct_words = _normalize(canonical).split(" ")
    matches = [
        word
        for word in correct_words
        if len(word) >= MIN_KEYWORD_LENGTH
        and any(word in user_word or (user_word and user_word in word) for user_word in user_words)
    ]
    return len(matches) / max(len(correct_words), 1)


def is_answer_correct(question: Question, answer: str) -> bool:
    """Score one answer against a question's canonical answer."""
    if not answer or not answer.strip() or not question.correct_answer:
        return False

    if question.question_type.is_closed:
        return _normalize(answer) == _normalize(question.correct_answer)

    return keyword_overlap(answer, question.correct_answer) >= KEYWORD_MATCH_RATIO
