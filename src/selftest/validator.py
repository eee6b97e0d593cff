"""
Test Configuration Validator.

Gatekeeper between Setup and Testing. Pure predicate: question count and
difficulty come from closed enumerations (enforced by TestConfiguration
itself), so the only reachable rejection is a missing topic selection.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

from src.selftest.models import TestConfiguration, TestMode

NO_TOPICS_REASON = "select at least one topic"


@dataclass(frozen=True)
class Ready:
    ok: Literal[True] = True


@dataclass(frozen=True)
class Rejected:
    reason: str
    ok: Literal[False] = False


ValidationOutcome = Union[Ready, Rejected]


def validate_configuration(config: TestConfiguration) -> ValidationOutcome:
    """Return Ready if a session may start with this configuration."""
    if config.test_mode != TestMode.WEAK_AREAS and not config.selected_topics:
        return Rejected(NO_TOPICS_REASON)
    return Ready()
