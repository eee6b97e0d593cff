"""
Per-question attempt counter for the adaptive feedback flow.

Counts only ever grow for a loaded question set; reset() is called when a
fresh set is loaded (switching topic or document).
"""

from __future__ import annotations


class AttemptTracker:
    """Counts submissions per question id."""

    def __init__(self):
        self._counts: dict[str, int] = {}

    def record(self, question_id: str) -> int:
        """Register one more submission and return the new attempt number (first = 1)."""
        self._counts[question_id] = self._counts.get(question_id, 0) + 1
        return self._counts[question_id]

    def count(self, question_id: str) -> int:
        return self._counts.get(question_id, 0)

    def reset(self) -> None:
        self._counts.clear()

    def snapshot(self) -> dict[str, int]:
        """Copy of the counts, shaped like the API's attemptHistory field."""
        return dict(self._counts)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._counts

    def __len__(self) -> int:
        return len(self._counts)
