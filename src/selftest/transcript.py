"""
Vocal explanation transcript buffer.

Speech-to-text delivers partial transcripts over time. They are appended
here rather than concatenated ad hoc in event handlers; the buffer is reset
whenever a new question becomes current.
"""

from __future__ import annotations

from collections.abc import AsyncIterable

# Any async source of partial transcript fragments (microphone bridge, script, ...)
TranscriptFeed = AsyncIterable[str]


class TranscriptBuffer:
    """Append-only transcript for the question currently on screen."""

    def __init__(self):
        self._fragments: list[str] = []

    def append(self, fragment: str) -> None:
        fragment = fragment.strip()
        if fragment:
            self._fragments.append(fragment)

    def reset(self) -> None:
        self._fragments = []

    @property
    def text(self) -> str:
        return " ".join(self._fragments)

    @property
    def is_empty(self) -> bool:
        return not self._fragments

    def __len__(self) -> int:
        return len(self._fragments)
