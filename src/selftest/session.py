"""
Test Session: state machine for a timed self-test.

Phases:
    SETUP  --start_test()-->  TESTING  --submit()/time up-->  RESULTS
      ^                                                          |
      +-------------------------reset()--------------------------+

Responsibilities:
- Gate entry with the configuration validator
- Own the question pointer, attempt records and transcript buffer
- Drive the session countdown and per-question stopwatch
- Issue generation / evaluation requests (at most one of each kind in flight)
- Discard responses that belong to a session that has since been reset

Every transition runs to completion inside one event (user action, timer
tick or service response); nothing here is thread-safe or meant to be.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Literal

from loguru import logger

from config import get_settings
from src.selftest.aggregator import MasteryAggregator
from src.selftest.exceptions import (
    CannotAdvanceError,
    ConfigurationRejected,
    GenerationError,
    InvalidPhaseError,
    RequestPendingError,
    ServiceError,
    TimeExpiredError,
)
from src.selftest.models import (
    AttemptRecord,
    Phase,
    Question,
    SessionState,
    TestConfiguration,
    TestResult,
)
from src.selftest.services import (
    DocumentContext,
    GenerationRequest,
    QuestionGenerator,
    SelfTestEvaluationRequest,
    SelfTestEvaluator,
)
from src.selftest.timer import QuestionStopwatch, Scheduler, SessionCountdown, TimerHandle
from src.selftest.transcript import TranscriptBuffer, TranscriptFeed
from src.selftest.validator import Rejected, ValidationOutcome, validate_configuration


@dataclass(frozen=True)
class SessionNotice:
    """User-visible message (the toast/banner of a UI)."""

    level: Literal["info", "warning", "error"]
    title: str
    message: str


NoticeListener = Callable[[SessionNotice], None]


def can_advance(
    question: Question,
    record: AttemptRecord | None,
    config: TestConfiguration,
) -> bool:
    """
    Whether Next is enabled for a question.

    Requires a non-empty answer and, when both the question and the
    configuration ask for a vocal explanation, a non-empty transcript.
    """
    if record is None or not record.has_answer:
        return False
    if question.requires_vocal_explanation and config.include_vocal_explanations:
        return record.has_vocal_explanation
    return True


class TestSession:
    """
    Orchestrates configuration -> timed question loop -> scored results.

    Services and the scheduler are injected so the whole lifecycle can be
    driven by a ManualScheduler and in-process fakes.
    """

    __test__ = False

    def __init__(
        self,
        generator: QuestionGenerator,
        evaluator: SelfTestEvaluator,
        scheduler: Scheduler,
        config: TestConfiguration | None = None,
        documents: Sequence[DocumentContext] = (),
        weak_areas: Sequence[str] = (),
        aggregator: MasteryAggregator | None = None,
        spawn: Callable[[Awaitable[Any]], Any] | None = None,
    ):
        settings = get_settings()
        self._generator = generator
        self._evaluator = evaluator
        self._scheduler = scheduler
        self._aggregator = aggregator or MasteryAggregator()
        self._spawn = spawn or asyncio.ensure_future

        self.config = config or TestConfiguration(question_count=settings.default_question_count)
        self.documents = tuple(documents)
        self.weak_areas = tuple(weak_areas)

        self.state = SessionState()
        self.result: TestResult | None = None
        self.last_error: str | None = None
        self.is_generating = False
        self.is_submitting = False
        self.needs_resubmission = False

        self._stopwatch = QuestionStopwatch(scheduler)
        self._transcript = TranscriptBuffer()
        self._countdown: SessionCountdown | None = None
        self._resubmit_handle: TimerHandle | None = None
        self._resubmit_attempts = 0
        self._resubmit_delay = settings.timeout_resubmit_delay_seconds
        self._max_resubmits = settings.timeout_resubmit_attempts
        self._started_monotonic: float | None = None
        self._generation = 0
        self._submission_seq = 0
        self._forced_task: Any = None
        self._listeners: list[NoticeListener] = []

    # =========================================================================
    # Read-only views
    # =========================================================================

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def questions(self) -> tuple[Question, ...]:
        return self.state.questions

    @property
    def current_index(self) -> int:
        return self.state.current_index

    @property
    def current_question(self) -> Question | None:
        return self.state.current_question

    @property
    def current_record(self) -> AttemptRecord | None:
        question = self.current_question
        return self.state.attempts.get(question.id) if question else None

    @property
    def time_remaining(self) -> int | None:
        """Seconds left on the countdown, None for untimed sessions."""
        return self.state.remaining_seconds

    @property
    def timed_out(self) -> bool:
        return self.state.timed_out

    @property
    def elapsed_ms(self) -> int:
        if self._started_monotonic is None:
            return 0
        return int(round((self._scheduler.now() - self._started_monotonic) * 1000))

    @property
    def transcript(self) -> str:
        return self._transcript.text

    @property
    def forced_submission(self) -> Any:
        """Task running the time-up submission, if one was started."""
        return self._forced_task

    def can_advance(self) -> bool:
        question = self.current_question
        if self.phase != Phase.TESTING or question is None or self.state.timed_out:
            return False
        return can_advance(question, self.current_record, self.config)

    def can_go_back(self) -> bool:
        return self.phase == Phase.TESTING and self.state.current_index > 0 and not self.state.timed_out

    # =========================================================================
    # Notices
    # =========================================================================

    def subscribe(self, listener: NoticeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, level: Literal["info", "warning", "error"], title: str, message: str) -> None:
        log = {"info": logger.info, "warning": logger.warning, "error": logger.error}[level]
        log(f"{title}: {message}")
        notice = SessionNotice(level, title, message)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Notice listener failed")

    # =========================================================================
    # Setup phase
    # =========================================================================

    def configure(self, **changes: Any) -> TestConfiguration:
        """Replace configuration fields; only allowed during setup."""
        self._require_phase(Phase.SETUP)
        self.config = replace(self.config, **changes)
        return self.config

    def toggle_topic(self, topic: str) -> TestConfiguration:
        topics = list(self.config.selected_topics)
        if topic in topics:
            topics.remove(topic)
        else:
            topics.append(topic)
        return self.configure(selected_topics=topics)

    def validate(self) -> ValidationOutcome:
        return validate_configuration(self.config)

    async def start_test(self) -> tuple[Question, ...]:
        """
        Validate, request questions and enter the testing phase.

        Returns:
            The session's question list (empty if the response went stale)

        Raises:
            ConfigurationRejected: validator rejected the configuration
            RequestPendingError: a generation request is already in flight
            GenerationError: the generation service failed
        """
        self._require_phase(Phase.SETUP)
        if self.is_generating:
            raise RequestPendingError("Questions are already being generated")

        outcome = self.validate()
        if isinstance(outcome, Rejected):
            self._notify("error", "Please select topics", outcome.reason)
            raise ConfigurationRejected(outcome.reason)

        generation = self._generation
        request = GenerationRequest(
            config=self.config,
            documents=self.documents,
            weak_areas=self.weak_areas,
        )
        self.is_generating = True
        self.last_error = None
        try:
            questions = await self._generator.generate_self_test(request)
        except ServiceError as exc:
            if generation != self._generation:
                logger.debug(f"Ignoring generation failure for a reset session: {exc}")
                return ()
            self.last_error = str(exc)
            self._notify("error", "Could not generate self-test", str(exc))
            raise
        finally:
            if generation == self._generation:
                self.is_generating = False

        if generation != self._generation:
            logger.debug("Discarding generated questions for a reset session")
            return ()
        if not questions:
            self.last_error = "no questions were generated"
            self._notify("error", "Could not generate self-test", self.last_error)
            raise GenerationError(self.last_error)

        self._enter_testing(tuple(questions))
        self._notify(
            "info",
            "Self-Test Ready!",
            f"{len(self.state.questions)} questions prepared. Good luck!",
        )
        return self.state.questions

    def _enter_testing(self, questions: tuple[Question, ...]) -> None:
        self._generation += 1
        self._started_monotonic = self._scheduler.now()
        self.state = SessionState(
            phase=Phase.TESTING,
            questions=questions,
            current_index=0,
            started_at=datetime.now(timezone.utc),
        )
        self._stopwatch.reset()
        self._transcript.reset()
        self._enter_question()

        if self.config.is_timed:
            self.state.remaining_seconds = self.config.time_limit_seconds
            self._countdown = SessionCountdown(
                self._scheduler,
                self.config.time_limit_seconds,
                on_expire=self._handle_time_up,
                on_tick=self._handle_tick,
            )
            self._countdown.start()

        logger.info(
            f"Self-test started: {len(questions)} questions, "
            f"time limit {self.config.time_limit_minutes or 'unlimited'} min"
        )

    # =========================================================================
    # Testing phase: answers
    # =========================================================================

    def _require_answerable(self) -> Question:
        self._require_phase(Phase.TESTING)
        if self.state.timed_out:
            raise TimeExpiredError("Time is up; answers can no longer change")
        question = self.current_question
        assert question is not None
        return question

    def _record(self, question_id: str) -> AttemptRecord:
        record = self.state.attempts.get(question_id)
        if record is None:
            record = AttemptRecord(question_id=question_id)
            self.state.attempts[question_id] = record
        return record

    def set_answer(self, answer: str) -> AttemptRecord:
        question = self._require_answerable()
        record = self._record(question.id)
        record.answer = answer
        return record

    def set_confidence(self, confidence: int | None) -> AttemptRecord:
        question = self._require_answerable()
        if confidence is not None and not 1 <= confidence <= 5:
            raise ValueError("confidence must be between 1 and 5")
        record = self._record(question.id)
        record.confidence = confidence
        return record

    def append_transcript(self, fragment: str) -> AttemptRecord:
        """Add a partial transcript to the current question's vocal explanation."""
        question = self._require_answerable()
        record = self._record(question.id)
        self._transcript.append(fragment)
        if not self._transcript.is_empty:
            record.vocal_explanation = self._transcript.text
        return record

    async def consume_transcript(self, feed: TranscriptFeed) -> None:
        """
        Append fragments from a speech feed until it ends or the question changes.

        Runs alongside the session; Next stays disabled (not blocked) until a
        non-empty transcript has arrived.
        """
        question = self.current_question
        generation = self._generation
        if question is None:
            return
        async for fragment in feed:
            if (
                generation != self._generation
                or self.phase != Phase.TESTING
                or self.state.timed_out
                or self.current_question is None
                or self.current_question.id != question.id
            ):
                logger.debug(f"Transcript feed for {question.id} stopped: question no longer current")
                return
            self.append_transcript(fragment)

    # =========================================================================
    # Testing phase: navigation
    # =========================================================================

    def _enter_question(self) -> None:
        self._transcript.reset()
        question = self.current_question
        if question is None:
            return
        self._stopwatch.enter(question.id)
        # Revisiting keeps the explanation already spoken for this question
        record = self.state.attempts.get(question.id)
        if record is not None and record.has_vocal_explanation:
            self._transcript.append(record.vocal_explanation)

    def _record_elapsed(self) -> None:
        question = self.current_question
        if question is not None:
            self._record(question.id).time_spent_ms = self._stopwatch.elapsed_ms(question.id)

    def previous(self) -> int:
        """Go back one question; the record being left is kept."""
        self._require_answerable()
        if self.state.current_index == 0:
            raise InvalidPhaseError("Already at the first question")
        self._record_elapsed()
        self.state.current_index -= 1
        self._enter_question()
        return self.state.current_index

    async def next(self) -> TestResult | None:
        """
        Advance to the next question, or submit on the last one.

        Returns:
            The TestResult when this press submitted the test, else None
        """
        question = self._require_answerable()
        if not can_advance(question, self.current_record, self.config):
            raise CannotAdvanceError(f"Question {question.id} is not complete yet")

        if self.state.is_last_question:
            return await self.submit()

        self._record_elapsed()
        self.state.current_index += 1
        self._enter_question()
        return None

    # =========================================================================
    # Submission
    # =========================================================================

    def _collect_attempts(self) -> tuple[AttemptRecord, ...]:
        """One record per question, empty for unanswered ones."""
        return tuple(
            replace(self.state.attempts.get(q.id) or AttemptRecord(question_id=q.id))
            for q in self.state.questions
        )

    async def submit(self, forced: bool = False) -> TestResult | None:
        """
        Send every answer for evaluation and enter the results phase.

        A forced (time-up) submission is issued even while another submission
        is pending; whichever response is not the latest is discarded.

        Returns:
            The TestResult, or None if the response arrived for a stale session
        """
        self._require_phase(Phase.TESTING)
        if self.is_submitting and not forced:
            raise RequestPendingError("The test is already being submitted")

        if not self.state.timed_out:
            self._record_elapsed()
        generation = self._generation
        self._submission_seq += 1
        seq = self._submission_seq

        request = SelfTestEvaluationRequest(
            questions=self.state.questions,
            attempts=self._collect_attempts(),
            config=self.config,
            total_time_ms=self.elapsed_ms,
        )
        self.is_submitting = True
        self.last_error = None
        try:
            evaluation = await self._evaluator.evaluate_self_test(request)
        except ServiceError as exc:
            if self._is_current(generation, seq):
                self.is_submitting = False
                self.last_error = str(exc)
                self._notify("error", "Could not evaluate self-test", str(exc))
                if self.state.timed_out:
                    self._schedule_resubmission()
                raise
            logger.debug(f"Ignoring failure of superseded submission #{seq}: {exc}")
            return None

        if not self._is_current(generation, seq):
            logger.debug(f"Discarding stale evaluation for submission #{seq}")
            return None

        result = self._aggregator.aggregate(
            self.state.questions,
            self.state.attempts,
            evaluation,
            total_time_ms=request.total_time_ms,
            timed_out=self.state.timed_out,
        )
        self._enter_results(result)
        return result

    def _is_current(self, generation: int, seq: int) -> bool:
        return (
            generation == self._generation
            and seq == self._submission_seq
            and self.phase == Phase.TESTING
        )

    def _enter_results(self, result: TestResult) -> None:
        self._cancel_timers()
        self.is_submitting = False
        self.needs_resubmission = False
        self.result = result
        self.state.phase = Phase.RESULTS
        self._notify(
            "info",
            "Self-Test Complete!",
            f"Your score: {result.score_percentage}%. Check detailed feedback below.",
        )

    # =========================================================================
    # Timer callbacks
    # =========================================================================

    def _handle_tick(self, remaining: int) -> None:
        self.state.remaining_seconds = remaining

    def _handle_time_up(self) -> None:
        if self.phase != Phase.TESTING:
            return
        self._record_elapsed()
        self.state.remaining_seconds = 0
        self.state.timed_out = True
        self._notify("warning", "Time's up!", "Your test has been automatically submitted.")
        self._forced_task = self._spawn(self._run_forced_submission(self._generation))

    async def _run_forced_submission(self, generation: int) -> TestResult | None:
        self._resubmit_handle = None
        if generation != self._generation or self.phase != Phase.TESTING:
            return None
        try:
            return await self.submit(forced=True)
        except ServiceError as exc:
            # Already surfaced as a notice; a resubmission is scheduled
            logger.warning(f"Time-up submission failed: {exc}")
            return None

    def _schedule_resubmission(self) -> None:
        self.needs_resubmission = True
        if self._resubmit_attempts >= self._max_resubmits:
            self._notify(
                "warning",
                "Submission pending",
                "Your answers are saved. Submit again when the connection is back.",
            )
            return
        if self._resubmit_handle is not None:
            self._resubmit_handle.cancel()
        self._resubmit_attempts += 1
        generation = self._generation
        logger.info(
            f"Re-submitting timed-out test in {self._resubmit_delay}s "
            f"(attempt {self._resubmit_attempts}/{self._max_resubmits})"
        )
        self._resubmit_handle = self._scheduler.call_later(
            self._resubmit_delay,
            lambda: self._spawn_resubmission(generation),
        )

    def _spawn_resubmission(self, generation: int) -> None:
        self._forced_task = self._spawn(self._run_forced_submission(generation))

    def _cancel_timers(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
        if self._resubmit_handle is not None:
            self._resubmit_handle.cancel()
            self._resubmit_handle = None

    # =========================================================================
    # Reset
    # =========================================================================

    def reset(self) -> None:
        """Back to setup; clears questions, answers, timers and result."""
        self._cancel_timers()
        self._generation += 1
        self._countdown = None
        self._started_monotonic = None
        self._resubmit_attempts = 0
        self._forced_task = None
        self.state = SessionState()
        self.result = None
        self.last_error = None
        self.is_generating = False
        self.is_submitting = False
        self.needs_resubmission = False
        self._stopwatch.reset()
        self._transcript.reset()
        logger.debug("Self-test reset to setup")

    def _require_phase(self, phase: Phase) -> None:
        if self.state.phase != phase:
            raise InvalidPhaseError(
                f"Action requires phase '{phase.value}', session is in '{self.state.phase.value}'"
            )
