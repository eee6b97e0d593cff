"""
Self-Test CLI.

Commands:
    selftest validate  - Check a test configuration without starting it
    selftest run       - Take a (optionally timed) self-test
    selftest practice  - Adaptive practice with escalating feedback

Questions come from a local JSON bank (--bank) or the study API (--api-url).
Prompts run in a worker thread so the countdown keeps ticking while the
learner types.
"""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from config import get_settings
from src.integrations.study_api_client import StudyApiClient
from src.selftest.adaptive import AdaptivePractice
from src.selftest.exceptions import SelfTestError, ServiceError, TimeExpiredError
from src.selftest.local_services import LocalAnswerEvaluator, LocalSelfTestEvaluator
from src.selftest.models import (
    Phase,
    Question,
    TestConfiguration,
    TestDifficulty,
    TestMode,
    TestResult,
)
from src.selftest.question_bank import QuestionBank
from src.selftest.services import DocumentContext, GenerationRequest
from src.selftest.session import SessionNotice, TestSession
from src.selftest.timer import AsyncioScheduler
from src.selftest.validator import Rejected, validate_configuration

app = typer.Typer(
    name="selftest",
    help="Adaptive self-assessment: timed self-tests and guided practice",
    no_args_is_help=True,
)
console = Console()

BACK_COMMAND = "<"

NOTICE_STYLES = {
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
}


# =============================================================================
# Shared options
# =============================================================================

TopicOption = Annotated[
    list[str] | None, typer.Option("--topic", "-t", help="Topic to include (repeatable)")
]
ModeOption = Annotated[TestMode, typer.Option("--mode", "-m", help="Test mode")]
DifficultyOption = Annotated[TestDifficulty, typer.Option("--difficulty", "-d", help="Test difficulty")]
CountOption = Annotated[
    int | None, typer.Option("--count", "-n", help="Number of questions (5, 10 or 20)")
]
BankOption = Annotated[
    Path | None, typer.Option("--bank", "-b", help="Local JSON question bank (offline mode)")
]
ApiUrlOption = Annotated[str | None, typer.Option("--api-url", help="Study API base URL")]
SeedOption = Annotated[int | None, typer.Option("--seed", help="Seed for question sampling")]


def _build_config(
    topics: list[str] | None,
    mode: TestMode,
    difficulty: TestDifficulty,
    count: int | None,
    time_limit: int = 0,
    vocal: bool = True,
    focus: list[str] | None = None,
) -> TestConfiguration:
    try:
        return TestConfiguration(
            selected_topics=topics or [],
            difficulty=difficulty,
            question_count=count or get_settings().default_question_count,
            time_limit_minutes=time_limit,
            include_vocal_explanations=vocal,
            focus_areas=focus or [],
            test_mode=mode,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


def _offline_bank(bank: Path | None, seed: int | None) -> QuestionBank | None:
    settings = get_settings()
    path = bank or settings.question_bank_path
    if path is None:
        return None
    return QuestionBank.from_file(path, seed=seed if seed is not None else settings.random_seed)


def _print_notice(notice: SessionNotice) -> None:
    color = NOTICE_STYLES[notice.level]
    console.print(f"[bold {color}]{notice.title}[/bold {color}] {notice.message}")


def _format_clock(seconds: int | None) -> str:
    if seconds is None:
        return "untimed"
    minutes, secs = divmod(max(seconds, 0), 60)
    return f"{minutes:02d}:{secs:02d} left"


# =============================================================================
# Display helpers
# =============================================================================

def display_question(question: Question, index: int, total: int, clock: str = "") -> None:
    """Show a question with its choices."""
    header = f"Question {index}/{total}  |  {question.question_type.value}  |  {question.concept_tested}"
    if clock:
        header += f"  |  {clock}"

    content = question.prompt
    if question.choices:
        content += "\n\n"
        for i, choice in enumerate(question.choices):
            content += f"  {chr(65 + i)}. {choice}\n"
    if question.requires_vocal_explanation:
        content += "\n[dim]Explain your reasoning after answering.[/dim]"

    console.print(Panel(content, title=header, title_align="left", border_style="cyan", padding=(1, 2)))


def _resolve_choice(question: Question, answer: str) -> str:
    """Accept a choice letter (A, B, ...) for closed questions."""
    letter = answer.strip().upper()
    if question.choices and len(letter) == 1 and "A" <= letter <= "Z":
        index = ord(letter) - 65
        if index < len(question.choices):
            return question.choices[index]
    return answer.strip()


def display_result(result: TestResult) -> None:
    """Show the scored self-test."""
    color = result.readiness.color
    summary = (
        f"Score: [bold]{result.score_percentage}%[/bold] "
        f"({result.correct_answers}/{result.total_questions} correct)\n"
        f"Average confidence: {result.average_confidence:.1f}/5\n"
        f"Time: {result.total_time_minutes:.1f} min"
    )
    if result.timed_out:
        summary += "  [yellow](time ran out)[/yellow]"
    summary += f"\n\n[bold {color}]{result.readiness.value}[/bold {color}]: {result.readiness_message}"
    console.print(Panel(summary, title="Self-Test Results", border_style=color, padding=(1, 2)))

    table = Table(title="Answers", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Concept")
    table.add_column("Your answer")
    table.add_column("Result", justify="center")
    table.add_column("Confidence", justify="center")
    table.add_column("Time", justify="right")
    for i, outcome in enumerate(result.outcomes, start=1):
        table.add_row(
            str(i),
            outcome.concept_tested,
            outcome.user_answer or "[dim]-[/dim]",
            "[green]correct[/green]" if outcome.is_correct else "[red]wrong[/red]",
            str(outcome.confidence) if outcome.confidence else "-",
            f"{outcome.time_spent_ms / 1000:.0f}s",
        )
    console.print(table)

    if result.weak_areas:
        console.print("\n[bold red]Weak areas[/bold red]")
        for area in result.weak_areas:
            console.print(f"  - {area.concept} ({area.score:.0%}): {area.suggestion}")
    if result.strong_areas:
        console.print("\n[bold green]Strong areas[/bold green]")
        for area in result.strong_areas:
            console.print(f"  - {area.concept} ({area.score:.0%})")
    if result.recommendations:
        console.print("\n[bold cyan]Next steps[/bold cyan]")
        for recommendation in result.recommendations:
            console.print(f"  - {recommendation}")


# =============================================================================
# Commands
# =============================================================================

@app.command("validate")
def validate_command(
    topic: TopicOption = None,
    mode: ModeOption = TestMode.COMPREHENSIVE,
    difficulty: DifficultyOption = TestDifficulty.MIXED,
    count: CountOption = None,
) -> None:
    """
    Check whether a self-test configuration may start.

    Exits with status 1 when the configuration is rejected.
    """
    config = _build_config(topic, mode, difficulty, count)
    outcome = validate_configuration(config)
    if isinstance(outcome, Rejected):
        console.print(f"[red]Rejected:[/red] {outcome.reason}")
        raise typer.Exit(1)

    topics = ", ".join(config.selected_topics) or "weak areas"
    console.print(
        f"[green]Ready:[/green] {config.question_count} {config.difficulty.value} questions "
        f"on {topics} ({config.test_mode.value})"
    )


@app.command("run")
def run_command(
    topic: TopicOption = None,
    mode: ModeOption = TestMode.COMPREHENSIVE,
    difficulty: DifficultyOption = TestDifficulty.MIXED,
    count: CountOption = None,
    time_limit: Annotated[
        int, typer.Option("--time-limit", "-l", help="Time limit in minutes (0 = unlimited)")
    ] = 0,
    vocal: Annotated[
        bool, typer.Option("--vocal/--no-vocal", help="Ask for spoken (typed) explanations")
    ] = True,
    focus: Annotated[
        list[str] | None, typer.Option("--focus", help="Focus area for custom tests (repeatable)")
    ] = None,
    weak_area: Annotated[
        list[str] | None, typer.Option("--weak-area", "-w", help="Known weak area (repeatable)")
    ] = None,
    document: Annotated[
        list[str] | None, typer.Option("--document", help="Document id to use as context (API mode)")
    ] = None,
    bank: BankOption = None,
    api_url: ApiUrlOption = None,
    seed: SeedOption = None,
) -> None:
    """
    Take a self-test.

    Type '<' as an answer to go back to the previous question.
    """
    config = _build_config(topic, mode, difficulty, count, time_limit, vocal, focus)
    try:
        result = asyncio.run(
            _run_session(config, bank, api_url, seed, weak_area or [], document or [])
        )
    except SelfTestError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if result is None:
        raise typer.Exit(1)
    display_result(result)


async def _run_session(
    config: TestConfiguration,
    bank: Path | None,
    api_url: str | None,
    seed: int | None,
    weak_areas: list[str],
    document_ids: list[str],
) -> TestResult | None:
    question_bank = _offline_bank(bank, seed)
    client = None if question_bank else StudyApiClient(api_url=api_url)
    try:
        documents: list[DocumentContext] = []
        if client is not None:
            for document_id in document_ids:
                documents.append(await client.get_document(document_id))
        elif document_ids:
            logger.warning("Documents are only used with the study API; ignoring --document")

        session = TestSession(
            generator=question_bank or client,
            evaluator=LocalSelfTestEvaluator() if question_bank else client,
            scheduler=AsyncioScheduler(),
            config=config,
            documents=documents,
            weak_areas=weak_areas,
        )
        session.subscribe(_print_notice)

        with console.status("[cyan]Generating your self-test...[/cyan]"):
            await session.start_test()

        await _question_loop(session)

        if session.forced_submission is not None:
            await session.forced_submission
        while session.phase == Phase.TESTING:
            retry = await asyncio.to_thread(Confirm.ask, "Submission failed. Retry?", default=True)
            if not retry:
                console.print("[yellow]Answers not submitted.[/yellow]")
                return None
            try:
                await session.submit()
            except ServiceError:
                continue
        return session.result
    finally:
        if client is not None:
            await client.close()


async def _question_loop(session: TestSession) -> None:
    total = len(session.questions)
    while session.phase == Phase.TESTING and not session.timed_out:
        question = session.current_question
        record = session.current_record
        display_question(
            question,
            session.current_index + 1,
            total,
            _format_clock(session.time_remaining),
        )

        answer = await asyncio.to_thread(
            Prompt.ask, "Your answer", default=record.answer if record else ""
        )
        if session.timed_out:
            break
        if answer.strip() == BACK_COMMAND:
            if session.can_go_back():
                session.previous()
            continue

        try:
            session.set_answer(_resolve_choice(question, answer))
            confidence = await asyncio.to_thread(
                IntPrompt.ask, "Confidence (1-5)", choices=["1", "2", "3", "4", "5"], default=3
            )
            session.set_confidence(confidence)
            if question.requires_vocal_explanation and session.config.include_vocal_explanations:
                explanation = await asyncio.to_thread(Prompt.ask, "Explain your reasoning")
                session.append_transcript(explanation)
        except TimeExpiredError:
            break

        if not session.can_advance():
            console.print("[yellow]Answer the question (and explain it) before moving on.[/yellow]")
            continue
        try:
            await session.next()
        except ServiceError:
            # Notice already shown; the retry prompt follows the loop
            break

    if session.timed_out and session.phase == Phase.TESTING:
        console.print("[dim]Your answers so far are being submitted.[/dim]")


@app.command("practice")
def practice_command(
    topic: TopicOption = None,
    mode: ModeOption = TestMode.COMPREHENSIVE,
    difficulty: DifficultyOption = TestDifficulty.MIXED,
    count: CountOption = None,
    bank: BankOption = None,
    api_url: ApiUrlOption = None,
    seed: SeedOption = None,
) -> None:
    """
    Practice one question at a time with escalating feedback.

    Wrong answers get encouragement, then a hint, then the full explanation.
    """
    config = _build_config(topic, mode, difficulty, count, vocal=False)
    outcome = validate_configuration(config)
    if isinstance(outcome, Rejected):
        console.print(f"[red]Rejected:[/red] {outcome.reason}")
        raise typer.Exit(1)

    try:
        practice = asyncio.run(_run_practice(config, bank, api_url, seed))
    except SelfTestError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Practice Summary")
    table.add_column("Question")
    table.add_column("Attempts", justify="right")
    table.add_column("Outcome", justify="center")
    for question in practice.questions:
        entry = practice.attempt_summary().get(question.id)
        if entry is None:
            continue
        if entry["correct"]:
            status = "[green]correct[/green]"
        elif entry["revealed"]:
            status = "[yellow]revealed[/yellow]"
        else:
            status = "[red]unfinished[/red]"
        table.add_row(question.concept_tested, str(entry["attempts"]), status)
    console.print(table)


async def _run_practice(
    config: TestConfiguration,
    bank: Path | None,
    api_url: str | None,
    seed: int | None,
) -> AdaptivePractice:
    question_bank = _offline_bank(bank, seed)
    client = None if question_bank else StudyApiClient(api_url=api_url)
    try:
        generator = question_bank or client
        with console.status("[cyan]Preparing practice questions...[/cyan]"):
            questions = await generator.generate_self_test(GenerationRequest(config=config))

        practice = AdaptivePractice(
            evaluator=LocalAnswerEvaluator() if question_bank else client,
            questions=questions,
        )
        total = len(practice.questions)
        while not practice.is_complete:
            question = practice.current_question
            display_question(question, practice.current_index + 1, total)
            answer = await asyncio.to_thread(Prompt.ask, "Your answer")
            if not answer.strip():
                continue

            try:
                feedback = await practice.submit_answer(_resolve_choice(question, answer))
            except ServiceError as e:
                console.print(f"[red]Could not evaluate:[/red] {e}")
                continue
            if feedback is None:
                continue

            style = "green" if feedback.is_correct else "yellow"
            console.print(f"[{style}]{feedback.adaptive_feedback}[/{style}]")
            if practice.can_advance:
                if feedback.should_reveal_answer and feedback.correct_answer:
                    console.print(f"[dim]Answer: {feedback.correct_answer}[/dim]")
                practice.advance()
        return practice
    finally:
        if client is not None:
            await client.close()


# =============================================================================
# Entry point
# =============================================================================

def configure_logging(level: str | None = None) -> None:
    """Route loguru output to stderr (and the configured log file)."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=level or settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="1 MB")


@app.callback()
def callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")] = False,
) -> None:
    """Adaptive self-assessment engine."""
    if verbose:
        configure_logging("DEBUG")


def main() -> None:
    """CLI entry point."""
    configure_logging()
    app()


if __name__ == "__main__":
    main()
