"""
Study API client for question generation and answer evaluation.

Handles HTTP communication with the study API (quiz generation, adaptive
answer evaluation, self-test evaluation) and the content store's document
endpoint. Implements the engine's QuestionGenerator, AnswerEvaluator and
SelfTestEvaluator protocols.

Transport failures and malformed payloads are raised as GenerationError /
EvaluationError; retrying is left to the caller.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from config import get_settings
from src.selftest.escalation import escalate
from src.selftest.exceptions import EvaluationError, GenerationError, ServiceError
from src.selftest.models import Question
from src.selftest.scoring import is_answer_correct
from src.selftest.services import (
    AnswerEvaluationRequest,
    AnswerFeedback,
    DocumentContext,
    GenerationRequest,
    QuestionScore,
    SelfTestEvaluation,
    SelfTestEvaluationRequest,
)
from src.integrations.study_api_schemas import (
    AnswerEvaluationPayload,
    ConfigPayload,
    DocumentPayload,
    QuestionPayload,
    QuestionSetPayload,
    SelfTestEvaluationPayload,
    UserAnswerPayload,
)


class StudyApiClient:
    """HTTP client for the study API."""

    def __init__(
        self,
        api_url: str | None = None,
        timeout_ms: int | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize study API client.

        Args:
            api_url: Base URL for the study API (defaults to settings)
            timeout_ms: Request timeout in milliseconds (defaults to settings)
            client: Pre-built httpx client (cookies, transport), mainly for tests
        """
        settings = get_settings()
        self.api_url = (api_url or settings.study_api_url).rstrip("/")
        self.timeout_seconds = (timeout_ms or settings.study_api_timeout_ms) / 1000.0
        self.client = client or httpx.AsyncClient(
            base_url=self.api_url,
            timeout=httpx.Timeout(self.timeout_seconds),
            follow_redirects=True,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> StudyApiClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _post(self, path: str, payload: dict[str, Any], error: type[ServiceError]) -> Any:
        try:
            response = await self.client.post(f"{self.api_url}{path}", json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Study API {path} returned {e.response.status_code}")
            raise error(f"{path} failed with status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Study API {path} unreachable: {e}")
            raise error(f"{path} unreachable: {e}") from e
        except ValueError as e:
            logger.error(f"Study API {path} returned invalid JSON: {e}")
            raise error(f"{path} returned invalid JSON") from e

    # ========================================
    # Question generation
    # ========================================

    async def generate_self_test(self, request: GenerationRequest) -> list[Question]:
        """
        Request a self-test question set.

        Raises:
            GenerationError: On API failure or malformed response
        """
        payload = {
            "config": ConfigPayload.from_domain(request.config).model_dump(by_alias=True),
            "userDocuments": [
                {"id": doc.id, "title": doc.title, "content": doc.content}
                for doc in request.documents
            ],
            "weakAreas": list(request.weak_areas),
        }
        data = await self._post("/api/quiz/generate-self-test", payload, GenerationError)

        try:
            question_set = QuestionSetPayload.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed self-test payload: {e}")
            raise GenerationError("generation service returned malformed questions") from e

        questions = [q.to_domain() for q in question_set.questions]
        logger.info(f"Generated {len(questions)} self-test questions")
        return questions

    # ========================================
    # Adaptive single-question evaluation
    # ========================================

    async def evaluate_answer(self, request: AnswerEvaluationRequest) -> AnswerFeedback:
        """
        Evaluate one answer with the attempt count used for feedback escalation.

        Raises:
            EvaluationError: On API failure or malformed response
        """
        question = request.question
        payload = {
            "questions": [QuestionPayload.from_domain(question).model_dump(by_alias=True, mode="json")],
            "userAnswers": [{"questionId": question.id, "answer": request.answer}],
            "attemptHistory": {question.id: request.attempt_number},
        }
        data = await self._post("/api/quiz/evaluate", payload, EvaluationError)

        try:
            evaluation = AnswerEvaluationPayload.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed evaluation payload: {e}")
            raise EvaluationError("evaluation service returned a malformed result") from e

        result = next((r for r in evaluation.results if r.question_id == question.id), None)
        if result is None:
            raise EvaluationError(f"evaluation service returned no result for {question.id}")

        # The service decides the wording; the tier follows from the same inputs
        decision = escalate(request.attempt_number, result.is_correct)
        return AnswerFeedback(
            question_id=question.id,
            is_correct=result.is_correct,
            adaptive_feedback=result.adaptive_feedback,
            should_reveal_answer=result.should_reveal_answer,
            tier=decision.tier,
            attempt_number=request.attempt_number,
            explanation=result.explanation,
            correct_answer=(
                result.correct_answer or question.correct_answer
                if result.should_reveal_answer
                else None
            ),
            concept_mastery=result.concept_mastery,
        )

    # ========================================
    # Batch self-test evaluation
    # ========================================

    async def evaluate_self_test(self, request: SelfTestEvaluationRequest) -> SelfTestEvaluation:
        """
        Evaluate a whole self-test.

        Questions the service leaves unscored are scored locally.

        Raises:
            EvaluationError: On API failure or malformed response
        """
        payload = {
            "questions": [
                QuestionPayload.from_domain(q).model_dump(by_alias=True, mode="json")
                for q in request.questions
            ],
            "userAnswers": [
                UserAnswerPayload.from_domain(a).model_dump(by_alias=True)
                for a in request.attempts
            ],
            "testConfig": ConfigPayload.from_domain(request.config).model_dump(by_alias=True),
            "totalTime": request.total_time_ms,
        }
        data = await self._post("/api/quiz/evaluate-self-test", payload, EvaluationError)

        try:
            evaluation = SelfTestEvaluationPayload.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed self-test evaluation payload: {e}")
            raise EvaluationError("evaluation service returned a malformed result") from e

        scores = {
            r.question_id: QuestionScore(
                question_id=r.question_id,
                is_correct=r.is_correct,
                concept_mastery=r.concept_mastery,
                explanation=r.explanation,
            )
            for r in evaluation.question_results
        }
        answers = {a.question_id: a.answer for a in request.attempts}
        unscored = [q for q in request.questions if q.id not in scores]
        if unscored:
            logger.debug(f"Scoring {len(unscored)} unscored questions locally")
        for question in unscored:
            scores[question.id] = QuestionScore(
                question_id=question.id,
                is_correct=is_answer_correct(question, answers.get(question.id, "")),
            )

        readiness = evaluation.readiness_assessment
        recommendations = tuple(evaluation.next_steps) or (
            tuple(readiness.recommendations) if readiness else ()
        )
        return SelfTestEvaluation(
            scores=scores,
            recommendations=recommendations,
            readiness_message=readiness.message if readiness else None,
        )

    # ========================================
    # Content store
    # ========================================

    async def get_document(self, document_id: str) -> DocumentContext:
        """
        Fetch a learner document for use as generation context.

        Raises:
            GenerationError: On API failure or malformed response
        """
        try:
            response = await self.client.get(f"{self.api_url}/api/documents/{document_id}")
            response.raise_for_status()
            document = DocumentPayload.model_validate(response.json())
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch document {document_id}: {e}")
            raise GenerationError(f"document {document_id} unavailable") from e
        except (ValidationError, ValueError) as e:
            logger.error(f"Malformed document {document_id}: {e}")
            raise GenerationError(f"document {document_id} is malformed") from e

        return DocumentContext(id=document.id, title=document.title, content=document.content)
