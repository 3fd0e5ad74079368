"""
services/backend_client.py

HTTP client for the platform REST backend.
Public API:
  - ExamBackendClient.fetch_exam(exam_id) -> Exam
  - ExamBackendClient.submit_attempt(exam_id, answers) -> dict
  - ExamBackendClient.submit_attempt_best_effort(exam_id, answers) -> None

Failures are raised as BackendError subclasses carrying the server's
`message`; only the best-effort path swallows them.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from config import BACKEND_API_URL, BACKEND_TIMEOUT, BEACON_TIMEOUT
from zad_exam.models.exam_model import Exam

logger = logging.getLogger(__name__)

_DEFAULT_LOAD_ERROR = "فشل تحميل الامتحان"
_DEFAULT_SUBMIT_ERROR = "فشل تسليم الامتحان"


# ── Exceptions ───────────────────────────────────────────────────────────────

class BackendError(Exception):
    """Any failed backend call. `status_code` is None for transport errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ExamNotFoundError(BackendError):
    pass


class SubmissionRejectedError(BackendError):
    """
    The backend refused an attempt (already attempted, prerequisites unmet,
    validation error...). Lesson counts are present when the refusal is
    about course completion.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        completed_lessons: Optional[int] = None,
        total_lessons: Optional[int] = None,
    ):
        super().__init__(message, status_code)
        self.completed_lessons = completed_lessons
        self.total_lessons = total_lessons


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# ── Client ───────────────────────────────────────────────────────────────────

class ExamBackendClient:
    """
    Thin async wrapper around the exam endpoints.

    Args:
        base_url:   backend API root, e.g. "http://localhost:4000/api".
        auth_token: bearer token forwarded from the browser, if any.
        timeout:    seconds per request.
        transport:  optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str = BACKEND_API_URL,
        auth_token: Optional[str] = None,
        timeout: float = BACKEND_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self._transport = transport

    def _make_client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout if timeout is not None else self.timeout,
            transport=self._transport,
        )

    async def fetch_exam(self, exam_id: str) -> Exam:
        """
        GET /exams/{id}.

        Raises:
            ExamNotFoundError: the backend answered 404.
            BackendError:      any other failure, including an unparseable exam.
        """
        try:
            async with self._make_client() as client:
                response = await client.get(f"/exams/{exam_id}")
        except httpx.HTTPError as e:
            raise BackendError(f"{_DEFAULT_LOAD_ERROR}: {e}") from e

        if response.status_code == 404:
            raise ExamNotFoundError(
                _error_body(response).get("message") or "Exam not found", 404
            )
        if response.is_error:
            body = _error_body(response)
            raise BackendError(body.get("message") or _DEFAULT_LOAD_ERROR, response.status_code)

        try:
            return Exam.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise BackendError(f"{_DEFAULT_LOAD_ERROR}: {e}", response.status_code) from e

    async def submit_attempt(self, exam_id: str, answers: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST /exams/{id}/attempt with {"answers": answers}.

        Returns:
            The backend's JSON response (score/status), not interpreted here.

        Raises:
            SubmissionRejectedError: non-2xx response.
            BackendError:            transport failure.
        """
        try:
            async with self._make_client() as client:
                response = await client.post(f"/exams/{exam_id}/attempt", json={"answers": answers})
        except httpx.HTTPError as e:
            raise BackendError(_DEFAULT_SUBMIT_ERROR) from e

        if response.is_error:
            body = _error_body(response)
            raise SubmissionRejectedError(
                body.get("message") or _DEFAULT_SUBMIT_ERROR,
                status_code=response.status_code,
                completed_lessons=body.get("completedLessons"),
                total_lessons=body.get("totalLessons"),
            )
        return _error_body(response)

    async def submit_attempt_best_effort(self, exam_id: str, answers: Dict[str, Any]) -> None:
        """
        Last-resort save when the page is being torn down.

        Short timeout, no retry, no result. Every failure is logged and
        dropped: there is nobody left to report it to.
        """
        try:
            async with self._make_client(timeout=BEACON_TIMEOUT) as client:
                response = await client.post(f"/exams/{exam_id}/attempt", json={"answers": answers})
            if response.is_error:
                logger.debug(f"best-effort submit of exam {exam_id} refused: HTTP {response.status_code}")
        except Exception as e:
            logger.debug(f"best-effort submit of exam {exam_id} failed: {e}")
