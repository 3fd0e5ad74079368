import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from zad_exam.services.backend_client import ExamBackendClient
from zad_exam.services.session_controller import ExamSessionController

BACKEND_URL = "http://backend.test/api"
NOW = datetime(2026, 3, 1, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


class FakeBackend:
    """Stands in for the platform REST API behind httpx.MockTransport."""

    def __init__(self, exam=None, exam_status=200, submit_status=200, submit_body=None, submit_delay=0.0):
        self.exam = exam
        self.exam_status = exam_status
        self.submit_status = submit_status
        self.submit_body = submit_body if submit_body is not None else {"status": "PENDING", "score": None}
        self.submit_delay = submit_delay
        self.fail_transport = False
        self.submissions = []
        self.requests = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_transport:
            raise httpx.ConnectError("backend unreachable", request=request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/attempt"):
            self.submissions.append(json.loads(request.content))
            if self.submit_delay:
                await asyncio.sleep(self.submit_delay)
            return httpx.Response(self.submit_status, json=self.submit_body)
        if request.method == "GET" and path.startswith("/api/exams/"):
            if self.exam_status != 200 or self.exam is None:
                return httpx.Response(self.exam_status if self.exam_status != 200 else 404,
                                      json={"message": "Exam not found"})
            return httpx.Response(200, json=self.exam)
        return httpx.Response(404, json={"message": "no route"})

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)

    def client(self, token=None):
        return ExamBackendClient(BACKEND_URL, auth_token=token, transport=self.transport)


def make_exam(**overrides):
    exam = {
        "id": "exam-1",
        "title": "امتحان الفقه",
        "description": "الوحدة الأولى",
        "durationMinutes": 10,
        "startDate": "2026-03-01T08:00:00Z",
        "endDate": "2026-03-01T20:00:00Z",
        "maxScore": 100,
        "passingScore": 50,
        "course": {"id": "course-7", "title": "الفقه الميسر"},
        "courseCompletionRequired": False,
        "questions": [
            {"id": "q1", "prompt": "ما حكم ...؟", "type": "MULTIPLE_CHOICE",
             "choices": '["واجب", "مستحب", "مباح"]', "points": 25, "order": 1},
            {"id": "q2", "prompt": "عرّف ...", "type": "TEXT", "points": 25, "order": 2},
            {"id": "q3", "prompt": "اشرح ...", "type": "ESSAY", "points": 25, "order": 3},
            {"id": "q4", "prompt": "أي مما يلي ...؟", "type": "MULTIPLE_CHOICE",
             "choices": ["أ", "ب"], "points": 25, "order": 4},
        ],
        "attempts": [],
    }
    exam.update(overrides)
    return exam


async def started_controller(backend, clock, **kwargs):
    """Controller loaded and past the pledge gate; the background timer never fires."""
    kwargs.setdefault("tick_interval", 3600)
    controller = ExamSessionController("exam-1", backend.client(), clock=clock, **kwargs)
    await controller.load()
    controller.accept_pledge(True)
    return controller


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return FakeBackend(exam=make_exam())
