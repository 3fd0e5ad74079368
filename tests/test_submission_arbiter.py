import asyncio
from itertools import permutations

import pytest

from zad_exam.models.session_state import SessionPhase, SessionStatus
from zad_exam.services.backend_client import BackendError, SubmissionRejectedError
from zad_exam.services.session_controller import ExamSessionController
from zad_exam.services.submission_arbiter import SubmitTrigger, format_submission_error
from zad_exam.views.effects import EffectKind
from tests.conftest import FakeBackend, FakeClock, make_exam, started_controller


def _fire(controller, trigger):
    """Start `trigger` the way the page shell or the timer would."""
    if trigger == SubmitTrigger.MANUAL:
        return controller.confirm_submit()
    if trigger == SubmitTrigger.TIMEOUT:
        return controller.arbiter.submit(SubmitTrigger.TIMEOUT)
    if trigger == SubmitTrigger.EXIT_CONFIRM:
        return controller.guard.leave_and_submit()

    async def pagehide():
        return controller.guard.on_pagehide()
    return pagehide()


@pytest.mark.parametrize("order", list(permutations(list(SubmitTrigger))))
def test_racing_triggers_submit_exactly_once(order):
    backend = FakeBackend(exam=make_exam(), submit_delay=0.01)
    clock = FakeClock()

    async def scenario():
        controller = await started_controller(backend, clock)
        controller.set_answer("q1", 1)
        tasks = [asyncio.ensure_future(_fire(controller, trigger)) for trigger in order]
        await asyncio.gather(*tasks)
        await controller.arbiter.wait_background()

        assert len(backend.submissions) == 1
        assert controller.arbiter.requests_issued == 1
        assert controller.state.status == SessionStatus.SUBMITTED
        assert not controller.guard.active

    asyncio.run(scenario())


def test_late_trigger_after_success_is_a_noop(backend, clock):
    async def scenario():
        controller = await started_controller(backend, clock)
        assert await controller.arbiter.submit(SubmitTrigger.MANUAL)
        controller.effects.drain()

        assert not await controller.arbiter.submit(SubmitTrigger.TIMEOUT)
        assert not controller.guard.on_pagehide()
        assert not await controller.guard.leave_and_submit()
        assert len(backend.submissions) == 1
        assert len(controller.effects) == 0

    asyncio.run(scenario())


def test_failure_rolls_back_and_allows_retry(clock):
    backend = FakeBackend(exam=make_exam(), submit_status=500, submit_body={"message": "Database down"})

    async def scenario():
        controller = await started_controller(backend, clock)
        assert not await controller.arbiter.submit(SubmitTrigger.MANUAL)
        assert controller.state.status == SessionStatus.ACTIVE
        assert controller.state.last_error == "Database down"
        assert controller.guard.active
        toast = controller.effects.drain()[-1]
        assert (toast.kind, toast.level, toast.message) == (EffectKind.TOAST, "error", "Database down")

        backend.submit_status = 200
        backend.submit_body = {"status": "PENDING"}
        assert await controller.arbiter.submit(SubmitTrigger.MANUAL)
        assert controller.state.status == SessionStatus.SUBMITTED
        assert controller.state.phase == SessionPhase.FINISHED
        assert controller.state.last_error is None
        assert len(backend.submissions) == 2

    asyncio.run(scenario())


def test_transport_failure_uses_default_message(backend, clock):
    async def scenario():
        controller = await started_controller(backend, clock)
        backend.fail_transport = True
        assert not await controller.arbiter.submit(SubmitTrigger.MANUAL)
        assert controller.state.status == SessionStatus.ACTIVE
        assert controller.state.last_error == "فشل تسليم الامتحان"

    asyncio.run(scenario())


def test_cancelled_submission_rolls_back(clock):
    backend = FakeBackend(exam=make_exam(), submit_delay=1.0)

    async def scenario():
        controller = await started_controller(backend, clock)
        task = asyncio.ensure_future(controller.arbiter.submit(SubmitTrigger.MANUAL))
        await asyncio.sleep(0.05)
        assert controller.state.status == SessionStatus.SUBMITTING
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert controller.state.status == SessionStatus.ACTIVE
        await controller.close()

    asyncio.run(scenario())


def test_lesson_progress_is_appended_to_refusals(clock):
    backend = FakeBackend(
        exam=make_exam(),
        submit_status=403,
        submit_body={"message": "يجب إكمال جميع الدروس أولاً", "completedLessons": 3, "totalLessons": 8},
    )

    async def scenario():
        controller = await started_controller(backend, clock)
        assert not await controller.arbiter.submit(SubmitTrigger.MANUAL)
        assert controller.state.last_error == "يجب إكمال جميع الدروس أولاً\n\nالدروس المكتملة: 3 من 8"
        await controller.close()

    asyncio.run(scenario())


def test_format_submission_error():
    assert format_submission_error(BackendError("boom")) == "boom"
    assert format_submission_error(SubmissionRejectedError("no", 400)) == "no"
    assert format_submission_error(
        SubmissionRejectedError("no", 403, completed_lessons=1, total_lessons=None)
    ) == "no\n\nالدروس المكتملة: 1 من 0"


def test_pagehide_is_final_even_when_the_request_fails(clock):
    backend = FakeBackend(exam=make_exam(), submit_status=500, submit_body={"message": "nope"})

    async def scenario():
        controller = await started_controller(backend, clock)
        controller.set_answer("q3", "نص")
        assert controller.guard.on_pagehide()
        assert controller.state.status == SessionStatus.SUBMITTED
        await controller.arbiter.wait_background()

        assert backend.submissions == [{"answers": {"q3": "نص"}}]
        assert controller.state.status == SessionStatus.SUBMITTED
        assert controller.state.last_error is None
        assert all(e.kind != EffectKind.TOAST for e in controller.effects.drain())

    asyncio.run(scenario())


def test_pagehide_swallows_transport_errors(backend, clock):
    async def scenario():
        controller = await started_controller(backend, clock)
        backend.fail_transport = True
        assert controller.guard.on_pagehide()
        await controller.arbiter.wait_background()
        assert controller.state.status == SessionStatus.SUBMITTED

    asyncio.run(scenario())


def test_exit_confirm_leaves_navigation_to_the_guard(backend, clock):
    async def scenario():
        controller = await started_controller(backend, clock)
        assert await controller.arbiter.submit(SubmitTrigger.EXIT_CONFIRM)
        kinds = [e.kind for e in controller.effects.drain()]
        assert EffectKind.NAVIGATE not in kinds
        assert kinds[-1] == EffectKind.TOAST

    asyncio.run(scenario())


def test_no_trigger_submits_before_the_pledge(backend, clock):
    async def scenario():
        controller = ExamSessionController("exam-1", backend.client(), clock=clock)
        await controller.load()
        for trigger in SubmitTrigger:
            assert not await controller.arbiter.submit(trigger)
        assert not await controller.guard.leave_and_submit()
        assert controller.state.status == SessionStatus.ACTIVE
        assert controller.arbiter.requests_issued == 0
        assert backend.submissions == []

    asyncio.run(scenario())
