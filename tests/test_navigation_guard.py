import asyncio

from zad_exam.models.session_state import IntentKind, SessionStatus
from zad_exam.services.navigation_guard import ClickTarget, is_leaving_href
from zad_exam.services.session_controller import ExamSessionController
from zad_exam.views.effects import EffectKind
from tests.conftest import FakeBackend, make_exam, started_controller

EXAM_PATH = "/dashboard/exams/exam-1/take"


def _link(href, inside=False):
    return ClickTarget(inside_exam=inside, tag="a", href=href, current_path=EXAM_PATH)


def test_is_leaving_href():
    assert not is_leaving_href("", EXAM_PATH)
    assert not is_leaving_href(None, EXAM_PATH)
    assert not is_leaving_href("#question-3", EXAM_PATH)
    assert not is_leaving_href("javascript:void(0)", EXAM_PATH)
    assert not is_leaving_href(EXAM_PATH + "/", EXAM_PATH)
    assert not is_leaving_href("?tab=2", EXAM_PATH)
    assert is_leaving_href("/dashboard", EXAM_PATH)
    assert is_leaving_href("../results", EXAM_PATH)
    assert is_leaving_href("https://example.com/dashboard/exams/exam-1/take", EXAM_PATH)


def test_guard_inactive_before_pledge_and_after_submit(backend, clock):
    async def scenario():
        controller = ExamSessionController("exam-1", backend.client(), clock=clock, tick_interval=3600)
        await controller.load()
        assert not controller.guard.on_before_unload()
        assert controller.guard.on_click(_link("/dashboard"))
        assert not controller.guard.on_popstate()

        controller.accept_pledge(True)
        assert controller.guard.on_before_unload()

        assert (await controller.confirm_submit())["submitted"]
        controller.effects.drain()
        assert not controller.guard.on_before_unload()
        assert controller.guard.on_click(_link("/dashboard"))
        assert not controller.guard.on_popstate()
        assert not controller.guard.on_pagehide()
        assert len(controller.effects) == 0

    asyncio.run(scenario())


def test_every_leaving_vector_is_intercepted(backend, clock):
    async def scenario():
        controller = await started_controller(backend, clock)
        guard = controller.guard

        assert guard.on_before_unload()

        assert not guard.on_click(_link("/dashboard"))
        assert controller.state.exit_modal_open
        assert controller.state.pending_intent.kind == IntentKind.URL
        assert controller.state.pending_intent.url == "/dashboard"
        guard.stay()

        assert not guard.on_click(ClickTarget(tag="button", element_id="logout", current_path=EXAM_PATH))
        assert controller.state.pending_intent.kind == IntentKind.ELEMENT
        assert controller.state.pending_intent.element_id == "logout"
        guard.stay()

        assert guard.on_popstate()
        assert controller.state.pending_intent.kind == IntentKind.BACK

        kinds = [e.kind for e in controller.effects.drain()]
        assert kinds == [
            EffectKind.OPEN_EXIT_MODAL, EffectKind.CLOSE_EXIT_MODAL,
            EffectKind.OPEN_EXIT_MODAL, EffectKind.CLOSE_EXIT_MODAL,
            EffectKind.PUSH_HISTORY, EffectKind.OPEN_EXIT_MODAL,
        ]
        assert backend.submissions == []
        await controller.close()

    asyncio.run(scenario())


def test_clicks_that_stay_on_the_page_pass_through(backend, clock):
    async def scenario():
        controller = await started_controller(backend, clock)
        guard = controller.guard
        assert guard.on_click(_link("/dashboard", inside=True))
        assert guard.on_click(_link("#q2"))
        assert guard.on_click(_link(EXAM_PATH))
        assert guard.on_click(ClickTarget(tag="div", current_path=EXAM_PATH))
        assert not controller.state.exit_modal_open
        assert len(controller.effects) == 0
        await controller.close()

    asyncio.run(scenario())


def test_stay_keeps_the_session_running(backend, clock):
    async def scenario():
        controller = await started_controller(backend, clock)
        controller.guard.on_popstate()
        controller.guard.stay()
        assert not controller.state.exit_modal_open
        assert controller.state.status == SessionStatus.ACTIVE
        assert controller.guard.active
        clock.advance(30)
        assert await controller.tick() == 570
        await controller.close()

    asyncio.run(scenario())


def _leave(intent_setup):
    backend = FakeBackend(exam=make_exam())

    async def scenario(clock):
        controller = await started_controller(backend, clock)
        intent_setup(controller.guard)
        controller.effects.drain()
        assert await controller.guard.leave_and_submit()
        assert controller.state.status == SessionStatus.SUBMITTED
        assert not controller.state.exit_modal_open
        assert controller.state.pending_intent is None
        assert len(backend.submissions) == 1
        return controller.effects.drain()

    return scenario


def test_leave_replays_link(clock):
    scenario = _leave(lambda guard: guard.on_click(_link("/courses/course-7")))
    effects = asyncio.run(scenario(clock))
    assert [e.kind for e in effects] == [EffectKind.CLOSE_EXIT_MODAL, EffectKind.TOAST, EffectKind.NAVIGATE]
    assert effects[-1].url == "/courses/course-7"


def test_leave_replays_button(clock):
    scenario = _leave(lambda guard: guard.on_click(
        ClickTarget(tag="button", element_id="logout", current_path=EXAM_PATH)
    ))
    effects = asyncio.run(scenario(clock))
    assert effects[-1].kind == EffectKind.REPLAY_CLICK
    assert effects[-1].element_id == "logout"


def test_leave_replays_back_navigation(clock):
    effects = asyncio.run(_leave(lambda guard: guard.on_popstate())(clock))
    assert effects[-1].kind == EffectKind.HISTORY_BACK


def test_leave_without_intent_goes_to_exam_list(clock):
    effects = asyncio.run(_leave(lambda guard: None)(clock))
    assert effects[-1].kind == EffectKind.NAVIGATE
    assert effects[-1].url == "/dashboard/exams"


def test_leave_failure_keeps_modal_and_intent(clock):
    backend = FakeBackend(exam=make_exam(), submit_status=500, submit_body={"message": "try later"})

    async def scenario():
        controller = await started_controller(backend, clock)
        controller.guard.on_click(_link("/dashboard"))
        assert not await controller.guard.leave_and_submit()
        assert controller.state.exit_modal_open
        assert controller.state.pending_intent.url == "/dashboard"
        assert controller.state.status == SessionStatus.ACTIVE
        assert controller.guard.active
        await controller.close()

    asyncio.run(scenario())


def test_leave_after_button_without_id_goes_to_exam_list(clock):
    scenario = _leave(lambda guard: guard.on_click(ClickTarget(tag="button", current_path=EXAM_PATH)))
    effects = asyncio.run(scenario(clock))
    assert EffectKind.REPLAY_CLICK not in [e.kind for e in effects]
    assert effects[-1].kind == EffectKind.NAVIGATE
    assert effects[-1].url == "/dashboard/exams"
