# tests/test_exam_runner.py
import asyncio
import logging

import pytest

from factories import GatedSupply, ScriptedSupply, instant_sleep, make_questions
from models.simulation import ExamConfig, SimulationMode, SubjectProfile
from services.exam_runner import ExamRunner, ExamStartError, RunnerRegistry
from services.exam_session import SessionState

PROFILE = SubjectProfile(role="Coordinador", area="N/A")


def make_runner(supply, mode=SimulationMode.SIMULACRO_COMPLETO, count=3, user_id="u1", sink=None, **kwargs):
    exam_config = ExamConfig(mode=mode, questionCount=count)
    kwargs.setdefault("loader_options", {"sleep": instant_sleep})
    kwargs.setdefault("tick_interval", 60)
    return ExamRunner(user_id, exam_config, PROFILE, supply, sink=sink, **kwargs)


def answer(session, option="A"):
    session.select_option(option)
    session.commit()


class RecordingSink:
    def __init__(self):
        self.calls = []

    async def __call__(self, user_id, result):
        self.calls.append((user_id, result))


async def wait_until(predicate, attempts=500):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


async def test_empty_initial_batch_fails_to_start():
    runner = make_runner(ScriptedSupply([]))
    with pytest.raises(ExamStartError):
        await runner.start()
    assert runner.session is None


async def test_initial_batch_error_fails_to_start():
    runner = make_runner(ScriptedSupply(RuntimeError("AI down")))
    with pytest.raises(ExamStartError):
        await runner.start()


async def test_initial_batch_is_capped_by_target():
    supply = ScriptedSupply(make_questions("q1", "q2"))
    runner = make_runner(supply, mode=SimulationMode.PRACTICA_COMPONENTE, count=2)
    await runner.start()
    assert supply.calls[0]["count"] == 2
    assert runner.loader is None


async def test_practice_run_scores_and_persists_once():
    sink = RecordingSink()
    supply = ScriptedSupply(make_questions("q1", "q2", "q3"))
    runner = make_runner(supply, mode=SimulationMode.PRACTICA_COMPONENTE, sink=sink)
    await runner.start()

    session = runner.session
    assert session.remaining_seconds is None
    for option in ("A", "B", "A"):
        answer(session, option)
        assert session.state == SessionState.FEEDBACK
        session.next()

    assert session.finished
    await runner.wait_persisted()
    assert len(sink.calls) == 1
    user_id, result = sink.calls[0]
    assert user_id == "u1"
    assert result.totalQuestions == 3
    assert result.correctCount == 2
    assert result.mode == SimulationMode.PRACTICA_COMPONENTE
    assert [q.id for q in result.questions] == ["q1", "q2", "q3"]
    assert runner.token.cancelled


async def test_awaiting_more_resolves_with_background_loader():
    supply = GatedSupply(
        make_questions("q1", "q2", "q3"),
        make_questions("q4", "q5", "q6", "q7"),
        make_questions("q8", "q9", "q10"),
    )
    runner = make_runner(supply, count=10)
    await runner.start()
    session = runner.session

    for _ in range(3):
        answer(session)
    assert session.state == SessionState.AWAITING_MORE

    supply.gate.set()
    await wait_until(lambda: len(runner.pool) > 3)
    assert session.state == SessionState.AWAITING_MORE

    session.next()
    assert session.state == SessionState.PRESENTING
    assert session.index == 3

    await runner.loader.task
    assert runner.pool.ids == [f"q{i}" for i in range(1, 11)]
    session.finish()


async def test_blocked_session_finishes_with_initial_answers_when_loader_gives_up():
    sink = RecordingSink()
    supply = ScriptedSupply(make_questions("q1", "q2", "q3"))
    runner = make_runner(supply, count=10, sink=sink)
    await runner.start()
    session = runner.session

    for _ in range(3):
        answer(session)
    assert session.state == SessionState.AWAITING_MORE

    await runner.loader.task
    assert runner.is_loading is False
    assert len(supply.calls) == 4  # Initial batch plus three empty background batches

    session.next()
    assert session.finished
    await runner.wait_persisted()
    assert sink.calls[0][1].totalQuestions == 3


async def test_countdown_times_out_timed_exam():
    sink = RecordingSink()
    supply = ScriptedSupply(make_questions("q1"))
    runner = make_runner(supply, mode=SimulationMode.DIAGNOSTICO, count=1, sink=sink, sleep=instant_sleep)
    await runner.start()
    assert runner.session.remaining_seconds == 120

    await wait_until(lambda: runner.session.finished, attempts=1000)
    await runner.wait_persisted()

    assert runner.session.timed_out is True
    assert runner.result.timedOut is True
    assert runner.result.totalQuestions == 0
    assert runner.result.score == 0
    assert len(sink.calls) == 1


async def test_failed_save_after_timeout_is_logged(caplog):
    async def failing_sink(user_id, result):
        raise RuntimeError("mongo unavailable")

    supply = ScriptedSupply(make_questions("q1"))
    runner = make_runner(supply, mode=SimulationMode.DIAGNOSTICO, count=1, sink=failing_sink, sleep=instant_sleep)
    await runner.start()

    with caplog.at_level(logging.ERROR, logger="services.exam_runner"):
        await wait_until(lambda: runner._persist_task is not None and runner._persist_task.done(), attempts=1000)
        await asyncio.sleep(0)

    assert runner.session.timed_out is True
    assert "Failed to persist result for user u1: mongo unavailable" in caplog.text


async def test_finish_cancels_loader_token():
    supply = GatedSupply(make_questions("q1", "q2", "q3"), make_questions("q4"))
    runner = make_runner(supply, count=10)
    await runner.start()
    await asyncio.sleep(0)

    runner.session.finish()
    assert runner.token.cancelled

    supply.gate.set()
    await runner.loader.task
    assert runner.loader.is_loading is False
    # Late batch lands in the pool but not in the stored snapshot
    assert len(runner.pool) == 4
    assert len(runner.result.questions) == 3


async def test_registry_new_exam_cancels_previous_one():
    registry = RunnerRegistry()
    first = make_runner(GatedSupply(make_questions("q1", "q2", "q3")), count=10)
    await registry.start(first)

    second = make_runner(ScriptedSupply(make_questions("a1", "a2", "a3")), count=3)
    await registry.start(second)

    assert first.token.cancelled
    assert registry.get("u1") is second
    assert not second.token.cancelled
    first.loader.task.cancel()
    await asyncio.gather(first.loader.task, return_exceptions=True)
    assert first.loader.is_loading is False
    second.abandon()


async def test_registry_abandon():
    registry = RunnerRegistry()
    runner = make_runner(ScriptedSupply(make_questions("q1", "q2", "q3")), count=3)
    await registry.start(runner)

    assert registry.abandon("u1") is True
    assert runner.token.cancelled
    assert registry.get("u1") is None
    assert registry.abandon("u1") is False


async def test_failed_start_is_not_registered():
    registry = RunnerRegistry()
    with pytest.raises(ExamStartError):
        await registry.start(make_runner(ScriptedSupply([])))
    assert registry.get("u1") is None
