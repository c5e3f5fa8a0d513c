from __future__ import annotations

import asyncio
import threading
from collections.abc import Sequence

import pytest

from lazyplay.config import EngineConfig
from lazyplay.core.errors import (
    InputUnavailableError,
    NonTerminationError,
    SessionCancelledError,
    TransitionError,
)
from lazyplay.core.identity import IdentityGuard, ParticipantIdentity
from lazyplay.core.scheduler import Scheduler
from lazyplay.core.termination import TerminationDetector
from lazyplay.core.transition import PHASE_APPLY, make_generator
from lazyplay.fsm import SessionStatus
from lazyplay.games.line import LINE, LineState, apply_step, is_terminal, score
from lazyplay.responders.scripted import PolicyResponder, ScriptedResponder


def _line_scheduler(*, config: EngineConfig | None = None, guard: IdentityGuard | None = None) -> Scheduler:
    return Scheduler(
        generator=make_generator(apply_step),
        detector=TerminationDetector(is_terminal=is_terminal, score_fn=score),
        config=config,
        guard=guard,
    )


async def test_scripted_walk_reaches_goal_in_three_ticks() -> None:
    scheduler = _line_scheduler()
    session = scheduler.open(LineState(position=0, goal=3), ParticipantIdentity.new())

    result = await scheduler.run(session, responder=ScriptedResponder.repeat(1))

    assert result == 3
    assert session.tick == 3
    assert [s.position for s in session.states] == [0, 1, 2, 3]
    assert list(session.responses) == [1, 1, 1]
    assert session.status == SessionStatus.terminated
    assert session.score == 3
    assert [e.type for e in session.events] == ["SESSION_STARTED", "SESSION_TERMINATED"]


async def test_initial_state_already_terminal_needs_no_responses() -> None:
    scheduler = _line_scheduler()
    calls = 0

    def policy(identity: ParticipantIdentity, prefix: Sequence[LineState]) -> int:
        nonlocal calls
        calls += 1
        return 1

    result = await scheduler.advance(LineState(position=5, goal=3), ParticipantIdentity.new(), responder=PolicyResponder(policy))

    assert result == 5
    assert calls == 0


async def test_budget_exhaustion_reports_tick_and_keeps_prefix() -> None:
    scheduler = _line_scheduler()

    with pytest.raises(NonTerminationError) as e:
        await scheduler.advance(
            LineState(position=0, goal=3),
            ParticipantIdentity.new(),
            tick_budget=100,
            responder=ScriptedResponder.repeat(0),
        )

    err = e.value
    assert err.tick == 100
    assert err.budget == 100
    session = err.session
    assert session is not None
    assert len(session.states) == 101
    assert len(session.responses) == 100
    assert session.status == SessionStatus.exhausted


async def test_exhausted_session_resumes_from_published_prefix() -> None:
    scheduler = _line_scheduler()
    session = scheduler.open(LineState(position=0, goal=3), ParticipantIdentity.new())

    with pytest.raises(NonTerminationError):
        await scheduler.run(session, responder=ScriptedResponder.repeat(0), tick_budget=4)

    # Ticks 0..3 already have responses; the new script only covers what comes after.
    seen_ticks: list[int] = []

    def policy(identity: ParticipantIdentity, prefix: Sequence[LineState]) -> int:
        seen_ticks.append(len(prefix) - 1)
        return 1

    result = await scheduler.resume(session, responder=PolicyResponder(policy), tick_budget=10)

    assert result == 3
    assert seen_ticks == [4, 5, 6]
    assert list(session.responses) == [0, 0, 0, 0, 1, 1, 1]
    assert session.status == SessionStatus.terminated


async def test_resume_rejects_sessions_that_are_not_exhausted() -> None:
    scheduler = _line_scheduler()
    session = scheduler.open(LineState(), ParticipantIdentity.new())
    await scheduler.run(session, responder=ScriptedResponder.repeat(1))

    with pytest.raises(ValueError):
        await scheduler.resume(session, responder=ScriptedResponder.repeat(1))


async def test_cancel_while_waiting_for_response_discards_in_progress_tick() -> None:
    scheduler = _line_scheduler()
    session = scheduler.open(LineState(position=0, goal=100), ParticipantIdentity.new())
    stalled = asyncio.Event()

    class StallAtFive:
        async def respond(self, *, identity: ParticipantIdentity, prefix: Sequence[LineState]) -> int:
            if len(prefix) - 1 == 5:
                stalled.set()
                await asyncio.Event().wait()
            return 1

    task = asyncio.create_task(scheduler.run(session, responder=StallAtFive()))
    await asyncio.wait_for(stalled.wait(), timeout=2)
    session.cancel()

    with pytest.raises(SessionCancelledError) as e:
        await task

    assert e.value.tick == 5
    assert e.value.session is session
    assert len(session.states) == 6
    assert len(session.responses) == 5
    assert session.status == SessionStatus.cancelled

    # A fresh session may start from the last published state under a new identity.
    restart = await scheduler.advance(
        session.states.get(5),
        ParticipantIdentity.new(),
        responder=ScriptedResponder.repeat(1),
    )
    assert restart == 100


async def test_task_cancellation_is_recorded_and_propagated() -> None:
    scheduler = _line_scheduler()
    session = scheduler.open(LineState(goal=10), ParticipantIdentity.new())
    started = asyncio.Event()
    unwound = False

    class Forever:
        async def respond(self, *, identity: ParticipantIdentity, prefix: Sequence[LineState]) -> int:
            nonlocal unwound
            started.set()
            try:
                await asyncio.Event().wait()
            finally:
                unwound = True
            return 0

    task = asyncio.create_task(scheduler.run(session, responder=Forever()))
    await asyncio.wait_for(started.wait(), timeout=2)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert session.status == SessionStatus.cancelled
    assert session.events[-1].type == "SESSION_CANCELLED"
    # The abandoned respond call finished unwinding before the run returned.
    assert unwound


async def test_same_inputs_produce_identical_sequences() -> None:
    async def run_once() -> tuple[list[LineState], list[int]]:
        scheduler = _line_scheduler()
        session = scheduler.open(LineState(position=0, goal=4), ParticipantIdentity.new())
        await scheduler.run(session, responder=ScriptedResponder([1, 0, 1, -1, 1, 1, 1]))
        return list(session.states), list(session.responses)

    first = await run_once()
    second = await run_once()

    assert first == second
    assert [s.position for s in first[0]] == [0, 1, 1, 2, 1, 2, 3, 4]


async def test_responder_sees_only_published_prefix() -> None:
    scheduler = _line_scheduler()
    session = scheduler.open(LineState(goal=3), ParticipantIdentity.new())
    lengths: list[int] = []

    def policy(identity: ParticipantIdentity, prefix: Sequence[LineState]) -> int:
        lengths.append(len(prefix))
        # Every state the responder sees has already been published.
        assert tuple(prefix) == session.states.prefix(len(prefix))
        assert not session.responses.published(len(prefix) - 1)
        return 1

    await scheduler.run(session, responder=PolicyResponder(policy))

    assert lengths == [1, 2, 3]


async def test_no_state_is_computed_past_the_terminal_one() -> None:
    transitions = 0

    def counting_step(state: LineState, response: int) -> LineState:
        nonlocal transitions
        transitions += 1
        return apply_step(state, response)

    scheduler = Scheduler(
        generator=make_generator(counting_step),
        detector=TerminationDetector(is_terminal=is_terminal, score_fn=score),
    )
    script = ScriptedResponder(iter([1] * 50))

    await scheduler.advance(LineState(goal=3), ParticipantIdentity.new(), responder=script)

    assert transitions == 3
    # The lazy script was pulled only as far as it was demanded.
    assert script.buffered == 3


async def test_transition_failure_names_the_tick() -> None:
    def fragile(state: LineState, response: int) -> LineState:
        if state.position == 2:
            raise ValueError("cliff edge")
        return apply_step(state, response)

    scheduler = Scheduler(
        generator=make_generator(fragile),
        detector=TerminationDetector(is_terminal=is_terminal, score_fn=score),
    )

    with pytest.raises(TransitionError) as e:
        await scheduler.advance(LineState(goal=5), ParticipantIdentity.new(), responder=ScriptedResponder.repeat(1))

    assert e.value.tick == 2
    assert e.value.phase == PHASE_APPLY
    session = e.value.session
    assert session.status == SessionStatus.failed
    # response[2] was published before the transition failed.
    assert len(session.responses) == 3
    assert len(session.states) == 3


async def test_exhausted_script_surfaces_input_unavailable() -> None:
    scheduler = _line_scheduler()

    with pytest.raises(InputUnavailableError) as e:
        await scheduler.advance(LineState(goal=5), ParticipantIdentity.new(), responder=ScriptedResponder([1, 1]))

    assert e.value.tick == 2
    assert e.value.session.status == SessionStatus.failed


async def test_offloaded_transition_gives_the_same_result() -> None:
    scheduler = _line_scheduler(config=EngineConfig(offload_transition=True))

    result = await scheduler.advance(LineState(goal=3), ParticipantIdentity.new(), responder=ScriptedResponder.repeat(1))

    assert result == 3


async def test_guard_rejects_identity_reuse_across_sessions() -> None:
    guard = IdentityGuard()
    scheduler = LINE.scheduler(guard=guard)
    identity = ParticipantIdentity.new()

    scheduler.open(LineState(), identity)
    with pytest.raises(ValueError):
        scheduler.open(LineState(), identity)


async def test_negative_budget_is_rejected() -> None:
    scheduler = _line_scheduler()
    with pytest.raises(ValueError):
        await scheduler.advance(LineState(), ParticipantIdentity.new(), tick_budget=-1, responder=ScriptedResponder.repeat(1))


async def test_unexpected_respond_failure_becomes_input_unavailable() -> None:
    scheduler = _line_scheduler()

    def policy(identity: ParticipantIdentity, prefix: Sequence[LineState]) -> int:
        return {0: 1, 1: 1}[len(prefix) - 1]

    with pytest.raises(InputUnavailableError) as e:
        await scheduler.advance(LineState(goal=5), ParticipantIdentity.new(), responder=PolicyResponder(policy))

    assert e.value.tick == 2
    assert isinstance(e.value.__cause__, KeyError)
    session = e.value.session
    assert session.status == SessionStatus.failed
    assert len(session.states) == 3
    assert len(session.responses) == 2


async def test_unexpected_phase_failure_is_a_transition_error() -> None:
    def sloppy(state: LineState, response: int) -> LineState:
        return state.model_copy(update={"position": state.position + response.delta})  # type: ignore[attr-defined]

    scheduler = Scheduler(
        generator=make_generator(sloppy),
        detector=TerminationDetector(is_terminal=is_terminal, score_fn=score),
    )

    with pytest.raises(TransitionError) as e:
        await scheduler.advance(LineState(goal=3), ParticipantIdentity.new(), responder=ScriptedResponder.repeat(1))

    assert e.value.tick == 0
    assert e.value.session.status == SessionStatus.failed


async def test_changing_a_later_response_leaves_earlier_states_alone() -> None:
    async def states_for(script: list[int]) -> list[LineState]:
        scheduler = _line_scheduler()
        session = scheduler.open(LineState(goal=10), ParticipantIdentity.new())
        with pytest.raises(NonTerminationError):
            await scheduler.run(session, responder=ScriptedResponder(script), tick_budget=len(script))
        return list(session.states)

    j = 3
    base = [1, 0, 1, 1, 0, 1]
    changed = list(base)
    changed[j] = -1

    a = await states_for(base)
    b = await states_for(changed)

    assert a[: j + 1] == b[: j + 1]
    assert a[j + 1] != b[j + 1]


async def test_cancel_during_offloaded_transition_keeps_published_response() -> None:
    entered = threading.Event()
    release = threading.Event()

    def slow_step(state: LineState, response: int) -> LineState:
        if state.position == 2:
            entered.set()
            release.wait(timeout=5)
        return apply_step(state, response)

    scheduler = Scheduler(
        generator=make_generator(slow_step),
        detector=TerminationDetector(is_terminal=is_terminal, score_fn=score),
        config=EngineConfig(offload_transition=True),
    )
    session = scheduler.open(LineState(goal=10), ParticipantIdentity.new())
    task = asyncio.create_task(scheduler.run(session, responder=ScriptedResponder.repeat(1)))

    try:
        assert await asyncio.to_thread(entered.wait, 2)
        session.cancel()
        with pytest.raises(SessionCancelledError) as e:
            await task
    finally:
        release.set()

    assert e.value.tick == 2
    assert session.status == SessionStatus.cancelled
    assert session.responses.get(2) == 1
    assert not session.states.published(3)

    # The worker thread finishing later must not publish anything.
    await asyncio.sleep(0.05)
    assert len(session.states) == 3
