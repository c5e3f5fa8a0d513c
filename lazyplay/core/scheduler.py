from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar
from uuid import uuid4

from lazyplay.config import EngineConfig
from lazyplay.core.errors import (
    InputUnavailableError,
    NonTerminationError,
    SessionCancelledError,
    SimulationError,
)
from lazyplay.core.events import EventType, SessionEvent
from lazyplay.core.identity import IdentityGuard, ParticipantIdentity, require_identity
from lazyplay.core.sequence import SequenceStore
from lazyplay.core.termination import TerminationDetector
from lazyplay.core.transition import StateSequenceGenerator
from lazyplay.fsm import SessionFSM, SessionStatus
from lazyplay.responders.base import ResponseProvider

logger = logging.getLogger(__name__)

S = TypeVar("S")
R = TypeVar("R")
T = TypeVar("T")


@dataclass(slots=True)
class Session(Generic[S, R]):
    """One play-through: identity plus the two stores the scheduler exclusively writes.

    Invariant between ticks: `len(responses) == len(states) - 1`. After an interruption between
    publishing response[i] and state[i+1] it may be `len(states)`; the published response is then
    reused on resume rather than recomputed.
    """

    session_id: str
    identity: ParticipantIdentity
    states: SequenceStore[S]
    responses: SequenceStore[R]
    detector: TerminationDetector[S, Any]
    status: SessionStatus = SessionStatus.pending
    score: Any = None
    error: BaseException | None = None
    events: list[SessionEvent] = field(default_factory=list)
    _cancel: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def tick(self) -> int:
        """Index of the next (or in-progress) tick."""

        return len(self.states) - 1

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Request cancellation; any pending respond/transition suspension is released."""

        self._cancel.set()

    def record(self, type: EventType, **payload: Any) -> SessionEvent:
        event = SessionEvent.now(type=type, tick=self.tick, payload=payload)
        self.events.append(event)
        return event


class Scheduler(Generic[S, R]):
    """Drives the mutual dependency between the response and state sequences.

    Per tick i:
      (a) request response[i] with the published prefix state[0..i] and the session identity
      (b) publish response[i]
      (c) compute state[i+1] from state[i] and response[i], publish it
      (d) consult the termination detector on state[i+1]

    The only suspension points are the `respond` and `transition` calls; both race against the
    session's cancel event. Nothing is retried: a failure aborts the run with the tick index.
    """

    def __init__(
        self,
        *,
        generator: StateSequenceGenerator[S, R],
        detector: TerminationDetector[S, Any],
        config: EngineConfig | None = None,
        guard: IdentityGuard | None = None,
    ) -> None:
        self.generator = generator
        self.detector = detector
        self.config = config or EngineConfig()
        self.guard = guard

    def open(self, initial_state: S, identity: ParticipantIdentity, *, session_id: str | None = None) -> Session[S, R]:
        require_identity(identity)
        sid = session_id or str(uuid4())
        if self.guard is not None:
            self.guard.claim(identity, session_id=sid)
        return Session(
            session_id=sid,
            identity=identity,
            states=SequenceStore("state", (initial_state,)),
            responses=SequenceStore("response"),
            detector=self.detector.fork(),
        )

    async def advance(
        self,
        initial_state: S,
        identity: ParticipantIdentity,
        tick_budget: int | None = None,
        *,
        responder: ResponseProvider[S, R],
    ) -> Any:
        """Run a fresh session to completion and return the terminal score.

        Raised `SimulationError`s carry the session in `.session` for diagnostics and resume.
        """

        session = self.open(initial_state, identity)
        return await self.run(session, responder=responder, tick_budget=tick_budget)

    async def resume(self, session: Session[S, R], *, responder: ResponseProvider[S, R], tick_budget: int | None = None) -> Any:
        """Continue an exhausted session from its published prefix with a fresh budget."""

        if not SessionFSM(session).resumable:
            raise ValueError(f"Session {session.session_id} is {session.status.value}, not resumable")
        return await self.run(session, responder=responder, tick_budget=tick_budget)

    async def run(self, session: Session[S, R], *, responder: ResponseProvider[S, R], tick_budget: int | None = None) -> Any:
        budget = self.config.tick_budget if tick_budget is None else tick_budget
        if budget < 0:
            raise ValueError("tick_budget must be >= 0")

        fsm = SessionFSM(session)
        fsm.begin()
        fsm.sync_status_to_holder()
        session.record("SESSION_STARTED", budget=budget, identity=str(session.identity))
        logger.info("session %s started at tick %s (budget=%s)", session.session_id, session.tick, budget)

        try:
            score = await self._loop(session, responder=responder, budget=budget)
        except NonTerminationError as e:
            fsm.exhaust()
            self._finish(session, fsm, "SESSION_EXHAUSTED", e)
            raise
        except SessionCancelledError as e:
            fsm.cancel()
            self._finish(session, fsm, "SESSION_CANCELLED", e)
            raise
        except asyncio.CancelledError as e:
            # Task-level cancellation: record it, keep asyncio semantics.
            fsm.cancel()
            self._finish(session, fsm, "SESSION_CANCELLED", e)
            raise
        except Exception as e:
            fsm.fail()
            self._finish(session, fsm, "SESSION_FAILED", e)
            raise

        fsm.terminate()
        session.score = score
        self._finish(session, fsm, "SESSION_TERMINATED", None, score=score)
        return score

    async def _loop(self, session: Session[S, R], *, responder: ResponseProvider[S, R], budget: int) -> Any:
        states = session.states
        responses = session.responses
        ran = 0

        while True:
            i = len(states) - 1
            if session.detector.check(states):
                return session.detector.score(states)
            if ran >= budget:
                raise NonTerminationError(tick=i, budget=budget)
            if session.cancel_requested:
                raise SessionCancelledError(tick=i)

            if responses.published(i):
                # Published before an interruption; never recompute.
                response = responses.get(i)
            else:
                prefix = states.prefix(i + 1)
                try:
                    response = await self._rendezvous(
                        session,
                        responder.respond(identity=session.identity, prefix=prefix),
                        tick=i,
                    )
                except SimulationError:
                    raise
                except Exception as e:
                    raise InputUnavailableError(f"respond failed: {type(e).__name__}: {e}", tick=i) from e
                responses.append(response, index=i)

            nxt = await self._rendezvous(session, self._transition(states.get(i), response, tick=i), tick=i)
            states.append(nxt, index=i + 1)
            ran += 1
            logger.debug("session %s tick %s published", session.session_id, i)

    async def _transition(self, state: S, response: R, *, tick: int) -> S:
        if self.config.offload_transition:
            return await asyncio.to_thread(self.generator.transition, state, response, tick=tick)
        return self.generator.transition(state, response, tick=tick)

    async def _rendezvous(self, session: Session[S, R], work: Awaitable[T], *, tick: int) -> T:
        """Await one unit of work, or abandon it as soon as the session is cancelled."""

        task = asyncio.ensure_future(work)
        cancelled = asyncio.ensure_future(session._cancel.wait())
        try:
            done, _ = await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            cancelled.cancel()
            await asyncio.gather(task, cancelled, return_exceptions=True)
            raise

        if cancelled in done:
            # The in-progress element is discarded, even if it happened to finish.
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise SessionCancelledError(tick=tick)

        cancelled.cancel()
        return task.result()

    def _finish(
        self,
        session: Session[S, R],
        fsm: SessionFSM,
        event: EventType,
        error: BaseException | None,
        **payload: Any,
    ) -> None:
        fsm.sync_status_to_holder()
        session.error = error
        if isinstance(error, SimulationError):
            error.session = session
        if error is not None:
            payload["error"] = f"{type(error).__name__}: {error}"
        session.record(event, **payload)
        log = logger.info if error is None or isinstance(error, NonTerminationError) else logger.warning
        log("session %s %s at tick %s", session.session_id, session.status.value, session.tick)
