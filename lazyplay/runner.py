from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import redis

from lazyplay.agents.base import Agent
from lazyplay.agents.participant import AgentParticipant
from lazyplay.config import EngineConfig
from lazyplay.core.errors import IdentityReuseError, SimulationError
from lazyplay.core.identity import IdentityGuard, ParticipantIdentity
from lazyplay.core.scheduler import Session
from lazyplay.frames import FramePolicy, full_frame
from lazyplay.fsm import SessionStatus
from lazyplay.games.registry import GameDefinition
from lazyplay.lock import SessionBusyError, session_lock
from lazyplay.responders.base import OutputCapability, ResponseProvider
from lazyplay.responders.live import LiveResponder
from lazyplay.responders.scripted import WindowedResponder
from lazyplay.session_store import (
    ResponderKind,
    SessionRecord,
    claim_identity,
    record_from_session,
    save_session,
)
from lazyplay.streams import FanoutOutput, Mailbox, RedisFrameOutput, RedisMailboxInput
from lazyplay.websocket_hub import SessionWebSocketHub, WebSocketFrameOutput

logger = logging.getLogger(__name__)

# Identities of sessions this process is currently running. Claims are released when a run
# ends; the durable claim in Redis (`claim_identity`) keeps identities from being reused.
GUARD = IdentityGuard()


@dataclass(slots=True)
class ActiveSession:
    session: Session[Any, Any]
    game: GameDefinition
    responder_kind: ResponderKind
    created_at: datetime
    task: asyncio.Task[SessionRecord] | None = None


@dataclass(slots=True)
class SessionRegistry:
    """In-process index of sessions currently being advanced, for cancellation and status."""

    _active: dict[str, ActiveSession] = field(default_factory=dict)

    def add(self, active: ActiveSession) -> None:
        self._active[active.session.session_id] = active

    def get(self, session_id: str) -> ActiveSession | None:
        return self._active.get(session_id)

    def discard(self, active: ActiveSession) -> None:
        """Remove `active` only if it is still the entry for its session."""

        sid = active.session.session_id
        if self._active.get(sid) is active:
            del self._active[sid]

    def cancel(self, session_id: str) -> bool:
        active = self._active.get(session_id)
        if active is None:
            return False
        active.session.cancel()
        return True

    def __len__(self) -> int:
        return len(self._active)


registry = SessionRegistry()


def frame_renderer(game: GameDefinition) -> Callable[[dict[str, Any]], str]:
    """Text view of a frame for LLM participants."""

    def _render(frame: dict[str, Any]) -> str:
        if frame.get("kind") == "full":
            return game.describe(game.load_state(frame["state"]))
        return "State change since last turn:\n" + json.dumps(frame, sort_keys=True)

    return _render


def with_history_window(responder: ResponseProvider[Any, Any], config: EngineConfig) -> ResponseProvider[Any, Any]:
    if config.history_window is None:
        return responder
    return WindowedResponder(inner=responder, window=config.history_window)


def build_live_responder(
    *,
    r: redis.Redis,
    game: GameDefinition,
    session_id: str,
    participant: str,
    hub: SessionWebSocketHub,
    config: EngineConfig,
    frame_policy: FramePolicy = full_frame,
) -> LiveResponder[Any, Any]:
    """Participant inputs from their Redis mailbox; frames to Redis and websocket subscribers."""

    output = FanoutOutput(
        [
            RedisFrameOutput(r=r, session_id=session_id),
            WebSocketFrameOutput(hub=hub, session_id=session_id),
        ]
    )
    return LiveResponder(
        input=RedisMailboxInput(r=r, mailbox=Mailbox(session_id=session_id, participant=participant)),
        output=output,
        decode=game.decode_input,
        frame_policy=frame_policy,
        timeout_s=config.input_timeout_s,
    )


def build_agent_responder(
    *,
    r: redis.Redis,
    game: GameDefinition,
    session_id: str,
    agent: Agent,
    hub: SessionWebSocketHub,
    config: EngineConfig,
    frame_policy: FramePolicy = full_frame,
) -> LiveResponder[Any, Any]:
    """LLM participant: it receives the same frames a human would, then picks a named move."""

    participant = AgentParticipant(agent=agent, move_names=list(game.move_names), render_frame=frame_renderer(game))
    outputs: list[OutputCapability] = [
        participant,
        RedisFrameOutput(r=r, session_id=session_id),
        WebSocketFrameOutput(hub=hub, session_id=session_id),
    ]
    return LiveResponder(
        input=participant,
        output=FanoutOutput(outputs),
        decode=game.decode_input,
        frame_policy=frame_policy,
        timeout_s=config.input_timeout_s,
    )


def open_session(
    *,
    r: redis.Redis,
    game: GameDefinition,
    config: EngineConfig,
    initial_state: Any | None = None,
    identity: ParticipantIdentity | None = None,
) -> Session[Any, Any]:
    scheduler = game.scheduler(config=config, guard=GUARD)
    state = game.initial_state() if initial_state is None else initial_state
    session = scheduler.open(state, identity or ParticipantIdentity.new())
    try:
        claim_identity(r=r, identity=str(session.identity), session_id=session.session_id)
    except IdentityReuseError:
        GUARD.release(session.identity)
        raise
    return session


async def run_session(
    *,
    r: redis.Redis,
    game: GameDefinition,
    session: Session[Any, Any],
    responder: ResponseProvider[Any, Any],
    responder_kind: ResponderKind,
    config: EngineConfig,
    tick_budget: int | None = None,
    created_at: datetime | None = None,
    active: ActiveSession | None = None,
) -> SessionRecord:
    """Advance (or resume) a session and persist its record.

    Simulation errors end the run normally: they are captured on the record with their tick.
    Task cancellation is persisted and then re-raised.
    """

    scheduler = game.scheduler(config=config)
    created = created_at or datetime.now(tz=UTC)
    if active is None:
        if registry.get(session.session_id) is not None:
            raise SessionBusyError(f"Session {session.session_id} is busy")
        active = ActiveSession(session=session, game=game, responder_kind=responder_kind, created_at=created)
        registry.add(active)

    try:
        with session_lock(r=r, session_id=session.session_id):
            save_session(r=r, record=record_from_session(session=session, game=game, responder=responder_kind, created_at=created))
            try:
                if session.status == SessionStatus.pending:
                    await scheduler.run(session, responder=responder, tick_budget=tick_budget)
                else:
                    await scheduler.resume(session, responder=responder, tick_budget=tick_budget)
            except SimulationError as e:
                logger.info("session %s ended with %s at tick %s", session.session_id, type(e).__name__, e.tick)
            finally:
                # Leave the registry before the final record lands, so a finished record
                # never belongs to a session that still looks active.
                registry.discard(active)
                record = record_from_session(session=session, game=game, responder=responder_kind, created_at=created)
                save_session(r=r, record=record)
    finally:
        registry.discard(active)
        if GUARD.owner_of(session.identity) == session.session_id:
            GUARD.release(session.identity)

    return record


def _log_background_result(task: asyncio.Task[SessionRecord]) -> None:
    if task.cancelled():
        logger.info("background %s cancelled", task.get_name())
        return
    exc = task.exception()
    if exc is not None:
        logger.error("background %s failed", task.get_name(), exc_info=exc)


def start_background_session(
    *,
    r: redis.Redis,
    game: GameDefinition,
    session: Session[Any, Any],
    responder: ResponseProvider[Any, Any],
    responder_kind: ResponderKind,
    config: EngineConfig,
    tick_budget: int | None = None,
) -> ActiveSession:
    """Run a live session as an asyncio task; the caller gets control back immediately."""

    if registry.get(session.session_id) is not None:
        raise SessionBusyError(f"Session {session.session_id} is busy")
    created = datetime.now(tz=UTC)
    active = ActiveSession(session=session, game=game, responder_kind=responder_kind, created_at=created)
    registry.add(active)
    save_session(r=r, record=record_from_session(session=session, game=game, responder=responder_kind, created_at=created))

    active.task = asyncio.create_task(
        run_session(
            r=r,
            game=game,
            session=session,
            responder=responder,
            responder_kind=responder_kind,
            config=config,
            tick_budget=tick_budget,
            created_at=created,
            active=active,
        ),
        name=f"session:{session.session_id}",
    )
    active.task.add_done_callback(_log_background_result)
    return active
