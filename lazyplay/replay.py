"""Deterministic replay of persisted sessions.

A record's initial state, identity and ordered responses are fed back through the same pure
transition with a scripted responder. Because both are pure, the rebuilt prefixes and score are
identical to the original run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from lazyplay.core.errors import NonTerminationError
from lazyplay.core.identity import ParticipantIdentity
from lazyplay.core.scheduler import Session
from lazyplay.fsm import SessionStatus
from lazyplay.games.registry import GameDefinition, get_game_definition
from lazyplay.responders.scripted import ScriptedResponder
from lazyplay.session_store import SessionRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReplayResult:
    session: Session[Any, Any]
    terminated: bool
    score: Any = None

    def matches(self, record: SessionRecord) -> bool:
        """True if the replay reproduced the recorded outcome."""

        if record.status == SessionStatus.terminated:
            return self.terminated and self.score == record.score and self.session.tick == record.tick
        return not self.terminated and self.session.tick == record.tick


async def replay_record(record: SessionRecord, *, game: GameDefinition | None = None) -> ReplayResult:
    game = game or get_game_definition(record.game)
    scheduler = game.scheduler()
    responses = [game.load_response(x) for x in record.responses]
    session = scheduler.open(
        game.load_state(record.initial_state),
        ParticipantIdentity.parse(record.identity),
        session_id=record.session_id,
    )

    try:
        score = await scheduler.run(session, responder=ScriptedResponder(responses), tick_budget=len(responses))
    except NonTerminationError:
        # The recorded run stopped before a terminal state; the rebuilt session is resumable.
        logger.debug("replay of %s stopped at tick %s without terminal state", record.session_id, session.tick)
        return ReplayResult(session=session, terminated=False)

    return ReplayResult(session=session, terminated=True, score=score)


async def restore_session(record: SessionRecord, *, game: GameDefinition | None = None) -> Session[Any, Any]:
    """Rebuild an exhausted session's prefixes so it can be resumed."""

    if record.status != SessionStatus.exhausted:
        raise ValueError(f"Session {record.session_id} is {record.status.value}, not resumable")
    result = await replay_record(record, game=game)
    if result.terminated:
        raise ValueError(f"Session {record.session_id} replays to a terminal state; record is inconsistent")
    return result.session
