from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

import redis
from pydantic import BaseModel, Field

from lazyplay.core.errors import IdentityReuseError, SimulationError
from lazyplay.core.scheduler import Session
from lazyplay.fsm import SessionStatus
from lazyplay.games.registry import GameDefinition

SESSIONS_SET_KEY = "lazyplay:sessions"
SESSION_KEY_PREFIX = "lazyplay:session:"  # + {session_id}
IDENTITY_KEY_PREFIX = "lazyplay:identity:"  # + {identity}

ResponderKind = Literal["script", "policy", "live", "agent"]


class SessionRecord(BaseModel):
    """Persisted form of one session.

    `(game, identity, initial_state, responses)` is enough to replay it deterministically;
    the remaining fields are a cached summary for listing and diagnostics.
    """

    session_id: str
    game: str
    identity: str
    responder: ResponderKind
    created_at: datetime
    last_updated_at: datetime

    initial_state: Any
    # Only responses whose resulting state was published.
    responses: list[Any] = Field(default_factory=list)

    status: SessionStatus = SessionStatus.pending
    tick: int = 0
    final_state: Any = None
    score: Any = None

    error_kind: str | None = None
    error: str | None = None
    error_tick: int | None = None


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


def record_from_session(
    *,
    session: Session[Any, Any],
    game: GameDefinition,
    responder: ResponderKind,
    created_at: datetime | None = None,
) -> SessionRecord:
    states = list(session.states)
    published_responses = session.responses.prefix(min(len(session.responses), len(states) - 1))
    now = _now()

    record = SessionRecord(
        session_id=session.session_id,
        game=game.name,
        identity=str(session.identity),
        responder=responder,
        created_at=created_at or now,
        last_updated_at=now,
        initial_state=game.dump_state(states[0]),
        responses=[game.dump_response(x) for x in published_responses],
        status=session.status,
        tick=session.tick,
        final_state=game.dump_state(states[-1]),
        score=session.score,
    )

    err = session.error
    if err is not None:
        record.error_kind = type(err).__name__
        record.error = str(err)
        if isinstance(err, SimulationError):
            record.error_tick = err.tick
    return record


def save_session(*, r: redis.Redis, record: SessionRecord) -> None:
    record.last_updated_at = _now()
    r.set(_session_key(record.session_id), record.model_dump_json())
    r.sadd(SESSIONS_SET_KEY, record.session_id)


def get_session(*, r: redis.Redis, session_id: str) -> SessionRecord | None:
    raw = r.get(_session_key(session_id))
    if not raw:
        return None
    return SessionRecord.model_validate_json(raw)


def require_session(*, r: redis.Redis, session_id: str) -> SessionRecord:
    record = get_session(r=r, session_id=session_id)
    if record is None:
        raise LookupError("Session not found")
    return record


def list_sessions(*, r: redis.Redis) -> list[SessionRecord]:
    out: list[SessionRecord] = []
    for sid in sorted(r.smembers(SESSIONS_SET_KEY)):
        record = get_session(r=r, session_id=sid)
        if record is not None:
            out.append(record)
    out.sort(key=lambda s: s.created_at, reverse=True)
    return out


def _identity_key(identity: str) -> str:
    return f"{IDENTITY_KEY_PREFIX}{identity}"


def claim_identity(*, r: redis.Redis, identity: str, session_id: str) -> None:
    """Record that `identity` belongs to `session_id`, permanently.

    Outlives the process, so an identity stays bound to its session after the host
    forgets the session in memory.
    """

    key = _identity_key(identity)
    if r.set(key, session_id, nx=True):
        return
    owner = r.get(key)
    if owner != session_id:
        raise IdentityReuseError(f"Identity {identity} already used by session {owner}")
