from __future__ import annotations

import json
from typing import Any

import redis
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from lazyplay.agents.factory import create_default_agent
from lazyplay.api.deps import get_engine_config, get_redis
from lazyplay.api.models import (
    CancelResponse,
    GameInfo,
    GameListResponse,
    InputAccepted,
    InputRequest,
    LiveSessionCreateRequest,
    ReplayResponse,
    ResumeRequest,
    SessionCreateRequest,
    SessionListResponse,
    SessionStatusResponse,
)
from lazyplay.config import EngineConfig
from lazyplay.core.errors import IdentityReuseError
from lazyplay.core.identity import ParticipantIdentity
from lazyplay.frames import frame_policy
from lazyplay.games.registry import GameDefinition, get_game_definition, list_game_names
from lazyplay.lock import SessionBusyError
from lazyplay.replay import replay_record, restore_session
from lazyplay.responders.base import ResponseProvider
from lazyplay.responders.scripted import PolicyResponder, ScriptedResponder
from lazyplay.runner import (
    build_agent_responder,
    build_live_responder,
    open_session,
    registry,
    run_session,
    start_background_session,
    with_history_window,
)
from lazyplay.session_store import SessionRecord, get_session, list_sessions, require_session
from lazyplay.streams import Mailbox, publish_to_mailbox, read_mailbox
from lazyplay.websocket_hub import hub

router = APIRouter()


def _game_or_422(name: str) -> GameDefinition:
    try:
        return get_game_definition(name)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e


def _record_or_404(r: redis.Redis, session_id: str) -> SessionRecord:
    try:
        return require_session(r=r, session_id=session_id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


def _scripted_provider(
    *, game: GameDefinition, kind: str, script: list[Any] | None, config: EngineConfig, start_tick: int = 0
) -> ResponseProvider[Any, Any]:
    if kind == "script":
        return ScriptedResponder([game.load_response(x) for x in script or []], start_tick=start_tick)
    return with_history_window(PolicyResponder(game.policy), config)


@router.websocket("/ws/session/{session_id}")
async def session_frames_ws(websocket: WebSocket, session_id: str) -> None:
    await hub.connect(session_id, websocket)

    try:
        # Keep the socket open; clients may send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(session_id, websocket)
    except Exception:
        await hub.disconnect(session_id, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/games", response_model=GameListResponse)
async def list_games_route() -> GameListResponse:
    games = [get_game_definition(name) for name in list_game_names()]
    return GameListResponse(
        games=[GameInfo(name=g.name, moves=list(g.move_names), initial_state=g.dump_state(g.initial_state())) for g in games]
    )


@router.post("/sessions", response_model=SessionRecord, status_code=status.HTTP_201_CREATED)
async def create_session_route(
    payload: SessionCreateRequest,
    r: redis.Redis = Depends(get_redis),
    config: EngineConfig = Depends(get_engine_config),
) -> SessionRecord:
    """Run a scripted or policy-driven session to completion and return its record.

    Simulation errors (non-termination, transition faults, exhausted scripts) are reported on
    the record with their tick index, not as HTTP errors.
    """

    game = _game_or_422(payload.game)
    try:
        initial = game.load_state(payload.initial_state) if payload.initial_state is not None else None
        identity = ParticipantIdentity.parse(payload.identity) if payload.identity else None
        responder = _scripted_provider(game=game, kind=payload.responder, script=payload.script, config=config)
        session = open_session(r=r, game=game, config=config, initial_state=initial, identity=identity)
    except (ValueError, IdentityReuseError) as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    return await run_session(
        r=r,
        game=game,
        session=session,
        responder=responder,
        responder_kind=payload.responder,
        config=config,
        tick_budget=payload.tick_budget,
    )


@router.post("/sessions/live", response_model=SessionRecord, status_code=status.HTTP_202_ACCEPTED)
async def create_live_session_route(
    payload: LiveSessionCreateRequest,
    r: redis.Redis = Depends(get_redis),
    config: EngineConfig = Depends(get_engine_config),
) -> SessionRecord:
    """Start a live session in the background.

    Inputs arrive via `POST /sessions/{id}/inputs` (or the LLM agent); frames are pushed to
    `/ws/session/{id}` and the `frames:{id}` Redis stream.
    """

    game = _game_or_422(payload.game)
    try:
        initial = game.load_state(payload.initial_state) if payload.initial_state is not None else None
        session = open_session(r=r, game=game, config=config, initial_state=initial)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    policy = frame_policy(payload.frame_policy)
    if payload.agent:
        responder = build_agent_responder(
            r=r,
            game=game,
            session_id=session.session_id,
            agent=create_default_agent(name=f"participant-{session.session_id[:8]}"),
            hub=hub,
            config=config,
            frame_policy=policy,
        )
    else:
        responder = build_live_responder(
            r=r,
            game=game,
            session_id=session.session_id,
            participant=payload.participant,
            hub=hub,
            config=config,
            frame_policy=policy,
        )

    start_background_session(
        r=r,
        game=game,
        session=session,
        responder=responder,
        responder_kind="agent" if payload.agent else "live",
        config=config,
        tick_budget=payload.tick_budget,
    )
    return _record_or_404(r, session.session_id)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions_route(r: redis.Redis = Depends(get_redis)) -> SessionListResponse:
    return SessionListResponse(sessions=list_sessions(r=r))


@router.get("/sessions/{session_id}", response_model=SessionRecord)
async def get_session_route(session_id: str, r: redis.Redis = Depends(get_redis)) -> SessionRecord:
    return _record_or_404(r, session_id)


@router.get("/sessions/{session_id}/status", response_model=SessionStatusResponse)
async def session_status_route(session_id: str, r: redis.Redis = Depends(get_redis)) -> SessionStatusResponse:
    active = registry.get(session_id)
    if active is not None:
        s = active.session
        return SessionStatusResponse(session_id=session_id, status=s.status, tick=s.tick, active=True)
    record = _record_or_404(r, session_id)
    return SessionStatusResponse(session_id=session_id, status=record.status, tick=record.tick, active=False)


@router.post("/sessions/{session_id}/resume", response_model=SessionRecord)
async def resume_session_route(
    session_id: str,
    payload: ResumeRequest,
    r: redis.Redis = Depends(get_redis),
    config: EngineConfig = Depends(get_engine_config),
) -> SessionRecord:
    record = _record_or_404(r, session_id)
    game = _game_or_422(record.game)
    try:
        session = await restore_session(record, game=game)
        responder = _scripted_provider(
            game=game, kind=payload.responder, script=payload.script, config=config, start_tick=session.tick
        )
        return await run_session(
            r=r,
            game=game,
            session=session,
            responder=responder,
            responder_kind=payload.responder,
            config=config,
            tick_budget=payload.tick_budget,
            created_at=record.created_at,
        )
    except SessionBusyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e


@router.post("/sessions/{session_id}/replay", response_model=ReplayResponse)
async def replay_session_route(session_id: str, r: redis.Redis = Depends(get_redis)) -> ReplayResponse:
    record = _record_or_404(r, session_id)
    game = _game_or_422(record.game)
    result = await replay_record(record, game=game)
    return ReplayResponse(
        session_id=session_id,
        terminated=result.terminated,
        score=result.score,
        tick=result.session.tick,
        matches=result.matches(record),
    )


@router.post("/sessions/{session_id}/cancel", response_model=CancelResponse)
async def cancel_session_route(session_id: str) -> CancelResponse:
    if not registry.cancel(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session is not running")
    return CancelResponse(session_id=session_id, cancel_requested=True)


@router.post("/sessions/{session_id}/inputs", response_model=InputAccepted)
async def post_input_route(session_id: str, payload: InputRequest, r: redis.Redis = Depends(get_redis)) -> InputAccepted:
    if get_session(r=r, session_id=session_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")

    fields: dict[str, str] = {"participant": payload.participant}
    if payload.move is not None:
        fields["move"] = payload.move
    else:
        fields["response"] = json.dumps(payload.response)

    mailbox = Mailbox(session_id=session_id, participant=payload.participant)
    entry_id = publish_to_mailbox(r=r, mailbox=mailbox, fields=fields)
    return InputAccepted(session_id=session_id, participant=payload.participant, entry_id=entry_id)


@router.get("/sessions/{session_id}/mailbox/{participant}")
async def get_mailbox_route(
    session_id: str,
    participant: str,
    count: int = 20,
    r: redis.Redis = Depends(get_redis),
) -> dict[str, object]:
    """Debug endpoint: read a participant's mailbox stream."""

    if count < 1 or count > 200:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="count must be between 1 and 200")

    mailbox = Mailbox(session_id=session_id, participant=participant)
    entries = read_mailbox(r=r, mailbox=mailbox, count=count)
    messages = [{"id": mid, "fields": fields} for mid, fields in entries]
    return {"session_id": session_id, "participant": participant, "stream": mailbox.key, "messages": messages}
