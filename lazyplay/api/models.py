from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from lazyplay.fsm import SessionStatus
from lazyplay.session_store import SessionRecord


class SessionCreateRequest(BaseModel):
    game: str = "line"
    # "script": replay the canned `script`; "policy": the game's built-in pure participant.
    responder: Literal["script", "policy"] = "policy"
    script: list[Any] | None = None
    tick_budget: int | None = Field(default=None, ge=0, le=100_000)
    initial_state: dict[str, Any] | None = None
    # Optional explicit identity (UUID); a fresh one is minted otherwise.
    identity: str | None = None

    @model_validator(mode="after")
    def _script_required(self) -> "SessionCreateRequest":
        if self.responder == "script" and self.script is None:
            raise ValueError("script is required when responder is 'script'")
        return self


class LiveSessionCreateRequest(BaseModel):
    game: str = "line"
    participant: str = "p1"
    # Drive the participant with the LLM agent instead of mailbox inputs.
    agent: bool = False
    frame_policy: Literal["full", "delta"] = "full"
    tick_budget: int | None = Field(default=None, ge=0, le=100_000)
    initial_state: dict[str, Any] | None = None


class ResumeRequest(BaseModel):
    responder: Literal["script", "policy"] = "policy"
    script: list[Any] | None = None
    tick_budget: int | None = Field(default=None, ge=0, le=100_000)

    @model_validator(mode="after")
    def _script_required(self) -> "ResumeRequest":
        if self.responder == "script" and self.script is None:
            raise ValueError("script is required when responder is 'script'")
        return self


class InputRequest(BaseModel):
    participant: str = "p1"
    move: str | None = Field(default=None, min_length=1, max_length=64)
    # Raw response JSON, decoded by the game's response codec.
    response: Any = None

    @model_validator(mode="after")
    def _one_of(self) -> "InputRequest":
        if (self.move is None) == (self.response is None):
            raise ValueError("exactly one of 'move' or 'response' is required")
        return self


class InputAccepted(BaseModel):
    session_id: str
    participant: str
    entry_id: str


class ReplayResponse(BaseModel):
    session_id: str
    terminated: bool
    score: Any = None
    tick: int
    matches: bool


class CancelResponse(BaseModel):
    session_id: str
    cancel_requested: bool


class SessionListResponse(BaseModel):
    sessions: list[SessionRecord]


class GameInfo(BaseModel):
    name: str
    moves: list[str]
    initial_state: Any


class GameListResponse(BaseModel):
    games: list[GameInfo]


class SessionStatusResponse(BaseModel):
    session_id: str
    status: SessionStatus
    tick: int
    active: bool
