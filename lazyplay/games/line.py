"""One-dimensional walker: the smallest game that exercises the whole engine.

The participant moves a marker along a line; the session ends once it reaches `goal`.
"""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, TypeAdapter

from lazyplay.core.identity import ParticipantIdentity
from lazyplay.core.transition import TransitionPhases
from lazyplay.games.registry import GameDefinition

MOVES: dict[str, int] = {"back": -1, "stay": 0, "forward": 1}


class LineState(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: int = 0
    goal: int = 3


def apply_step(state: LineState, response: int) -> LineState:
    return state.model_copy(update={"position": state.position + response})


def is_terminal(state: LineState) -> bool:
    return state.position >= state.goal


def score(state: LineState) -> int:
    return state.position


def always_forward(identity: ParticipantIdentity, prefix: Sequence[LineState]) -> int:
    return 1


def _decode_move(move: str, prefix: Sequence[LineState]) -> int:
    return MOVES[move]


def _describe(state: LineState) -> str:
    return f"Marker at position {state.position}; goal is position {state.goal}."


LINE = GameDefinition(
    name="line",
    phases=TransitionPhases(apply_response=apply_step),
    is_terminal=is_terminal,
    score=score,
    state_adapter=TypeAdapter(LineState),
    response_adapter=TypeAdapter(int),
    initial_state=LineState,
    move_names=tuple(MOVES),
    decode_move=_decode_move,
    policy=always_forward,
    describe=_describe,
)
