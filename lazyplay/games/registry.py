from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import TypeAdapter

from lazyplay.config import EngineConfig
from lazyplay.core.identity import IdentityGuard, ParticipantIdentity
from lazyplay.core.scheduler import Scheduler
from lazyplay.core.termination import TerminationDetector
from lazyplay.core.transition import StateSequenceGenerator, TransitionPhases


@dataclass(frozen=True, slots=True)
class GameDefinition:
    """Everything a host needs to run one game: pure rules plus codecs for persistence and input.

    `decode_move` maps a named move (from a mailbox entry or an LLM participant) to a response
    for the current prefix; `policy` is a pure default participant used by scripted demos.
    """

    name: str
    phases: TransitionPhases[Any, Any]
    is_terminal: Callable[[Any], bool]
    score: Callable[[Any], Any]
    state_adapter: TypeAdapter[Any]
    response_adapter: TypeAdapter[Any]
    initial_state: Callable[[], Any]
    move_names: tuple[str, ...]
    decode_move: Callable[[str, Sequence[Any]], Any]
    policy: Callable[[ParticipantIdentity, Sequence[Any]], Any]
    describe: Callable[[Any], str]

    def generator(self) -> StateSequenceGenerator[Any, Any]:
        return StateSequenceGenerator(self.phases)

    def detector(self) -> TerminationDetector[Any, Any]:
        return TerminationDetector(is_terminal=self.is_terminal, score_fn=self.score)

    def scheduler(self, *, config: EngineConfig | None = None, guard: IdentityGuard | None = None) -> Scheduler[Any, Any]:
        return Scheduler(generator=self.generator(), detector=self.detector(), config=config, guard=guard)

    def decode_input(self, raw: Any, prefix: Sequence[Any]) -> Any:
        """Decode a raw live input: `{"move": name}` or `{"response": <json>}`."""

        if not isinstance(raw, Mapping):
            raise ValueError(f"Expected a mapping, got {type(raw).__name__}")
        move = raw.get("move")
        if move:
            if move not in self.move_names:
                allowed = ",".join(self.move_names)
                raise ValueError(f"Unknown move '{move}' (allowed: {allowed})")
            return self.decode_move(str(move), prefix)
        if "response" in raw:
            return self.response_adapter.validate_json(raw["response"])
        raise ValueError("Input needs a 'move' or 'response' field")

    def dump_state(self, state: Any) -> Any:
        return self.state_adapter.dump_python(state, mode="json")

    def load_state(self, data: Any) -> Any:
        return self.state_adapter.validate_python(data)

    def dump_response(self, response: Any) -> Any:
        return self.response_adapter.dump_python(response, mode="json")

    def load_response(self, data: Any) -> Any:
        return self.response_adapter.validate_python(data)


def _registry() -> dict[str, GameDefinition]:
    from lazyplay.games.arena import ARENA
    from lazyplay.games.line import LINE

    return {g.name: g for g in (LINE, ARENA)}


def get_game_definition(name: str) -> GameDefinition:
    game = _registry().get(name)
    if game is None:
        raise ValueError(f"Unknown game: {name}")
    return game


def list_game_names() -> list[str]:
    return sorted(_registry())
