"""Arena: ships steer by thrust on a bounded grid to collect targets while avoiding rocks.

Each transition runs three phases:
  1. apply the participant's thrust to the ship it targets
  2. integrate motion for every entity, reflecting off the walls
  3. resolve interactions: ship/target pickups and ship/rock crashes

Target relocation draws from a linear congruential generator whose state is part of the
`ArenaState`, so the transition stays pure and replays are bit-exact.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel, ConfigDict, TypeAdapter

from lazyplay.core.identity import ParticipantIdentity
from lazyplay.core.transition import TransitionPhases
from lazyplay.games.registry import GameDefinition

# Numerical Recipes LCG constants.
LCG_A = 1664525
LCG_C = 1013904223
LCG_M = 2**32

MOVES: dict[str, tuple[int, int]] = {
    "idle": (0, 0),
    "up": (0, -1),
    "down": (0, 1),
    "left": (-1, 0),
    "right": (1, 0),
}

EntityKind = Literal["ship", "target", "rock"]


class Entity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: EntityKind
    x: int
    y: int
    vx: int = 0
    vy: int = 0


class Thrust(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_id: str
    dx: int = 0
    dy: int = 0


class ArenaState(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = 12
    height: int = 12
    tick: int = 0
    rng: int = 2024
    max_speed: int = 2
    goal_pickups: int = 3
    pickups: int = 0
    crashes: int = 0
    entities: tuple[Entity, ...] = ()

    def entity(self, entity_id: str) -> Entity:
        for e in self.entities:
            if e.id == entity_id:
                return e
        raise KeyError(f"unknown entity '{entity_id}'")

    def of_kind(self, kind: EntityKind) -> list[Entity]:
        return [e for e in self.entities if e.kind == kind]


ArenaResponse = Thrust | None


def next_rng(value: int) -> int:
    return (LCG_A * value + LCG_C) % LCG_M


def _clamp(v: int, limit: int) -> int:
    return max(-limit, min(limit, v))


def _replace(entities: tuple[Entity, ...], updated: Entity) -> tuple[Entity, ...]:
    return tuple(updated if e.id == updated.id else e for e in entities)


def apply_thrust(state: ArenaState, response: ArenaResponse) -> ArenaState:
    if response is None:
        return state
    ship = state.entity(response.entity_id)
    if ship.kind != "ship":
        raise ValueError(f"cannot thrust {ship.kind} '{ship.id}'")
    if abs(response.dx) > 1 or abs(response.dy) > 1:
        raise ValueError(f"thrust ({response.dx},{response.dy}) exceeds one unit per axis")
    moved = ship.model_copy(
        update={
            "vx": _clamp(ship.vx + response.dx, state.max_speed),
            "vy": _clamp(ship.vy + response.dy, state.max_speed),
        }
    )
    return state.model_copy(update={"entities": _replace(state.entities, moved)})


def _reflect(pos: int, vel: int, size: int) -> tuple[int, int]:
    nxt = pos + vel
    if nxt < 0:
        return -nxt, -vel
    if nxt >= size:
        return 2 * (size - 1) - nxt, -vel
    return nxt, vel


def integrate_motion(state: ArenaState) -> ArenaState:
    moved: list[Entity] = []
    for e in state.entities:
        if e.vx == 0 and e.vy == 0:
            moved.append(e)
            continue
        x, vx = _reflect(e.x, e.vx, state.width)
        y, vy = _reflect(e.y, e.vy, state.height)
        moved.append(e.model_copy(update={"x": x, "y": y, "vx": vx, "vy": vy}))
    return state.model_copy(update={"entities": tuple(moved), "tick": state.tick + 1})


def resolve_interactions(state: ArenaState) -> ArenaState:
    entities = state.entities
    rng = state.rng
    pickups = state.pickups
    crashes = state.crashes

    rocks = {(r.x, r.y) for r in state.of_kind("rock")}
    for ship in state.of_kind("ship"):
        if (ship.x, ship.y) in rocks:
            crashes += 1
            entities = _replace(entities, ship.model_copy(update={"vx": 0, "vy": 0}))

        for target in [e for e in entities if e.kind == "target"]:
            if (target.x, target.y) != (ship.x, ship.y):
                continue
            pickups += 1
            rng = next_rng(rng)
            x = rng % state.width
            rng = next_rng(rng)
            y = rng % state.height
            entities = _replace(entities, target.model_copy(update={"x": x, "y": y}))

    return state.model_copy(update={"entities": entities, "rng": rng, "pickups": pickups, "crashes": crashes})


def is_terminal(state: ArenaState) -> bool:
    return state.pickups >= state.goal_pickups


def score(state: ArenaState) -> int:
    return max(0, 100 * state.pickups - state.tick - 25 * state.crashes)


def default_arena() -> ArenaState:
    return ArenaState(
        entities=(
            Entity(id="ship", kind="ship", x=1, y=1),
            Entity(id="target", kind="target", x=6, y=4),
            Entity(id="rock-1", kind="rock", x=4, y=8),
            Entity(id="rock-2", kind="rock", x=9, y=2),
        )
    )


def _toward(delta: int, velocity: int) -> int:
    # Accelerate toward the target, brake when close.
    desired = _clamp(delta, 1) if abs(delta) > abs(velocity) else 0
    if desired > velocity:
        return 1
    if desired < velocity:
        return -1
    return 0


def chase_policy(identity: ParticipantIdentity, prefix: Sequence[ArenaState]) -> ArenaResponse:
    """Pure steering policy: thrust the first ship toward the first target."""

    state = prefix[-1]
    ships = state.of_kind("ship")
    targets = state.of_kind("target")
    if not ships or not targets:
        return None
    ship, target = ships[0], targets[0]
    return Thrust(
        entity_id=ship.id,
        dx=_toward(target.x - ship.x, ship.vx),
        dy=_toward(target.y - ship.y, ship.vy),
    )


def _decode_move(move: str, prefix: Sequence[ArenaState]) -> ArenaResponse:
    ships = prefix[-1].of_kind("ship")
    if not ships:
        raise ValueError("no ship to steer")
    dx, dy = MOVES[move]
    if (dx, dy) == (0, 0):
        return None
    return Thrust(entity_id=ships[0].id, dx=dx, dy=dy)


def _describe(state: ArenaState) -> str:
    lines = [
        f"Arena {state.width}x{state.height}, tick {state.tick}, "
        f"pickups {state.pickups}/{state.goal_pickups}, crashes {state.crashes}.",
    ]
    for e in state.entities:
        lines.append(f"- {e.kind} '{e.id}' at ({e.x},{e.y}) velocity ({e.vx},{e.vy})")
    return "\n".join(lines)


ARENA = GameDefinition(
    name="arena",
    phases=TransitionPhases(
        apply_response=apply_thrust,
        integrate=integrate_motion,
        resolve=resolve_interactions,
    ),
    is_terminal=is_terminal,
    score=score,
    state_adapter=TypeAdapter(ArenaState),
    response_adapter=TypeAdapter(ArenaResponse),
    initial_state=default_arena,
    move_names=tuple(MOVES),
    decode_move=_decode_move,
    policy=chase_policy,
    describe=_describe,
)
