from __future__ import annotations

import json
from dataclasses import dataclass

from lazyplay.agents.base import Agent, JsonSchema


@dataclass(frozen=True, slots=True)
class PickedMove:
    move: str
    reason: str = ""


class MovePickError(RuntimeError):
    pass


def parse_picked_move(text: str) -> PickedMove:
    """Parse the model output for a move pick.

    Expected strict JSON object: {"move": "<name>"} with an optional "reason".
    "action" is accepted as an alias for "move". Non-JSON output is rejected.
    """

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MovePickError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MovePickError("Expected a JSON object")

    move = data.get("move")
    if move is None:
        move = data.get("action")
    if not isinstance(move, str) or not move.strip():
        raise MovePickError("Missing/invalid 'move' field")

    reason = data.get("reason")
    return PickedMove(move=move.strip(), reason=reason.strip() if isinstance(reason, str) else "")


def move_schema(move_names: list[str]) -> JsonSchema:
    return JsonSchema(
        name="pick_move",
        schema={
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "move": {"type": "string", "enum": list(move_names)},
                "reason": {"type": "string"},
            },
            "required": ["move"],
        },
        strict=True,
    )


async def pick_move_with_agent(
    *,
    agent: Agent,
    system_prompt: str,
    board: str,
    move_names: list[str],
    max_attempts: int = 3,
) -> PickedMove:
    """Ask an agent for the next move and validate it against the allowed names."""

    prompt = (
        "Choose your next move.\n\n"
        f"{board.strip()}\n\n"
        "Return ONLY JSON matching the required schema. No explanation outside JSON.\n\n"
        "Allowed moves:\n"
        f"{move_names}\n"
    )
    schema = move_schema(move_names)

    last_err: Exception | None = None
    for _ in range(max_attempts):
        propose = getattr(agent, "propose_action")
        try:
            action = await propose(prompt=prompt, system_prompt=system_prompt, structured_output=schema)
        except TypeError:
            # Agent without structured output support; rely on prompt + parser.
            action = await propose(prompt=prompt, system_prompt=system_prompt)

        try:
            picked = parse_picked_move(action.content)
        except MovePickError as e:
            last_err = e
            continue

        if picked.move not in move_names:
            last_err = MovePickError(f"Chosen move '{picked.move}' is not in allowed moves")
            continue

        return picked

    raise MovePickError(f"Failed to pick a valid move after {max_attempts} attempts: {last_err}")
