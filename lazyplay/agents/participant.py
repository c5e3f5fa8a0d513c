from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from lazyplay.agents.base import Agent
from lazyplay.agents.move_picker import MovePickError, pick_move_with_agent
from lazyplay.core.errors import InputUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a participant in a turn-based game. Each turn you see the current board "
    "and pick exactly one move from the allowed list."
)


class AgentParticipant:
    """LLM-backed participant exposed as both capabilities of the live responder.

    `push_frame` remembers the newest frame; `poll_input` asks the agent for a move given that
    frame and returns `{"move": name}` for the game's input decoder.
    """

    def __init__(
        self,
        *,
        agent: Agent,
        move_names: list[str],
        render_frame: Callable[[dict[str, Any]], str],
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_attempts: int = 3,
    ) -> None:
        self.agent = agent
        self.move_names = list(move_names)
        self.render_frame = render_frame
        self.system_prompt = system_prompt
        self.max_attempts = max_attempts
        self.last_frame: dict[str, Any] | None = None

    async def push_frame(self, frame: dict[str, Any]) -> None:
        self.last_frame = frame

    async def poll_input(self) -> dict[str, str]:
        if self.last_frame is None:
            raise InputUnavailableError("no frame delivered to the agent yet", tick=-1)

        board = self.render_frame(self.last_frame)
        try:
            picked = await pick_move_with_agent(
                agent=self.agent,
                system_prompt=self.system_prompt,
                board=board,
                move_names=self.move_names,
                max_attempts=self.max_attempts,
            )
        except MovePickError as e:
            raise InputUnavailableError(str(e), tick=int(self.last_frame.get("tick", -1))) from e

        logger.debug("agent %s picked %s at tick %s", self.agent.name, picked.move, self.last_frame.get("tick"))
        return {"move": picked.move}
