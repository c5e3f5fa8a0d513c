from __future__ import annotations

import os

import httpx
import pytest

from lazyplay.agents.ag2_backend import Ag2ChatAgent
from lazyplay.agents.participant import AgentParticipant
from lazyplay.games.line import LINE, LineState
from lazyplay.runner import frame_renderer


def _ollama_healthy(base_url: str) -> bool:
    # base_url might be http://127.0.0.1:11434/v1
    root = base_url.removesuffix("/v1")
    try:
        r = httpx.get(f"{root}/api/tags", timeout=1.0)
        return r.status_code == 200
    except httpx.HTTPError:
        return False


@pytest.mark.asyncio
async def test_ag2_participant_picks_a_legal_move_env_gated() -> None:
    base_url = os.environ.get("OPENAI_BASE_URL")
    api_key = os.environ.get("OPENAI_API_KEY")

    if not (api_key or base_url):
        pytest.skip("Set OPENAI_API_KEY or OPENAI_BASE_URL")

    if base_url and not _ollama_healthy(base_url):
        pytest.skip("Ollama not reachable at OPENAI_BASE_URL")

    agent = Ag2ChatAgent(name="ag2-test", model=os.environ.get("OPENAI_MODEL", "gpt-4o-mini"))
    participant = AgentParticipant(agent=agent, move_names=list(LINE.move_names), render_frame=frame_renderer(LINE))

    await participant.push_frame({"tick": 0, "kind": "full", "state": LINE.dump_state(LineState())})
    raw = await participant.poll_input()

    assert raw["move"] in LINE.move_names
