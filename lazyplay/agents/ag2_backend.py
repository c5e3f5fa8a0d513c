from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from autogen import ConversableAgent

from lazyplay.agents.autogen_config import llm_config_from_env
from lazyplay.agents.base import AgentAction, JsonSchema


def _extract_last_content(messages: object) -> str:
    """Extract the last non-empty message content from AG2 chat history."""

    if not isinstance(messages, list):
        return ""

    for msg in reversed(messages):
        if isinstance(msg, dict):
            content = msg.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return ""


@dataclass(slots=True)
class Ag2ChatAgent:
    """AG2 agent wrapper that plays as a participant.

    Environment variables supported:
    - OPENAI_MODEL
    - OPENAI_API_KEY (optional if OPENAI_BASE_URL is set)
    - OPENAI_BASE_URL (for OpenAI-compatible servers like Ollama, e.g. http://127.0.0.1:11434/v1)
    - LAZYPLAY_OAI_CONFIG_LIST (path to an OAI_CONFIG_LIST json file)
    """

    name: str
    model: str

    async def propose_action(
        self,
        *,
        prompt: str,
        system_prompt: str,
        structured_output: JsonSchema | None = None,
    ) -> AgentAction:
        llm_config = llm_config_from_env(default_model=self.model)

        agent = ConversableAgent(
            name=self.name,
            system_message=system_prompt,
            llm_config=llm_config,
            human_input_mode="NEVER",
        )

        # AG2 forwards unknown kwargs through to the OpenAI client.
        extra: dict[str, Any] = {}
        if structured_output is not None:
            extra["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": structured_output.name,
                    "schema": structured_output.schema,
                    "strict": structured_output.strict,
                },
            }

        def _run() -> str:
            result = agent.run(message=prompt, max_turns=1, **extra)
            result.process()
            text = _extract_last_content(list(result.messages))
            if not text and isinstance(result.summary, str):
                text = result.summary.strip()
            return text

        # The AG2 run is blocking; keep it off the event loop so input timeouts still fire.
        text = await asyncio.to_thread(_run)

        metadata: dict[str, Any] = {"model": self.model}
        if structured_output is not None:
            metadata["structured"] = True
        return AgentAction(kind="chat", content=text, metadata=metadata)
