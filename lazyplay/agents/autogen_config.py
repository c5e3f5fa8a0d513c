from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from autogen import LLMConfig


@dataclass(frozen=True, slots=True)
class OpenAICompatibleSettings:
    model: str
    base_url: str | None
    api_key: str | None
    # Optional OAI_CONFIG_LIST-style JSON file; wins over the individual variables.
    config_list_path: Path | None = None


def settings_from_env(*, default_model: str) -> OpenAICompatibleSettings:
    config_list = os.environ.get("LAZYPLAY_OAI_CONFIG_LIST")
    return OpenAICompatibleSettings(
        model=os.environ.get("OPENAI_MODEL", default_model),
        # For Ollama, typically http://127.0.0.1:11434/v1
        base_url=os.environ.get("OPENAI_BASE_URL"),
        api_key=os.environ.get("OPENAI_API_KEY"),
        config_list_path=Path(config_list) if config_list else None,
    )


def llm_config_from_env(*, default_model: str) -> LLMConfig:
    s = settings_from_env(default_model=default_model)

    if s.config_list_path is not None:
        return LLMConfig.from_json(path=str(s.config_list_path))

    # OpenAI-compatible local servers ignore the key but the client still wants one.
    api_key = s.api_key or ("ollama" if s.base_url else None)
    if not api_key:
        raise RuntimeError(
            "Set OPENAI_API_KEY for hosted OpenAI, or set OPENAI_BASE_URL for a local OpenAI-compatible server"
        )

    config: dict[str, Any] = {"model": s.model, "api_key": api_key}
    if s.base_url:
        config["base_url"] = s.base_url

    return LLMConfig(config_list=[config])
