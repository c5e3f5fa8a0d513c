from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import fakeredis
import pytest
from fastapi.testclient import TestClient


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    Makes OPENAI_BASE_URL / OPENAI_MODEL available to the env-gated LLM test.
    In CI we don't auto-load `.env`, so that test stays skipped unless explicitly opted-in
    with LAZYPLAY_LOAD_DOTENV_FOR_TESTS=1.
    """

    if os.environ.get("CI") and os.environ.get("LAZYPLAY_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)

    # Local OpenAI-compatible endpoints still need some key string.
    if os.environ.get("OPENAI_BASE_URL") and not os.environ.get("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = "ollama"


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def client_and_redis(r: fakeredis.FakeRedis) -> Generator[tuple[TestClient, fakeredis.FakeRedis], None, None]:
    """FastAPI TestClient with the Redis dependency pointed at fakeredis."""

    from lazyplay.api.deps import get_engine_config, get_redis
    from lazyplay.config import EngineConfig
    from lazyplay.main import app

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    app.dependency_overrides[get_engine_config] = lambda: EngineConfig(tick_budget=200, input_timeout_s=2.0)
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
