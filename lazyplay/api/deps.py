from __future__ import annotations

import logging
from collections.abc import Generator

import redis

from lazyplay.config import EngineConfig
from lazyplay.infra.redis_client import create_redis

logger = logging.getLogger(__name__)


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        try:
            client.close()
        except redis.RedisError:
            logger.debug("redis close failed", exc_info=True)


def get_engine_config() -> EngineConfig:
    return EngineConfig.from_env()
