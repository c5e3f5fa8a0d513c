from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

import redis


class SessionBusyError(ValueError):
    pass


@contextmanager
def session_lock(*, r: redis.Redis, session_id: str, ttl_ms: int = 60_000) -> Iterator[str]:
    """Per-session lock so only one advance/resume writes a persisted session at a time.

    The lock value is a unique token; release only deletes the key if we still hold it.
    """

    key = f"lock:session:{session_id}"
    token = uuid4().hex
    acquired = r.set(key, token, nx=True, px=ttl_ms)
    if not acquired:
        raise SessionBusyError(f"Session {session_id} is busy")
    try:
        yield token
    finally:
        if r.get(key) == token:
            r.delete(key)
