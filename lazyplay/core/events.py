from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

EventType = Literal[
    "SESSION_STARTED",
    "SESSION_TERMINATED",
    "SESSION_EXHAUSTED",
    "SESSION_FAILED",
    "SESSION_CANCELLED",
]


@dataclass(frozen=True, slots=True)
class SessionEvent:
    type: EventType
    tick: int
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def now(*, type: EventType, tick: int, payload: dict[str, Any]) -> "SessionEvent":
        return SessionEvent(type=type, tick=tick, payload=payload, ts=datetime.now(timezone.utc))
