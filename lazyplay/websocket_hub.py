from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

from fastapi import WebSocket


class SessionWebSocketHub:
    """In-process WebSocket pub/sub keyed by session_id.

    Contract:
      - attach a connection to a session via `connect(session_id, websocket)`.
      - broadcast JSON-serializable dicts with `broadcast(session_id, payload)`.

    Single-process only; multiple API replicas would need Redis pub/sub instead.
    """

    def __init__(self) -> None:
        self._by_session: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._by_session[session_id].add(websocket)

    async def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            conns = self._by_session.get(session_id)
            if not conns:
                return
            conns.discard(websocket)
            if not conns:
                self._by_session.pop(session_id, None)

    def connections(self, session_id: str) -> int:
        return len(self._by_session.get(session_id, ()))

    async def broadcast(self, session_id: str, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._by_session.get(session_id, set()))

        if not conns:
            return

        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            async with self._lock:
                for ws in dead:
                    self._by_session.get(session_id, set()).discard(ws)


class WebSocketFrameOutput:
    """Output capability broadcasting frames to the session's websocket subscribers."""

    def __init__(self, *, hub: SessionWebSocketHub, session_id: str) -> None:
        self.hub = hub
        self.session_id = session_id

    async def push_frame(self, frame: dict[str, Any]) -> None:
        await self.hub.broadcast(self.session_id, {"type": "frame", "session_id": self.session_id, "frame": frame})


hub = SessionWebSocketHub()
