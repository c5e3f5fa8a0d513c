from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, cast

import redis

from lazyplay.responders.base import OutputCapability

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Mailbox:
    """Redis Stream carrying one participant's raw inputs for one session."""

    session_id: str
    participant: str

    @property
    def key(self) -> str:
        return f"mailbox:{self.session_id}:{self.participant}"


def frames_key(session_id: str) -> str:
    return f"frames:{session_id}"


def publish_to_mailbox(*, r: redis.Redis, mailbox: Mailbox, fields: Mapping[str, str]) -> str:
    """Append an entry to a participant's mailbox stream."""

    # redis-py stubs expect field/value unions; we only use string fields/values.
    stream_id = r.xadd(mailbox.key, {str(k): str(v) for k, v in fields.items()})
    return cast(str, stream_id)


def read_mailbox(*, r: redis.Redis, mailbox: Mailbox, count: int = 20) -> list[tuple[str, dict[str, str]]]:
    return cast(list[tuple[str, dict[str, str]]], r.xrange(mailbox.key, count=count))


class RedisMailboxInput:
    """Input capability reading the next unread mailbox entry.

    Reads are non-blocking and retried every `poll_interval_s`, so a pending poll can always be
    cancelled; the caller bounds the total wait. `cursor` is the id of the last consumed entry.
    """

    def __init__(
        self,
        *,
        r: redis.Redis,
        mailbox: Mailbox,
        poll_interval_s: float = 0.05,
        cursor: str = "0",
    ) -> None:
        self.r = r
        self.mailbox = mailbox
        self.poll_interval_s = poll_interval_s
        self.cursor = cursor

    async def poll_input(self) -> dict[str, str]:
        key = self.mailbox.key
        while True:
            try:
                resp = self.r.xread({key: self.cursor}, count=1)
            except redis.RedisError as e:
                raise ConnectionError(f"mailbox read failed: {e}") from e

            for _stream, messages in resp or []:
                for msg_id, fields in messages:
                    self.cursor = msg_id
                    return dict(fields)

            await asyncio.sleep(self.poll_interval_s)


class RedisFrameOutput:
    """Output capability appending each frame to the session's `frames:` stream."""

    def __init__(self, *, r: redis.Redis, session_id: str, maxlen: int | None = 1_000) -> None:
        self.r = r
        self.session_id = session_id
        self.maxlen = maxlen

    async def push_frame(self, frame: dict[str, Any]) -> None:
        self.r.xadd(
            frames_key(self.session_id),
            {"tick": str(frame.get("tick", "")), "frame": json.dumps(frame, sort_keys=True)},
            maxlen=self.maxlen,
            approximate=True,
        )


class FanoutOutput:
    """Deliver each frame to several outputs; one failing sink does not starve the others."""

    def __init__(self, outputs: Sequence[OutputCapability]) -> None:
        self.outputs = list(outputs)

    async def push_frame(self, frame: dict[str, Any]) -> None:
        failures = 0
        for out in self.outputs:
            try:
                await out.push_frame(frame)
            except Exception:
                failures += 1
                logger.warning("frame sink %s failed", type(out).__name__, exc_info=True)
        if failures and failures == len(self.outputs):
            raise ConnectionError("all frame sinks failed")
