from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any, Generic, TypeVar

from lazyplay.core.errors import InputUnavailableError
from lazyplay.core.identity import ParticipantIdentity, require_identity
from lazyplay.frames import FramePolicy, full_frame
from lazyplay.responders.base import InputCapability, OutputCapability

logger = logging.getLogger(__name__)

S = TypeVar("S")
R = TypeVar("R")

Decoder = Callable[[Any, Sequence[S]], R]


class LiveResponder(Generic[S, R]):
    """Live variant: renders the newest state to the participant, then polls their input.

    Impure by nature; it sits outside the core's determinism guarantees. Per tick it:
      1. pushes one frame built by `frame_policy` (delivery failures are logged, never fatal)
      2. polls the input capability exactly once, bounded by `timeout_s`
      3. decodes the raw input into a response using the visible prefix

    Timeouts, capability failures and undecodable input all surface as `InputUnavailableError`.
    """

    def __init__(
        self,
        *,
        input: InputCapability,
        decode: Decoder[S, R],
        output: OutputCapability | None = None,
        frame_policy: FramePolicy = full_frame,
        timeout_s: float | None = 5.0,
    ) -> None:
        self.input = input
        self.output = output
        self.decode = decode
        self.frame_policy = frame_policy
        self.timeout_s = timeout_s
        self.polls = 0
        self.frames_pushed = 0

    async def respond(self, *, identity: ParticipantIdentity, prefix: Sequence[S]) -> R:
        require_identity(identity)
        tick = len(prefix) - 1

        if self.output is not None:
            await self._push(prefix, tick=tick)

        self.polls += 1
        try:
            raw = await asyncio.wait_for(self.input.poll_input(), timeout=self.timeout_s)
        except TimeoutError as e:
            raise InputUnavailableError(f"No input within {self.timeout_s}s", tick=tick) from e
        except InputUnavailableError as e:
            if e.tick == tick:
                raise
            raise InputUnavailableError(str(e), tick=tick) from e
        except OSError as e:
            raise InputUnavailableError(f"Input capability failed: {e}", tick=tick) from e

        try:
            return self.decode(raw, prefix)
        except (ValueError, KeyError, TypeError) as e:
            raise InputUnavailableError(f"Undecodable input {raw!r}: {e}", tick=tick) from e

    async def _push(self, prefix: Sequence[S], *, tick: int) -> None:
        try:
            frame = self.frame_policy(prefix)
            await self.output.push_frame(frame)  # type: ignore[union-attr]
        except Exception:
            logger.warning("frame delivery failed at tick %s", tick, exc_info=True)
            return
        self.frames_pushed += 1
