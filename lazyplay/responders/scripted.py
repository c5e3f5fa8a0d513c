from __future__ import annotations

import itertools
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from lazyplay.core.errors import InputUnavailableError
from lazyplay.core.identity import ParticipantIdentity, require_identity
from lazyplay.core.sequence import SequenceStore
from lazyplay.responders.base import ResponseProvider

S = TypeVar("S")
R = TypeVar("R")

Policy = Callable[[ParticipantIdentity, Sequence[S]], R]


class ScriptedResponder(Generic[R]):
    """Replay variant: canned responses indexed by tick.

    Accepts a finite sequence or any (possibly infinite) iterable. Iterables are pulled lazily
    into an append-only buffer, so response[i] is the same value no matter how often or in what
    order it is asked for. Asking beyond the end of a finite script raises `InputUnavailableError`.

    `start_tick` shifts the script for resumed sessions: its first element answers that tick.
    """

    def __init__(self, script: Iterable[R], *, start_tick: int = 0) -> None:
        if start_tick < 0:
            raise ValueError("start_tick must be >= 0")
        self.start_tick = start_tick
        self._buffer: SequenceStore[R] = SequenceStore("script")
        self._source: Iterator[R] | None
        if isinstance(script, Sequence):
            for i, item in enumerate(script):
                self._buffer.append(item, index=i)
            self._source = None
        else:
            self._source = iter(script)

    @staticmethod
    def repeat(response: R) -> "ScriptedResponder[R]":
        return ScriptedResponder(itertools.repeat(response))

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def response_at(self, tick: int) -> R:
        index = tick - self.start_tick
        if index < 0:
            raise InputUnavailableError(f"Script starts at tick {self.start_tick}", tick=tick)
        while not self._buffer.published(index):
            if self._source is None:
                raise InputUnavailableError(f"Script exhausted after {len(self._buffer)} responses", tick=tick)
            try:
                item = next(self._source)
            except StopIteration:
                self._source = None
                continue
            self._buffer.append(item, index=len(self._buffer))
        return self._buffer.get(index)

    async def respond(self, *, identity: ParticipantIdentity, prefix: Sequence[Any]) -> R:
        require_identity(identity)
        if not prefix:
            raise ValueError("prefix must contain at least the initial state")
        return self.response_at(len(prefix) - 1)


@dataclass(frozen=True, slots=True)
class PolicyResponder(Generic[S, R]):
    """Replay variant backed by a pure, total function of `(identity, prefix)`."""

    policy: Policy[S, R]

    async def respond(self, *, identity: ParticipantIdentity, prefix: Sequence[S]) -> R:
        return self.policy(require_identity(identity), prefix)


@dataclass(slots=True)
class WindowedResponder(Generic[S, R]):
    """Host policy: expose only the last `window` states to the wrapped provider.

    The wrapped provider no longer sees the tick index as `len(prefix) - 1`, so tick-indexed
    scripts should not be wrapped.
    """

    inner: ResponseProvider[S, R]
    window: int

    def __post_init__(self) -> None:
        if self.window < 1:
            raise ValueError("window must be >= 1")

    async def respond(self, *, identity: ParticipantIdentity, prefix: Sequence[S]) -> R:
        return await self.inner.respond(identity=identity, prefix=tuple(prefix[-self.window :]))
