from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from lazyplay.core.errors import IdentityReuseError

if TYPE_CHECKING:
    from lazyplay.responders.base import ResponseProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, order=True)
class ParticipantIdentity:
    """Opaque token identifying one play-through.

    Not gameplay data: it is threaded into every `respond` call as a cache-busting key so
    two sessions with identical histories remain distinguishable to any memoizing evaluator.
    """

    token: UUID
    label: str = field(default="", compare=False)

    @staticmethod
    def new(*, label: str = "") -> "ParticipantIdentity":
        return ParticipantIdentity(token=uuid4(), label=label)

    @staticmethod
    def parse(raw: str, *, label: str = "") -> "ParticipantIdentity":
        return ParticipantIdentity(token=UUID(raw), label=label)

    def __str__(self) -> str:
        return str(self.token)


def require_identity(identity: object) -> ParticipantIdentity:
    if not isinstance(identity, ParticipantIdentity):
        raise TypeError(f"respond requires a ParticipantIdentity, got {type(identity).__name__}")
    return identity


class IdentityGuard:
    """Registry enforcing that independent sessions never share an identity.

    A session claims its identity once when it starts; resuming the same session does not
    claim again. Claiming an identity already held by another session raises.
    """

    def __init__(self) -> None:
        self._owners: dict[ParticipantIdentity, str] = {}

    def claim(self, identity: ParticipantIdentity, *, session_id: str) -> None:
        require_identity(identity)
        owner = self._owners.get(identity)
        if owner is not None and owner != session_id:
            raise IdentityReuseError(f"Identity {identity} already used by session {owner}")
        self._owners[identity] = session_id

    def release(self, identity: ParticipantIdentity) -> None:
        self._owners.pop(identity, None)

    def owner_of(self, identity: ParticipantIdentity) -> str | None:
        return self._owners.get(identity)

    def __len__(self) -> int:
        return len(self._owners)


@dataclass(slots=True)
class MemoizedResponder:
    """Memoizing wrapper around a pure response provider.

    The cache key is `(identity, prefix)`; identity is part of the key so a new session can
    never be served a previous session's recorded responses. States in the prefix must be hashable.
    """

    inner: "ResponseProvider[Any, Any]"
    hits: int = 0
    misses: int = 0
    _cache: dict[tuple[ParticipantIdentity, tuple[Hashable, ...]], Any] = field(default_factory=dict)

    async def respond(self, *, identity: ParticipantIdentity, prefix: Sequence[Any]) -> Any:
        key = (require_identity(identity), tuple(prefix))
        if key in self._cache:
            self.hits += 1
            return self._cache[key]
        self.misses += 1
        response = await self.inner.respond(identity=identity, prefix=prefix)
        self._cache[key] = response
        logger.debug("memoized response identity=%s tick=%s", identity, len(prefix) - 1)
        return response


def memoize_responder(inner: "ResponseProvider[Any, Any]") -> MemoizedResponder:
    return MemoizedResponder(inner=inner)
