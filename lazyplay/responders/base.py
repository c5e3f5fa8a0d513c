from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, TypeVar

from lazyplay.core.identity import ParticipantIdentity

S_contra = TypeVar("S_contra", contravariant=True)
R_co = TypeVar("R_co", covariant=True)


class ResponseProvider(Protocol[S_contra, R_co]):
    """Produces response[i] from the published state prefix `state[0..i]`.

    `identity` is mandatory on every call; implementations that cache must key on it.
    """

    async def respond(self, *, identity: ParticipantIdentity, prefix: Sequence[S_contra]) -> R_co:  # pragma: no cover
        ...


class InputCapability(Protocol):
    """External source of raw participant input (device, mailbox, LLM agent)."""

    async def poll_input(self) -> Any:  # pragma: no cover
        ...


class OutputCapability(Protocol):
    """External sink for the participant's view of the newest published state."""

    async def push_frame(self, frame: dict[str, Any]) -> None:  # pragma: no cover
        ...
