"""Frame policies: how much of the newest published state the participant's view receives.

`full_frame` sends the whole latest state; `delta_frame` sends only fields that changed relative to
the previous state. Both are host choices handed to the live responder.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel

FramePolicy = Callable[[Sequence[Any]], dict[str, Any]]


def state_to_dict(state: Any) -> dict[str, Any]:
    if isinstance(state, BaseModel):
        return state.model_dump(mode="json")
    if dataclasses.is_dataclass(state) and not isinstance(state, type):
        return dataclasses.asdict(state)
    if isinstance(state, Mapping):
        return dict(state)
    return {"value": state}


def full_frame(prefix: Sequence[Any]) -> dict[str, Any]:
    if not prefix:
        raise ValueError("empty prefix")
    return {"tick": len(prefix) - 1, "kind": "full", "state": state_to_dict(prefix[-1])}


def delta_frame(prefix: Sequence[Any]) -> dict[str, Any]:
    """Top-level fields of the latest state that differ from the previous one.

    The first frame of a session has nothing to diff against and is sent in full.
    """

    if len(prefix) < 2:
        return full_frame(prefix)

    before = state_to_dict(prefix[-2])
    after = state_to_dict(prefix[-1])
    changed = {k: v for k, v in after.items() if before.get(k) != v}
    removed = sorted(k for k in before if k not in after)
    return {"tick": len(prefix) - 1, "kind": "delta", "changed": changed, "removed": removed}


FRAME_POLICIES: dict[str, FramePolicy] = {
    "full": full_frame,
    "delta": delta_frame,
}


def frame_policy(name: str) -> FramePolicy:
    policy = FRAME_POLICIES.get(name)
    if policy is None:
        raise ValueError(f"Unknown frame policy: {name}")
    return policy
