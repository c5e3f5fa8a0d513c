from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().casefold() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True, slots=True)
class EngineConfig:
    # Max ticks per advance() call.
    tick_budget: int = 1_000
    # Per-call timeout for live input capabilities; None waits forever.
    input_timeout_s: float | None = 5.0
    # Run transition() in a worker thread instead of inline on the event loop.
    offload_transition: bool = False
    # Bounded history passed to live responders; None means the full prefix.
    history_window: int | None = None

    def __post_init__(self) -> None:
        if self.tick_budget < 0:
            raise ValueError("tick_budget must be >= 0")
        if self.input_timeout_s is not None and self.input_timeout_s <= 0:
            raise ValueError("input_timeout_s must be positive")
        if self.history_window is not None and self.history_window < 1:
            raise ValueError("history_window must be >= 1")

    @staticmethod
    def from_env() -> "EngineConfig":
        defaults = EngineConfig()
        return EngineConfig(
            tick_budget=_env_int("LAZYPLAY_TICK_BUDGET", defaults.tick_budget) or 0,
            input_timeout_s=_env_float("LAZYPLAY_INPUT_TIMEOUT_S", defaults.input_timeout_s),
            offload_transition=_env_bool("LAZYPLAY_OFFLOAD_TRANSITION", defaults.offload_transition),
            history_window=_env_int("LAZYPLAY_HISTORY_WINDOW", defaults.history_window),
        )
