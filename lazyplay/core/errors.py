from __future__ import annotations

from typing import Any


class SimulationError(RuntimeError):
    """Base class for every abort path of a session.

    `tick` is the index of the tick that was in progress when the error occurred.
    """

    def __init__(self, message: str, *, tick: int) -> None:
        super().__init__(message)
        self.tick = tick
        # Attached by the scheduler so callers can inspect the published prefixes.
        self.session: Any = None


class TransitionError(SimulationError):
    def __init__(self, message: str, *, tick: int, phase: str) -> None:
        super().__init__(f"{phase}: {message}", tick=tick)
        self.phase = phase
        self.detail = message


class InputUnavailableError(SimulationError):
    pass


class NonTerminationError(SimulationError):
    def __init__(self, *, tick: int, budget: int) -> None:
        super().__init__(f"No terminal state within {budget} ticks", tick=tick)
        self.budget = budget


class SessionCancelledError(SimulationError):
    def __init__(self, *, tick: int) -> None:
        super().__init__("Session cancelled", tick=tick)


class IdentityReuseError(ValueError):
    pass
