from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from lazyplay.core.errors import TransitionError

logger = logging.getLogger(__name__)

S = TypeVar("S")
R = TypeVar("R")

ApplyResponse = Callable[[S, R], S]
StatePhase = Callable[[S], S]

PHASE_APPLY = "apply_response"
PHASE_INTEGRATE = "integrate_motion"
PHASE_RESOLVE = "resolve_interactions"


def _identity_phase(state: S) -> S:
    return state


@dataclass(frozen=True, slots=True)
class TransitionPhases(Generic[S, R]):
    """The three ordered sub-phases of one state transition.

    Each phase is a pure value transform. Phases must not read clocks, global randomness,
    or external state; any randomness lives inside the state value itself.
    """

    apply_response: ApplyResponse[S, R]
    integrate: StatePhase[S] = _identity_phase
    resolve: StatePhase[S] = _identity_phase


class StateSequenceGenerator(Generic[S, R]):
    """Computes state[i+1] from state[i] and response[i]."""

    def __init__(self, phases: TransitionPhases[S, R]) -> None:
        self.phases = phases

    def transition(self, state: S, response: R, *, tick: int = 0) -> S:
        """Apply the phases in fixed order: response effect, motion, interactions.

        Any failure inside a phase is reported as a `TransitionError` naming the phase and tick.
        """

        nxt = self._run(PHASE_APPLY, tick, self.phases.apply_response, state, response)
        nxt = self._run(PHASE_INTEGRATE, tick, self.phases.integrate, nxt)
        nxt = self._run(PHASE_RESOLVE, tick, self.phases.resolve, nxt)
        return nxt

    __call__ = transition

    @staticmethod
    def _run(phase: str, tick: int, fn: Callable[..., S], *args: object) -> S:
        try:
            return fn(*args)
        except TransitionError as e:
            if e.tick == tick and e.phase == phase:
                raise
            raise TransitionError(e.detail, tick=tick, phase=phase) from e
        except Exception as e:
            logger.debug("transition phase %s failed at tick %s: %s", phase, tick, e)
            raise TransitionError(str(e), tick=tick, phase=phase) from e


def make_generator(
    apply_response: ApplyResponse[S, R],
    *,
    integrate: StatePhase[S] | None = None,
    resolve: StatePhase[S] | None = None,
) -> StateSequenceGenerator[S, R]:
    """Convenience constructor for hosts with fewer than three meaningful phases."""

    return StateSequenceGenerator(
        TransitionPhases(
            apply_response=apply_response,
            integrate=integrate or _identity_phase,
            resolve=resolve or _identity_phase,
        )
    )
