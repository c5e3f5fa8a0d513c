from __future__ import annotations

import pytest

from lazyplay.core.errors import TransitionError
from lazyplay.core.transition import (
    PHASE_APPLY,
    PHASE_INTEGRATE,
    PHASE_RESOLVE,
    StateSequenceGenerator,
    TransitionPhases,
    make_generator,
)


def test_phases_run_in_fixed_order() -> None:
    calls: list[str] = []

    def apply(state: tuple[str, ...], response: str) -> tuple[str, ...]:
        calls.append(PHASE_APPLY)
        return state + (response,)

    def integrate(state: tuple[str, ...]) -> tuple[str, ...]:
        calls.append(PHASE_INTEGRATE)
        return state + ("moved",)

    def resolve(state: tuple[str, ...]) -> tuple[str, ...]:
        calls.append(PHASE_RESOLVE)
        return state + ("resolved",)

    gen = StateSequenceGenerator(TransitionPhases(apply_response=apply, integrate=integrate, resolve=resolve))

    assert gen.transition((), "r0") == ("r0", "moved", "resolved")
    assert calls == [PHASE_APPLY, PHASE_INTEGRATE, PHASE_RESOLVE]


def test_identical_inputs_give_identical_outputs() -> None:
    gen = make_generator(lambda s, r: s * 2 + r)

    assert [gen.transition(3, 1) for _ in range(5)] == [7] * 5


def test_phase_failure_reports_phase_and_tick() -> None:
    def resolve(state: dict[str, int]) -> dict[str, int]:
        raise KeyError("entity 'ghost'")

    gen = make_generator(lambda s, r: {**s, "x": r}, resolve=resolve)

    with pytest.raises(TransitionError) as e:
        gen.transition({"x": 0}, 1, tick=7)

    assert e.value.tick == 7
    assert e.value.phase == PHASE_RESOLVE
    assert "ghost" in str(e.value)
    assert isinstance(e.value.__cause__, KeyError)


def test_unexpected_phase_exception_still_carries_tick() -> None:
    def integrate(state: int) -> int:
        return state.velocity  # type: ignore[attr-defined]

    gen = make_generator(lambda s, r: s + r, integrate=integrate)

    with pytest.raises(TransitionError) as e:
        gen.transition(1, 1, tick=3)

    assert e.value.tick == 3
    assert e.value.phase == PHASE_INTEGRATE
    assert isinstance(e.value.__cause__, AttributeError)
