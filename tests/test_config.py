from __future__ import annotations

import pytest

from lazyplay.config import EngineConfig


def test_defaults_without_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "LAZYPLAY_TICK_BUDGET",
        "LAZYPLAY_INPUT_TIMEOUT_S",
        "LAZYPLAY_OFFLOAD_TRANSITION",
        "LAZYPLAY_HISTORY_WINDOW",
    ):
        monkeypatch.delenv(name, raising=False)

    assert EngineConfig.from_env() == EngineConfig()


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LAZYPLAY_TICK_BUDGET", "50")
    monkeypatch.setenv("LAZYPLAY_INPUT_TIMEOUT_S", "0.5")
    monkeypatch.setenv("LAZYPLAY_OFFLOAD_TRANSITION", "yes")
    monkeypatch.setenv("LAZYPLAY_HISTORY_WINDOW", "8")

    cfg = EngineConfig.from_env()

    assert cfg.tick_budget == 50
    assert cfg.input_timeout_s == 0.5
    assert cfg.offload_transition is True
    assert cfg.history_window == 8


@pytest.mark.parametrize(
    "kwargs",
    [
        {"tick_budget": -1},
        {"input_timeout_s": 0},
        {"history_window": 0},
    ],
)
def test_invalid_values_are_rejected(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        EngineConfig(**kwargs)  # type: ignore[arg-type]
