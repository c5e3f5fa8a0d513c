from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from lazyplay.core.sequence import SequenceStore

S = TypeVar("S")
Score = TypeVar("Score")


@dataclass(slots=True)
class TerminationDetector(Generic[S, Score]):
    """Lazily scans the growing state sequence for the first terminal element.

    `check` only ever looks at the most recently published state, so it can never force
    computation of a future element. `score` is applied once, to the first terminal state.
    """

    is_terminal: Callable[[S], bool]
    score_fn: Callable[[S], Score]
    # Index of the last state handed to `is_terminal`; -1 before any check.
    last_checked: int = -1
    terminal_index: int | None = field(default=None)

    def check(self, states: SequenceStore[S]) -> bool:
        index = len(states) - 1
        if index < 0:
            return False
        if index <= self.last_checked:
            # Already judged this element; never re-run the predicate.
            return self.terminal_index == index
        self.last_checked = index
        if self.is_terminal(states.latest()):
            self.terminal_index = index
            return True
        return False

    def score(self, states: SequenceStore[S]) -> Score:
        if self.terminal_index is None:
            raise ValueError("score requested before a terminal state was detected")
        return self.score_fn(states.get(self.terminal_index))

    def fork(self) -> "TerminationDetector[S, Score]":
        """Fresh detector with the same rules, for a new session."""

        return TerminationDetector(is_terminal=self.is_terminal, score_fn=self.score_fn)
