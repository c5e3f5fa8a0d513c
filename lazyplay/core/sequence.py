from __future__ import annotations

from collections.abc import Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class SequenceStore(Generic[T]):
    """Append-only, index-addressable buffer for one logical sequence.

    Contract:
      - single writer: only the owner appends, and only at `index == len(store)`.
      - multi reader: published elements are never replaced, so readers take
        snapshots (`prefix`) or iterate without locking.
      - publish is atomic: an element is either fully visible at its index or absent.

    Elements are expected to be immutable values (frozen dataclasses / frozen models, ints, tuples).
    """

    def __init__(self, name: str, initial: tuple[T, ...] = ()) -> None:
        self.name = name
        self._items: list[T] = list(initial)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        # Iterate a snapshot so an append during iteration is not observed mid-walk.
        return iter(self.prefix(len(self._items)))

    def __repr__(self) -> str:
        return f"SequenceStore(name={self.name!r}, published={len(self._items)})"

    def published(self, index: int) -> bool:
        return 0 <= index < len(self._items)

    def get(self, index: int) -> T:
        if not self.published(index):
            raise IndexError(f"{self.name}[{index}] not published (published={len(self._items)})")
        return self._items[index]

    def latest(self) -> T:
        if not self._items:
            raise IndexError(f"{self.name} is empty")
        return self._items[-1]

    def prefix(self, n: int) -> tuple[T, ...]:
        """Return elements `[0, n)` as an immutable snapshot."""

        if n < 0 or n > len(self._items):
            raise IndexError(f"{self.name} prefix({n}) exceeds published={len(self._items)}")
        return tuple(self._items[:n])

    def append(self, element: T, *, index: int) -> int:
        """Publish `element` at `index`.

        `index` must be the next free slot; anything else means a second writer or a
        recomputation, both of which break the exactly-once guarantee.
        """

        expected = len(self._items)
        if index != expected:
            raise ValueError(f"{self.name}: append at index {index}, expected {expected}")
        # list.append is the single publish step; nothing is visible before it.
        self._items.append(element)
        return index
