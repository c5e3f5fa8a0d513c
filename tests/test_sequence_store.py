from __future__ import annotations

import pytest

from lazyplay.core.sequence import SequenceStore


def test_append_publishes_in_order_and_snapshots_are_immutable() -> None:
    store: SequenceStore[int] = SequenceStore("state", (10,))
    store.append(11, index=1)
    snap = store.prefix(2)
    store.append(12, index=2)

    assert snap == (10, 11)
    assert store.prefix(3) == (10, 11, 12)
    assert store.latest() == 12
    assert list(store) == [10, 11, 12]


def test_append_rejects_gaps_and_overwrites() -> None:
    store: SequenceStore[int] = SequenceStore("response")
    store.append(1, index=0)

    with pytest.raises(ValueError):
        store.append(2, index=0)
    with pytest.raises(ValueError):
        store.append(2, index=5)

    assert len(store) == 1


def test_unpublished_reads_raise() -> None:
    store: SequenceStore[str] = SequenceStore("state")

    assert not store.published(0)
    with pytest.raises(IndexError):
        store.get(0)
    with pytest.raises(IndexError):
        store.latest()
    with pytest.raises(IndexError):
        store.prefix(1)
