from __future__ import annotations

import pytest

from modbridge.common.config import RegisterRange
from modbridge.services.device.register_store import RegisterStore, Snapshot


def test_store_starts_zero_filled() -> None:
    store = RegisterStore(70)

    snapshot = store.get()
    assert snapshot.values == (0,) * 70
    assert snapshot.version == 0
    assert snapshot.updated_at is None


def test_merge_only_touches_addressed_range() -> None:
    store = RegisterStore(10)
    store.merge([(RegisterRange(0, 10, "all"), list(range(100, 110)))])

    snapshot = store.merge([(RegisterRange(3, 2, "mid"), [7, 8])])

    assert snapshot.values == (100, 101, 102, 7, 8, 105, 106, 107, 108, 109)
    assert snapshot.version == 2
    assert store.get() is snapshot


def test_merge_applies_updates_in_declaration_order() -> None:
    store = RegisterStore(6)
    first = RegisterRange(0, 4, "first")
    second = RegisterRange(2, 4, "second")

    snapshot = store.merge([(first, [1, 1, 1, 1]), (second, [2, 2, 2, 2])])

    assert snapshot.values == (1, 1, 2, 2, 2, 2)


def test_previous_snapshot_is_not_mutated() -> None:
    store = RegisterStore(4)
    before = store.get()

    store.merge([(RegisterRange(0, 4, "all"), [9, 9, 9, 9])])

    assert before.values == (0, 0, 0, 0)
    assert before.version == 0


def test_invalid_update_leaves_store_unchanged() -> None:
    store = RegisterStore(8)
    good = RegisterRange(0, 2, "good")
    short = RegisterRange(4, 3, "short")
    before = store.get()

    with pytest.raises(ValueError):
        store.merge([(good, [5, 5]), (short, [1, 2])])

    assert store.get() is before


def test_update_outside_store_is_rejected() -> None:
    store = RegisterStore(8)

    with pytest.raises(ValueError):
        store.merge([(RegisterRange(6, 4, "overflow"), [1, 2, 3, 4])])

    assert store.get().values == (0,) * 8


def test_replace_requires_same_size() -> None:
    store = RegisterStore(3)

    with pytest.raises(ValueError):
        store.replace(Snapshot(values=(1, 2)))

    replacement = Snapshot(values=(1, 2, 3), version=5)
    store.replace(replacement)
    assert store.get() is replacement


def test_zero_size_store_is_rejected() -> None:
    with pytest.raises(ValueError):
        RegisterStore(0)


def test_snapshot_to_dict() -> None:
    store = RegisterStore(3)
    snapshot = store.merge([(RegisterRange(0, 3, "all"), [4, 5, 6])])

    data = snapshot.to_dict()

    assert data["data"] == [4, 5, 6]
    assert data["version"] == 1
    assert data["updated_at"] is not None
