"""Tests for reservoir slot storage and the id/slot index."""

from __future__ import annotations

import numpy as np
import pytest

from streamsample.reservoir.base import ReservoirInvariantError
from streamsample.reservoir.identity import IdentityIndex
from streamsample.reservoir.store import ReservoirStore

# ---- ReservoirStore ---------------------------------------------------------


def test_store_rejects_nonpositive_capacity() -> None:
    with pytest.raises(ValueError):
        ReservoirStore(0)


def test_store_reserve_is_idempotent() -> None:
    store = ReservoirStore(3)
    store.reserve((2,), np.float32)
    store.resize(1)
    store.write(0, np.array([1.0, 2.0], dtype=np.float32))
    store.reserve((2,), np.float32)
    np.testing.assert_array_equal(store.read(0), [1.0, 2.0])


def test_store_reserve_other_layout_rejected() -> None:
    store = ReservoirStore(3)
    store.reserve((2,), np.float32)
    with pytest.raises(ValueError):
        store.reserve((3,), np.float32)
    with pytest.raises(ValueError):
        store.reserve((2,), np.int64)


def test_store_write_bounds_and_shape() -> None:
    store = ReservoirStore(2)
    store.reserve((2,), np.float32)
    with pytest.raises(IndexError):
        store.write(2, np.zeros(2))
    with pytest.raises(IndexError):
        store.write(-1, np.zeros(2))
    with pytest.raises(ValueError):
        store.write(0, np.zeros(3))


def test_store_write_before_reserve_rejected() -> None:
    with pytest.raises(ValueError):
        ReservoirStore(2).write(0, np.zeros(2))


def test_store_never_shrinks_or_overflows() -> None:
    store = ReservoirStore(2)
    store.reserve((), np.int64)
    store.resize(2)
    with pytest.raises(ValueError):
        store.resize(1)
    with pytest.raises(ValueError):
        store.resize(3)
    assert len(store) == 2


def test_store_records_view_is_read_only() -> None:
    store = ReservoirStore(4)
    assert store.records is None
    store.reserve((), np.int64)
    store.resize(2)
    store.write(1, np.int64(7))
    view = store.records
    assert view.tolist() == [0, 7]
    with pytest.raises(ValueError):
        view[0] = 3
    with pytest.raises(IndexError):
        store.read(2)


def test_store_compatibility_checks() -> None:
    store = ReservoirStore(2)
    store.check_compatible(np.zeros((4, 3)))
    with pytest.raises(ValueError):
        store.check_compatible(np.float64(1.0))
    store.reserve((3,), np.float64)
    store.check_compatible(np.zeros((0, 3)))
    with pytest.raises(ValueError):
        store.check_compatible(np.zeros((1, 3, 1)))


# ---- IdentityIndex ----------------------------------------------------------


def test_identity_assign_evicts_previous_owner() -> None:
    index = IdentityIndex(2)
    assert index.assign(0, 11) is None
    assert index.assign(1, 12) is None
    assert index.assign(0, 13) == 11

    assert not index.contains(11)
    assert index.slot_of(13) == 0
    assert index.owner_of(0) == 13
    assert index.slot_owner.tolist() == [13, 12]
    index.check_bijection(2)


def test_identity_reassign_same_slot_is_noop() -> None:
    index = IdentityIndex(1)
    index.assign(0, 5)
    assert index.assign(0, 5) == 5
    assert dict(index.items()) == {5: 0}


def test_identity_missing_and_out_of_range() -> None:
    index = IdentityIndex(2)
    with pytest.raises(KeyError):
        index.slot_of(1)
    with pytest.raises(IndexError):
        index.assign(2, 1)
    assert index.owner_of(1) is None


def test_identity_id_cannot_own_two_slots() -> None:
    index = IdentityIndex(2)
    index.assign(0, 1)
    with pytest.raises(ReservoirInvariantError):
        index.assign(1, 1)


def test_identity_resident_mask_checks_each_entry() -> None:
    index = IdentityIndex(3)
    index.assign(0, 1)
    assert index.resident_mask([1, 2, 2, 1]).tolist() == [True, False, False, True]
    assert index.resident_mask([]).shape == (0,)


def test_identity_accepts_any_int64_id() -> None:
    """Negative and extreme ids are ordinary ids; occupancy comes from size."""
    index = IdentityIndex(3)
    index.assign(0, -1)
    index.assign(1, np.iinfo(np.int64).min)
    assert index.slot_of(-1) == 0
    assert index.owner_of(1) == np.iinfo(np.int64).min
    assert index.owner_of(2) is None
    index.check_bijection(2)


def test_identity_free_slot_must_extend_prefix() -> None:
    index = IdentityIndex(3)
    with pytest.raises(ReservoirInvariantError):
        index.assign(1, 5)
    assert len(index) == 0


def test_identity_check_bijection_detects_corruption() -> None:
    index = IdentityIndex(3)
    index.assign(0, 1)
    index.assign(1, 2)
    index.check_bijection(2)
    with pytest.raises(ReservoirInvariantError):
        index.check_bijection(3)
    index._owner[1] = 9
    with pytest.raises(ReservoirInvariantError):
        index.check_bijection(2)


def test_identity_from_slot_owner_round_trip() -> None:
    owners = np.array([4, 8, -1], dtype=np.int64)
    index = IdentityIndex.from_slot_owner(owners, size=2)
    assert index.slot_of(8) == 1
    assert len(index) == 2
    with pytest.raises(ValueError):
        IdentityIndex.from_slot_owner(np.array([4, 8, 4], dtype=np.int64), size=3)
    with pytest.raises(ValueError):
        IdentityIndex.from_slot_owner(np.array([4, 4], dtype=np.int64), size=2)
