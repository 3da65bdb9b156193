"""Tests for saving and resuming reservoir state."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from streamsample.checkpoint import load_sampler, load_state, save_state
from streamsample.reservoir.sampler import ReservoirSampler, ReservoirState


def _batches(n_batches: int, batch_size: int) -> list[tuple[np.ndarray, np.ndarray]]:
    rng = np.random.default_rng(1)
    out = []
    for _ in range(n_batches):
        ids = rng.integers(0, 60, size=batch_size)
        out.append((np.stack([ids, ids * 2], axis=1).astype(np.int32), ids))
    return out


def test_resumed_sampler_matches_uninterrupted_run(tmp_path: Path) -> None:
    """Stopping, checkpointing, and resuming yields the same sample."""
    batches = _batches(12, 5)

    uninterrupted = ReservoirSampler(capacity=6, seed=9, track_identity=True)
    uninterrupted.collect_many(batches)

    first = ReservoirSampler(capacity=6, seed=9, track_identity=True)
    first.collect_many(batches[:5])
    path = save_state(first, tmp_path / "ckpt")
    assert path.suffix == ".npz"

    resumed = load_sampler(path)
    resumed.collect_many(batches[5:])

    np.testing.assert_array_equal(resumed.records, uninterrupted.records)
    np.testing.assert_array_equal(resumed.object_ids, uninterrupted.object_ids)
    assert resumed.visit_count == uninterrupted.visit_count


def test_load_state_restores_identity_and_layout(tmp_path: Path) -> None:
    sampler = ReservoirSampler(capacity=4, seed=0, track_identity=True)
    sampler.collect(np.arange(6, dtype=np.float64).reshape(3, 2), [30, 10, 20])
    path = save_state(sampler, tmp_path / "state.npz")

    state, rng = load_state(path)
    assert state.visit_count == 3
    assert state.store.record_shape == (2,)
    assert state.identity.slot_of(10) == 1
    assert rng is not None
    np.testing.assert_array_equal(state.store.records, sampler.records)


def test_checkpoint_of_unused_sampler(tmp_path: Path) -> None:
    path = save_state(ReservoirSampler(capacity=3, seed=0), tmp_path / "empty.npz")
    state, _ = load_state(path)
    assert not state.store.is_initialized
    assert state.visit_count == 0
    assert state.identity is None


def test_bare_state_without_rng_gets_fresh_generator(tmp_path: Path) -> None:
    state = ReservoirState.empty(2)
    path = save_state(state, tmp_path / "bare.npz")
    sampler = load_sampler(path, seed=3)
    assert isinstance(sampler.rng, np.random.Generator)


def test_inconsistent_checkpoint_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.npz"
    np.savez(
        path,
        capacity=np.asarray(2, dtype=np.int64),
        visit_count=np.asarray(1, dtype=np.int64),
        initialized=np.asarray(True),
        reservoir=np.zeros((2, 3), dtype=np.float32),
        rng_state=np.asarray(""),
    )
    with pytest.raises(ValueError):
        load_state(path)


def test_missing_checkpoint_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_state(tmp_path / "nope.npz")
