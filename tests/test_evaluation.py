"""Statistical tests of inclusion probability plus diagnostics helpers."""

from __future__ import annotations

import numpy as np
import pytest

from streamsample.evaluation import inclusion_frequencies, summarize_batches, uniformity_test
from streamsample.reservoir.sampler import ReservoirSampler


def test_inclusion_probability_is_uniform() -> None:
    """Each of L distinct items is kept with probability close to N / L."""
    n_items, capacity, n_trials = 200, 10, 1500
    freqs = inclusion_frequencies(n_items, capacity, n_trials, batch_size=1, seed=123)

    expected = capacity / n_items
    margin = 5.0 * np.sqrt(expected * (1 - expected) / n_trials)
    assert freqs.shape == (n_items,)
    assert np.isclose(freqs.mean(), expected)
    assert np.all(np.abs(freqs - expected) < margin)

    result = uniformity_test(freqs, n_trials=n_trials, capacity=capacity)
    assert result["expected"] == pytest.approx(expected)
    assert result["p_value"] > 1e-4


def test_inclusion_probability_with_batches_and_identity() -> None:
    n_items, capacity, n_trials = 60, 6, 1500
    freqs = inclusion_frequencies(
        n_items, capacity, n_trials, batch_size=7, seed=5, track_identity=True
    )
    expected = capacity / n_items
    margin = 5.0 * np.sqrt(expected * (1 - expected) / n_trials)
    assert np.all(np.abs(freqs - expected) < margin)


def test_short_stream_keeps_everything() -> None:
    freqs = inclusion_frequencies(4, 10, 20, seed=0)
    np.testing.assert_array_equal(freqs, np.ones(4))
    assert uniformity_test(freqs, n_trials=20, capacity=10)["p_value"] == 1.0


def test_inclusion_frequencies_validates_arguments() -> None:
    with pytest.raises(ValueError):
        inclusion_frequencies(0, 3, 10)


def test_summarize_batches_table() -> None:
    pytest.importorskip("pandas")
    sampler = ReservoirSampler(capacity=3, seed=0)
    stats = sampler.collect_many([np.zeros((2, 1)), np.zeros((4, 1))])
    df = summarize_batches(stats)
    assert list(df["batch_idx"]) == [0, 1]
    assert list(df["visit_count"]) == [2, 6]
    assert "admitted_slots" not in df.columns
