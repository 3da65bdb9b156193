"""Diagnostics for reservoir sampling quality.

These functions depend only on ``numpy`` and ``scipy`` (plus ``pandas`` for
:func:`summarize_batches`), so they can be used stand-alone in notebooks.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

import numpy as np
from scipy.stats import chisquare

from streamsample.reservoir.sampler import ReservoirSampler


def inclusion_frequencies(
    n_items: int,
    capacity: int,
    n_trials: int,
    batch_size: int = 1,
    seed: int = 0,
    track_identity: bool = False,
) -> np.ndarray:
    """Estimate per-item probability of ending up in the reservoir.

    Streams ``n_items`` distinct items (record ``i`` is the integer ``i``) in
    batches of ``batch_size`` through a fresh sampler for each trial, each
    trial seeded from an independent child of ``SeedSequence(seed)``.

    Returns:
        Array of shape ``(n_items,)``; entry ``i`` is the fraction of trials
        in which item ``i`` was resident at the end. Converges to
        ``min(1, capacity / n_items)``.
    """
    if n_items <= 0 or n_trials <= 0 or batch_size <= 0:
        raise ValueError("n_items, n_trials and batch_size must all be > 0")
    items = np.arange(n_items, dtype=np.int64)
    counts = np.zeros(n_items, dtype=np.int64)
    for child in np.random.SeedSequence(seed).spawn(n_trials):
        sampler = ReservoirSampler(
            capacity,
            rng=np.random.default_rng(child),
            track_identity=track_identity,
            check_invariants=False,
        )
        for start in range(0, n_items, batch_size):
            chunk = items[start : start + batch_size]
            sampler.collect(chunk, chunk if track_identity else None)
        counts[np.asarray(sampler.records)] += 1
    return counts / float(n_trials)


def uniformity_test(frequencies: np.ndarray, n_trials: int, capacity: int) -> dict[str, float]:
    """Chi-square goodness-of-fit of residency counts against ``capacity / n_items``.

    Args:
        frequencies: Output of :func:`inclusion_frequencies`.
        n_trials: Number of trials the frequencies were estimated from.
        capacity: Reservoir capacity used.

    Returns:
        ``{"statistic": float, "p_value": float, "expected": float}`` where
        ``expected`` is the per-item inclusion probability.
    """
    freqs = np.asarray(frequencies, dtype=np.float64)
    n_items = freqs.size
    if n_items == 0:
        raise ValueError("frequencies must be non-empty")
    expected = min(1.0, capacity / n_items)
    observed = np.rint(freqs * n_trials)
    if expected == 1.0:
        # Every item is always kept; nothing to test.
        ok = bool(np.all(observed == n_trials))
        return {
            "statistic": 0.0 if ok else float("inf"),
            "p_value": 1.0 if ok else 0.0,
            "expected": 1.0,
        }
    f_exp = np.full(n_items, observed.sum() / n_items)
    statistic, p_value = chisquare(observed, f_exp=f_exp)
    return {"statistic": float(statistic), "p_value": float(p_value), "expected": expected}


def summarize_batches(stats: list[Any]) -> Any:
    """Convert per-batch stats into a table, one row per batch.

    Requires ``pandas`` (install ``streamsample[analysis]``).

    Args:
        stats: List of :class:`~streamsample.reservoir.sampler.BatchStats`.

    Returns:
        ``pandas.DataFrame`` without the per-record ``admitted_slots`` column.
    """
    try:
        import pandas as pd
    except ImportError as exc:  # pragma: no cover
        raise ImportError(
            "summarize_batches requires pandas. Install it with: pip install pandas"
        ) from exc

    rows: list[dict[str, Any]] = []
    for batch_idx, item in enumerate(stats):
        row = asdict(item) if hasattr(item, "__dataclass_fields__") else dict(item)
        row.pop("admitted_slots", None)
        row["batch_idx"] = batch_idx
        rows.append(row)
    return pd.DataFrame(rows)
