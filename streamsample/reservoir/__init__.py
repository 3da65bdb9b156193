"""Reservoir storage, identity bookkeeping, and the sampling core."""

from streamsample.reservoir.base import ReservoirInvariantError
from streamsample.reservoir.identity import IdentityIndex
from streamsample.reservoir.sampler import (
    BatchStats,
    ReservoirSampler,
    ReservoirState,
    collect_batch,
)
from streamsample.reservoir.store import ReservoirStore

__all__ = [
    "BatchStats",
    "IdentityIndex",
    "ReservoirInvariantError",
    "ReservoirSampler",
    "ReservoirState",
    "ReservoirStore",
    "collect_batch",
]
