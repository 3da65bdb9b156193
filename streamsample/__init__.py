"""streamsample: fixed-capacity streaming reservoir sampling over record batches.

Public API
----------
The entire usable surface is importable directly from ``streamsample``::

    from streamsample import ReservoirSampler, StreamRunner, StreamConfig
    from streamsample.checkpoint import save_state, load_sampler
    from streamsample.records import pack_records
"""

from __future__ import annotations

# Checkpointing
from streamsample.checkpoint import load_sampler, load_state, save_state

# Configuration
from streamsample.config import StreamConfig, load_config

# Diagnostics
from streamsample.evaluation import inclusion_frequencies, summarize_batches, uniformity_test

# Record packing
from streamsample.records import pack_records, unpack_records

# Sampling core
from streamsample.reservoir import (
    BatchStats,
    IdentityIndex,
    ReservoirInvariantError,
    ReservoirSampler,
    ReservoirState,
    ReservoirStore,
    collect_batch,
)

# Stream driver, primary and functional APIs
from streamsample.stream import StreamRunner, run_stream

__version__ = "0.1.0"

__all__ = [
    # Primary abstractions
    "ReservoirSampler",
    "StreamRunner",
    "StreamConfig",
    "BatchStats",
    # Building blocks
    "ReservoirState",
    "ReservoirStore",
    "IdentityIndex",
    "ReservoirInvariantError",
    # Functional API
    "collect_batch",
    "run_stream",
    "load_config",
    # Checkpointing
    "save_state",
    "load_state",
    "load_sampler",
    # Diagnostics
    "inclusion_frequencies",
    "uniformity_test",
    "summarize_batches",
    # Record packing
    "pack_records",
    "unpack_records",
    "__version__",
]
