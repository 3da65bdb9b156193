"""Batch-stream driver: StreamRunner megaclass plus run_stream shim.

The primary API is :class:`StreamRunner`: initialize it once with a
:class:`~streamsample.config.StreamConfig`, then call :meth:`StreamRunner.run`
to drain an iterable of batches (or :meth:`StreamRunner.step` to feed one
batch and inspect state between batches).

Callers must serialize batches for a given runner; nothing here is
thread-safe.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Iterable

import numpy as np

# wandb is an optional dependency; metrics logging is skipped when absent.
try:
    import wandb as _wandb

    _WANDB_AVAILABLE = True
except ImportError:
    _wandb = None  # type: ignore[assignment]
    _WANDB_AVAILABLE = False

from streamsample.checkpoint import load_sampler, save_state
from streamsample.config import StreamConfig
from streamsample.reservoir.sampler import BatchStats, ReservoirSampler

logger = logging.getLogger(__name__)

CHECKPOINT_NAME = "reservoir.npz"

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _split_batch(batch: Any) -> tuple[Any, Any]:
    """Return ``(data, object_ids)`` for a bare batch or a ``(data, ids)`` pair."""
    if isinstance(batch, tuple):
        if len(batch) != 2:
            raise ValueError(f"Expected (data, object_ids) pair, got tuple of length {len(batch)}")
        return batch
    if isinstance(batch, dict):
        return batch["data"], batch.get("object_ids")
    return batch, None


# ---------------------------------------------------------------------------
# StreamRunner megaclass
# ---------------------------------------------------------------------------


class StreamRunner:
    """Feeds a batch stream through a :class:`ReservoirSampler`.

    Attributes:
        config: Stream configuration.
        sampler: The sampler being fed.
        n_batches: Number of batches consumed so far.
        history: :class:`BatchStats` for every consumed batch.
    """

    def __init__(self, config: StreamConfig, sampler: ReservoirSampler | None = None) -> None:
        self.config = config
        if sampler is None:
            sampler = ReservoirSampler(
                capacity=config.capacity,
                seed=config.seed,
                track_identity=config.track_identity,
                check_invariants=config.check_invariants,
            )
        elif sampler.capacity != config.capacity:
            raise ValueError(
                f"sampler capacity {sampler.capacity} does not match config capacity "
                f"{config.capacity}"
            )
        self.sampler = sampler
        self.n_batches: int = 0
        self.history: list[BatchStats] = []

    @classmethod
    def resume(cls, config: StreamConfig, checkpoint_path: str | Path | None = None) -> "StreamRunner":
        """Restore a runner from a checkpoint written by a previous run.

        Defaults to ``<checkpoint_dir>/reservoir.npz``.
        """
        if checkpoint_path is None:
            if config.checkpoint_dir is None:
                raise ValueError("checkpoint_path or config.checkpoint_dir is required to resume")
            checkpoint_path = Path(config.checkpoint_dir) / CHECKPOINT_NAME
        sampler = load_sampler(checkpoint_path, seed=config.seed)
        if sampler.tracks_identity != config.track_identity:
            raise ValueError(
                f"checkpoint track_identity={sampler.tracks_identity} does not match config"
            )
        sampler.check_invariants = config.check_invariants
        logger.info(
            "Resumed stream at visit_count=%d size=%d", sampler.visit_count, sampler.size
        )
        return cls(config, sampler=sampler)

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def step(self, batch: Any) -> BatchStats:
        """Collect one batch and run per-batch logging/checkpointing."""
        start = time.perf_counter()
        data, object_ids = _split_batch(batch)
        stats = self.sampler.collect(data, object_ids)
        self.history.append(stats)
        self.n_batches += 1

        if self.n_batches % self.config.log_every == 0:
            logger.info(
                "batch=%d visit_count=%d size=%d/%d admitted=%d duplicates=%d",
                self.n_batches,
                stats.visit_count,
                stats.size,
                self.sampler.capacity,
                stats.n_admitted,
                stats.n_duplicates + stats.n_repeats,
            )

        if _WANDB_AVAILABLE and _wandb is not None and _wandb.run is not None:
            _wandb.log(
                {
                    "stream/batch": self.n_batches,
                    "stream/visit_count": stats.visit_count,
                    "stream/size": stats.size,
                    "stream/admitted": stats.n_admitted,
                    "stream/discarded": stats.n_discarded,
                    "stream/duplicates": stats.n_duplicates + stats.n_repeats,
                    "stream/batch_seconds": time.perf_counter() - start,
                }
            )

        every = self.config.checkpoint_every
        if every > 0 and self.n_batches % every == 0:
            self.checkpoint()
        return stats

    def run(self, batches: Iterable[Any]) -> list[BatchStats]:
        """Consume every batch, checkpoint at the end, return the stats of this run."""
        start = len(self.history)
        for batch in batches:
            self.step(batch)
        if self.config.checkpoint_dir is not None:
            self.checkpoint()
        return self.history[start:]

    def checkpoint(self) -> Path | None:
        """Write the sampler state to ``<checkpoint_dir>/reservoir.npz``."""
        if self.config.checkpoint_dir is None:
            return None
        return save_state(self.sampler, Path(self.config.checkpoint_dir) / CHECKPOINT_NAME)

    # ------------------------------------------------------------------
    # Convenience properties
    # ------------------------------------------------------------------

    @property
    def records(self) -> np.ndarray | None:
        """Current sample, slot order."""
        return self.sampler.records

    @property
    def visit_count(self) -> int:
        return self.sampler.visit_count


# ---------------------------------------------------------------------------
# Functional API
# ---------------------------------------------------------------------------


def run_stream(
    batches: Iterable[Any],
    config: StreamConfig,
    sampler: ReservoirSampler | None = None,
) -> list[BatchStats]:
    """Sample a batch stream end to end.

    Thin wrapper around :class:`StreamRunner`; instantiate the runner
    directly to keep feeding batches or to read the sample afterwards when
    no *sampler* is passed in.

    Args:
        batches: Iterable of data batches, ``(data, object_ids)`` tuples, or
            ``{"data": ..., "object_ids": ...}`` dicts.
        config: Stream configuration.
        sampler: Optional pre-built sampler (e.g. with an injected generator).

    Returns:
        Per-batch :class:`BatchStats`.
    """
    runner = StreamRunner(config, sampler=sampler)
    return runner.run(batches)
