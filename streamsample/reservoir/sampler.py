"""Streaming reservoir sampling (Algorithm R) with optional identity dedup.

The primary API is :class:`ReservoirSampler`: construct it once with a
capacity and a seed (or an explicit generator), then call
:meth:`ReservoirSampler.collect` for every batch that arrives from the
stream.

The functional :func:`collect_batch` operates on an explicit
:class:`ReservoirState` and generator. Each call is one logical step:
all preconditions are validated before anything is mutated.

Admission rule for each new record, with ``k`` the number of new records
visited before it and ``N`` the capacity:

* ``k < N``: append at slot ``k``.
* otherwise: draw ``pos`` uniformly from ``[0, k]``; replace slot ``pos`` if
  ``pos < N``, else discard.

When object ids accompany the batch, a record whose id is currently resident
is skipped without consuming a draw or advancing the visit count.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import numpy as np

from streamsample.reservoir.base import enforce
from streamsample.reservoir.identity import IdentityIndex
from streamsample.reservoir.store import ReservoirStore

logger = logging.getLogger(__name__)

DISCARDED = -1
_INT64_MAX = np.iinfo(np.int64).max

# ---------------------------------------------------------------------------
# State and result dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ReservoirState:
    """Mutable state carried between batches.

    Attributes:
        store: Record slots.
        visit_count: Number of new (non-duplicate) records considered so far.
        identity: Id/slot bijection, or ``None`` when the stream carries no ids.
    """

    store: ReservoirStore
    visit_count: int = 0
    identity: IdentityIndex | None = None

    @classmethod
    def empty(cls, capacity: int, track_identity: bool = False) -> "ReservoirState":
        """Create a zero-visit state with ``capacity`` slots."""
        return cls(
            store=ReservoirStore(capacity),
            visit_count=0,
            identity=IdentityIndex(capacity) if track_identity else None,
        )

    @property
    def capacity(self) -> int:
        return self.store.capacity


@dataclass
class BatchStats:
    """Outcome of one :func:`collect_batch` call.

    Attributes:
        n_records: Records in the batch.
        n_new: Records whose id was not resident when the batch started.
        n_duplicates: Records skipped because their id was resident at start.
        n_repeats: Records skipped because an earlier record of the same
            batch installed their id.
        n_reconsidered: Records resident at batch start whose slot was taken
            earlier in the same batch, so they were treated as new.
        n_appended: Records written to a fresh slot.
        n_replaced: Records that evicted an existing occupant.
        n_discarded: New records not admitted.
        visit_count: Visit count after the batch.
        size: Occupied slots after the batch.
        admitted_slots: Per-record slot written, ``-1`` if skipped or discarded.
    """

    n_records: int
    n_new: int
    n_duplicates: int = 0
    n_repeats: int = 0
    n_reconsidered: int = 0
    n_appended: int = 0
    n_replaced: int = 0
    n_discarded: int = 0
    visit_count: int = 0
    size: int = 0
    admitted_slots: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.int64))

    @property
    def n_admitted(self) -> int:
        return self.n_appended + self.n_replaced


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _as_object_ids(object_ids: Any, n_records: int) -> np.ndarray:
    """Coerce *object_ids* to a rank-1 int64 array parallel to the batch."""
    ids = np.asarray(object_ids)
    if ids.ndim != 1:
        raise ValueError(f"object_ids must be rank-1, got rank {ids.ndim}")
    if ids.shape[0] != n_records:
        raise ValueError(
            f"object_ids length {ids.shape[0]} does not match batch size {n_records}"
        )
    if ids.size == 0:
        return ids.astype(np.int64)
    if not np.issubdtype(ids.dtype, np.integer):
        raise ValueError(f"object_ids must be integers, got dtype {ids.dtype}")
    if np.issubdtype(ids.dtype, np.unsignedinteger) and np.any(ids > _INT64_MAX):
        raise ValueError(f"object_ids must fit in int64; got max {ids.max()}")
    return ids.astype(np.int64)


def _validate(state: ReservoirState, batch: np.ndarray, object_ids: Any) -> np.ndarray | None:
    """Check every precondition of :func:`collect_batch` without mutating state."""
    if state.visit_count < 0:
        raise ValueError(f"visit_count must be >= 0, got {state.visit_count}")
    if state.store.size != min(state.capacity, state.visit_count):
        raise ValueError(
            f"reservoir size {state.store.size} does not match visit_count "
            f"{state.visit_count} for capacity {state.capacity}"
        )
    state.store.check_compatible(batch)

    if object_ids is None and state.identity is not None:
        raise ValueError("reservoir tracks object identity; object_ids are required")
    if object_ids is not None and state.identity is None:
        raise ValueError("object_ids given but the reservoir has no identity index")
    if state.identity is None:
        return None
    if state.identity.capacity != state.capacity:
        raise ValueError(
            f"identity index capacity {state.identity.capacity} does not match "
            f"reservoir capacity {state.capacity}"
        )
    if len(state.identity) != state.store.size:
        raise ValueError(
            f"identity index holds {len(state.identity)} ids for {state.store.size} slots"
        )
    return _as_object_ids(object_ids, batch.shape[0])


# ---------------------------------------------------------------------------
# Functional API
# ---------------------------------------------------------------------------


def collect_batch(
    state: ReservoirState,
    data_batch: Any,
    rng: Any,
    object_ids: Any = None,
    check_invariants: bool = True,
) -> BatchStats:
    """Fold one batch of records into the reservoir in place.

    Args:
        state: Reservoir state to update.
        data_batch: Array-like of shape ``(M, *record_shape)``.
        rng: Generator exposing ``integers(low, high, endpoint=True)``, e.g.
            ``numpy.random.Generator``. Draws are only taken once the
            reservoir is full.
        object_ids: Optional length-``M`` integer ids, required iff the state
            carries an identity index.
        check_invariants: Verify the id/slot bijection after the batch
            (``O(capacity)``).

    Returns:
        Per-batch :class:`BatchStats`.

    Raises:
        ValueError: On any precondition violation; state is left untouched.
        ReservoirInvariantError: If bookkeeping is inconsistent after the batch.
    """
    batch = np.asarray(data_batch)
    ids = _validate(state, batch, object_ids)
    store = state.store
    identity = state.identity
    capacity = state.capacity
    n_records = int(batch.shape[0])

    if n_records == 0:
        # An empty batch still fixes the record layout of an empty reservoir.
        if not store.is_initialized:
            store.reserve(batch.shape[1:], batch.dtype)
        return BatchStats(
            n_records=0, n_new=0, visit_count=state.visit_count, size=store.size
        )

    store.reserve(batch.shape[1:], batch.dtype)

    if ids is None:
        resident_at_start = np.zeros(n_records, dtype=bool)
    else:
        resident_at_start = identity.resident_mask(ids)
    n_new = int(n_records - resident_at_start.sum())
    target_size = min(capacity, store.size + n_new)

    stats = BatchStats(n_records=n_records, n_new=n_new)
    admitted = np.full(n_records, DISCARDED, dtype=np.int64)
    start_visited = state.visit_count
    visited = start_visited

    for i in range(n_records):
        if ids is not None:
            oid = int(ids[i])
            if identity.contains(oid):
                if resident_at_start[i]:
                    stats.n_duplicates += 1
                else:
                    stats.n_repeats += 1
                continue
            if resident_at_start[i]:
                stats.n_reconsidered += 1

        if visited < capacity:
            pos = visited
            store.resize(pos + 1)
            stats.n_appended += 1
        else:
            pos = int(rng.integers(0, visited, endpoint=True))
            if pos >= capacity:
                pos = DISCARDED
                stats.n_discarded += 1
            else:
                stats.n_replaced += 1

        if pos != DISCARDED:
            store.write(pos, batch[i])
            if identity is not None:
                identity.assign(pos, oid)
            admitted[i] = pos

        visited += 1

    state.visit_count = visited
    stats.visit_count = visited
    stats.size = store.size
    stats.admitted_slots = admitted

    enforce(
        visited - start_visited == n_new - stats.n_repeats + stats.n_reconsidered,
        f"visit count advanced by {visited - start_visited}, expected "
        f"{n_new - stats.n_repeats + stats.n_reconsidered}",
    )
    enforce(
        store.size == min(capacity, visited) and store.size <= target_size,
        f"reservoir size {store.size} inconsistent with visit count {visited}",
    )
    if identity is not None and check_invariants:
        identity.check_bijection(store.size)

    logger.debug(
        "Collected batch of %d (new=%d appended=%d replaced=%d discarded=%d); "
        "visit_count=%d size=%d",
        n_records,
        n_new,
        stats.n_appended,
        stats.n_replaced,
        stats.n_discarded,
        visited,
        store.size,
    )
    return stats


# ---------------------------------------------------------------------------
# ReservoirSampler
# ---------------------------------------------------------------------------


class ReservoirSampler:
    """Uniform fixed-size sample over a batched record stream.

    Attributes:
        state: The :class:`ReservoirState` being updated.
        check_invariants: Forwarded to :func:`collect_batch`.
    """

    def __init__(
        self,
        capacity: int,
        seed: int | None = None,
        track_identity: bool = False,
        rng: Any = None,
        check_invariants: bool = True,
    ) -> None:
        """Initialize an empty sampler.

        Args:
            capacity: Maximum number of records kept.
            seed: Seed for ``numpy.random.default_rng``; ignored when ``rng``
                is given.
            track_identity: Deduplicate records by object id.
            rng: Explicit generator (anything with ``integers(low, high,
                endpoint=True)``).
            check_invariants: Verify id/slot bijection after every batch.
        """
        self.state = ReservoirState.empty(capacity, track_identity=track_identity)
        self._rng = rng if rng is not None else np.random.default_rng(seed)
        self.check_invariants = check_invariants

    @classmethod
    def from_state(cls, state: ReservoirState, rng: Any) -> "ReservoirSampler":
        """Wrap an existing state (e.g. restored from a checkpoint)."""
        sampler = cls(state.capacity, rng=rng)
        sampler.state = state
        return sampler

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def collect(self, data_batch: Any, object_ids: Any = None) -> BatchStats:
        """Fold one batch into the reservoir; see :func:`collect_batch`."""
        return collect_batch(
            self.state,
            data_batch,
            self._rng,
            object_ids=object_ids,
            check_invariants=self.check_invariants,
        )

    def collect_many(self, batches: Iterable[Any]) -> list[BatchStats]:
        """Collect every batch in order.

        Each item is either a data batch or a ``(data_batch, object_ids)`` tuple.
        """
        results: list[BatchStats] = []
        for batch in batches:
            if isinstance(batch, tuple):
                data, ids = batch
                results.append(self.collect(data, ids))
            else:
                results.append(self.collect(batch))
        return results

    # ------------------------------------------------------------------
    # Convenience properties
    # ------------------------------------------------------------------

    @property
    def rng(self) -> Any:
        return self._rng

    @property
    def capacity(self) -> int:
        return self.state.capacity

    @property
    def visit_count(self) -> int:
        return self.state.visit_count

    @property
    def size(self) -> int:
        return self.state.store.size

    def __len__(self) -> int:
        return self.state.store.size

    @property
    def is_full(self) -> bool:
        """``True`` once every slot is occupied."""
        return self.state.store.size == self.capacity

    @property
    def tracks_identity(self) -> bool:
        return self.state.identity is not None

    @property
    def records(self) -> np.ndarray | None:
        """Read-only view of the sampled records in slot order (``None`` before first use)."""
        return self.state.store.records

    @property
    def object_ids(self) -> np.ndarray:
        """Resident ids in slot order.

        Raises:
            ValueError: If the sampler does not track identity.
        """
        if self.state.identity is None:
            raise ValueError("sampler does not track object identity")
        return self.state.identity.slot_owner[: self.size]

    def contains(self, object_id: int) -> bool:
        """``True`` iff *object_id* is currently sampled."""
        if self.state.identity is None:
            raise ValueError("sampler does not track object identity")
        return self.state.identity.contains(object_id)

    def slot_of(self, object_id: int) -> int:
        """Slot holding *object_id* (``KeyError`` if not resident)."""
        if self.state.identity is None:
            raise ValueError("sampler does not track object identity")
        return self.state.identity.slot_of(object_id)

    def owner_of(self, slot: int) -> int | None:
        """Id resident in *slot*, or ``None`` if the slot is not yet occupied."""
        if self.state.identity is None:
            raise ValueError("sampler does not track object identity")
        return self.state.identity.owner_of(slot)
