"""Save and restore reservoir state so a stream can be resumed.

A checkpoint is a single ``.npz`` archive::

    capacity      ()                 int64
    visit_count   ()                 int64
    initialized   ()                 bool   record layout fixed yet
    reservoir     (size, *record)    record dtype (only if initialized)
    slot_owner    (capacity,)        int64  (only with identity tracking)
    rng_state     ()                 str    JSON ``bit_generator.state``

Only the minimal state needed to continue sampling is stored. Writes are not
made atomic; a crash mid-write can leave a truncated file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import numpy as np

from streamsample.reservoir.identity import IdentityIndex
from streamsample.reservoir.sampler import ReservoirSampler, ReservoirState
from streamsample.reservoir.store import ReservoirStore

logger = logging.getLogger(__name__)


def _rng_state_json(rng: Any) -> str:
    """Serialize a numpy generator's bit-generator state; ``""`` if unsupported."""
    bit_generator = getattr(rng, "bit_generator", None)
    if bit_generator is None:
        return ""

    def _default(obj: Any) -> Any:
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        raise TypeError(f"Unserializable generator state entry: {type(obj)!r}")

    return json.dumps(bit_generator.state, default=_default)


def _rng_from_json(payload: str) -> np.random.Generator:
    """Rebuild a ``numpy.random.Generator`` from :func:`_rng_state_json` output."""
    state = json.loads(payload)
    bit_generator_cls = getattr(np.random, state["bit_generator"], None)
    if bit_generator_cls is None:
        raise ValueError(f"Unknown bit generator {state['bit_generator']!r} in checkpoint")
    bit_generator = bit_generator_cls()
    bit_generator.state = state
    return np.random.Generator(bit_generator)


def save_state(sampler: ReservoirSampler | ReservoirState, path: str | Path, rng: Any = None) -> Path:
    """Write a checkpoint of *sampler* to *path*.

    Args:
        sampler: A :class:`ReservoirSampler`, or a bare :class:`ReservoirState`
            (pass ``rng`` to persist its generator too).
        path: Destination file. ``.npz`` is appended by numpy if missing.
        rng: Generator to persist alongside a bare state.

    Returns:
        The path actually written.
    """
    if isinstance(sampler, ReservoirSampler):
        state = sampler.state
        rng = sampler.rng
    else:
        state = sampler

    path = Path(path)
    if path.suffix != ".npz":
        path = path.with_name(path.name + ".npz")
    path.parent.mkdir(parents=True, exist_ok=True)

    store = state.store
    arrays: dict[str, np.ndarray] = {
        "capacity": np.asarray(state.capacity, dtype=np.int64),
        "visit_count": np.asarray(state.visit_count, dtype=np.int64),
        "initialized": np.asarray(store.is_initialized),
        "rng_state": np.asarray(_rng_state_json(rng) if rng is not None else ""),
    }
    if store.is_initialized:
        arrays["reservoir"] = np.array(store.records)
    if state.identity is not None:
        arrays["slot_owner"] = state.identity.slot_owner

    np.savez(path, **arrays)
    logger.info(
        "Saved reservoir checkpoint to %s (size=%d, visit_count=%d)",
        path,
        store.size,
        state.visit_count,
    )
    return path


def load_state(path: str | Path) -> tuple[ReservoirState, np.random.Generator | None]:
    """Read a checkpoint into a fresh :class:`ReservoirState`.

    Returns:
        ``(state, rng)``; ``rng`` is ``None`` if no generator was stored.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the stored fields are mutually inconsistent.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No reservoir checkpoint at {path}")

    with np.load(path, allow_pickle=False) as archive:
        capacity = int(archive["capacity"])
        visit_count = int(archive["visit_count"])
        initialized = bool(archive["initialized"])
        reservoir = archive["reservoir"] if "reservoir" in archive.files else None
        slot_owner = archive["slot_owner"] if "slot_owner" in archive.files else None
        rng_payload = str(archive["rng_state"]) if "rng_state" in archive.files else ""

    if visit_count < 0:
        raise ValueError(f"Checkpoint visit_count must be >= 0, got {visit_count}")
    store = ReservoirStore(capacity)
    size = 0
    if initialized:
        if reservoir is None or reservoir.ndim < 1:
            raise ValueError("Checkpoint marked initialized but has no reservoir array")
        size = int(reservoir.shape[0])
        if size != min(capacity, visit_count):
            raise ValueError(
                f"Checkpoint holds {size} records for visit_count {visit_count} "
                f"and capacity {capacity}"
            )
        store.reserve(reservoir.shape[1:], reservoir.dtype)
        store.resize(size)
        for slot in range(size):
            store.write(slot, reservoir[slot])
    elif visit_count != 0:
        raise ValueError("Checkpoint has a nonzero visit_count but no records")

    identity = None
    if slot_owner is not None:
        if slot_owner.shape != (capacity,):
            raise ValueError(
                f"slot_owner shape {slot_owner.shape} does not match capacity {capacity}"
            )
        identity = IdentityIndex.from_slot_owner(slot_owner, size)

    state = ReservoirState(store=store, visit_count=visit_count, identity=identity)
    rng = _rng_from_json(rng_payload) if rng_payload else None
    logger.info("Loaded reservoir checkpoint from %s (size=%d, visit_count=%d)", path, size, visit_count)
    return state, rng


def load_sampler(path: str | Path, rng: Any = None, seed: int | None = None) -> ReservoirSampler:
    """Restore a :class:`ReservoirSampler` from a checkpoint.

    The stored generator is used unless *rng* is given; if neither exists a
    fresh ``default_rng(seed)`` is created.
    """
    state, stored_rng = load_state(path)
    if rng is None:
        rng = stored_rng if stored_rng is not None else np.random.default_rng(seed)
    return ReservoirSampler.from_state(state, rng=rng)
