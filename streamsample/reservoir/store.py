"""Fixed-capacity slot storage for reservoir records."""

from __future__ import annotations

import numpy as np


class ReservoirStore:
    """Capacity-bounded array of record slots.

    Storage for all ``capacity`` slots is allocated the first time the record
    layout is known (shape and dtype of one record). The occupied region
    ``[0, size)`` only grows; eviction overwrites a slot in place.

    Attributes:
        capacity: Maximum number of records held.
    """

    def __init__(self, capacity: int) -> None:
        """Initialize an empty store.

        Args:
            capacity: Number of slots to hold. Must be positive.
        """
        if int(capacity) <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self.capacity = int(capacity)
        self._buffer: np.ndarray | None = None
        self._size = 0

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        """``True`` once the record shape and dtype have been fixed."""
        return self._buffer is not None

    @property
    def record_shape(self) -> tuple[int, ...] | None:
        """Shape of a single record, or ``None`` before first use."""
        if self._buffer is None:
            return None
        return tuple(self._buffer.shape[1:])

    @property
    def dtype(self) -> np.dtype | None:
        """Element type of the stored records, or ``None`` before first use."""
        if self._buffer is None:
            return None
        return self._buffer.dtype

    def reserve(self, record_shape: tuple[int, ...], dtype: np.dtype | str | type) -> None:
        """Allocate storage for ``capacity`` records of the given layout.

        Calling again with the same layout is a no-op and keeps existing data.

        Raises:
            ValueError: If the store was already reserved for another layout.
        """
        shape = tuple(int(d) for d in record_shape)
        dtype = np.dtype(dtype)
        if self._buffer is not None:
            if shape != self.record_shape or dtype != self._buffer.dtype:
                raise ValueError(
                    f"Store already holds records of shape {self.record_shape} "
                    f"and dtype {self._buffer.dtype}; cannot reserve {shape} / {dtype}."
                )
            return
        self._buffer = np.zeros((self.capacity, *shape), dtype=dtype)

    def check_compatible(self, batch: np.ndarray) -> None:
        """Validate that ``batch`` (leading axis = records) fits this store.

        Raises:
            ValueError: On a rank-0 batch, or a trailing shape/rank/dtype
                mismatch with already-fixed storage.
        """
        if batch.ndim < 1:
            raise ValueError("data batch must have at least one dimension (the record axis)")
        if self._buffer is None:
            return
        if batch.ndim != self._buffer.ndim:
            raise ValueError(
                f"data batch rank {batch.ndim} does not match reservoir rank {self._buffer.ndim}"
            )
        if tuple(batch.shape[1:]) != self.record_shape:
            raise ValueError(
                f"record shape {tuple(batch.shape[1:])} does not match reservoir "
                f"record shape {self.record_shape}"
            )
        if batch.dtype != self._buffer.dtype:
            raise ValueError(
                f"record dtype {batch.dtype} does not match reservoir dtype {self._buffer.dtype}"
            )

    # ------------------------------------------------------------------
    # Occupancy
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        """Number of occupied slots."""
        return self._size

    def __len__(self) -> int:
        return self._size

    def resize(self, size: int) -> None:
        """Grow the occupied region to ``size`` slots.

        Raises:
            ValueError: If ``size`` would shrink the store or exceed capacity.
        """
        size = int(size)
        if size < self._size:
            raise ValueError(f"cannot shrink reservoir from {self._size} to {size}")
        if size > self.capacity:
            raise ValueError(f"size {size} exceeds capacity {self.capacity}")
        if size > 0 and self._buffer is None:
            raise ValueError("cannot grow a store whose record layout is not yet reserved")
        self._size = size

    # ------------------------------------------------------------------
    # Slot access
    # ------------------------------------------------------------------

    def _check_slot(self, slot: int) -> int:
        slot = int(slot)
        if not 0 <= slot < self.capacity:
            raise IndexError(f"slot {slot} out of range [0, {self.capacity})")
        return slot

    def write(self, slot: int, record: np.ndarray) -> None:
        """Overwrite ``slot`` with ``record``.

        Raises:
            IndexError: If ``slot`` is outside ``[0, capacity)``.
            ValueError: If the store is unreserved or the record shape differs.
        """
        slot = self._check_slot(slot)
        if self._buffer is None:
            raise ValueError("store must be reserved before writing")
        record = np.asarray(record)
        if tuple(record.shape) != self.record_shape:
            raise ValueError(
                f"record shape {tuple(record.shape)} does not match {self.record_shape}"
            )
        self._buffer[slot] = record

    def read(self, slot: int) -> np.ndarray:
        """Return a copy of the record in an occupied ``slot``."""
        slot = int(slot)
        if not 0 <= slot < self._size:
            raise IndexError(f"slot {slot} is not occupied (size={self._size})")
        return self._buffer[slot].copy()

    @property
    def records(self) -> np.ndarray | None:
        """Read-only view of the occupied slots, shape ``(size, *record_shape)``.

        ``None`` before first use, like :attr:`record_shape` and :attr:`dtype`.
        """
        if self._buffer is None:
            return None
        view = self._buffer[: self._size]
        view.flags.writeable = False
        return view
