"""Object-id to slot bookkeeping for deduplicated reservoirs."""

from __future__ import annotations

from typing import Iterable, Iterator

import numpy as np

from streamsample.reservoir.base import enforce


class IdentityIndex:
    """Bijection between resident object ids and reservoir slots.

    Holds the forward map ``object_id -> slot`` and its inverse
    ``slot_owner[slot] -> object_id`` side by side; callers only mutate it
    through :meth:`assign`, which keeps both in lockstep.

    Ids are arbitrary 64-bit signed integers. Occupied slots are always the
    prefix ``[0, size)``, mirroring the reservoir store; entries of
    :attr:`slot_owner` at or beyond ``size`` are meaningless.
    """

    def __init__(self, capacity: int) -> None:
        if int(capacity) <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self.capacity = int(capacity)
        self._pos: dict[int, int] = {}
        self._owner = np.zeros(self.capacity, dtype=np.int64)
        self._size = 0

    @classmethod
    def from_slot_owner(cls, slot_owner: np.ndarray, size: int) -> "IdentityIndex":
        """Rebuild an index from a saved inverse map.

        Args:
            slot_owner: Length-``capacity`` int64 array of owners.
            size: Number of occupied slots; ``slot_owner[:size]`` must be
                distinct ids.

        Raises:
            ValueError: If the owner array is malformed.
        """
        owners = np.asarray(slot_owner, dtype=np.int64)
        if owners.ndim != 1:
            raise ValueError("slot_owner must be rank-1")
        index = cls(len(owners))
        if not 0 <= int(size) <= index.capacity:
            raise ValueError(f"size {size} out of range for capacity {index.capacity}")
        for slot in range(int(size)):
            oid = int(owners[slot])
            if oid in index._pos:
                raise ValueError(f"object id {oid} owns more than one slot")
            index.assign(slot, oid)
        return index

    def __len__(self) -> int:
        return self._size

    def contains(self, object_id: int) -> bool:
        """Return ``True`` iff *object_id* currently owns a slot."""
        return int(object_id) in self._pos

    def slot_of(self, object_id: int) -> int:
        """Return the slot owned by *object_id*.

        Raises:
            KeyError: If the id is not resident.
        """
        return self._pos[int(object_id)]

    def owner_of(self, slot: int) -> int | None:
        """Return the id occupying *slot*, or ``None`` for a free slot."""
        slot = self._check_slot(slot)
        return int(self._owner[slot]) if slot < self._size else None

    @property
    def slot_owner(self) -> np.ndarray:
        """Copy of the inverse map; only the first ``len(self)`` entries are owned."""
        return self._owner.copy()

    def items(self) -> Iterator[tuple[int, int]]:
        """Iterate ``(object_id, slot)`` pairs."""
        return iter(list(self._pos.items()))

    def resident_mask(self, object_ids: Iterable[int]) -> np.ndarray:
        """Boolean mask of which *object_ids* are resident right now."""
        ids = list(object_ids)
        return np.fromiter((int(oid) in self._pos for oid in ids), dtype=bool, count=len(ids))

    def _check_slot(self, slot: int) -> int:
        slot = int(slot)
        if not 0 <= slot < self.capacity:
            raise IndexError(f"slot {slot} out of range [0, {self.capacity})")
        return slot

    def assign(self, slot: int, new_id: int) -> int | None:
        """Give *slot* to *new_id*, evicting its previous owner.

        A free slot may only be taken at the end of the occupied prefix
        (``slot == len(self)``), which grows the index by one.

        Returns:
            The evicted id, or ``None`` if the slot was free.

        Raises:
            IndexError: If *slot* is out of range.
            ReservoirInvariantError: If *new_id* already owns a different slot
                or *slot* would leave a gap in the occupied prefix.
        """
        slot = self._check_slot(slot)
        new_id = int(new_id)
        enforce(slot <= self._size, f"slot {slot} leaves a gap after {self._size} owned slots")
        current = self._pos.get(new_id)
        enforce(
            current is None or current == slot,
            f"object id {new_id} already resident in slot {current}",
        )
        old: int | None = None
        if slot < self._size:
            old = int(self._owner[slot])
            enforce(self._pos.get(old) == slot, f"slot {slot} owner {old} not indexed")
            del self._pos[old]
        else:
            self._size += 1
        self._owner[slot] = new_id
        self._pos[new_id] = slot
        return old

    def check_bijection(self, size: int) -> None:
        """Verify both maps agree and that slots ``[0, size)`` are exactly the owned ones.

        Raises:
            ReservoirInvariantError: On any disagreement.
        """
        enforce(self._size == int(size), f"{self._size} owned slots for reservoir size {size}")
        enforce(len(self._pos) == int(size), f"{len(self._pos)} ids indexed for {size} slots")
        for oid, slot in self._pos.items():
            enforce(0 <= slot < int(size), f"id {oid} maps to unoccupied slot {slot}")
            enforce(int(self._owner[slot]) == oid, f"slot {slot} owner disagrees with id {oid}")
        for slot in range(int(size)):
            oid = int(self._owner[slot])
            enforce(self._pos.get(oid) == slot, f"owner {oid} of slot {slot} not indexed")
