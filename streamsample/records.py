"""Helpers for collecting composite records as a single stream.

A reservoir holds one fixed-shape array per record. Objects described by
several arrays (features, labels, weights, ...) are packed into a numpy
structured array first, so one slot carries every field of an object and
eviction keeps them together.
"""

from __future__ import annotations

from typing import Dict, Mapping

import numpy as np


def pack_records(fields: Mapping[str, np.ndarray]) -> np.ndarray:
    """Pack per-field batches into one structured batch.

    Args:
        fields: Mapping of field name to array of shape ``(M, *field_shape)``.
            All arrays must share the leading batch dimension ``M``.

    Returns:
        Structured array of shape ``(M,)`` with one field per input.

    Raises:
        ValueError: If ``fields`` is empty, an array is rank-0, or the leading
            dimensions differ.

    Examples:
        >>> packed = pack_records({"x": np.zeros((2, 3)), "y": np.arange(2)})
        >>> packed.shape, packed["x"].shape
        ((2,), (2, 3))
    """
    if not fields:
        raise ValueError("Cannot pack an empty field mapping.")
    arrays = {name: np.asarray(value) for name, value in fields.items()}
    for name, arr in arrays.items():
        if arr.ndim < 1:
            raise ValueError(f"Field {name!r} must have a leading batch dimension.")
    lengths = {arr.shape[0] for arr in arrays.values()}
    if len(lengths) > 1:
        raise ValueError(f"All fields must have the same batch size; got {sorted(lengths)}.")
    n_records = lengths.pop()
    dtype = np.dtype([(name, arr.dtype, arr.shape[1:]) for name, arr in arrays.items()])
    packed = np.empty(n_records, dtype=dtype)
    for name, arr in arrays.items():
        packed[name] = arr
    return packed


def unpack_records(packed: np.ndarray) -> Dict[str, np.ndarray]:
    """Split a structured batch back into per-field arrays (copies).

    Raises:
        ValueError: If ``packed`` is not a structured array.
    """
    packed = np.asarray(packed)
    if packed.dtype.names is None:
        raise ValueError(f"Expected a structured array, got dtype {packed.dtype}.")
    return {name: np.array(packed[name]) for name in packed.dtype.names}
