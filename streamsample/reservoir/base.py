"""Shared reservoir error types and invariant checks."""

from __future__ import annotations


class ReservoirInvariantError(RuntimeError):
    """Internal reservoir bookkeeping disagreed with itself.

    Raised for engine faults (not bad input); state that produced it should
    be discarded rather than reused.
    """


def enforce(condition: bool, message: str) -> None:
    """Raise :class:`ReservoirInvariantError` with *message* unless *condition* holds."""
    if not condition:
        raise ReservoirInvariantError(message)
