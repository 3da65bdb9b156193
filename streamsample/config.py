"""Stream-level configuration objects."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from omegaconf import DictConfig, OmegaConf


@dataclass
class StreamConfig:
    """Configuration for one sampled stream.

    Attributes:
        capacity: Reservoir size ``N``; fixed for the reservoir's lifetime.
        seed: Seed for the slot-selection generator (``None`` = OS entropy).
        track_identity: Deduplicate records by object id.
        checkpoint_dir: Directory for periodic checkpoints (``None`` disables).
        checkpoint_every: Write a checkpoint every this many batches
            (``0`` = only at the end of :meth:`StreamRunner.run`).
        log_every: Emit a progress log line every this many batches.
        check_invariants: Verify the id/slot bijection after each batch.
    """

    capacity: int
    seed: int | None = None
    track_identity: bool = False
    checkpoint_dir: str | None = None
    checkpoint_every: int = 0
    log_every: int = 100
    check_invariants: bool = True

    def __post_init__(self) -> None:
        if int(self.capacity) <= 0:
            raise ValueError(f"capacity must be > 0, got {self.capacity}")
        if int(self.checkpoint_every) < 0:
            raise ValueError(f"checkpoint_every must be >= 0, got {self.checkpoint_every}")
        if int(self.log_every) <= 0:
            raise ValueError(f"log_every must be > 0, got {self.log_every}")
        self.capacity = int(self.capacity)
        self.checkpoint_every = int(self.checkpoint_every)
        self.log_every = int(self.log_every)


def load_config(source: str | Path | Mapping[str, Any] | DictConfig) -> StreamConfig:
    """Build a :class:`StreamConfig` from a YAML file, mapping, or OmegaConf node.

    Keys may sit at the top level or under a ``stream`` section. Unknown keys
    are rejected so typos do not silently fall back to defaults.

    Raises:
        FileNotFoundError: If *source* is a path that does not exist.
        KeyError: On unknown configuration keys.
        ValueError: If a value fails validation.
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Missing config: {path}")
        cfg = OmegaConf.load(path)
    elif isinstance(source, DictConfig):
        cfg = source
    else:
        cfg = OmegaConf.create(dict(source))

    if "stream" in cfg:
        cfg = cfg.stream
    values = OmegaConf.to_container(cfg, resolve=True)
    allowed = {f.name for f in fields(StreamConfig)}
    unknown = sorted(set(values) - allowed)
    if unknown:
        raise KeyError(f"Unknown stream config keys: {unknown}")
    return StreamConfig(**values)
