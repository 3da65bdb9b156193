"""Experiment: empirical inclusion probability of the streaming reservoir.

Streams ``n_items`` distinct records through many independently seeded
reservoirs and checks that every item ends up resident with frequency close
to ``capacity / n_items``. Also feeds one stream through :class:`StreamRunner`
and writes its per-batch table.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import hydra
import numpy as np
import wandb
from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

from streamsample.config import load_config
from streamsample.evaluation import inclusion_frequencies, summarize_batches, uniformity_test
from streamsample.stream import StreamRunner

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def _item_batches(n_items: int, batch_size: int, with_ids: bool):
    """Yield consecutive item batches, paired with ids when requested."""
    items = np.arange(n_items, dtype=np.int64)
    for start in range(0, n_items, batch_size):
        chunk = items[start : start + batch_size]
        yield (chunk, chunk) if with_ids else chunk


@hydra.main(version_base=None, config_path="../configs", config_name="config")
def main(cfg: DictConfig) -> None:
    """Run the inclusion-frequency experiment and write its artifacts."""
    load_dotenv()
    stream_cfg = load_config(cfg.stream)
    n_items = int(cfg.experiment.n_items)
    n_trials = int(cfg.experiment.n_trials)
    batch_size = int(cfg.experiment.batch_size)
    out = Path(str(cfg.experiment.output_dir))
    out.mkdir(parents=True, exist_ok=True)

    run = wandb.init(
        project=cfg.wandb.project,
        name=f"{cfg.experiment.name}_N{stream_cfg.capacity}_L{n_items}",
        config=OmegaConf.to_container(cfg, resolve=True),
        mode=cfg.wandb.mode,
    )

    logger.info(
        "Estimating inclusion frequencies: capacity=%d n_items=%d n_trials=%d",
        stream_cfg.capacity,
        n_items,
        n_trials,
    )
    freqs = inclusion_frequencies(
        n_items=n_items,
        capacity=stream_cfg.capacity,
        n_trials=n_trials,
        batch_size=batch_size,
        seed=int(cfg.seed),
        track_identity=stream_cfg.track_identity,
    )
    test = uniformity_test(freqs, n_trials=n_trials, capacity=stream_cfg.capacity)
    np.save(out / "frequencies.npy", freqs)

    summary = {
        "capacity": stream_cfg.capacity,
        "n_items": n_items,
        "n_trials": n_trials,
        "expected": test["expected"],
        "mean_frequency": float(freqs.mean()),
        "min_frequency": float(freqs.min()),
        "max_frequency": float(freqs.max()),
        "chi2_statistic": test["statistic"],
        "chi2_p_value": test["p_value"],
    }
    with (out / "summary.json").open("w", encoding="utf-8") as fh:
        json.dump(summary, fh, indent=2)
    logger.info("Summary: %s", summary)

    runner = StreamRunner(stream_cfg)
    stats = runner.run(_item_batches(n_items, batch_size, stream_cfg.track_identity))
    summarize_batches(stats).to_csv(out / "stream_batches.csv", index=False)

    if run is not None:
        wandb.log({f"inclusion/{k}": v for k, v in summary.items()})
        wandb.finish()


if __name__ == "__main__":
    main()
