"""
Timing Aggregator
=================

Per-algorithm wall-clock cost of the fit and predict stages.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, Sequence

import pandas as pd

from infinity_flow.data.artifacts import read_json, write_json

logger = logging.getLogger(__name__)

StageTimings = Dict[str, float]


class TimingAggregator:
    """
    Collects stage durations and assembles the timing table.

    Each algorithm is fanned out over the files on its own, and the wall-clock
    time of that fan-out (reading, training or predicting and writing) is
    recorded. A resumed run that only completes part of an algorithm's tasks
    adds its time to the one recorded before.
    """

    def __init__(self, algorithms: Sequence[str]):
        self.algorithms = list(algorithms)

    @staticmethod
    def record(timings: StageTimings, algorithm: str, seconds: float, complete: bool = True) -> None:
        """Record one fan-out; *complete* means it covered every file of the algorithm."""
        previous = 0.0 if complete else timings.get(algorithm, 0.0)
        timings[algorithm] = previous + float(seconds)

    @staticmethod
    def load(path: Path) -> StageTimings:
        """Load one stage's timings, empty when nothing was recorded yet."""
        if not Path(path).exists():
            return {}
        return {alg: float(seconds) for alg, seconds in read_json(path).items()}

    @staticmethod
    def save(path: Path, timings: StageTimings) -> None:
        write_json(path, timings)

    def table(self, fit: StageTimings, predict: StageTimings) -> pd.DataFrame:
        """Table indexed by algorithm name with columns ``fit`` and ``predict``."""
        totals = defaultdict(dict)
        for column, timings in (("fit", fit), ("predict", predict)):
            for alg in self.algorithms:
                totals[column][alg] = float(timings.get(alg, 0.0))
        frame = pd.DataFrame(totals, index=self.algorithms, columns=["fit", "predict"])
        frame.index.name = "algorithm"
        return frame

    def persist(self, frame: pd.DataFrame, paths: Iterable[Path]) -> None:
        for path in paths:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            frame.to_csv(path)
            logger.info(f"Timings written to {path}")
