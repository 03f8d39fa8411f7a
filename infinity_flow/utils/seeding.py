"""
Deterministic per-task seeds.

Seeds are derived from the base seed and stable task coordinates (stage,
file index, algorithm index) so results do not depend on the number of
workers or the order in which tasks run.
"""

from __future__ import annotations

import numpy as np

SUBSAMPLE = 0
SPLIT = 1
FIT = 2
PREDICTION_EVENTS = 3
EMBED = 4


def task_seed(base_seed: int, stage: int, *coords: int) -> int:
    """32-bit seed for the task at *coords* of *stage*."""
    seq = np.random.SeedSequence([int(base_seed), int(stage), *[int(c) for c in coords]])
    return int(seq.generate_state(1, dtype=np.uint32)[0])


def task_rng(base_seed: int, stage: int, *coords: int) -> np.random.Generator:
    return np.random.default_rng(task_seed(base_seed, stage, *coords))
