"""
Fit Stage
=========

Trains one model per (input file x algorithm) on the train half of that
file: backbone features -> exploratory channel.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

import joblib

from infinity_flow.data.artifacts import read_extra, read_frame
from infinity_flow.pipeline.timing import TimingAggregator
from infinity_flow.utils import seeding
from infinity_flow.utils.parallel import ParallelBackend

from .base import PipelineStage, StageResult

if TYPE_CHECKING:
    from infinity_flow.pipeline.context import PipelineContext


def fit_one(
    backend,
    params: Dict[str, Any],
    subset_path: Path,
    features_path: Path,
    transformed_path: Path,
    exploratory: str,
    model_path: Path,
    seed: int,
) -> Path:
    """Train a single model and persist it."""
    train = read_extra(subset_path, "train").astype(bool)
    x = read_frame(features_path).to_numpy()[train]
    y = read_frame(transformed_path)[exploratory].to_numpy()[train]
    if len(y) == 0:
        raise ValueError(f"No training events in {subset_path.name}")

    model = backend.fit(x, y, params, seed=seed)

    model_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = model_path.with_suffix(".tmp")
    joblib.dump(model, tmp_path)
    tmp_path.replace(model_path)
    return model_path


class FitStage(PipelineStage):
    """
    Fit stage: data-parallel model training.

    Tasks:
    - One task per (file x algorithm), seeded from the base seed and the
      task's file and algorithm indices
    - Tasks whose model is newer than its inputs are not re-run
    - Each algorithm is fanned out on its own; its wall-clock time is merged
      into the fit timings artifact
    """

    @property
    def name(self) -> str:
        return "fit"

    def outputs(self, context: "PipelineContext") -> List[Path]:
        models = [context.model_path(entry.name, row) for _, row, _, entry in context.get_model_tasks()]
        return models + [context.fit_timings_path]

    def requires(self, context: "PipelineContext") -> List[Path]:
        paths = []
        for row in context.rows:
            paths += [context.subset_path(row), context.features_path(row), context.transformed_path(row)]
        return paths

    def run(self, context: "PipelineContext") -> StageResult:
        self.check_inputs(context)
        backend = ParallelBackend(context.config.compute.parallel_backend, n_jobs=context.cores)
        timings = TimingAggregator.load(context.fit_timings_path)

        trained = 0
        for a, entry in enumerate(context.algorithms):
            args = []
            for i, row in enumerate(context.rows):
                model_path = context.model_path(entry.name, row)
                inputs = [context.subset_path(row), context.features_path(row), context.transformed_path(row)]
                if not self.needs_update(context, [model_path], inputs):
                    continue
                args.append((
                    entry.backend,
                    entry.params,
                    *inputs,
                    context.exploratory,
                    model_path,
                    seeding.task_seed(context.model_seed, seeding.FIT, i, a),
                ))
            if not args:
                self.log(context, f"{entry.name}: all {len(context.rows)} models present")
                continue

            # Wall clock of the whole fan-out, I/O included
            start = time.perf_counter()
            backend.starmap(fit_one, args, desc=f"Fitting {entry.name}")
            TimingAggregator.record(
                timings, entry.name, time.perf_counter() - start, complete=len(args) == len(context.rows)
            )
            trained += len(args)

        TimingAggregator.save(context.fit_timings_path, timings)
        return StageResult.ok(f"Trained {trained}/{len(context.get_model_tasks())} models")
