"""
Predict Stage
=============

Applies every trained model to the test-half events of every OTHER file
and assembles the prediction table.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import TYPE_CHECKING, List, Sequence, Tuple

import h5py
import joblib
import numpy as np
import pandas as pd

from infinity_flow.data.artifacts import read_array, read_extra, read_frame, write_frame
from infinity_flow.pipeline.timing import TimingAggregator
from infinity_flow.utils import seeding
from infinity_flow.utils.parallel import ParallelBackend

from .base import PipelineStage, StageResult

if TYPE_CHECKING:
    from infinity_flow.pipeline.context import PipelineContext

FILE_COLUMN = "file"


def select_prediction_events(train: np.ndarray, cap: int, seed: int, file_index: int) -> np.ndarray:
    """Sorted positions of the test-half events predictions are made for."""
    test = np.flatnonzero(~np.asarray(train, dtype=bool))
    if cap is None or len(test) <= cap:
        return test
    rng = seeding.task_rng(seed, seeding.PREDICTION_EVENTS, file_index)
    return np.sort(rng.choice(test, size=int(cap), replace=False))


def predict_one(
    backend,
    model_path: Path,
    inputs: Sequence[Tuple[str, Path]],
    out_path: Path,
) -> Path:
    """
    Predict with one model on the prediction inputs of the other files.

    Args:
        inputs: (file key, prediction inputs path) of every other file
        out_path: HDF5 file receiving one dataset per file key
    """
    model = joblib.load(model_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = out_path.with_suffix(".tmp")
    with h5py.File(tmp_path, "w") as f:
        for key, path in inputs:
            x = read_frame(path).to_numpy()
            values = backend.predict(model, x) if len(x) else np.empty(0)
            f.create_dataset(key, data=np.asarray(values, dtype=np.float64))
    tmp_path.replace(out_path)
    return out_path


class PredictStage(PipelineStage):
    """
    Predict stage: cross-file imputation.

    Tasks:
    - Pick, per file, at most ``prediction_events_downsampling`` test events
    - For each (file x algorithm) model, predict the other files' events;
      a model is never applied to its own file
    - Assemble one table: file, scaled backbone and exploratory values, and
      one ``<target>.<algorithm>`` column per model
    """

    @property
    def name(self) -> str:
        return "predict"

    def outputs(self, context: "PipelineContext") -> List[Path]:
        paths = [context.prediction_inputs_path(row) for row in context.rows]
        paths += [context.prediction_path(entry.name, row) for _, row, _, entry in context.get_model_tasks()]
        return paths + [context.predict_timings_path, context.predictions_table_path]

    def requires(self, context: "PipelineContext") -> List[Path]:
        paths = [context.model_path(entry.name, row) for _, row, _, entry in context.get_model_tasks()]
        for row in context.rows:
            paths += [context.subset_path(row), context.features_path(row), context.transformed_path(row)]
        return paths

    def run(self, context: "PipelineContext") -> StageResult:
        self.check_inputs(context)
        cap = context.config.sampling.prediction_events_downsampling

        # Prediction events, shared by every model so table rows line up
        for j, row in enumerate(context.rows):
            path = context.prediction_inputs_path(row)
            if not self.needs_update(context, [path], [context.subset_path(row), context.features_path(row)]):
                continue
            train = read_extra(context.subset_path(row), "train")
            positions = select_prediction_events(train, cap, context.seed, j)
            features = read_frame(context.features_path(row)).iloc[positions].reset_index(drop=True)
            write_frame(path, features, extra_arrays={"rows": positions})

        backend = ParallelBackend(context.config.compute.parallel_backend, n_jobs=context.cores)
        timings = TimingAggregator.load(context.predict_timings_path)

        ran = 0
        for entry in context.algorithms:
            args = []
            for i, row in enumerate(context.rows):
                out_path = context.prediction_path(entry.name, row)
                model_path = context.model_path(entry.name, row)
                others = [
                    (other.key, context.prediction_inputs_path(other))
                    for j, other in enumerate(context.rows)
                    if j != i
                ]
                if not self.needs_update(context, [out_path], [model_path] + [p for _, p in others]):
                    continue
                args.append((entry.backend, model_path, others, out_path))
            if not args:
                continue

            start = time.perf_counter()
            backend.starmap(predict_one, args, desc=f"Predicting with {entry.name}")
            TimingAggregator.record(
                timings, entry.name, time.perf_counter() - start, complete=len(args) == len(context.rows)
            )
            ran += len(args)
        TimingAggregator.save(context.predict_timings_path, timings)

        table = self.assemble(context)
        write_frame(context.predictions_table_path, table)
        self.log(context, f"Prediction table: {len(table)} events x {len(context.prediction_columns())} predictions")
        return StageResult.ok(f"Ran {ran} prediction tasks", data={"events": len(table)})

    def assemble(self, context: "PipelineContext") -> pd.DataFrame:
        """Build the prediction table from the per-model artifacts."""
        measured_self = context.config.pipeline.self_prediction == "measured"
        channels = context.backbone + [context.exploratory]
        blocks = []
        for j, row in enumerate(context.rows):
            positions = read_extra(context.prediction_inputs_path(row), "rows")
            scaled = read_frame(context.transformed_path(row)).iloc[positions].reset_index(drop=True)

            n = len(scaled)
            block = {FILE_COLUMN: [row.file] * n}
            for c in channels:
                block[c] = scaled[c].to_numpy()

            for entry in context.algorithms:
                for i, model_row in enumerate(context.rows):
                    column = context.prediction_column(model_row.target, entry.name)
                    if i == j:
                        block[column] = scaled[context.exploratory].to_numpy() if measured_self else np.full(n, np.nan)
                    else:
                        block[column] = read_array(context.prediction_path(entry.name, model_row), row.key)
            blocks.append(pd.DataFrame(block))
        return pd.concat(blocks, ignore_index=True)
