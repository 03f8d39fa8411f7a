"""
Embed Stage
===========

Projects the z-scored backbone of every prediction event into two
dimensions.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List

import numpy as np
import pandas as pd

from infinity_flow.data.artifacts import read_frame, write_array

from .base import PipelineStage, StageResult

if TYPE_CHECKING:
    from infinity_flow.pipeline.context import PipelineContext

EMBEDDING_KEY = "coords"


class EmbedStage(PipelineStage):
    """Embed stage: 2-D projection with the embedding collaborator."""

    @property
    def name(self) -> str:
        return "embed"

    def outputs(self, context: "PipelineContext") -> List[Path]:
        return [context.embedding_path]

    def requires(self, context: "PipelineContext") -> List[Path]:
        return [context.prediction_inputs_path(row) for row in context.rows] + [context.predictions_table_path]

    def run(self, context: "PipelineContext") -> StageResult:
        self.check_inputs(context)
        features = pd.concat(
            [read_frame(context.prediction_inputs_path(row)) for row in context.rows],
            ignore_index=True,
        )
        matrix = features[context.backbone].to_numpy(dtype=np.float64)
        self.log(context, f"Embedding {matrix.shape[0]} events on {matrix.shape[1]} backbone channels")

        coords = np.asarray(context.embedder.embed(matrix), dtype=np.float64)
        if coords.shape != (matrix.shape[0], 2):
            return StageResult.fail(f"Embedding returned shape {coords.shape}, expected ({matrix.shape[0]}, 2)")

        write_array(context.embedding_path, EMBEDDING_KEY, coords)
        return StageResult.ok(f"Embedded {matrix.shape[0]} events")
