"""
Transform Stage
===============

Scales backbone and exploratory channels and z-scores every backbone
channel within each file so feature distributions are comparable across
files.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List

from tqdm import tqdm

from infinity_flow.data.artifacts import read_frame, write_frame, write_json
from infinity_flow.utils.transforms import transform_events

from .base import PipelineStage, StageResult

if TYPE_CHECKING:
    from infinity_flow.pipeline.context import PipelineContext


class TransformStage(PipelineStage):
    """
    Transform stage: per-file scaling and standardization.

    Writes, per file, the arcsinh-scaled channels, the z-scored backbone
    features and the JSON parameters needed to invert them.
    """

    @property
    def name(self) -> str:
        return "transform"

    @staticmethod
    def row_outputs(context: "PipelineContext", row) -> List[Path]:
        return [context.transformed_path(row), context.features_path(row), context.transform_params_path(row)]

    def outputs(self, context: "PipelineContext") -> List[Path]:
        paths = []
        for row in context.rows:
            paths += self.row_outputs(context, row)
        return paths

    def requires(self, context: "PipelineContext") -> List[Path]:
        return [context.subset_path(row) for row in context.rows]

    def run(self, context: "PipelineContext") -> StageResult:
        self.check_inputs(context)
        cofactor = context.config.transform.cofactor
        pending = [
            row for row in context.rows
            if self.needs_update(context, self.row_outputs(context, row), [context.subset_path(row)])
        ]
        self.log(context, f"Scaling {len(pending)}/{len(context.rows)} files (arcsinh cofactor={cofactor}) and z-scoring backbone")
        rows = tqdm(pending, desc="Transforming", unit="file", disable=not context.config.pipeline.verbose)
        for row in rows:
            events = read_frame(context.subset_path(row))
            scaled, features, params = transform_events(
                events, context.backbone, context.exploratory, cofactor
            )
            write_frame(context.transformed_path(row), scaled)
            write_frame(context.features_path(row), features)
            write_json(context.transform_params_path(row), params.to_dict())

        return StageResult.ok(f"Transformed {len(pending)}/{len(context.rows)} files")
