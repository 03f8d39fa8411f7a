"""
Export Stage
============

Writes the raw-scale prediction table in the configured modalities.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict, List

import pandas as pd

from infinity_flow.data.artifacts import read_array, read_frame, read_json
from infinity_flow.pipeline.export import expected_exports, export_table, to_raw_scale
from infinity_flow.utils.transforms import FileTransformParams

from .base import PipelineStage, StageResult
from .embed import EMBEDDING_KEY

if TYPE_CHECKING:
    from infinity_flow.pipeline.context import PipelineContext


def raw_export_frame(context: "PipelineContext", table: pd.DataFrame, column_suffix: str = "") -> pd.DataFrame:
    """Raw-scale view of a (possibly corrected) prediction table with embedding coordinates."""
    params: Dict[str, FileTransformParams] = {
        row.file: FileTransformParams.from_dict(read_json(context.transform_params_path(row)))
        for row in context.rows
    }
    sources = {
        f"{column}{column_suffix}": row.file
        for column, row in context.prediction_columns().items()
    }
    coords = read_array(context.embedding_path, EMBEDDING_KEY)
    if len(coords) != len(table):
        raise ValueError(f"Embedding has {len(coords)} rows but the prediction table has {len(table)}")
    return to_raw_scale(table, params, context.backbone + [context.exploratory], sources, coords)


class ExportStage(PipelineStage):
    """Export stage: raw imputed data as split/concatenated event files and/or CSV."""

    @property
    def name(self) -> str:
        return "export"

    def outputs(self, context: "PipelineContext") -> List[Path]:
        return expected_exports(
            context.paths.output,
            context.config.export.modes,
            context.annotation.files,
            context.writer.suffix,
        )

    def requires(self, context: "PipelineContext") -> List[Path]:
        return [context.predictions_table_path, context.embedding_path] + [
            context.transform_params_path(row) for row in context.rows
        ]

    def run(self, context: "PipelineContext") -> StageResult:
        self.check_inputs(context)
        modes = context.config.export.modes
        if not modes:
            self.log(context, "No export requested")
            return StageResult.ok("Nothing to export")

        frame = raw_export_frame(context, read_frame(context.predictions_table_path))
        written = export_table(frame, modes, context.paths.output, context.annotation.files, context.writer)
        return StageResult.ok(
            f"Exported {sum(len(v) for v in written.values())} artifacts",
            data={mode: [str(p) for p in paths] for mode, paths in written.items()},
        )
