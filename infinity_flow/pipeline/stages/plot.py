"""
Plot Stages
===========

Render the embedding colored by backbone intensities and imputed values,
once for the raw and once for the background-corrected table.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict, List

import numpy as np

from infinity_flow.data.artifacts import read_array, read_frame
from infinity_flow.pipeline.background import BGC_SUFFIX

from .base import PipelineStage, StageResult
from .embed import EMBEDDING_KEY

if TYPE_CHECKING:
    from infinity_flow.pipeline.context import PipelineContext


class PlotStage(PipelineStage):
    """Plot stage for the raw prediction table."""

    suffix = ""

    @property
    def name(self) -> str:
        return "plot"

    def table_path(self, context: "PipelineContext") -> Path:
        return context.predictions_table_path

    def plot_path(self, context: "PipelineContext") -> Path:
        return context.raw_plot_path

    def outputs(self, context: "PipelineContext") -> List[Path]:
        return [self.plot_path(context)]

    def requires(self, context: "PipelineContext") -> List[Path]:
        return [self.table_path(context), context.embedding_path]

    def run(self, context: "PipelineContext") -> StageResult:
        self.check_inputs(context)
        table = read_frame(self.table_path(context))
        coords = read_array(context.embedding_path, EMBEDDING_KEY)

        values: Dict[str, np.ndarray] = {}
        titles: Dict[str, str] = {}
        for channel, desc in context.selection.backbone.items():
            values[channel] = table[channel].to_numpy()
            titles[channel] = desc
        for column in context.prediction_columns():
            column = f"{column}{self.suffix}"
            values[column] = table[column].to_numpy()

        path = context.plotter(
            coords,
            values,
            self.plot_path(context),
            titles=titles,
            chop_quantiles=context.config.plotting.chop_quantiles,
        )
        self.log(context, f"Plot written to {path}")
        return StageResult.ok("Plot generated", data={"plot": str(path)})


class BackgroundCorrectedPlotStage(PlotStage):
    """Plot stage for the background-corrected table."""

    suffix = BGC_SUFFIX

    @property
    def name(self) -> str:
        return "plot_background_corrected"

    def table_path(self, context: "PipelineContext") -> Path:
        return context.bgc_table_path

    def plot_path(self, context: "PipelineContext") -> Path:
        return context.bgc_plot_path
