"""
Background Correction Stage
===========================

Corrects imputed values against isotype controls and exports the
corrected table.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List

from infinity_flow.data.artifacts import read_frame, write_frame
from infinity_flow.pipeline.background import BGC_SUFFIX, correct_background
from infinity_flow.pipeline.export import expected_exports, export_table

from .base import PipelineStage, StageResult
from .export import raw_export_frame

if TYPE_CHECKING:
    from infinity_flow.pipeline.context import PipelineContext

EXPORT_TAG = "_background_corrected"


class BackgroundCorrectionStage(PipelineStage):
    """
    Background correction stage.

    Tasks:
    - Regress each antibody's imputed values on its isotype control's
    - Persist the ``_bgc`` table
    - Export it in the background-correction modalities
    """

    @property
    def name(self) -> str:
        return "background_correction"

    def outputs(self, context: "PipelineContext") -> List[Path]:
        return [context.bgc_table_path] + expected_exports(
            context.paths.output,
            context.config.background_correction.modes,
            context.annotation.files,
            context.writer.suffix,
            tag=EXPORT_TAG,
        )

    def requires(self, context: "PipelineContext") -> List[Path]:
        return [context.predictions_table_path, context.embedding_path]

    def run(self, context: "PipelineContext") -> StageResult:
        self.check_inputs(context)
        controls = context.annotation.isotype_control_files()
        self.log(context, f"Background correcting against {len(controls)} isotype control file(s)")

        corrected = correct_background(
            read_frame(context.predictions_table_path),
            context.annotation,
            context.algorithms.names,
        )
        write_frame(context.bgc_table_path, corrected)

        modes = context.config.background_correction.modes
        written = {}
        if modes:
            frame = raw_export_frame(context, corrected, column_suffix=BGC_SUFFIX)
            written = export_table(
                frame, modes, context.paths.output, context.annotation.files, context.writer, tag=EXPORT_TAG
            )
        return StageResult.ok(
            "Background correction completed",
            data={mode: [str(p) for p in paths] for mode, paths in written.items()},
        )
