"""
Pipeline Stages
===============

Individual stages that make up the Infinity Flow pipeline, in run order.
"""

from .base import PipelineStage, StageResult
from .subsample import SubsampleStage
from .transform import TransformStage
from .fit import FitStage
from .predict import PredictStage
from .embed import EmbedStage
from .export import ExportStage
from .plot import PlotStage, BackgroundCorrectedPlotStage
from .background import BackgroundCorrectionStage


def default_stages():
    """Stage instances in their strict execution order."""
    return [
        SubsampleStage(),
        TransformStage(),
        FitStage(),
        PredictStage(),
        EmbedStage(),
        ExportStage(),
        PlotStage(),
        BackgroundCorrectionStage(),
        BackgroundCorrectedPlotStage(),
    ]


STAGE_NAMES = tuple(stage.name for stage in default_stages())

__all__ = [
    "PipelineStage",
    "StageResult",
    "SubsampleStage",
    "TransformStage",
    "FitStage",
    "PredictStage",
    "EmbedStage",
    "ExportStage",
    "PlotStage",
    "BackgroundCorrectionStage",
    "BackgroundCorrectedPlotStage",
    "default_stages",
    "STAGE_NAMES",
]
