"""
Pipeline Context
================

Shared, read-only execution context for all pipeline stages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from infinity_flow.config.config import FullConfig
from infinity_flow.data.annotation import AnnotationRow, AnnotationTable
from infinity_flow.data.backbone import BackboneSelection
from infinity_flow.data.paths import PathSet
from infinity_flow.models.registry import AlgorithmEntry, AlgorithmRegistry


@dataclass(frozen=True)
class PipelineContext:
    """
    Shared context passed between pipeline stages.

    Holds the immutable configuration resolved at initialization and the
    external collaborators (event reader/writer, embedder, plotter). Stages
    never mutate it; everything they produce goes to disk.
    """

    # Configuration resolved at initialization
    config: FullConfig
    paths: PathSet
    annotation: AnnotationTable
    selection: BackboneSelection
    algorithms: AlgorithmRegistry

    # Collaborators
    reader: Any
    writer: Any
    embedder: Any
    plotter: Callable[..., Path]

    logger: Optional[logging.Logger] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Shortcuts
    # ------------------------------------------------------------------

    @property
    def backbone(self) -> List[str]:
        return list(self.selection.backbone)

    @property
    def exploratory(self) -> str:
        return self.selection.exploratory

    @property
    def rows(self) -> Tuple[AnnotationRow, ...]:
        return self.annotation.rows

    @property
    def seed(self) -> int:
        return self.config.sampling.seed

    @property
    def model_seed(self) -> int:
        """Base seed for stochastic regression backends."""
        nn_seed = self.config.pipeline.neural_networks_seed
        return self.seed if nn_seed is None else nn_seed

    @property
    def cores(self) -> int:
        return self.config.compute.cores

    # ------------------------------------------------------------------
    # Artifact locations
    # ------------------------------------------------------------------

    @property
    def transformed_dir(self) -> Path:
        return self.paths.model_state / "transformed"

    @property
    def features_dir(self) -> Path:
        return self.paths.model_state / "features"

    @property
    def models_dir(self) -> Path:
        return self.paths.model_state / "models"

    @property
    def prediction_inputs_dir(self) -> Path:
        return self.paths.model_state / "prediction_inputs"

    @property
    def predictions_dir(self) -> Path:
        return self.paths.model_state / "predictions"

    @property
    def fit_timings_path(self) -> Path:
        return self.paths.model_state / "timings_fit.json"

    @property
    def predict_timings_path(self) -> Path:
        return self.paths.model_state / "timings_predict.json"

    @property
    def predictions_table_path(self) -> Path:
        return self.paths.model_state / "predictions.h5"

    @property
    def embedding_path(self) -> Path:
        return self.paths.model_state / "embedding.h5"

    @property
    def bgc_table_path(self) -> Path:
        return self.paths.model_state / "predictions_bgc.h5"

    @property
    def raw_plot_path(self) -> Path:
        return self.paths.output / "umap_plot_annotated.pdf"

    @property
    def bgc_plot_path(self) -> Path:
        return self.paths.output / "umap_plot_annotated_backgroundcorrected.pdf"

    @property
    def timings_path(self) -> Path:
        return self.paths.output / "timings.csv"

    @property
    def checkpoint_path(self) -> Path:
        return self.paths.intermediary / "pipeline_state.json"

    def subset_path(self, row: AnnotationRow) -> Path:
        return self.paths.subset / f"{row.key}.h5"

    def transformed_path(self, row: AnnotationRow) -> Path:
        return self.transformed_dir / f"{row.key}.h5"

    def features_path(self, row: AnnotationRow) -> Path:
        return self.features_dir / f"{row.key}.h5"

    def transform_params_path(self, row: AnnotationRow) -> Path:
        return self.transformed_dir / f"{row.key}.json"

    def model_path(self, algorithm: str, row: AnnotationRow) -> Path:
        return self.models_dir / self.algorithms[algorithm].dirname / f"{row.key}.joblib"

    def prediction_inputs_path(self, row: AnnotationRow) -> Path:
        return self.prediction_inputs_dir / f"{row.key}.h5"

    def prediction_path(self, algorithm: str, row: AnnotationRow) -> Path:
        return self.predictions_dir / self.algorithms[algorithm].dirname / f"{row.key}.h5"

    # ------------------------------------------------------------------
    # Tasks and column naming
    # ------------------------------------------------------------------

    def get_model_tasks(self) -> List[Tuple[int, AnnotationRow, int, AlgorithmEntry]]:
        """All (file index, row, algorithm index, algorithm) pairs."""
        return [
            (i, row, a, entry)
            for a, entry in enumerate(self.algorithms)
            for i, row in enumerate(self.rows)
        ]

    @staticmethod
    def prediction_column(target: str, algorithm: str) -> str:
        return f"{target}.{algorithm}"

    def prediction_columns(self) -> Dict[str, AnnotationRow]:
        """Prediction column -> row whose model produces it, in table order."""
        return {
            self.prediction_column(row.target, entry.name): row
            for entry in self.algorithms
            for row in self.rows
        }

    def log(self, message: str, level: str = "info") -> None:
        """Log a message through the context logger."""
        if self.logger:
            getattr(self.logger, level)(message)
