"""
Pipeline Orchestrator
=====================

Main orchestration class that coordinates all pipeline stages.
"""

from __future__ import annotations

import dataclasses
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

import pandas as pd

from infinity_flow.config.config import FullConfig, load_full_config
from infinity_flow.data.annotation import AnnotationResolver
from infinity_flow.data.artifacts import read_frame
from infinity_flow.data.backbone import BackboneClassifier, InteractiveClassifier
from infinity_flow.data.paths import PathRegistry, PathSet
from infinity_flow.errors import ConfigurationError, StageError
from infinity_flow.models.registry import AlgorithmRegistry
from infinity_flow.utils import seeding

from .checkpoint import CheckpointManager
from .context import PipelineContext
from .timing import TimingAggregator

LOGGER_NAME = "infinity_flow"
LOG_FILENAME = "pipeline.log"
RESULTS_STAGE = "results"


@dataclass
class PipelineResult:
    """Outcome of a pipeline run."""
    paths: PathSet
    raw: Optional[pd.DataFrame] = None
    background_corrected: Optional[pd.DataFrame] = None
    timings: Optional[pd.DataFrame] = None
    executed_stages: List[str] = field(default_factory=list)
    skipped_stages: List[str] = field(default_factory=list)


class PipelineOrchestrator:
    """
    Orchestrates the complete Infinity Flow pipeline.

    Initialization (once per run):
    1. Register and probe regression algorithms
    2. Resolve working directories
    3. Resolve and persist the annotation table
    4. Classify channels into backbone / exploratory / ignored

    Then runs the stages strictly in order. A stage whose artifacts all exist
    and are no older than its upstream artifacts is skipped, so re-invoking
    with the same intermediary root resumes an interrupted run and refreshes
    whatever an upstream stage rewrote.
    """

    def __init__(
        self,
        config: FullConfig,
        reader: Any = None,
        writer: Any = None,
        embedder: Any = None,
        plotter: Optional[Callable[..., Path]] = None,
        interactive: Optional[InteractiveClassifier] = None,
        algorithms: Optional[AlgorithmRegistry] = None,
        stages: Optional[Sequence[str]] = None,
        force: bool = False,
        temp_root: Optional[Path] = None,
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            config: Resolved configuration
            reader: Event reader collaborator (default: FCS via FlowKit)
            writer: Event writer collaborator (default: FCS via FlowKit)
            embedder: Embedding collaborator (default: UMAP)
            plotter: Plotting function (default: matplotlib scatter panels)
            interactive: Classifier used when no backbone selection file is given
            algorithms: Prebuilt registry overriding the regression config section
            stages: Restrict the run to these stage names
            force: Recompute stages even when their artifacts exist
            temp_root: Override of the platform temporary directory
        """
        self.config = config
        self.verbose = config.pipeline.verbose
        self.force = force
        self.temp_root = temp_root
        self.interactive = interactive
        self.algorithms = algorithms

        self._reader = reader
        self._writer = writer
        self._embedder = embedder
        self._plotter = plotter

        from .stages import STAGE_NAMES

        if stages is not None:
            unknown = sorted(set(stages) - set(STAGE_NAMES))
            if unknown:
                raise ConfigurationError(f"Unknown stages {unknown}. Available: {list(STAGE_NAMES)}")
        self.selected_stages = tuple(stages) if stages is not None else STAGE_NAMES

        self.context: Optional[PipelineContext] = None
        self.checkpoint: Optional[CheckpointManager] = None
        self.logger: Optional[logging.Logger] = None

    @classmethod
    def from_yaml(cls, config_path: Path, intermediary: Optional[Path] = None, **kwargs) -> "PipelineOrchestrator":
        """Build an orchestrator from a YAML configuration file."""
        config = load_full_config(Path(config_path))
        if intermediary is not None:
            config = dataclasses.replace(
                config, paths=dataclasses.replace(config.paths, intermediary=Path(intermediary))
            )
        return cls(config, **kwargs)

    def _setup_logger(self) -> logging.Logger:
        """Setup console logging; the file handler is added once paths exist."""
        logger = logging.getLogger(LOGGER_NAME)
        logger.setLevel(logging.DEBUG)

        # Clear existing handlers
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(logging.INFO if self.verbose else logging.ERROR)
        console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%H:%M:%S"))
        logger.addHandler(console)
        return logger

    def _add_file_handler(self, log_file: Path) -> None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        self.logger.addHandler(file_handler)

    def _close_logger(self) -> None:
        if self.logger is None:
            return
        for handler in list(self.logger.handlers):
            if isinstance(handler, logging.FileHandler):
                handler.close()
                self.logger.removeHandler(handler)

    def _collaborators(self):
        """Default collaborators for whatever was not injected."""
        reader, writer, embedder, plotter = self._reader, self._writer, self._embedder, self._plotter
        if reader is None or writer is None:
            from infinity_flow.data.fcs_io import FcsReader, FcsWriter

            reader = reader or FcsReader()
            writer = writer or FcsWriter()
        if embedder is None:
            from infinity_flow.models.embedding import UmapEmbedder

            embedder = UmapEmbedder(
                n_jobs=self.config.compute.cores,
                random_state=seeding.task_seed(self.config.sampling.seed, seeding.EMBED),
                **self.config.umap,
            )
        if plotter is None:
            from infinity_flow.visualization.plot import plot_embedding

            plotter = plot_embedding
        return reader, writer, embedder, plotter

    def initialize(self) -> PipelineContext:
        """
        Validate configuration and resolve the shared run state.

        Raises:
            ConfigurationError: Before any event data is processed
        """
        config = self.config
        algorithms = self.algorithms
        if algorithms is None:
            algorithms = AlgorithmRegistry.from_specs(config.regression)
        if len(algorithms) == 0:
            raise ConfigurationError("At least one regression algorithm is required")

        paths, _ = PathRegistry(self.temp_root).build(
            config.paths.input, config.paths.output, config.paths.intermediary
        )
        self._add_file_handler(paths.intermediary / LOG_FILENAME)

        reader, writer, embedder, plotter = self._collaborators()

        annotation = AnnotationResolver(paths.input).resolve_and_save(
            paths.annotation, annotation=config.annotation, isotype=config.isotype
        )
        for row in annotation:
            self.logger.debug(f"  {row.file} -> {row.target}" + (f" (isotype: {row.isotype})" if row.isotype else ""))

        channels = reader.channels(paths.input / annotation.rows[0].file)
        selection = BackboneClassifier(
            config.paths.backbone_selection_file, interactive=self.interactive
        ).select(channels, paths.output, paths.model_state)

        return PipelineContext(
            config=config,
            paths=paths,
            annotation=annotation,
            selection=selection,
            algorithms=algorithms,
            reader=reader,
            writer=writer,
            embedder=embedder,
            plotter=plotter,
            logger=logging.getLogger(f"{LOGGER_NAME}.pipeline"),
            extras={"force": self.force},
        )

    def _init_checkpoint(self, stage_names: Sequence[str]) -> None:
        config_hash = CheckpointManager.compute_config_hash(self.config.to_dict())
        self.checkpoint = CheckpointManager(self.context.checkpoint_path)
        if self.checkpoint.load():
            self.logger.info("Loaded run journal from previous run")
            if self.checkpoint.get_config_hash() != config_hash:
                self.logger.warning("Configuration changed since the previous run on this intermediary directory")
                self.checkpoint.set_config_hash(config_hash)
        else:
            self.checkpoint.initialize(config_hash, stage_names)

    def run(self) -> PipelineResult:
        """
        Execute the pipeline.

        Returns:
            PipelineResult with raw and background-corrected predictions and timings

        Raises:
            ConfigurationError: Invalid configuration, before any data work
            StageError: A stage failed; carries the stage name
        """
        from .stages import default_stages

        self.logger = self._setup_logger()
        try:
            self.context = self.initialize()
            stages = default_stages()
            self._init_checkpoint([s.name for s in stages])

            result = PipelineResult(paths=self.context.paths)
            for stage in stages:
                stage_name = stage.name
                if stage_name not in self.selected_stages:
                    continue

                if not self.force and stage.is_completed(self.context):
                    self.logger.info(f"Stage '{stage_name}' artifacts already present, skipping")
                    self.checkpoint.mark_stage_skipped(stage_name)
                    result.skipped_stages.append(stage_name)
                    continue

                self.logger.info(f"Starting stage: {stage_name}")
                self.checkpoint.mark_stage_started(stage_name)
                try:
                    stage_result = stage.run(self.context)
                except StageError as e:
                    self.checkpoint.mark_stage_failed(stage_name, str(e))
                    self.logger.error(f"Stage '{stage_name}' failed: {e}")
                    raise
                except Exception as e:
                    self.checkpoint.mark_stage_failed(stage_name, f"{type(e).__name__}: {e}")
                    self.logger.exception(f"Stage '{stage_name}' failed with exception")
                    raise StageError(stage_name, f"{type(e).__name__}: {e}", cause=e) from e

                if not stage_result.success:
                    self.checkpoint.mark_stage_failed(stage_name, stage_result.message)
                    self.logger.error(f"Stage '{stage_name}' failed: {stage_result.message}")
                    raise StageError(stage_name, stage_result.message)

                self.checkpoint.mark_stage_completed(stage_name)
                self.logger.info(f"Stage '{stage_name}' completed: {stage_result.message}")
                result.executed_stages.append(stage_name)

            try:
                self._collect_results(result)
            except Exception as e:
                self.logger.exception("Loading the final tables failed")
                raise StageError(RESULTS_STAGE, f"{type(e).__name__}: {e}", cause=e) from e
            self.logger.info("Pipeline completed successfully")
            return result
        finally:
            self._close_logger()

    def _collect_results(self, result: PipelineResult) -> None:
        """Load final tables and persist the timing table, when available."""
        from .stages.export import raw_export_frame
        from .background import BGC_SUFFIX

        context = self.context
        if context.predictions_table_path.exists() and context.embedding_path.exists():
            result.raw = raw_export_frame(context, read_frame(context.predictions_table_path))
            if context.bgc_table_path.exists():
                result.background_corrected = raw_export_frame(
                    context, read_frame(context.bgc_table_path), column_suffix=BGC_SUFFIX
                )

        if context.fit_timings_path.exists() and context.predict_timings_path.exists():
            aggregator = TimingAggregator(context.algorithms.names)
            result.timings = aggregator.table(
                TimingAggregator.load(context.fit_timings_path),
                TimingAggregator.load(context.predict_timings_path),
            )
            aggregator.persist(
                result.timings, [context.timings_path, context.paths.model_state / "timings.csv"]
            )
