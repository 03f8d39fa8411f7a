"""
Single-call entry point mirroring the YAML configuration as keyword arguments.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from infinity_flow.config.config import DEFAULT_REGRESSION, build_config
from infinity_flow.errors import ConfigurationError
from infinity_flow.models.registry import AlgorithmRegistry
from infinity_flow.pipeline.orchestrator import PipelineOrchestrator, PipelineResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def infinity_flow(
    path_to_fcs: PathLike,
    path_to_output: PathLike,
    path_to_intermediary_results: Optional[PathLike] = None,
    backbone_selection_file: Optional[PathLike] = None,
    annotation: Optional[Union[Mapping[str, str], PathLike]] = None,
    isotype: Optional[Mapping[str, str]] = None,
    input_events_downsampling: Optional[int] = None,
    prediction_events_downsampling: int = 1000,
    cores: int = 1,
    seed: int = 123,
    verbose: bool = True,
    regression_functions: Optional[Any] = None,
    extra_args_regression_params: Optional[Sequence[Optional[Mapping[str, Any]]]] = None,
    extra_args_UMAP: Optional[Mapping[str, Any]] = None,
    extra_args_export: Any = "split",
    extra_args_correct_background: Any = "split",
    extra_args_plotting: Optional[Mapping[str, Any]] = None,
    neural_networks_seed: Optional[int] = None,
    self_prediction: str = "skip",
    cofactor: float = 150.0,
    parallel_backend: str = "loky",
    stages: Optional[Sequence[str]] = None,
    force: bool = False,
    **collaborators: Any,
) -> PipelineResult:
    """
    Run the complete imputation pipeline.

    Args:
        path_to_fcs: Directory searched recursively for input files
        path_to_output: Directory receiving exports, plots and timings
        path_to_intermediary_results: Intermediary root; defaults to a fresh
            numbered directory under the system temporary directory. Pass the
            same root again to resume.
        backbone_selection_file: CSV with ``name,desc,type`` columns; when
            omitted, channels are classified interactively
        annotation: file -> target mapping, or a ``file,target[,isotype]`` CSV
        isotype: file -> isotype target label mapping
        input_events_downsampling: Events kept per file (None keeps all)
        prediction_events_downsampling: Test events predicted per file
        cores: Worker count for fit, predict and embedding
        seed: Base seed for every random choice of the run
        regression_functions: name -> backend (name, class or instance);
            defaults to a single XGBoost model
        extra_args_regression_params: Hyperparameters, positionally aligned
            with *regression_functions*
        extra_args_UMAP: Embedding options
        extra_args_export: Export modes for raw predictions
        extra_args_correct_background: Export modes for background-corrected predictions
        extra_args_plotting: Plotting options (``chop_quantiles``)
        neural_networks_seed: Seed for stochastic regression backends
        **collaborators: reader, writer, embedder, plotter, interactive, temp_root

    Returns:
        PipelineResult with raw and background-corrected predictions and timings

    Raises:
        ConfigurationError: Invalid options, before any data is processed
        StageError: A stage failed
    """
    if regression_functions is None:
        regression_functions = [(s.name, s.backend) for s in DEFAULT_REGRESSION]
        if extra_args_regression_params is None:
            extra_args_regression_params = [s.params for s in DEFAULT_REGRESSION]
    elif extra_args_regression_params is None:
        count = len(regression_functions)
        extra_args_regression_params = [{} for _ in range(count)]
    algorithms = AlgorithmRegistry(regression_functions, extra_args_regression_params)

    data = {
        "paths": {
            "input": path_to_fcs,
            "output": path_to_output,
            "intermediary": path_to_intermediary_results,
            "backbone_selection_file": backbone_selection_file,
        },
        "annotation": annotation,
        "isotype": isotype,
        "sampling": {
            "input_events_downsampling": input_events_downsampling,
            "prediction_events_downsampling": prediction_events_downsampling,
            "seed": seed,
        },
        "compute": {"cores": cores, "parallel_backend": parallel_backend},
        "regression": [
            {"name": e.name, "backend": e.backend.backend_name or type(e.backend).__name__, "params": e.params}
            for e in algorithms
        ],
        "transform": {"cofactor": cofactor},
        "umap": dict(extra_args_UMAP or {}),
        "export": extra_args_export,
        "background_correction": extra_args_correct_background,
        "plotting": dict(extra_args_plotting or {}),
        "pipeline": {
            "verbose": verbose,
            "self_prediction": self_prediction,
            "neural_networks_seed": neural_networks_seed,
        },
    }
    config = build_config(data)

    unknown = sorted(set(collaborators) - {"reader", "writer", "embedder", "plotter", "interactive", "temp_root"})
    if unknown:
        raise ConfigurationError(f"Unexpected keyword arguments: {unknown}")

    orchestrator = PipelineOrchestrator(
        config, algorithms=algorithms, stages=stages, force=force, **collaborators
    )
    return orchestrator.run()
