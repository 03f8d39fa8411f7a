from .config import (
    AlgorithmSpec,
    ComputeConfig,
    ExportConfig,
    FullConfig,
    PathsConfig,
    PipelineOptions,
    PlottingConfig,
    SamplingConfig,
    TransformConfig,
    build_config,
    load_full_config,
    parse_export_modes,
)

__all__ = [
    "AlgorithmSpec",
    "ComputeConfig",
    "ExportConfig",
    "FullConfig",
    "PathsConfig",
    "PipelineOptions",
    "PlottingConfig",
    "SamplingConfig",
    "TransformConfig",
    "build_config",
    "load_full_config",
    "parse_export_modes",
]
