from __future__ import annotations
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import pandas as pd
import yaml

from infinity_flow.errors import ConfigurationError

EXPORT_MODES = ("split", "concatenated", "csv")
SELF_PREDICTION_MODES = ("skip", "measured")
PARALLEL_BACKENDS = ("loky", "threading")

DEFAULT_UMAP_ARGS: Dict[str, Any] = {
    "n_neighbors": 15,
    "min_dist": 0.2,
    "metric": "euclidean",
    "n_epochs": 1000,
}


@dataclass(frozen=True)
class PathsConfig:
    """Input, output and intermediary locations."""
    input: Path
    output: Path
    intermediary: Optional[Path] = None
    backbone_selection_file: Optional[Path] = None


@dataclass(frozen=True)
class SamplingConfig:
    """Event downsampling and the base reproducibility seed."""
    input_events_downsampling: Optional[int] = None
    prediction_events_downsampling: int = 1000
    seed: int = 123


@dataclass(frozen=True)
class ComputeConfig:
    cores: int = 1
    parallel_backend: str = "loky"


@dataclass(frozen=True)
class AlgorithmSpec:
    """One regression backend entry as written in the config file."""
    name: Optional[str]
    backend: str
    params: Dict[str, Any] = field(default_factory=dict)


DEFAULT_REGRESSION: Tuple[AlgorithmSpec, ...] = (
    AlgorithmSpec(name="XGBoost", backend="xgboost",
                  params={"n_estimators": 500, "learning_rate": 0.05}),
)


@dataclass(frozen=True)
class TransformConfig:
    cofactor: float = 150.0


@dataclass(frozen=True)
class ExportConfig:
    """Export modalities; an empty tuple disables export."""
    modes: Tuple[str, ...] = ("split",)


@dataclass(frozen=True)
class PlottingConfig:
    chop_quantiles: float = 0.005


@dataclass(frozen=True)
class PipelineOptions:
    verbose: bool = True
    self_prediction: str = "skip"
    neural_networks_seed: Optional[int] = None


@dataclass(frozen=True)
class FullConfig:
    """Complete configuration containing all sections."""
    paths: PathsConfig
    annotation: Optional[Dict[str, str]] = None
    isotype: Optional[Dict[str, str]] = None
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    compute: ComputeConfig = field(default_factory=ComputeConfig)
    regression: Tuple[AlgorithmSpec, ...] = DEFAULT_REGRESSION
    transform: TransformConfig = field(default_factory=TransformConfig)
    umap: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_UMAP_ARGS))
    export: ExportConfig = field(default_factory=ExportConfig)
    background_correction: ExportConfig = field(default_factory=ExportConfig)
    plotting: PlottingConfig = field(default_factory=PlottingConfig)
    pipeline: PipelineOptions = field(default_factory=PipelineOptions)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view used for hashing and logging."""
        return asdict(self)


def _get(section: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Look up *key* accepting both hyphenated and underscored spellings."""
    if key in section:
        return section[key]
    hyphenated = key.replace("_", "-")
    if hyphenated in section:
        return section[hyphenated]
    return default


def parse_export_modes(value: Any) -> Tuple[str, ...]:
    """
    Normalize an export specification into a tuple of modes.

    Accepts a single mode, a list of modes, ``None``/``"none"`` for no export,
    or a mapping in the ``{"FCS_export": ..., "CSV_export": bool}`` form.
    """
    if isinstance(value, Mapping):
        modes = list(parse_export_modes(_get(value, "FCS_export", value.get("fcs_export"))))
        if _get(value, "CSV_export", value.get("csv_export", False)):
            modes.append("csv")
        return tuple(dict.fromkeys(modes))

    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]

    modes = []
    for mode in value:
        mode = str(mode).lower()
        if mode == "none":
            continue
        if mode not in EXPORT_MODES:
            raise ConfigurationError(
                f"Unknown export mode '{mode}'. Expected any of {list(EXPORT_MODES)} or 'none'"
            )
        modes.append(mode)
    return tuple(dict.fromkeys(modes))


def load_annotation_csv(path: Path) -> Tuple[Dict[str, str], Optional[Dict[str, str]]]:
    """Read a ``file,target[,isotype]`` CSV into annotation and isotype mappings."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Annotation file not found: {path}")
    table = pd.read_csv(path, dtype=str, keep_default_na=False)
    missing = {"file", "target"} - set(table.columns)
    if missing:
        raise ConfigurationError(f"Annotation file {path} is missing columns: {sorted(missing)}")

    annotation = dict(zip(table["file"], table["target"]))
    isotype = None
    if "isotype" in table.columns:
        isotype = {f: iso for f, iso in zip(table["file"], table["isotype"]) if iso}
    return annotation, isotype


def load_paths_config(config_dict: dict) -> PathsConfig:
    """Parse the paths section of the config."""
    for key in ("input", "output"):
        if _get(config_dict, key) is None:
            raise ConfigurationError(f"paths.{key} is required")

    intermediary = _get(config_dict, "intermediary")
    selection = _get(config_dict, "backbone_selection_file")
    return PathsConfig(
        input=Path(_get(config_dict, "input")).expanduser(),
        output=Path(_get(config_dict, "output")).expanduser(),
        intermediary=Path(intermediary).expanduser() if intermediary else None,
        backbone_selection_file=Path(selection).expanduser() if selection else None,
    )


def load_sampling_config(config_dict: dict) -> SamplingConfig:
    """Parse the sampling section of the config."""
    cap = _get(config_dict, "input_events_downsampling")
    return SamplingConfig(
        input_events_downsampling=None if cap is None else int(cap),
        prediction_events_downsampling=int(_get(config_dict, "prediction_events_downsampling", 1000)),
        seed=int(_get(config_dict, "seed", 123)),
    )


def load_compute_config(config_dict: dict) -> ComputeConfig:
    """Parse the compute section of the config."""
    backend = str(_get(config_dict, "parallel_backend", "loky")).lower()
    if backend not in PARALLEL_BACKENDS:
        raise ConfigurationError(
            f"Unknown parallel backend '{backend}'. Expected one of {list(PARALLEL_BACKENDS)}"
        )
    cores = int(_get(config_dict, "cores", 1))
    if cores < 1:
        raise ConfigurationError(f"compute.cores must be >= 1, got {cores}")
    return ComputeConfig(cores=cores, parallel_backend=backend)


def load_regression_config(entries: Any) -> Tuple[AlgorithmSpec, ...]:
    """Parse the ordered list of regression backends."""
    if not isinstance(entries, (list, tuple)):
        raise ConfigurationError("regression must be a list of {name, backend, params} entries")

    specs = []
    for entry in entries:
        if isinstance(entry, str):
            entry = {"backend": entry}
        if "backend" not in entry:
            raise ConfigurationError(f"regression entry without backend: {entry}")
        specs.append(AlgorithmSpec(
            name=entry.get("name"),
            backend=str(entry["backend"]),
            params=dict(entry.get("params") or {}),
        ))
    return tuple(specs)


def load_pipeline_options(config_dict: dict) -> PipelineOptions:
    """Parse the pipeline section of the config."""
    mode = str(_get(config_dict, "self_prediction", "skip")).lower()
    if mode not in SELF_PREDICTION_MODES:
        raise ConfigurationError(
            f"Unknown self_prediction mode '{mode}'. Expected one of {list(SELF_PREDICTION_MODES)}"
        )
    nn_seed = _get(config_dict, "neural_networks_seed")
    return PipelineOptions(
        verbose=bool(_get(config_dict, "verbose", True)),
        self_prediction=mode,
        neural_networks_seed=None if nn_seed is None else int(nn_seed),
    )


def build_config(data: Mapping[str, Any]) -> FullConfig:
    """
    Build a FullConfig from an already-parsed mapping (YAML document or kwargs).

    Args:
        data: Mapping with the sections described in the README

    Returns:
        FullConfig with defaults filled in
    """
    if "paths" not in data:
        raise ConfigurationError("Configuration must contain a 'paths' section")

    annotation = data.get("annotation")
    isotype = data.get("isotype")
    if isinstance(annotation, (str, Path)):
        annotation, csv_isotype = load_annotation_csv(Path(annotation))
        isotype = isotype if isotype is not None else csv_isotype

    umap_args = dict(DEFAULT_UMAP_ARGS)
    umap_args.update(data.get("umap") or {})

    plotting = data.get("plotting") or {}
    chop = float(_get(plotting, "chop_quantiles", 0.005))
    if not 0.0 <= chop < 0.5:
        raise ConfigurationError(f"plotting.chop_quantiles must be in [0, 0.5), got {chop}")

    kwargs: Dict[str, Any] = {}
    if "regression" in data:
        kwargs["regression"] = load_regression_config(data["regression"])

    return FullConfig(
        paths=load_paths_config(data["paths"]),
        annotation=dict(annotation) if annotation else None,
        isotype=dict(isotype) if isotype else None,
        sampling=load_sampling_config(data.get("sampling") or {}),
        compute=load_compute_config(data.get("compute") or {}),
        transform=TransformConfig(cofactor=float(_get(data.get("transform") or {}, "cofactor", 150.0))),
        umap=umap_args,
        export=ExportConfig(modes=parse_export_modes(data.get("export", "split"))),
        background_correction=ExportConfig(
            modes=parse_export_modes(data.get("background_correction", "split"))
        ),
        plotting=PlottingConfig(chop_quantiles=chop),
        pipeline=load_pipeline_options(data.get("pipeline") or {}),
        **kwargs,
    )


def load_full_config(path: Path) -> FullConfig:
    """
    Load the complete configuration file with all sections.

    Args:
        path: Path to YAML configuration file

    Returns:
        FullConfig object
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    with open(path, "r") as f:
        yaml_data = yaml.safe_load(f) or {}
    return build_config(yaml_data)
