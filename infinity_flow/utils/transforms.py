from __future__ import annotations
import numpy as np
from dataclasses import asdict, dataclass, field
from typing import Dict, Mapping, Sequence

import pandas as pd


@dataclass(frozen=True)
class ZScoreParams:
    mean: float
    std: float


@dataclass(frozen=True)
class FileTransformParams:
    """Per-file parameters needed to invert the scaled values."""
    cofactor: float
    backbone: Dict[str, ZScoreParams] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping) -> "FileTransformParams":
        return cls(
            cofactor=float(payload["cofactor"]),
            backbone={k: ZScoreParams(**v) for k, v in payload.get("backbone", {}).items()},
        )


def arcsinh_transform(x: np.ndarray, cofactor: float) -> np.ndarray:
    """Biexponential-like scaling, linear near zero and logarithmic in the tails."""
    return np.arcsinh(np.asarray(x, dtype=np.float64) / cofactor)


def inverse_arcsinh(y: np.ndarray, cofactor: float) -> np.ndarray:
    return np.sinh(np.asarray(y, dtype=np.float64)) * cofactor


def zscore(x: np.ndarray, eps: float=1e-8) -> tuple[np.ndarray, ZScoreParams]:
    """
    Per-file z-score normalization of one channel.
    Returns normalized array and parameters for inverse transformation.
    """
    vals = np.asarray(x, dtype=np.float64).reshape(-1)
    m = float(vals.mean()) if vals.size else 0.0
    s = float(vals.std()) if vals.size else 0.0
    s = s if s > eps else eps
    return (vals - m) / s, ZScoreParams(mean=m, std=s)


def inverse_zscore(xn: np.ndarray, params: ZScoreParams) -> np.ndarray:
    """
    Invert z-score using stored parameters.
    """
    return np.asarray(xn, dtype=np.float64) * params.std + params.mean


def transform_events(
    events: pd.DataFrame,
    backbone: Sequence[str],
    exploratory: str,
    cofactor: float,
) -> tuple[pd.DataFrame, pd.DataFrame, FileTransformParams]:
    """
    Scale one file's events.

    Returns:
        (scaled, features, params): ``scaled`` holds arcsinh values of the
        backbone and exploratory channels, ``features`` the per-file z-scored
        backbone used as model input.
    """
    scaled = pd.DataFrame(
        {c: arcsinh_transform(events[c].to_numpy(), cofactor) for c in list(backbone) + [exploratory]},
        index=events.index,
    )
    features = {}
    stats = {}
    for c in backbone:
        features[c], stats[c] = zscore(scaled[c].to_numpy())
    return scaled, pd.DataFrame(features, index=events.index), FileTransformParams(cofactor=cofactor, backbone=stats)
