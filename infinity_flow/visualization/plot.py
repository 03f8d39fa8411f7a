"""
Embedding plots colored by channel intensity.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Mapping, Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np


def chop(values: np.ndarray, chop_quantiles: float) -> np.ndarray:
    """Clip finite values to the [q, 1-q] quantile range."""
    values = np.asarray(values, dtype=np.float64)
    finite = np.isfinite(values)
    if chop_quantiles <= 0 or not finite.any():
        return values
    lo, hi = np.quantile(values[finite], [chop_quantiles, 1.0 - chop_quantiles])
    out = values.copy()
    out[finite] = np.clip(values[finite], lo, hi)
    return out


def plot_embedding(
    coords: np.ndarray,
    values: Mapping[str, np.ndarray],
    out_path: Path,
    titles: Optional[Mapping[str, str]] = None,
    chop_quantiles: float = 0.005,
    point_size: float = 1.0,
    dpi: int = 150,
    panels_per_row: Optional[int] = None,
) -> Path:
    """
    Draw one scatter panel per marker on the same 2-D embedding.

    Args:
        coords: (n, 2) embedding coordinates
        values: marker -> (n,) intensities; NaN events are drawn in grey
        out_path: Destination file (format from the suffix, e.g. .pdf)
        titles: Optional marker -> display title
        chop_quantiles: Tail fraction clipped at each end of the color scale
    """
    coords = np.asarray(coords, dtype=np.float64)
    markers: Sequence[str] = list(values)
    titles = titles or {}

    n = max(1, len(markers))
    ncols = panels_per_row or int(math.ceil(math.sqrt(n)))
    nrows = int(math.ceil(n / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(3.2 * ncols, 3.0 * nrows), squeeze=False)

    for ax in axes.flat:
        ax.set_axis_off()

    for ax, marker in zip(axes.flat, markers):
        v = chop(values[marker], chop_quantiles)
        finite = np.isfinite(v)
        ax.scatter(coords[~finite, 0], coords[~finite, 1], s=point_size, c="lightgrey", linewidths=0)
        sc = ax.scatter(
            coords[finite, 0], coords[finite, 1],
            s=point_size, c=v[finite], cmap="viridis", linewidths=0, rasterized=True,
        )
        if finite.any():
            fig.colorbar(sc, ax=ax, fraction=0.046, pad=0.02)
        ax.set_title(titles.get(marker, marker), fontsize=8)

    fig.tight_layout()
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=dpi)
    plt.close(fig)
    return out_path
