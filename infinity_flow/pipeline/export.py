"""
Export of prediction tables.

Converts a scaled prediction table back to raw instrument values and
renders it in the configured modalities: one file per input file
(``split``), one concatenated file (``concatenated``) and/or a flat CSV
table (``csv``).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import numpy as np
import pandas as pd

from infinity_flow.utils.naming import file_key
from infinity_flow.utils.transforms import FileTransformParams, inverse_arcsinh

logger = logging.getLogger(__name__)

FILE_COLUMN = "file"
FILE_INDEX_COLUMN = "file_index"
EMBEDDING_COLUMNS = ("UMAP1", "UMAP2")
CONCATENATED_STEM = "concatenated_results"
CSV_NAME = "predictions.csv"


def to_raw_scale(
    table: pd.DataFrame,
    params: Mapping[str, FileTransformParams],
    channels: Sequence[str],
    prediction_sources: Mapping[str, str],
    coords: np.ndarray,
) -> pd.DataFrame:
    """
    Invert the scaling of a prediction table and attach embedding coordinates.

    Args:
        table: Prediction table with a ``file`` column
        params: file -> transform parameters
        channels: Measured columns, inverted with the parameters of each row's file
        prediction_sources: prediction column -> file whose model produced it
        coords: (n, 2) embedding coordinates aligned with *table*
    """
    out = pd.DataFrame({FILE_COLUMN: table[FILE_COLUMN].to_numpy()})
    cofactors = table[FILE_COLUMN].map(lambda f: params[f].cofactor).to_numpy(dtype=np.float64)
    for c in channels:
        out[c] = inverse_arcsinh(table[c].to_numpy(), 1.0) * cofactors
    for column, source in prediction_sources.items():
        out[column] = inverse_arcsinh(table[column].to_numpy(), params[source].cofactor)
    coords = np.asarray(coords, dtype=np.float64)
    out[EMBEDDING_COLUMNS[0]] = coords[:, 0]
    out[EMBEDDING_COLUMNS[1]] = coords[:, 1]
    return out


def expected_exports(root: Path, modes: Sequence[str], files: Sequence[str], suffix: str, tag: str = "") -> List[Path]:
    """Paths an export with *modes* produces under *root*."""
    paths: List[Path] = []
    if "split" in modes:
        paths += [root / f"FCS{tag}" / "split" / f"{file_key(f)}{suffix}" for f in files]
    if "concatenated" in modes:
        paths.append(root / f"FCS{tag}" / "concatenated" / f"{CONCATENATED_STEM}{suffix}")
    if "csv" in modes:
        paths.append(root / f"CSV{tag}" / CSV_NAME)
    return paths


def export_table(
    frame: pd.DataFrame,
    modes: Sequence[str],
    root: Path,
    files: Sequence[str],
    writer,
    tag: str = "",
) -> Dict[str, List[Path]]:
    """
    Render *frame* in every requested modality.

    Args:
        frame: Raw-scale table with a ``file`` column
        modes: Any of ``split``, ``concatenated``, ``csv``
        root: Output root directory
        files: Input files in annotation order
        writer: Event writer collaborator (``write(frame, path)``, ``suffix``)
        tag: Directory suffix distinguishing corrected exports

    Returns:
        mode -> written paths
    """
    written: Dict[str, List[Path]] = {}
    numeric = frame.drop(columns=[FILE_COLUMN])

    if "split" in modes:
        split_dir = Path(root) / f"FCS{tag}" / "split"
        written["split"] = []
        for f in files:
            part = numeric[frame[FILE_COLUMN].to_numpy() == f].reset_index(drop=True)
            written["split"].append(writer.write(part, split_dir / f"{file_key(f)}{writer.suffix}"))

    if "concatenated" in modes:
        concat = numeric.copy()
        index = {f: i for i, f in enumerate(files, start=1)}
        concat[FILE_INDEX_COLUMN] = frame[FILE_COLUMN].map(index).to_numpy(dtype=np.float64)
        path = Path(root) / f"FCS{tag}" / "concatenated" / f"{CONCATENATED_STEM}{writer.suffix}"
        written["concatenated"] = [writer.write(concat, path)]

    if "csv" in modes:
        path = Path(root) / f"CSV{tag}" / CSV_NAME
        path.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(path, index=False)
        written["csv"] = [path]

    for mode, paths in written.items():
        logger.info(f"Exported {len(paths)} {mode} artifact(s) under {root}")
    return written
