"""
Background correction of imputed values against isotype controls.
"""

from __future__ import annotations

from typing import Dict, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm

from infinity_flow.data.annotation import AnnotationTable

BGC_SUFFIX = "_bgc"
FILE_COLUMN = "file"


def _residualize(y: np.ndarray, x: np.ndarray) -> np.ndarray:
    """y - (a + b*x) + mean(y) on finite pairs; other events are left as is."""
    out = y.copy()
    ok = np.isfinite(y) & np.isfinite(x)
    if ok.sum() < 2 or np.var(x[ok]) == 0:
        return out
    fit = sm.OLS(y[ok], sm.add_constant(x[ok], has_constant="add")).fit()
    out[ok] = fit.resid + y[ok].mean()
    return out


def correction_pairs(annotation: AnnotationTable, algorithms: Sequence[str]) -> Dict[str, str]:
    """Prediction column -> prediction column of its matched isotype control."""
    controls = set(annotation.isotype_control_files())
    pairs = {}
    for alg in algorithms:
        for row in annotation:
            iso_target = annotation.isotype_target(row)
            if iso_target is None or row.file in controls:
                continue
            pairs[f"{row.target}.{alg}"] = f"{iso_target}.{alg}"
    return pairs


def correct_background(
    table: pd.DataFrame,
    annotation: AnnotationTable,
    algorithms: Sequence[str],
    suffix: str = BGC_SUFFIX,
) -> pd.DataFrame:
    """
    Background-correct a prediction table.

    Within each originating file, every imputed antibody with a matched
    isotype control is regressed on the control's imputed values and replaced
    by the residual, re-centred on its own mean. Columns without a control
    are copied unchanged. Prediction columns are renamed with *suffix*.

    The function is pure: the same inputs always give the same output and
    *table* is not modified.
    """
    out = table.copy()
    files = table[FILE_COLUMN].to_numpy()
    for column, iso_column in correction_pairs(annotation, algorithms).items():
        if column not in table.columns or iso_column not in table.columns:
            continue
        corrected = table[column].to_numpy(dtype=np.float64).copy()
        iso = table[iso_column].to_numpy(dtype=np.float64)
        for f in pd.unique(files):
            group = files == f
            corrected[group] = _residualize(corrected[group], iso[group])
        out[column] = corrected

    prediction_columns = [f"{row.target}.{alg}" for alg in algorithms for row in annotation]
    return out.rename(columns={c: f"{c}{suffix}" for c in prediction_columns if c in out.columns})
