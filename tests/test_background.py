"""Tests for isotype background correction."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from infinity_flow.data.annotation import AnnotationRow, AnnotationTable
from infinity_flow.pipeline.background import correct_background, correction_pairs


@pytest.fixture()
def annotation():
    return AnnotationTable(rows=(
        AnnotationRow(file="a.fcs", target="CD3", isotype="iso.fcs"),
        AnnotationRow(file="b.fcs", target="CD4", isotype=None),
        AnnotationRow(file="iso.fcs", target="IgG1", isotype=None),
    ))


@pytest.fixture()
def table():
    rng = np.random.default_rng(0)
    files = np.repeat(["a.fcs", "b.fcs", "iso.fcs"], 40)
    iso = rng.normal(1.0, 0.5, size=120)
    frame = pd.DataFrame({
        "file": files,
        "CD45": rng.normal(size=120),
        "IgG1.XGB": iso,
        "CD3.XGB": 2.0 + 0.8 * iso + rng.normal(0, 0.1, size=120),
        "CD4.XGB": rng.normal(3.0, 1.0, size=120),
    })
    frame.loc[frame["file"] == "a.fcs", "CD3.XGB"] = np.nan
    frame.loc[frame["file"] == "iso.fcs", "IgG1.XGB"] = np.nan
    return frame


def test_only_rows_with_a_resolved_control_are_paired(annotation):
    assert correction_pairs(annotation, ["XGB", "LM"]) == {"CD3.XGB": "IgG1.XGB", "CD3.LM": "IgG1.LM"}


def test_correction_is_pure_and_idempotent(table, annotation):
    before = table.copy()
    first = correct_background(table, annotation, ["XGB"])
    second = correct_background(table, annotation, ["XGB"])

    pd.testing.assert_frame_equal(first, second)
    pd.testing.assert_frame_equal(table, before)


def test_columns_are_suffixed_and_uncorrected_ones_copied(table, annotation):
    out = correct_background(table, annotation, ["XGB"])
    assert list(out.columns) == ["file", "CD45", "IgG1.XGB_bgc", "CD3.XGB_bgc", "CD4.XGB_bgc"]
    np.testing.assert_array_equal(out["CD4.XGB_bgc"], table["CD4.XGB"])
    np.testing.assert_array_equal(out["IgG1.XGB_bgc"], table["IgG1.XGB"])
    np.testing.assert_array_equal(out["CD45"], table["CD45"])


def test_isotype_signal_is_removed_per_file(table, annotation):
    out = correct_background(table, annotation, ["XGB"])
    for f in ("b.fcs", "iso.fcs"):
        group = (table["file"] == f).to_numpy()
        raw = table.loc[group, "CD3.XGB"].to_numpy()
        corrected = out.loc[group, "CD3.XGB_bgc"].to_numpy()
        iso = table.loc[group, "IgG1.XGB"].to_numpy()
        ok = np.isfinite(iso)
        if not ok.any():
            # control missing in its own file: left as is
            np.testing.assert_array_equal(corrected, raw)
            continue
        assert abs(np.corrcoef(corrected[ok], iso[ok])[0, 1]) < 1e-8
        assert corrected[ok].mean() == pytest.approx(raw[ok].mean())
    own = (table["file"] == "a.fcs").to_numpy()
    assert out.loc[own, "CD3.XGB_bgc"].isna().all()
