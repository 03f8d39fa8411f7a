"""Tests for raw-scale conversion and export modalities."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from infinity_flow.pipeline.export import expected_exports, export_table, to_raw_scale
from infinity_flow.utils.transforms import (
    FileTransformParams,
    arcsinh_transform,
    inverse_arcsinh,
    inverse_zscore,
    transform_events,
)

from helpers.fakes import CsvEventWriter

FILES = ["plate/a.fcs", "b.fcs"]


@pytest.fixture()
def raw_frame():
    return pd.DataFrame({
        "file": ["plate/a.fcs"] * 3 + ["b.fcs"] * 2,
        "CD45": [1.0, 2.0, 3.0, 4.0, 5.0],
        "CD3.LM": [np.nan, np.nan, np.nan, 0.5, 0.7],
        "UMAP1": np.arange(5.0),
        "UMAP2": np.arange(5.0),
    })


class TestTransforms:

    def test_arcsinh_round_trip(self):
        x = np.array([-50.0, 0.0, 10.0, 1e5])
        np.testing.assert_allclose(inverse_arcsinh(arcsinh_transform(x, 150.0), 150.0), x)

    def test_backbone_is_standardized_per_file(self):
        rng = np.random.default_rng(1)
        events = pd.DataFrame({"CD45": rng.lognormal(6, 1, 500), "CD3e": rng.lognormal(4, 2, 500),
                               "PE-A": rng.lognormal(5, 1, 500)})
        scaled, features, params = transform_events(events, ["CD45", "CD3e"], "PE-A", 150.0)

        assert list(scaled.columns) == ["CD45", "CD3e", "PE-A"]
        assert list(features.columns) == ["CD45", "CD3e"]
        np.testing.assert_allclose(features.mean(), 0.0, atol=1e-10)
        np.testing.assert_allclose(features.std(ddof=0), 1.0)
        np.testing.assert_allclose(inverse_zscore(features["CD45"], params.backbone["CD45"]), scaled["CD45"])
        assert FileTransformParams.from_dict(params.to_dict()) == params

    def test_constant_channel_does_not_divide_by_zero(self):
        events = pd.DataFrame({"CD45": np.full(10, 3.0), "PE-A": np.arange(10.0)})
        _, features, _ = transform_events(events, ["CD45"], "PE-A", 5.0)
        assert np.isfinite(features["CD45"]).all()


def test_to_raw_scale_uses_the_right_cofactors():
    params = {"a.fcs": FileTransformParams(cofactor=150.0), "b.fcs": FileTransformParams(cofactor=5.0)}
    table = pd.DataFrame({
        "file": ["a.fcs", "b.fcs"],
        "CD45": [float(arcsinh_transform(300.0, 150.0)), float(arcsinh_transform(300.0, 5.0))],
        "CD3.LM": [np.nan, float(arcsinh_transform(40.0, 150.0))],
    })
    out = to_raw_scale(table, params, ["CD45"], {"CD3.LM": "a.fcs"}, np.zeros((2, 2)))
    np.testing.assert_allclose(out["CD45"], [300.0, 300.0])
    assert np.isnan(out.loc[0, "CD3.LM"])
    assert out.loc[1, "CD3.LM"] == pytest.approx(40.0)
    assert list(out.columns) == ["file", "CD45", "CD3.LM", "UMAP1", "UMAP2"]


@pytest.mark.parametrize("modes", [("split",), ("concatenated",), ("csv",), ("split", "concatenated", "csv"), ()])
def test_written_paths_match_expected(tmp_path, raw_frame, modes):
    writer = CsvEventWriter()
    written = export_table(raw_frame, modes, tmp_path, FILES, writer, tag="_background_corrected")
    produced = sorted(str(p) for paths in written.values() for p in paths)
    expected = sorted(str(p) for p in expected_exports(tmp_path, modes, FILES, ".csv", tag="_background_corrected"))
    assert produced == expected
    assert all((tmp_path / p).exists() for p in produced)


def test_concatenated_rows_equal_split_rows(tmp_path, raw_frame):
    written = export_table(raw_frame, ("split", "concatenated"), tmp_path, FILES, CsvEventWriter())
    split = [pd.read_csv(p) for p in written["split"]]
    concatenated = pd.read_csv(written["concatenated"][0])

    assert [len(s) for s in split] == [3, 2]
    assert len(concatenated) == sum(len(s) for s in split)
    assert list(concatenated["file_index"]) == [1, 1, 1, 2, 2]
    assert "file" not in split[0].columns
    assert written["split"][0].name == "plate__a.csv"
