"""End-to-end and resume scenarios for the staged pipeline."""

from __future__ import annotations

import h5py
import numpy as np
import pandas as pd
import pytest

from infinity_flow.data.artifacts import read_frame
from infinity_flow.errors import ConfigurationError, StageError
from infinity_flow.pipeline.checkpoint import CheckpointManager, TaskStatus
from infinity_flow.pipeline.stages import STAGE_NAMES

from helpers.fakes import EXPLORATORY, FailingReader, RecordingPlotter

PREDICTIONS = ["CD3.Mean", "CD4.Mean", "CD8.Mean"]
OWN_FILE = {"CD3.Mean": "well_A1.fcs", "CD4.Mean": "well_A2.fcs", "CD8.Mean": "well_A3.fcs"}


class TestEndToEnd:

    @pytest.fixture()
    def result(self, make_orchestrator):
        return make_orchestrator().run()

    def test_prediction_table_has_two_other_file_blocks_per_model(self, result):
        raw = result.raw
        assert len(raw) == 3 * 50
        for column in PREDICTIONS:
            own = raw["file"] == OWN_FILE[column]
            assert raw.loc[own, column].isna().all()
            assert raw.loc[~own, column].notna().sum() == 2 * 50

    def test_mean_model_transfers_a_constant(self, result):
        for column in PREDICTIONS:
            values = result.raw[column].dropna().to_numpy()
            np.testing.assert_allclose(values, values[0])

    def test_raw_values_are_back_on_the_instrument_scale(self, result, screen):
        original = pd.read_csv(screen["input"] / "well_A1.fcs")
        exported = result.raw[result.raw["file"] == "well_A1.fcs"]
        assert exported["CD45"].min() >= original["CD45"].min() - 1e-6
        assert exported["CD45"].max() <= original["CD45"].max() + 1e-6

    def test_artifacts(self, result, screen):
        out = screen["output"]
        concatenated = pd.read_csv(out / "FCS" / "concatenated" / "concatenated_results.csv")
        assert len(concatenated) == 150
        assert set(concatenated["file_index"]) == {1.0, 2.0, 3.0}
        assert {"UMAP1", "UMAP2"} <= set(concatenated.columns)

        assert (out / "umap_plot_annotated.pdf").stat().st_size > 0
        assert (out / "umap_plot_annotated_backgroundcorrected.pdf").exists()

        timings = pd.read_csv(out / "timings.csv", index_col=0)
        assert list(timings.index) == ["Mean"]
        assert list(timings.columns) == ["fit", "predict"]
        assert (timings.to_numpy() >= 0).all()
        assert result.timings.shape == (1, 2)

    def test_background_correction_without_isotypes_is_a_rename(self, result):
        bgc = result.background_corrected
        for column in PREDICTIONS:
            np.testing.assert_allclose(bgc[f"{column}_bgc"], result.raw[column], equal_nan=True)

    def test_journal_records_every_stage(self, result, screen):
        journal = CheckpointManager(screen["intermediary"] / "pipeline_state.json")
        assert journal.load()
        assert result.executed_stages == list(STAGE_NAMES)
        for stage in STAGE_NAMES:
            assert journal.get_stage_status(stage) is TaskStatus.COMPLETED
        assert (screen["intermediary"] / "pipeline.log").exists()
        assert (screen["intermediary"] / "annotation.csv").exists()


class TestSelfPrediction:

    def test_no_model_predicts_its_own_file(self, make_orchestrator, screen):
        make_orchestrator(stages=["subsample", "transform", "fit", "predict"]).run()
        predictions = screen["intermediary"] / "model_state" / "predictions" / "Mean"
        for own in ("well_A1", "well_A2", "well_A3"):
            with h5py.File(predictions / f"{own}.h5", "r") as f:
                assert own not in f
                assert len(f.keys()) == 2

    def test_measured_mode_fills_the_own_block(self, make_orchestrator, make_config, screen):
        config = make_config(pipeline={"verbose": False, "self_prediction": "measured"})
        make_orchestrator(config, stages=["subsample", "transform", "fit", "predict"]).run()

        table = read_frame(screen["intermediary"] / "model_state" / "predictions.h5")
        own = table["file"] == "well_A2.fcs"
        np.testing.assert_array_equal(table.loc[own, "CD4.Mean"], table.loc[own, EXPLORATORY])
        assert table["CD4.Mean"].notna().all()


class TestExportModes:

    def test_split_and_concatenated_share_one_table(self, make_orchestrator, make_config, screen):
        config = make_config(export=["split", "concatenated", "csv"])
        make_orchestrator(config).run()

        out = screen["output"]
        split = sorted((out / "FCS" / "split").glob("*.csv"))
        assert [p.stem for p in split] == ["well_A1", "well_A2", "well_A3"]
        split_rows = sum(len(pd.read_csv(p)) for p in split)
        concatenated = pd.read_csv(out / "FCS" / "concatenated" / "concatenated_results.csv")
        assert len(concatenated) == split_rows
        assert len(pd.read_csv(out / "CSV" / "predictions.csv")) == split_rows

    def test_background_corrected_exports_are_tagged(self, make_orchestrator, make_config, screen):
        config = make_config(export="none", background_correction=["csv"])
        make_orchestrator(config).run()

        out = screen["output"]
        assert not (out / "FCS").exists()
        corrected = pd.read_csv(out / "CSV_background_corrected" / "predictions.csv")
        assert "CD3.Mean_bgc" in corrected.columns


class TestResume:

    def test_rerun_skips_stages_whose_artifacts_exist(self, make_orchestrator, screen):
        first = make_orchestrator(stages=["subsample", "transform", "fit"]).run()
        assert first.executed_stages == ["subsample", "transform", "fit"]
        assert first.raw is None

        model = screen["intermediary"] / "model_state" / "models" / "Mean" / "well_A1.joblib"
        stamp = model.stat().st_mtime_ns

        second = make_orchestrator().run()
        assert second.skipped_stages[:3] == ["subsample", "transform", "fit"]
        assert second.executed_stages[0] == "predict"
        assert model.stat().st_mtime_ns == stamp
        assert len(second.raw) == 150

    def test_force_recomputes(self, make_orchestrator, screen):
        make_orchestrator(stages=["subsample"]).run()
        again = make_orchestrator(stages=["subsample"], force=True).run()
        assert again.executed_stages == ["subsample"]

    def test_added_algorithm_refreshes_every_later_stage(self, make_orchestrator, make_config, screen):
        make_orchestrator().run()
        model = screen["intermediary"] / "model_state" / "models" / "Mean" / "well_A1.joblib"
        stamp = model.stat().st_mtime_ns

        config = make_config(regression=[{"name": "Mean", "backend": "mean"}, {"name": "LM", "backend": "linear"}])
        second = make_orchestrator(config).run()

        assert second.skipped_stages == ["subsample", "transform"]
        assert second.executed_stages == list(STAGE_NAMES[2:])
        assert model.stat().st_mtime_ns == stamp

        concatenated = pd.read_csv(screen["output"] / "FCS" / "concatenated" / "concatenated_results.csv")
        assert "CD3.LM" in concatenated.columns
        assert "CD3.LM" in second.raw.columns
        assert "CD3.LM_bgc" in second.background_corrected.columns
        assert list(second.timings.index) == ["Mean", "LM"]

    def test_forced_stage_refreshes_downstream_on_the_next_run(self, make_orchestrator, screen):
        make_orchestrator().run()
        make_orchestrator(stages=["predict"], force=True).run()

        third = make_orchestrator().run()
        assert third.skipped_stages == ["subsample", "transform", "fit", "predict"]
        assert third.executed_stages == list(STAGE_NAMES[4:])

    def test_only_missing_subsets_are_rebuilt(self, make_orchestrator, screen):
        make_orchestrator(stages=["subsample"]).run()
        subsets = screen["intermediary"] / "subsetted_fcs"
        stamps = {name: (subsets / name).stat().st_mtime_ns for name in ("well_A1.h5", "well_A2.h5")}
        (subsets / "well_A3.h5").unlink()

        again = make_orchestrator(stages=["subsample"]).run()
        assert again.executed_stages == ["subsample"]
        assert (subsets / "well_A3.h5").exists()
        for name, stamp in stamps.items():
            assert (subsets / name).stat().st_mtime_ns == stamp

    def test_only_missing_transforms_are_rebuilt(self, make_orchestrator, screen):
        make_orchestrator(stages=["subsample", "transform"]).run()
        state = screen["intermediary"] / "model_state"
        kept = state / "transformed" / "well_A1.h5"
        stamp = kept.stat().st_mtime_ns
        (state / "features" / "well_A3.h5").unlink()

        again = make_orchestrator(stages=["transform"]).run()
        assert again.executed_stages == ["transform"]
        assert (state / "features" / "well_A3.h5").exists()
        assert kept.stat().st_mtime_ns == stamp

    def test_unreadable_result_artifact_is_a_stage_error(self, make_orchestrator, screen):
        make_orchestrator().run()
        (screen["intermediary"] / "model_state" / "timings_fit.json").write_text("{not json")

        with pytest.raises(StageError) as info:
            make_orchestrator().run()
        assert info.value.stage == "results"

    def test_missing_upstream_artifact_is_a_stage_error(self, make_orchestrator, screen):
        with pytest.raises(StageError) as info:
            make_orchestrator(stages=["predict"]).run()
        assert info.value.stage == "predict"
        assert "Missing upstream" in str(info.value)

        journal = CheckpointManager(screen["intermediary"] / "pipeline_state.json")
        journal.load()
        assert journal.get_stage_status("predict") is TaskStatus.FAILED
        assert journal.get_errors()[-1]["stage"] == "predict"


class TestFailures:

    def test_stage_exception_is_wrapped_with_the_stage_name(self, make_orchestrator):
        with pytest.raises(StageError) as info:
            make_orchestrator(reader=FailingReader()).run()
        assert info.value.stage == "subsample"
        assert isinstance(info.value.cause, OSError)

    def test_configuration_errors_abort_before_any_data_work(self, make_orchestrator, make_config, screen):
        with pytest.raises(ConfigurationError):
            make_orchestrator(make_config(regression=[])).run()
        assert not (screen["intermediary"] / "subsetted_fcs").exists()

    def test_unknown_stage_name(self, make_orchestrator):
        with pytest.raises(ConfigurationError, match="Unknown stages"):
            make_orchestrator(stages=["fit", "train"])

    def test_injected_plotter_receives_every_marker(self, make_orchestrator):
        plotter = RecordingPlotter()
        make_orchestrator(plotter=plotter).run()
        assert [c["path"].name for c in plotter.calls] == [
            "umap_plot_annotated.pdf",
            "umap_plot_annotated_backgroundcorrected.pdf",
        ]
        raw_call = plotter.calls[0]
        assert set(PREDICTIONS) <= set(raw_call["values"])
        assert raw_call["coords"].shape == (150, 2)
