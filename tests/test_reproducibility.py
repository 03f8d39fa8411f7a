"""Seeding and train/test split determinism across worker counts."""

from __future__ import annotations

import numpy as np
import pytest

from infinity_flow.data.artifacts import read_extra, read_frame
from infinity_flow.pipeline.stages.predict import select_prediction_events
from infinity_flow.pipeline.stages.subsample import select_events, split_train_test
from infinity_flow.utils import seeding


class TestTaskSeeds:

    def test_seed_depends_only_on_coordinates(self):
        assert seeding.task_seed(123, seeding.FIT, 2, 0) == seeding.task_seed(123, seeding.FIT, 2, 0)
        assert seeding.task_seed(123, seeding.FIT, 2, 0) != seeding.task_seed(123, seeding.FIT, 0, 2)
        assert seeding.task_seed(123, seeding.FIT, 2, 0) != seeding.task_seed(124, seeding.FIT, 2, 0)
        assert seeding.task_seed(123, seeding.SPLIT, 1) != seeding.task_seed(123, seeding.SUBSAMPLE, 1)


class TestSplit:

    def test_selection_is_capped_sorted_and_reproducible(self):
        a = select_events(1000, 100, seed=9, file_index=0)
        assert len(a) == 100
        assert np.all(np.diff(a) > 0)
        np.testing.assert_array_equal(a, select_events(1000, 100, seed=9, file_index=0))
        assert not np.array_equal(a, select_events(1000, 100, seed=9, file_index=1))

    def test_no_cap_keeps_every_event(self):
        np.testing.assert_array_equal(select_events(40, None, seed=1, file_index=0), np.arange(40))
        np.testing.assert_array_equal(select_events(40, 500, seed=1, file_index=0), np.arange(40))

    @pytest.mark.parametrize("n", [0, 1, 7, 100])
    def test_halves_are_disjoint(self, n):
        train = split_train_test(n, seed=3, file_index=2)
        assert train.dtype == bool
        assert train.sum() == n // 2
        np.testing.assert_array_equal(train, split_train_test(n, seed=3, file_index=2))

    def test_prediction_events_come_from_the_test_half(self):
        train = split_train_test(200, seed=3, file_index=0)
        picked = select_prediction_events(train, 30, seed=3, file_index=0)
        assert len(picked) == 30
        assert not train[picked].any()
        assert len(select_prediction_events(train, 1000, seed=3, file_index=0)) == 100


class TestAcrossCores:

    def _run(self, make_config, make_orchestrator, tmp_path, name, cores, backend):
        config = make_config(
            paths={
                "input": str(tmp_path / "fcs"),
                "output": str(tmp_path / f"out_{name}"),
                "intermediary": str(tmp_path / f"state_{name}"),
                "backbone_selection_file": str(tmp_path / "selection.csv"),
            },
            compute={"cores": cores, "parallel_backend": backend},
            regression=[{"name": "NN", "backend": "neural_network",
                         "params": {"hidden_layer_sizes": [8], "max_iter": 30, "early_stopping": False}}],
        )
        make_orchestrator(config, stages=["subsample", "transform", "fit", "predict"]).run()
        return tmp_path / f"state_{name}"

    def test_same_split_and_predictions_for_any_core_count(self, make_config, make_orchestrator, tmp_path, screen):
        one = self._run(make_config, make_orchestrator, tmp_path, "one", 1, "loky")
        three = self._run(make_config, make_orchestrator, tmp_path, "three", 3, "threading")

        for key in ("well_A1", "well_A2", "well_A3"):
            for extra in ("train", "event_index"):
                np.testing.assert_array_equal(
                    read_extra(one / "subsetted_fcs" / f"{key}.h5", extra),
                    read_extra(three / "subsetted_fcs" / f"{key}.h5", extra),
                )

        a = read_frame(one / "model_state" / "predictions.h5")
        b = read_frame(three / "model_state" / "predictions.h5")
        np.testing.assert_allclose(a["CD3.NN"], b["CD3.NN"], equal_nan=True)
        np.testing.assert_allclose(a["CD8.NN"], b["CD8.NN"], equal_nan=True)
