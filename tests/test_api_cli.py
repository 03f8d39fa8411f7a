"""Tests for the single-call entry point and the command line runner."""

from __future__ import annotations

import pytest
import yaml

from infinity_flow import infinity_flow
from infinity_flow.cli.run_pipeline import main, parse_args
from infinity_flow.errors import ConfigurationError
from infinity_flow.models.backends import MeanBackend

from helpers.fakes import CsvEventReader, CsvEventWriter, PcaEmbedder, RecordingPlotter


def _collaborators():
    return {
        "reader": CsvEventReader(),
        "writer": CsvEventWriter(),
        "embedder": PcaEmbedder(),
        "plotter": RecordingPlotter(),
    }


class TestInfinityFlow:

    def test_single_call_run(self, screen):
        result = infinity_flow(
            path_to_fcs=screen["input"],
            path_to_output=screen["output"],
            path_to_intermediary_results=screen["intermediary"],
            backbone_selection_file=screen["selection"],
            annotation={"well_A1.fcs": "CD3", "well_A2.fcs": "CD3", "well_A3.fcs": "IgG1"},
            isotype={"well_A1.fcs": "IgG1", "well_A2.fcs": "IgG1"},
            input_events_downsampling=80,
            prediction_events_downsampling=20,
            regression_functions={"Avg": MeanBackend(), "LM": "linear"},
            extra_args_regression_params=[{}, {"degree": 1}],
            extra_args_export={"FCS_export": "none", "CSV_export": True},
            extra_args_correct_background=["csv"],
            verbose=False,
            **_collaborators(),
        )

        assert len(result.raw) == 60
        assert {"CD3.Avg", "CD3.1.Avg", "IgG1.Avg", "CD3.LM", "CD3.1.LM", "IgG1.LM"} <= set(result.raw.columns)
        assert "CD3.LM_bgc" in result.background_corrected.columns
        assert list(result.timings.index) == ["Avg", "LM"]
        assert (screen["output"] / "CSV" / "predictions.csv").exists()
        assert (screen["output"] / "CSV_background_corrected" / "predictions.csv").exists()

    def test_misaligned_hyperparameters(self, screen):
        with pytest.raises(ConfigurationError):
            infinity_flow(screen["input"], screen["output"],
                          regression_functions={"LM": "linear"},
                          extra_args_regression_params=[{}, {}])

    def test_unknown_keyword(self, screen):
        with pytest.raises(ConfigurationError, match="Unexpected"):
            infinity_flow(screen["input"], screen["output"],
                          regression_functions={"Avg": "mean"}, reeder=None)


class TestCli:

    def test_arguments(self, tmp_path):
        args = parse_args(["--config", "run.yaml", "--stages", "fit", "predict", "--force", "-v"])
        assert args.stages == ["fit", "predict"]
        assert args.force and args.verbose and not args.quiet
        assert args.intermediary is None

    def test_missing_config_returns_1(self, tmp_path, capsys):
        assert main(["--config", str(tmp_path / "nope.yaml")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_invalid_config_returns_1(self, tmp_path, capsys):
        path = tmp_path / "run.yaml"
        path.write_text(yaml.safe_dump({"paths": {"input": str(tmp_path)}}))
        assert main(["--config", str(path)]) == 1
        assert "paths.output" in capsys.readouterr().err
