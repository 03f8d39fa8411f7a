"""Shared fixtures: a synthetic three-file screen and a config factory."""

from __future__ import annotations

from typing import Any, Dict

import pytest

from infinity_flow.config.config import build_config
from infinity_flow.pipeline.orchestrator import PipelineOrchestrator

from helpers.fakes import CsvEventReader, CsvEventWriter, PcaEmbedder, write_screen, write_selection

TARGETS = {"well_A1.fcs": "CD3", "well_A2.fcs": "CD4", "well_A3.fcs": "CD8"}


@pytest.fixture()
def screen(tmp_path):
    """Input directory with three files plus a backbone selection file."""
    input_dir = tmp_path / "fcs"
    files = write_screen(input_dir)
    selection = write_selection(tmp_path / "selection.csv")
    return {
        "input": input_dir,
        "files": files,
        "selection": selection,
        "output": tmp_path / "out",
        "intermediary": tmp_path / "state",
    }


@pytest.fixture()
def make_config(screen):
    """Build a FullConfig for *screen*; keyword sections replace the defaults."""

    def _make(**sections: Any):
        data: Dict[str, Any] = {
            "paths": {
                "input": str(screen["input"]),
                "output": str(screen["output"]),
                "intermediary": str(screen["intermediary"]),
                "backbone_selection_file": str(screen["selection"]),
            },
            "annotation": dict(TARGETS),
            "sampling": {
                "input_events_downsampling": 100,
                "prediction_events_downsampling": 50,
                "seed": 7,
            },
            "regression": [{"name": "Mean", "backend": "mean"}],
            "export": ["concatenated"],
            "background_correction": "none",
            "pipeline": {"verbose": False},
        }
        data.update(sections)
        return build_config(data)

    return _make


@pytest.fixture()
def make_orchestrator(make_config):
    """Orchestrator wired to the CSV collaborators."""

    def _make(config=None, **kwargs):
        kwargs.setdefault("reader", CsvEventReader())
        kwargs.setdefault("writer", CsvEventWriter())
        kwargs.setdefault("embedder", PcaEmbedder())
        return PipelineOrchestrator(config or make_config(), **kwargs)

    return _make
