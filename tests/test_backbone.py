"""Tests for channel classification."""

from __future__ import annotations

import json

import pandas as pd
import pytest

from infinity_flow.data.backbone import (
    BackboneClassifier,
    ChannelClassification,
    ChannelType,
    InteractiveClassifier,
)
from infinity_flow.errors import ConfigurationError

CHANNELS = [("FSC-A", None), ("CD45", "CD45 BUV395"), ("CD3e", None), ("PE-A", "Infinity marker"), ("Time", None)]


def _frame(types, desc=None):
    names = [name for name, _ in CHANNELS]
    return pd.DataFrame({
        "name": names,
        "desc": desc or [""] * len(names),
        "type": types,
    })


class TestChannelClassification:

    def test_partition_covers_every_channel_once(self):
        c = ChannelClassification.from_frame(_frame(["backbone", "backbone", "b", "exploratory", "ignore"]))
        backbone = set(c.backbone)
        assert backbone == {"FSC-A", "CD45", "CD3e"}
        assert c.exploratory == "PE-A"
        assert c.ignored == ["Time"]
        assert c.exploratory not in backbone
        assert backbone | {c.exploratory} | set(c.ignored) == {n for n, _ in CHANNELS}

    def test_empty_descriptions_are_backfilled(self):
        c = ChannelClassification.from_frame(
            _frame(["backbone", "backbone", "backbone", "exploratory", "ignored"],
                   desc=["", "CD45 BUV395", None, "", ""])
        )
        assert c.backbone == {"FSC-A": "FSC-A", "CD45": "CD45 BUV395", "CD3e": "CD3e"}

    @pytest.mark.parametrize("types", [
        ["backbone", "backbone", "backbone", "ignored", "ignored"],
        ["backbone", "backbone", "exploratory", "exploratory", "ignored"],
    ])
    def test_exactly_one_exploratory_channel(self, types):
        with pytest.raises(ConfigurationError, match="exploratory"):
            ChannelClassification.from_frame(_frame(types))

    def test_missing_columns_are_rejected(self):
        with pytest.raises(ConfigurationError, match="missing columns"):
            ChannelClassification.from_frame(pd.DataFrame({"name": ["a"], "desc": ["a"]}))

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ConfigurationError):
            ChannelType.parse("maybe")

    def test_must_cover_the_discovered_channels(self):
        c = ChannelClassification.from_frame(_frame(["backbone", "backbone", "backbone", "exploratory", "ignored"]))
        with pytest.raises(ConfigurationError, match="unclassified"):
            c.check_covers(CHANNELS + [("SSC-A", None)])


class TestBackboneClassifier:

    def test_selection_file_is_loaded_and_backbone_persisted(self, tmp_path):
        selection = tmp_path / "selection.csv"
        _frame(["backbone", "backbone", "backbone", "exploratory", "ignored"]).to_csv(selection, index=False)

        result = BackboneClassifier(selection).select(CHANNELS, tmp_path / "out", tmp_path)

        assert result.exploratory == "PE-A"
        assert result.generated_file is None
        assert json.loads((tmp_path / "backbone_channels.json").read_text()) == result.backbone

    def test_interactive_answers_are_saved_to_the_output_root(self, tmp_path):
        answers = iter(["b", "b", "huh?", "backbone", "e", "i"])
        echoed = []
        interactive = InteractiveClassifier(prompt=lambda _: next(answers), echo=echoed.append)
        out = tmp_path / "out"
        out.mkdir()

        result = BackboneClassifier(interactive=interactive).select(CHANNELS, out, tmp_path)

        assert result.generated_file == out / "backbone_selection_file.csv"
        saved = pd.read_csv(result.generated_file)
        assert list(saved.columns) == ["name", "desc", "type"]
        assert list(saved["type"]) == ["backbone", "backbone", "backbone", "exploratory", "ignored"]
        assert any("huh?" in line for line in echoed)

        # the generated file can be fed back for a non-interactive resume
        again = BackboneClassifier(result.generated_file).select(CHANNELS, out, tmp_path)
        assert again.classification == result.classification

    def test_missing_selection_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            BackboneClassifier(tmp_path / "nope.csv").select(CHANNELS, tmp_path, tmp_path)
