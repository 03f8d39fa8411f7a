"""
Backbone Classification
=======================

Assigns every instrument channel to exactly one of backbone, exploratory or
ignored, either from a CSV selection file or by asking the user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from infinity_flow.data.artifacts import write_json
from infinity_flow.errors import ConfigurationError

logger = logging.getLogger(__name__)

SELECTION_FILENAME = "backbone_selection_file.csv"
BACKBONE_CHANNELS_FILENAME = "backbone_channels.json"
REQUIRED_COLUMNS = ("name", "type")

Channel = Tuple[str, Optional[str]]


class ChannelType(str, Enum):
    """Role of an instrument channel."""
    BACKBONE = "backbone"
    EXPLORATORY = "exploratory"
    IGNORED = "ignored"

    @classmethod
    def parse(cls, value: str) -> "ChannelType":
        aliases = {
            "backbone": cls.BACKBONE, "b": cls.BACKBONE,
            "exploratory": cls.EXPLORATORY, "e": cls.EXPLORATORY,
            "ignored": cls.IGNORED, "ignore": cls.IGNORED, "i": cls.IGNORED,
            "unused": cls.IGNORED, "u": cls.IGNORED,
        }
        key = str(value).strip().lower()
        if key not in aliases:
            raise ConfigurationError(
                f"Unknown channel type '{value}'. Expected backbone, exploratory or ignored"
            )
        return aliases[key]


@dataclass(frozen=True)
class ChannelRecord:
    name: str
    description: str
    type: ChannelType


@dataclass(frozen=True)
class ChannelClassification:
    """Validated classification of every channel."""

    records: Tuple[ChannelRecord, ...]

    def __post_init__(self):
        names = [r.name for r in self.records]
        duplicated = sorted({n for n in names if names.count(n) > 1})
        if duplicated:
            raise ConfigurationError(f"Channels classified more than once: {duplicated}")

        exploratory = [r.name for r in self.records if r.type is ChannelType.EXPLORATORY]
        if len(exploratory) != 1:
            raise ConfigurationError(
                f"Exactly one channel must be classified as exploratory, found {len(exploratory)}: "
                f"{exploratory}"
            )
        if not any(r.type is ChannelType.BACKBONE for r in self.records):
            raise ConfigurationError("At least one channel must be classified as backbone")

    @property
    def names(self) -> List[str]:
        return [r.name for r in self.records]

    @property
    def backbone(self) -> Dict[str, str]:
        """Backbone channel name -> description."""
        return {r.name: r.description for r in self.records if r.type is ChannelType.BACKBONE}

    @property
    def exploratory(self) -> str:
        return next(r.name for r in self.records if r.type is ChannelType.EXPLORATORY)

    @property
    def ignored(self) -> List[str]:
        return [r.name for r in self.records if r.type is ChannelType.IGNORED]

    def check_covers(self, channels: Sequence[Channel]) -> None:
        """Ensure the classification names exactly the discovered channels."""
        discovered = {name for name, _ in channels}
        classified = set(self.names)
        missing = sorted(discovered - classified)
        extra = sorted(classified - discovered)
        if missing or extra:
            raise ConfigurationError(
                f"Channel classification does not match the input channels "
                f"(unclassified: {missing}, unknown: {extra})"
            )

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "name": [r.name for r in self.records],
            "desc": [r.description for r in self.records],
            "type": [r.type.value for r in self.records],
        })

    def save(self, path: Path) -> None:
        self.to_frame().to_csv(path, index=False)

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "ChannelClassification":
        """Build from a ``name,desc,type`` table, backfilling empty descriptions."""
        missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
        if missing:
            raise ConfigurationError(f"Backbone selection table is missing columns: {missing}")

        records = []
        for row in frame.to_dict("records"):
            name = str(row["name"])
            desc = row.get("desc")
            if desc is None or pd.isna(desc) or str(desc).strip() == "":
                desc = name
            records.append(ChannelRecord(name=name, description=str(desc), type=ChannelType.parse(row["type"])))
        return cls(records=tuple(records))


class FileClassifier:
    """Classification read from a CSV file with ``name,desc,type`` columns."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def classify(self, channels: Sequence[Channel]) -> ChannelClassification:
        if not self.path.exists():
            raise ConfigurationError(f"Backbone selection file not found: {self.path}")
        frame = pd.read_csv(self.path, dtype=str, keep_default_na=False)
        return ChannelClassification.from_frame(frame)


class InteractiveClassifier:
    """Ask the user, channel by channel, for its role.

    Args:
        prompt: Callable used to read an answer (defaults to ``input``)
        echo: Callable used to display information (defaults to ``print``)
    """

    QUESTION = "Is '{name}' ({desc}) a [b]ackbone, [e]xploratory or [i]gnored channel? "

    def __init__(
        self,
        prompt: Callable[[str], str] = input,
        echo: Callable[[str], None] = print,
    ):
        self.prompt = prompt
        self.echo = echo

    def _ask(self, name: str, desc: Optional[str]) -> ChannelType:
        while True:
            answer = self.prompt(self.QUESTION.format(name=name, desc=desc or name))
            try:
                return ChannelType.parse(answer)
            except ConfigurationError:
                self.echo(f"Could not understand '{answer}', please answer b, e or i")

    def classify(self, channels: Sequence[Channel]) -> ChannelClassification:
        self.echo(f"Classifying {len(channels)} channels")
        records = tuple(
            ChannelRecord(name=name, description=desc or name, type=self._ask(name, desc))
            for name, desc in channels
        )
        return ChannelClassification(records=records)


@dataclass(frozen=True)
class BackboneSelection:
    """Outcome of classification consumed by every later stage."""
    classification: ChannelClassification
    generated_file: Optional[Path] = None

    @property
    def backbone(self) -> Dict[str, str]:
        return self.classification.backbone

    @property
    def exploratory(self) -> str:
        return self.classification.exploratory


class BackboneClassifier:
    """
    Resolves the channel classification for a run.

    Args:
        selection_file: Existing ``name,desc,type`` CSV; when None the
            interactive collaborator is used and its answer saved to the
            output directory
        interactive: Collaborator used when no selection file is given
    """

    def __init__(self, selection_file: Optional[Path] = None, interactive: Optional[InteractiveClassifier] = None):
        self.selection_file = Path(selection_file) if selection_file else None
        self.interactive = interactive or InteractiveClassifier()

    def select(
        self,
        channels: Sequence[Channel],
        output_dir: Path,
        model_state_dir: Path,
    ) -> BackboneSelection:
        """
        Classify channels and persist the backbone map.

        Args:
            channels: (name, description) pairs of the first input file
            output_dir: Receives the generated selection file
            model_state_dir: Receives the backbone name -> description map
        """
        generated = None
        if self.selection_file is None:
            classification = self.interactive.classify(channels)
            generated = Path(output_dir) / SELECTION_FILENAME
            classification.save(generated)
            logger.info(f"Backbone selection saved to {generated}; pass it as backbone_selection_file to resume")
        else:
            classification = FileClassifier(self.selection_file).classify(channels)
        classification.check_covers(channels)

        write_json(Path(model_state_dir) / BACKBONE_CHANNELS_FILENAME, classification.backbone)
        logger.info(
            f"{len(classification.backbone)} backbone channels, exploratory channel "
            f"'{classification.exploratory}', {len(classification.ignored)} ignored"
        )
        return BackboneSelection(classification=classification, generated_file=generated)
