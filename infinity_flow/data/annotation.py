"""
Annotation Resolver
===================

Maps every input file to the target of its exploratory antibody and,
optionally, to the file holding its matched isotype control.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from infinity_flow.errors import ConfigurationError
from infinity_flow.utils.naming import file_key, make_unique

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".fcs"


@dataclass(frozen=True)
class AnnotationRow:
    file: str
    target: str
    isotype: Optional[str] = None

    @property
    def key(self) -> str:
        return file_key(self.file)


@dataclass(frozen=True)
class AnnotationTable:
    """Ordered, target-unique annotation rows."""

    rows: Tuple[AnnotationRow, ...]

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    @property
    def files(self) -> List[str]:
        return [r.file for r in self.rows]

    @property
    def targets(self) -> List[str]:
        return [r.target for r in self.rows]

    def row_for(self, file: str) -> AnnotationRow:
        for row in self.rows:
            if row.file == file:
                return row
        raise KeyError(file)

    def target_of(self, file: str) -> str:
        return self.row_for(file).target

    def isotype_target(self, row: AnnotationRow) -> Optional[str]:
        """Target name of the isotype control matched to *row*, if resolved."""
        if row.isotype is None or row.isotype == row.file:
            return None
        try:
            return self.target_of(row.isotype)
        except KeyError:
            return None

    def isotype_control_files(self) -> List[str]:
        """Files referenced as some other row's isotype control."""
        referenced = {r.isotype for r in self.rows if r.isotype}
        return [f for f in self.files if f in referenced]

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame({"file": self.files, "target": self.targets})
        if any(r.isotype is not None for r in self.rows):
            frame["isotype"] = [r.isotype for r in self.rows]
        return frame

    def save(self, path: Path) -> None:
        """Persist as ``file,target[,isotype]`` CSV."""
        self.to_frame().to_csv(path, index=False)

    @classmethod
    def load(cls, path: Path) -> "AnnotationTable":
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
        rows = []
        for record in frame.to_dict("records"):
            rows.append(AnnotationRow(
                file=record["file"],
                target=record["target"],
                isotype=record.get("isotype") or None,
            ))
        return cls(rows=tuple(rows))


def discover_files(input_dir: Path, extension: str = DEFAULT_EXTENSION) -> List[str]:
    """
    List input files recursively, matching the extension case-insensitively.

    Returns:
        Sorted POSIX-style paths relative to *input_dir*
    """
    input_dir = Path(input_dir)
    extension = extension.lower()
    files = [
        p.relative_to(input_dir).as_posix()
        for p in input_dir.rglob("*")
        if p.is_file() and p.suffix.lower() == extension
    ]
    return sorted(files)


class AnnotationResolver:
    """
    Builds the AnnotationTable for the files found under the input root.

    Args:
        input_dir: Root directory searched recursively for event files
        extension: File extension of event files
    """

    def __init__(self, input_dir: Path, extension: str = DEFAULT_EXTENSION):
        self.input_dir = Path(input_dir)
        self.extension = extension

    def discover(self) -> List[str]:
        files = discover_files(self.input_dir, self.extension)
        if not files:
            raise ConfigurationError(
                f"No '{self.extension}' files found under {self.input_dir}"
            )
        logger.info(f"Found {len(files)} input files under {self.input_dir}")
        return files

    def resolve(
        self,
        annotation: Optional[Mapping[str, str]] = None,
        isotype: Optional[Mapping[str, str]] = None,
        files: Optional[Sequence[str]] = None,
    ) -> AnnotationTable:
        """
        Resolve file targets and isotype controls.

        Args:
            annotation: file -> target mapping (default: each file's own name)
            isotype: file -> isotype label; the label is looked up among targets
            files: Pre-discovered relative file paths

        Returns:
            AnnotationTable with unique targets
        """
        files = list(files) if files is not None else self.discover()

        mapping: Dict[str, str] = {f: f for f in files}
        if annotation:
            unknown = sorted(set(annotation) - set(files))
            if unknown:
                raise ConfigurationError(f"Annotation lists files that were not found: {unknown}")
            mapping.update({f: str(t) for f, t in annotation.items()})

        if isotype:
            unknown = sorted(set(isotype) - set(files))
            if unknown:
                raise ConfigurationError(f"Isotype mapping lists files that were not found: {unknown}")

        raw_targets = [mapping[f] for f in files]
        isotype_files: List[Optional[str]] = [None] * len(files)
        if isotype:
            for i, f in enumerate(files):
                label = isotype.get(f)
                if label is None:
                    continue
                match = next((g for g, t in zip(files, raw_targets) if t == label), None)
                if match is None:
                    logger.warning(f"Isotype '{label}' for {f} does not match any target; left unresolved")
                isotype_files[i] = match

        targets = make_unique(raw_targets)
        rows = tuple(
            AnnotationRow(file=f, target=t, isotype=iso)
            for f, t, iso in zip(files, targets, isotype_files)
        )
        return AnnotationTable(rows=rows)

    def resolve_and_save(
        self,
        path: Path,
        annotation: Optional[Mapping[str, str]] = None,
        isotype: Optional[Mapping[str, str]] = None,
    ) -> AnnotationTable:
        """Resolve and persist the table to *path* before any stage runs."""
        table = self.resolve(annotation=annotation, isotype=isotype)
        table.save(path)
        logger.info(f"Annotation table written to {path}")
        return table
