"""
Path Registry
=============

Resolves the fixed set of working locations used by every pipeline stage
and creates the directories that do not exist yet.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from infinity_flow.errors import ConfigurationError

logger = logging.getLogger(__name__)

SUBSET_DIRNAME = "subsetted_fcs"
MODEL_STATE_DIRNAME = "model_state"
ANNOTATION_FILENAME = "annotation.csv"


@dataclass(frozen=True)
class PathSet:
    """Immutable mapping of named working locations.

    Every entry is a directory except ``annotation``, which is a CSV file path.
    """

    input: Path
    intermediary: Path
    subset: Path
    model_state: Path
    annotation: Path
    output: Path

    def __getitem__(self, name: str) -> Path:
        if name not in self.names():
            raise KeyError(name)
        return getattr(self, name)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    @classmethod
    def names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def directories(self) -> Dict[str, Path]:
        """All entries that must exist as directories."""
        return {name: self[name] for name in self.names() if name != "annotation"}

    def as_dict(self) -> Dict[str, str]:
        return {name: str(self[name]) for name in self.names()}


def _next_numbered_dir(root: Path) -> Path:
    """First ``root/<i>`` (i = 1, 2, ...) that does not exist yet."""
    i = 1
    while (root / str(i)).exists():
        i += 1
    return root / str(i)


class PathRegistry:
    """
    Builds a PathSet and guarantees its directories exist.

    When the requested intermediary root is the platform temporary directory
    (or is omitted) a fresh numbered subdirectory is allocated so repeated runs
    never collide. Any other root is used verbatim, which is how a run is
    resumed.
    """

    def __init__(self, temp_root: Optional[Path] = None):
        self.temp_root = Path(temp_root or tempfile.gettempdir())

    def _is_temp_root(self, path: Path) -> bool:
        return path.expanduser().resolve() == self.temp_root.expanduser().resolve()

    def resolve_intermediary(self, requested: Optional[Path]) -> Path:
        """Pick the intermediary root for this run."""
        requested = Path(requested) if requested is not None else self.temp_root
        if self._is_temp_root(requested):
            root = _next_numbered_dir(self.temp_root)
            logger.info(
                f"Using {self.temp_root} temporary directory to store intermediary results "
                f"as no non-temporary directory has been specified"
            )
            return root

        requested = requested.expanduser()
        if requested.exists() and not requested.is_dir():
            raise ConfigurationError(f"Intermediary root exists but is not a directory: {requested}")
        return requested

    def build(
        self,
        input_dir: Path,
        output_dir: Path,
        intermediary: Optional[Path] = None,
    ) -> Tuple[PathSet, List[Path]]:
        """
        Resolve every path and create missing directories.

        Args:
            input_dir: Directory holding the input event files
            output_dir: Directory receiving final results
            intermediary: Requested intermediary root (None = temporary directory)

        Returns:
            Tuple of (PathSet, list of directories that were created)
        """
        root = self.resolve_intermediary(intermediary)
        paths = PathSet(
            input=Path(input_dir).expanduser(),
            intermediary=root,
            subset=root / SUBSET_DIRNAME,
            model_state=root / MODEL_STATE_DIRNAME,
            annotation=root / ANNOTATION_FILENAME,
            output=Path(output_dir).expanduser(),
        )

        created = []
        for name, directory in paths.directories().items():
            if directory.exists():
                if not directory.is_dir():
                    raise ConfigurationError(f"Path '{name}' is not a directory: {directory}")
                continue
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise OSError(f"Could not create {name} directory {directory}: {e}") from e
            created.append(directory)

        if created:
            logger.info(
                f"{' and '.join(str(p) for p in created)}: directories not found, created"
            )
        logger.info("Using directories...")
        for name, value in paths.as_dict().items():
            logger.info(f"\t{name}: {value}")

        return paths, created
