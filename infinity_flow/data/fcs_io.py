"""
Event file I/O backed by FlowKit.

Readers return a DataFrame whose columns are the channel names ($PnN);
writers consume a DataFrame and produce one event file.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

import flowkit as fk
import numpy as np
import pandas as pd


class FcsReader:
    """Read FCS files into DataFrames.

    Args:
        ignore_offset_error: Tolerate malformed offsets some instruments write
    """

    def __init__(self, ignore_offset_error: bool = True):
        self.ignore_offset_error = ignore_offset_error

    def _sample(self, path: Path) -> fk.Sample:
        return fk.Sample(str(path), ignore_offset_error=self.ignore_offset_error)

    def channels(self, path: Path) -> List[Tuple[str, Optional[str]]]:
        """(name, description) pairs; description is None when $PnS is empty."""
        sample = self._sample(path)
        return [
            (name, desc or None)
            for name, desc in zip(sample.pnn_labels, sample.pns_labels)
        ]

    def read(self, path: Path) -> pd.DataFrame:
        sample = self._sample(path)
        events = sample.get_events(source="raw")
        return pd.DataFrame(np.asarray(events, dtype=np.float64), columns=list(sample.pnn_labels))


class FcsWriter:
    """Write DataFrames as FCS files (float32 events, column names as $PnN)."""

    suffix = ".fcs"

    def write(self, frame: pd.DataFrame, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        numeric = frame.select_dtypes(include=[np.number])
        sample = fk.Sample(
            numeric.to_numpy(dtype=np.float64),
            sample_id=path.stem,
            channel_labels=[str(c) for c in numeric.columns],
        )
        sample.export(path.name, source="raw", directory=str(path.parent))
        return path
